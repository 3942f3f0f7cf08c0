"""Action history models."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from mediacat.catalog.models import utcnow


class ActionLogEntry(BaseModel):
    """A reversible catalog mutation.

    Attributes:
        id: Monotonically increasing identifier; never reused.
        action_type: Caller-defined action name, e.g. ``update_rating``.
        target_table: Table the mutation applied to.
        target_id: Row id within ``target_table``.
        old_value: Encoded snapshot before the mutation.
        new_value: Encoded snapshot after the mutation.
        created_at: Time the action was logged.
        undone: Whether the action currently sits on the redo suffix.
    """

    id: int
    action_type: str
    target_table: str
    target_id: int
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    undone: bool = False


__all__ = ["ActionLogEntry"]
