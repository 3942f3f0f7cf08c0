"""Versioned encoding for action-log snapshots.

The action log stores ``old_value``/``new_value`` as opaque strings. Callers
that record a step encode their snapshot here and decode it again when they
apply an undo or redo; the log itself never looks inside.
"""

from __future__ import annotations

import json
from typing import Any, Optional

from mediacat.errors import PayloadError

PAYLOAD_VERSION = 1
_PREFIX = f"v{PAYLOAD_VERSION}:"


def encode_snapshot(value: Any) -> Optional[str]:
    """Serialize a JSON-compatible snapshot; ``None`` stays ``None``."""
    if value is None:
        return None
    try:
        return _PREFIX + json.dumps(value, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError) as exc:
        raise PayloadError(f"Snapshot is not JSON serializable: {exc}") from exc


def decode_snapshot(payload: Optional[str]) -> Any:
    """Invert :func:`encode_snapshot`.

    Raises:
        PayloadError: If the payload has an unknown version or invalid body.
    """
    if payload is None:
        return None
    version, sep, body = payload.partition(":")
    if not sep or version != f"v{PAYLOAD_VERSION}":
        raise PayloadError(f"Unsupported snapshot encoding: {payload[:16]!r}")
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise PayloadError(f"Invalid snapshot body: {exc}") from exc


__all__ = ["PAYLOAD_VERSION", "encode_snapshot", "decode_snapshot"]
