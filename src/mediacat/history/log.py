"""Bounded undo/redo history backed by the catalog database."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime
from typing import Callable, Optional

from mediacat.catalog.store import CatalogStore, timestamp
from mediacat.errors import HistoryOrderError, NotFoundError

from .models import ActionLogEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 50

_COLUMNS = "id, action_type, target_table, target_id, old_value, new_value, created_at, undone"

ApplyFn = Callable[[ActionLogEntry, Optional[str]], None]


def _entry_from_row(row: sqlite3.Row) -> ActionLogEntry:
    return ActionLogEntry(
        id=row["id"],
        action_type=row["action_type"],
        target_table=row["target_table"],
        target_id=row["target_id"],
        old_value=row["old_value"],
        new_value=row["new_value"],
        created_at=datetime.fromisoformat(str(row["created_at"])),
        undone=bool(row["undone"]),
    )


class ActionLog:
    """Ordered, capacity-bounded history of reversible actions.

    Undone entries always form a contiguous suffix of the log by id. Logging
    a new action first discards that suffix, so redo is only possible until
    the next action is recorded.
    """

    def __init__(self, store: CatalogStore, *, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._store = store
        self._capacity = capacity

    @property
    def capacity(self) -> int:
        """Return the maximum number of retained entries."""
        return self._capacity

    def log_action(
        self,
        action_type: str,
        target_table: str,
        target_id: int,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> int:
        """Record an action and return its id.

        Runs as one transaction, strictly in this order: purge the redo
        suffix, insert the entry, trim to capacity evicting the lowest ids.
        Trimming ignores the ``undone`` flag; after the purge no undone
        entries are left for it to evict.
        """

        def _log(conn: sqlite3.Connection) -> int:
            purged = conn.execute("DELETE FROM action_log WHERE undone = 1").rowcount
            cursor = conn.execute(
                "INSERT INTO action_log "
                "(action_type, target_table, target_id, old_value, new_value, created_at, undone) "
                "VALUES (?, ?, ?, ?, ?, ?, 0)",
                (action_type, target_table, target_id, old_value, new_value, timestamp()),
            )
            evicted = conn.execute(
                "DELETE FROM action_log WHERE id NOT IN "
                "(SELECT id FROM action_log ORDER BY id DESC LIMIT ?)",
                (self._capacity,),
            ).rowcount
            if purged or evicted:
                LOGGER.debug(
                    "Action log purged %d undone and evicted %d old entries", purged, evicted
                )
            return int(cursor.lastrowid)

        return self._store.write("log action", _log)

    def peek_undo(self) -> Optional[ActionLogEntry]:
        """Return the most recent entry that has not been undone."""
        return self._store.read("peek undo", self._peek_undo)

    def peek_redo(self) -> Optional[ActionLogEntry]:
        """Return the oldest entry of the redo suffix."""
        return self._store.read("peek redo", self._peek_redo)

    def mark_undone(self, action_id: int) -> None:
        """Flag ``action_id`` as undone.

        Only the entry returned by :meth:`peek_undo` may be flagged. The caller
        applies the inverse mutation itself using ``old_value``.

        Raises:
            NotFoundError: If ``action_id`` is unknown.
            HistoryOrderError: If ``action_id`` is not the next entry to undo.
        """
        self._flip(action_id, undone=True)

    def mark_redone(self, action_id: int) -> None:
        """Clear the undone flag on ``action_id``.

        Only the entry returned by :meth:`peek_redo` may be flagged.

        Raises:
            NotFoundError: If ``action_id`` is unknown.
            HistoryOrderError: If ``action_id`` is not the next entry to redo.
        """
        self._flip(action_id, undone=False)

    def undo(self, apply: ApplyFn) -> Optional[ActionLogEntry]:
        """Apply and flag the next undoable entry.

        ``apply`` receives the entry and its ``old_value``. When it raises,
        the entry is left untouched.

        Returns:
            Optional[ActionLogEntry]: The undone entry, or ``None`` if the
            history is empty.
        """
        entry = self.peek_undo()
        if entry is None:
            return None
        apply(entry, entry.old_value)
        self.mark_undone(entry.id)
        return entry

    def redo(self, apply: ApplyFn) -> Optional[ActionLogEntry]:
        """Apply and unflag the next redoable entry using its ``new_value``."""
        entry = self.peek_redo()
        if entry is None:
            return None
        apply(entry, entry.new_value)
        self.mark_redone(entry.id)
        return entry

    def entries(self) -> list[ActionLogEntry]:
        """Return the whole log ordered by id."""
        rows = self._store.read(
            "list actions",
            lambda conn: conn.execute(f"SELECT {_COLUMNS} FROM action_log ORDER BY id").fetchall(),
        )
        return [_entry_from_row(row) for row in rows]

    def _flip(self, action_id: int, *, undone: bool) -> None:
        def _update(conn: sqlite3.Connection) -> None:
            exists = conn.execute(
                "SELECT 1 FROM action_log WHERE id = ?", (action_id,)
            ).fetchone()
            if exists is None:
                raise NotFoundError(f"Unknown action id: {action_id}")
            expected = self._peek_undo(conn) if undone else self._peek_redo(conn)
            if expected is None or expected.id != action_id:
                verb = "undone" if undone else "redone"
                raise HistoryOrderError(
                    f"Action {action_id} cannot be {verb}; next is "
                    f"{expected.id if expected else 'none'}"
                )
            conn.execute(
                "UPDATE action_log SET undone = ? WHERE id = ?", (1 if undone else 0, action_id)
            )

        self._store.write("mark action", _update)

    @staticmethod
    def _peek_undo(conn: sqlite3.Connection) -> Optional[ActionLogEntry]:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM action_log WHERE undone = 0 ORDER BY id DESC LIMIT 1"
        ).fetchone()
        return _entry_from_row(row) if row else None

    @staticmethod
    def _peek_redo(conn: sqlite3.Connection) -> Optional[ActionLogEntry]:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM action_log WHERE undone = 1 ORDER BY id ASC LIMIT 1"
        ).fetchone()
        return _entry_from_row(row) if row else None


__all__ = ["ActionLog", "DEFAULT_CAPACITY"]
