"""Apply scan results and watcher change batches to the catalog."""

from __future__ import annotations

import logging
import os
import sqlite3
from typing import Callable, Iterable, Optional, Sequence

from mediacat.errors import PathValidationError, UnsupportedExtension
from mediacat.scanning.discovery import MediaScanner

from .models import ChangeBatch, ReconcileResult
from .store import CatalogStore, timestamp

LOGGER = logging.getLogger(__name__)


def directory_prefix(path: str) -> str:
    """Return ``path`` with exactly one trailing separator.

    The separator keeps ``/photos`` from claiming ``/photos-old/a.jpg``.
    """
    return path.rstrip(os.sep) + os.sep


def _common_root(paths: Sequence[str]) -> Optional[str]:
    """Return the longest path shared by ``paths``, or ``None`` without one."""
    if not paths:
        return None
    if len(paths) == 1:
        return paths[0]
    try:
        return os.path.commonpath(paths)
    except ValueError:
        return None


class ReconciliationEngine:
    """Turn discovered paths and change batches into catalog mutations.

    Entries are only ever inserted or linked here. Paths reported as removed
    from disk are surfaced as ``missing`` in the result and stay in the
    catalog, so tags, ratings, and comments attached to them are never
    discarded implicitly; deleting an entry is an explicit catalog operation.
    """

    def __init__(self, store: CatalogStore, scanner: Optional[MediaScanner] = None) -> None:
        self._store = store
        self._scanner = scanner or MediaScanner()

    def backfill(self, directory_id: int, prefix: str) -> int:
        """Link unlinked entries under ``prefix`` to ``directory_id``.

        Only entries without a directory are eligible, so repeating the call
        changes nothing.

        Args:
            directory_id: Directory to attach entries to.
            prefix: Directory path followed by a separator.

        Returns:
            int: Number of entries linked by this call.
        """

        def _link(conn: sqlite3.Connection) -> int:
            cursor = conn.execute(
                "UPDATE images SET directory_id = ? "
                "WHERE directory_id IS NULL AND substr(file_path, 1, length(?)) = ?",
                (directory_id, prefix, prefix),
            )
            return cursor.rowcount

        linked = self._store.write("backfill directory", _link, path=prefix)
        if linked:
            LOGGER.info("Linked %d existing entries to directory %d", linked, directory_id)
        return linked

    def ingest(self, paths: Iterable[str], directory_id: Optional[int] = None) -> list[str]:
        """Insert catalog entries for paths not yet catalogued.

        Args:
            paths: Absolute media paths, typically produced by a scan.
            directory_id: Directory new entries are linked to.

        Returns:
            list[str]: Paths that produced new entries.
        """
        candidates = list(paths)
        return self._store.write(
            "ingest scan results",
            lambda conn: self._insert_missing(conn, candidates, lambda _path: directory_id),
            path=_common_root(candidates),
        )

    def apply_change_batch(self, batch: ChangeBatch) -> ReconcileResult:
        """Apply one watcher batch in a single transaction.

        Added paths are inserted when new and linked to the deepest registered
        directory containing them; known but unlinked entries are linked the
        same way. Removed paths are reported as missing.

        Raises:
            PathValidationError: If a path is not absolute.
            UnsupportedExtension: If a path is not a supported media file.
        """
        for event in batch.events():
            if not os.path.isabs(event.path):
                raise PathValidationError(
                    f"Change path must be absolute: {event.path}", path=event.path
                )
            if not self._scanner.is_supported(event.path):
                raise UnsupportedExtension(
                    f"Unsupported media extension: {event.path}", path=event.path
                )

        def _apply(conn: sqlite3.Connection) -> ReconcileResult:
            owners = self._directory_prefixes(conn)
            inserted = self._insert_missing(
                conn, batch.added, lambda path: self._owner_of(path, owners)
            )
            linked = 0
            for path in batch.added:
                owner = self._owner_of(path, owners)
                if path in inserted or owner is None:
                    continue
                linked += conn.execute(
                    "UPDATE images SET directory_id = ? "
                    "WHERE file_path = ? AND directory_id IS NULL",
                    (owner, path),
                ).rowcount
            missing = self._catalogued(conn, batch.removed)
            return ReconcileResult(inserted=inserted, linked=linked, missing=missing)

        result = self._store.write(
            "apply change batch", _apply, path=_common_root([*batch.added, *batch.removed])
        )
        if result.inserted:
            LOGGER.info("Catalogued %d new file(s) from watcher", len(result.inserted))
        if result.missing:
            LOGGER.info(
                "%d catalogued file(s) no longer on disk; kept as missing", len(result.missing)
            )
        return result

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _insert_missing(
        self,
        conn: sqlite3.Connection,
        paths: Sequence[str],
        owner: Callable[[str], Optional[int]],
    ) -> list[str]:
        inserted: list[str] = []
        created_at = timestamp()
        for path in paths:
            cursor = conn.execute(
                "INSERT OR IGNORE INTO images "
                "(file_path, file_name, file_type, directory_id, created_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (
                    path,
                    os.path.basename(path),
                    self._scanner.classify(path).value,
                    owner(path),
                    created_at,
                ),
            )
            if cursor.rowcount:
                inserted.append(path)
        return inserted

    def _directory_prefixes(self, conn: sqlite3.Connection) -> list[tuple[str, int]]:
        rows = conn.execute("SELECT id, path FROM directories").fetchall()
        prefixes = [(directory_prefix(row["path"]), row["id"]) for row in rows]
        prefixes.sort(key=lambda item: len(item[0]), reverse=True)
        return prefixes

    @staticmethod
    def _owner_of(path: str, prefixes: list[tuple[str, int]]) -> Optional[int]:
        for prefix, directory_id in prefixes:
            if path.startswith(prefix):
                return directory_id
        return None

    @staticmethod
    def _catalogued(conn: sqlite3.Connection, paths: Sequence[str]) -> list[str]:
        found: list[str] = []
        for path in paths:
            row = conn.execute("SELECT 1 FROM images WHERE file_path = ?", (path,)).fetchone()
            if row is not None:
                found.append(path)
        return found


__all__ = ["ReconciliationEngine", "directory_prefix"]
