"""Registry of watched directory trees."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from mediacat.errors import NotADirectory, NotFoundError
from mediacat.scanning.discovery import MediaScanner

from .models import WatchedDirectory
from .reconcile import ReconciliationEngine, directory_prefix
from .store import DIRECTORY_COLUMNS, CatalogStore, directory_from_row, timestamp

LOGGER = logging.getLogger(__name__)


class DirectoryRegistry:
    """Persist watched roots and keep their catalog linkage current."""

    def __init__(
        self,
        store: CatalogStore,
        *,
        scanner: Optional[MediaScanner] = None,
        engine: Optional[ReconciliationEngine] = None,
    ) -> None:
        """Initialize the registry.

        Args:
            store: Catalog store holding directories and entries.
            scanner: Scanner used when a directory is (re)registered.
            engine: Reconciliation engine; built from ``store`` when omitted.
        """
        self._store = store
        self._scanner = scanner or MediaScanner()
        self._engine = engine or ReconciliationEngine(store, self._scanner)

    @property
    def engine(self) -> ReconciliationEngine:
        """Return the reconciliation engine used by the registry."""
        return self._engine

    @property
    def scanner(self) -> MediaScanner:
        """Return the scanner used by the registry."""
        return self._scanner

    def add_directory(self, path: str | Path) -> WatchedDirectory:
        """Register ``path`` (or reactivate it) and catalogue its media files.

        The tree is walked before anything is written, so a directory that
        cannot be listed is never registered.

        Args:
            path: Directory to register.

        Returns:
            WatchedDirectory: The registered directory with fresh scan stats.

        Raises:
            NotADirectory: If ``path`` does not exist or is not a directory.
            CatalogIOError: If the tree cannot be walked.
        """
        resolved = Path(path).expanduser().resolve()
        if not resolved.is_dir():
            raise NotADirectory(f"Not a directory: {resolved}", path=str(resolved))
        directory_path = str(resolved)
        found = list(self._scanner.scan(directory_path))

        def _register(conn: sqlite3.Connection) -> int:
            row = conn.execute(
                "SELECT id FROM directories WHERE path = ?", (directory_path,)
            ).fetchone()
            if row is not None:
                conn.execute("UPDATE directories SET is_active = 1 WHERE id = ?", (row["id"],))
                LOGGER.info("Reactivated watched directory %s", directory_path)
                return row["id"]
            cursor = conn.execute(
                "INSERT INTO directories (path, name, is_active, file_count, created_at) "
                "VALUES (?, ?, 1, 0, ?)",
                (directory_path, resolved.name or directory_path, timestamp()),
            )
            LOGGER.info("Registered watched directory %s", directory_path)
            return int(cursor.lastrowid)

        directory_id = self._store.write("register directory", _register, path=directory_path)
        self._engine.ingest(found, directory_id)
        self._engine.backfill(directory_id, directory_prefix(directory_path))
        return self.record_scan(directory_id, len(found))

    def remove_directory(self, directory_id: int) -> None:
        """Unregister a directory, keeping its catalog entries.

        Entries linked to the directory have their link cleared in the same
        transaction that deletes the directory row.

        Raises:
            NotFoundError: If ``directory_id`` is unknown.
        """

        def _remove(conn: sqlite3.Connection) -> int:
            self._require(conn, directory_id)
            unlinked = conn.execute(
                "UPDATE images SET directory_id = NULL WHERE directory_id = ?", (directory_id,)
            ).rowcount
            conn.execute("DELETE FROM directories WHERE id = ?", (directory_id,))
            return unlinked

        unlinked = self._store.write(f"remove directory {directory_id}", _remove)
        LOGGER.info("Removed directory %d; %d entries unlinked", directory_id, unlinked)

    def set_active(self, directory_id: int, active: bool) -> WatchedDirectory:
        """Flip the active flag without touching catalog entries.

        Raises:
            NotFoundError: If ``directory_id`` is unknown.
        """

        def _toggle(conn: sqlite3.Connection) -> WatchedDirectory:
            self._require(conn, directory_id)
            conn.execute(
                "UPDATE directories SET is_active = ? WHERE id = ?",
                (1 if active else 0, directory_id),
            )
            return self._require(conn, directory_id)

        return self._store.write(f"set directory {directory_id} active", _toggle)

    def list_directories(self) -> list[WatchedDirectory]:
        """Return every registered directory, most recently created first."""
        rows = self._store.read(
            "list directories",
            lambda conn: conn.execute(
                f"SELECT {DIRECTORY_COLUMNS} FROM directories ORDER BY created_at DESC, id DESC"
            ).fetchall(),
        )
        return [directory_from_row(row) for row in rows]

    def get_directory(self, directory_id: int) -> WatchedDirectory:
        """Return the directory with ``directory_id``.

        Raises:
            NotFoundError: If ``directory_id`` is unknown.
        """
        return self._store.read("get directory", lambda conn: self._require(conn, directory_id))

    def active_directories(self) -> list[WatchedDirectory]:
        """Return active directories, oldest registration first."""
        return [directory for directory in reversed(self.list_directories()) if directory.is_active]

    def active_paths(self) -> list[str]:
        """Return the paths the watcher should subscribe to."""
        return [directory.path for directory in self.active_directories()]

    def record_scan(self, directory_id: int, file_count: int) -> WatchedDirectory:
        """Persist the result of a completed scan.

        Raises:
            NotFoundError: If the directory was removed while scanning.
        """

        def _record(conn: sqlite3.Connection) -> WatchedDirectory:
            self._require(conn, directory_id)
            conn.execute(
                "UPDATE directories SET file_count = ?, last_scanned_at = ? WHERE id = ?",
                (file_count, timestamp(), directory_id),
            )
            return self._require(conn, directory_id)

        return self._store.write(f"record scan of directory {directory_id}", _record)

    @staticmethod
    def _require(conn: sqlite3.Connection, directory_id: int) -> WatchedDirectory:
        row = conn.execute(
            f"SELECT {DIRECTORY_COLUMNS} FROM directories WHERE id = ?", (directory_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Unknown directory id: {directory_id}")
        return directory_from_row(row)


__all__ = ["DirectoryRegistry"]
