"""SQLite persistence for the media catalog."""

from __future__ import annotations

import logging
import shutil
import sqlite3
import threading
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterator, Optional, TypeVar

from mediacat.config.models import CatalogSettings
from mediacat.errors import CatalogIOError, ConcurrencyError, StorageError

from .models import CatalogEntry, MediaKind, WatchedDirectory, utcnow

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_RETRY_BASE_DELAY = 0.05


def _create_images(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS images (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            file_path TEXT NOT NULL UNIQUE,
            file_name TEXT NOT NULL,
            file_type TEXT DEFAULT 'image',
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    _ensure_column(conn, "images", "file_type", "TEXT DEFAULT 'image'")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_file_path ON images(file_path)")
    conn.execute("CREATE INDEX IF NOT EXISTS idx_file_type ON images(file_type)")


def _create_directories(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS directories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            path TEXT NOT NULL UNIQUE,
            name TEXT NOT NULL,
            is_active INTEGER NOT NULL DEFAULT 1,
            last_scanned_at DATETIME,
            file_count INTEGER NOT NULL DEFAULT 0,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP
        )
        """
    )
    _ensure_column(
        conn,
        "images",
        "directory_id",
        "INTEGER REFERENCES directories(id) ON DELETE SET NULL",
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_directory_id ON images(directory_id)")


def _create_action_log(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS action_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            action_type TEXT NOT NULL,
            target_table TEXT NOT NULL,
            target_id INTEGER NOT NULL,
            old_value TEXT,
            new_value TEXT,
            created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
            undone INTEGER NOT NULL DEFAULT 0
        )
        """
    )
    conn.execute("CREATE INDEX IF NOT EXISTS idx_action_log_undone ON action_log(undone)")


_TIMESTAMP_COLUMNS = (
    ("images", "created_at"),
    ("directories", "created_at"),
    ("directories", "last_scanned_at"),
    ("action_log", "created_at"),
)


def _normalize_timestamps(conn: sqlite3.Connection) -> None:
    # SQLite CURRENT_TIMESTAMP values look like "2024-05-01 09:30:00" (UTC);
    # rewrite them to the ISO form so text ordering stays chronological.
    for table, column in _TIMESTAMP_COLUMNS:
        updated = conn.execute(
            f"UPDATE {table} SET {column} = replace({column}, ' ', 'T') || '+00:00' "
            f"WHERE {column} IS NOT NULL AND length({column}) = 19 "
            f"AND substr({column}, 11, 1) = ' '"
        ).rowcount
        if updated:
            LOGGER.info("Normalised %d legacy timestamp(s) in %s.%s", updated, table, column)


# (version, description, apply); applied in order, tracked by PRAGMA user_version.
MIGRATIONS: list[tuple[int, str, Callable[[sqlite3.Connection], None]]] = [
    (1, "create_images_table", _create_images),
    (2, "create_directories_table", _create_directories),
    (3, "create_action_log_table", _create_action_log),
    (4, "normalize_timestamps", _normalize_timestamps),
]


def _ensure_column(conn: sqlite3.Connection, table: str, column: str, definition: str) -> None:
    existing = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
    if column not in existing:
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")


def _is_lock_error(exc: sqlite3.Error) -> bool:
    message = str(exc).lower()
    return isinstance(exc, sqlite3.OperationalError) and ("locked" in message or "busy" in message)


def _failure(operation: str, path: Optional[str], reason: object) -> str:
    if path:
        return f"{operation} failed for {path}: {reason}"
    return f"{operation} failed: {reason}"


def migrate_legacy_database(database_path: Path, legacy_path: Optional[Path]) -> bool:
    """Move a catalog from its legacy location when the new one does not exist yet.

    Removing the legacy file and its now-empty directory is best effort.

    Args:
        database_path: Current catalog location.
        legacy_path: Previous catalog location, if any.

    Returns:
        bool: True when a legacy database was copied into place.

    Raises:
        CatalogIOError: If the legacy database cannot be copied.
    """
    if legacy_path is None or database_path.exists() or not legacy_path.is_file():
        return False

    LOGGER.info("Migrating catalog from %s to %s", legacy_path, database_path)
    try:
        database_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(legacy_path, database_path)
    except OSError as exc:
        raise CatalogIOError("migrate legacy database", str(legacy_path), exc) from exc

    try:
        legacy_path.unlink()
    except OSError as exc:
        LOGGER.warning("Failed to remove legacy database %s: %s", legacy_path, exc)
        return True

    legacy_dir = legacy_path.parent
    try:
        if not any(legacy_dir.iterdir()):
            legacy_dir.rmdir()
    except OSError as exc:
        LOGGER.warning("Failed to remove legacy directory %s: %s", legacy_dir, exc)
    return True


class CatalogStore:
    """Own the SQLite connection backing the catalog.

    Access is serialized through a re-entrant lock so the watch consumer thread
    and command handlers can share one store instance. Multi-row mutations run
    through :meth:`write`, which wraps them in a single immediate transaction
    and transparently retries when another process holds the database lock.
    """

    def __init__(
        self,
        path: Path | str,
        *,
        busy_retries: int = 3,
        busy_timeout_seconds: float = 5.0,
    ) -> None:
        self._path = str(path)
        self._busy_retries = max(0, busy_retries)
        self._lock = threading.RLock()
        try:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(
                self._path,
                timeout=busy_timeout_seconds,
                isolation_level=None,
                check_same_thread=False,
            )
        except OSError as exc:
            raise CatalogIOError("open catalog", self._path, exc) from exc
        except sqlite3.Error as exc:
            raise StorageError(_failure("open catalog", self._path, exc), path=self._path) from exc
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._migrate()

    @classmethod
    def from_settings(cls, settings: CatalogSettings) -> "CatalogStore":
        """Open the configured catalog, migrating a legacy database first."""
        database_path = Path(settings.database_path).expanduser()
        legacy = (
            Path(settings.legacy_database_path).expanduser()
            if settings.legacy_database_path
            else None
        )
        migrate_legacy_database(database_path, legacy)
        return cls(
            database_path,
            busy_retries=settings.busy_retries,
            busy_timeout_seconds=settings.busy_timeout_seconds,
        )

    @property
    def path(self) -> str:
        """Return the database location."""
        return self._path

    def close(self) -> None:
        """Close the underlying connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "CatalogStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Transactions                                                       #
    # ------------------------------------------------------------------ #

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the enclosed statements atomically.

        Raises:
            ConcurrencyError: If the write lock could not be acquired.
        """
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                if _is_lock_error(exc):
                    raise ConcurrencyError(str(exc)) from exc
                raise
            try:
                yield self._conn
                self._conn.execute("COMMIT")
            except BaseException as exc:
                if self._conn.in_transaction:
                    self._conn.execute("ROLLBACK")
                if isinstance(exc, sqlite3.Error) and _is_lock_error(exc):
                    raise ConcurrencyError(str(exc)) from exc
                raise

    def write(
        self,
        operation: str,
        work: Callable[[sqlite3.Connection], T],
        *,
        path: Optional[str] = None,
    ) -> T:
        """Execute ``work`` inside one transaction, retrying on lock contention.

        Args:
            operation: Description used in error messages.
            work: Callable issuing statements on the provided connection.
            path: Directory or file the operation concerns, for error context.

        Returns:
            T: Whatever ``work`` returns.

        Raises:
            StorageError: If SQLite fails or the lock is never acquired.
        """
        attempt = 0
        while True:
            try:
                with self.transaction() as conn:
                    return work(conn)
            except ConcurrencyError as exc:
                if attempt >= self._busy_retries:
                    raise StorageError(
                        _failure(operation, path, "database is locked"), path=path
                    ) from exc
                delay = _RETRY_BASE_DELAY * (2**attempt)
                attempt += 1
                LOGGER.debug("%s hit a locked database; retrying in %.2fs", operation, delay)
                time.sleep(delay)
            except sqlite3.Error as exc:
                raise StorageError(_failure(operation, path, exc), path=path) from exc

    def read(
        self,
        operation: str,
        work: Callable[[sqlite3.Connection], T],
        *,
        path: Optional[str] = None,
    ) -> T:
        """Execute a read-only callable under the store lock."""
        with self._lock:
            try:
                return work(self._conn)
            except sqlite3.Error as exc:
                raise StorageError(_failure(operation, path, exc), path=path) from exc

    # ------------------------------------------------------------------ #
    # Catalog queries                                                    #
    # ------------------------------------------------------------------ #

    def get_entry(self, entry_id: int) -> Optional[CatalogEntry]:
        """Return the catalog entry with ``entry_id`` if present."""
        row = self.read(
            "get entry",
            lambda conn: conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM images WHERE id = ?", (entry_id,)
            ).fetchone(),
        )
        return entry_from_row(row) if row else None

    def get_entry_by_path(self, file_path: str) -> Optional[CatalogEntry]:
        """Return the catalog entry stored for ``file_path`` if present."""
        row = self.read(
            "get entry by path",
            lambda conn: conn.execute(
                f"SELECT {_ENTRY_COLUMNS} FROM images WHERE file_path = ?", (file_path,)
            ).fetchone(),
            path=file_path,
        )
        return entry_from_row(row) if row else None

    def list_entries(self, directory_id: Optional[int] = None) -> list[CatalogEntry]:
        """Return catalog entries, newest first, optionally limited to one directory."""
        if directory_id is None:
            query = f"SELECT {_ENTRY_COLUMNS} FROM images ORDER BY created_at DESC, id DESC"
            params: tuple = ()
        else:
            query = (
                f"SELECT {_ENTRY_COLUMNS} FROM images WHERE directory_id = ? "
                "ORDER BY created_at DESC, id DESC"
            )
            params = (directory_id,)
        rows = self.read("list entries", lambda conn: conn.execute(query, params).fetchall())
        return [entry_from_row(row) for row in rows]

    def count_entries(self) -> int:
        """Return the number of catalog entries."""
        return self.read(
            "count entries", lambda conn: conn.execute("SELECT COUNT(*) FROM images").fetchone()[0]
        )

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _migrate(self) -> None:
        current = self._conn.execute("PRAGMA user_version").fetchone()[0]
        for version, description, apply in MIGRATIONS:
            if version <= current:
                continue

            def _apply(conn: sqlite3.Connection, apply=apply, version=version) -> None:
                apply(conn)
                conn.execute(f"PRAGMA user_version = {version}")

            self.write(f"migration {version} ({description})", _apply)
            LOGGER.debug("Applied catalog migration %s: %s", version, description)


_ENTRY_COLUMNS = "id, file_path, file_name, file_type, directory_id, created_at"
DIRECTORY_COLUMNS = "id, path, name, is_active, last_scanned_at, file_count, created_at"


def _parse_timestamp(value: object) -> Optional[datetime]:
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def entry_from_row(row: sqlite3.Row) -> CatalogEntry:
    """Convert an ``images`` row into a :class:`CatalogEntry`."""
    raw_type = row["file_type"] or MediaKind.UNKNOWN.value
    try:
        kind = MediaKind(raw_type)
    except ValueError:
        kind = MediaKind.UNKNOWN
    return CatalogEntry(
        id=row["id"],
        file_path=row["file_path"],
        file_name=row["file_name"],
        file_type=kind,
        directory_id=row["directory_id"],
        created_at=_parse_timestamp(row["created_at"]) or utcnow(),
    )


def directory_from_row(row: sqlite3.Row) -> WatchedDirectory:
    """Convert a ``directories`` row into a :class:`WatchedDirectory`."""
    return WatchedDirectory(
        id=row["id"],
        path=row["path"],
        name=row["name"],
        is_active=bool(row["is_active"]),
        last_scanned_at=_parse_timestamp(row["last_scanned_at"]),
        file_count=row["file_count"],
        created_at=_parse_timestamp(row["created_at"]) or utcnow(),
    )


def timestamp() -> str:
    """Return the current UTC time in the format stored by the catalog."""
    return utcnow().isoformat()


__all__ = [
    "CatalogStore",
    "MIGRATIONS",
    "DIRECTORY_COLUMNS",
    "directory_from_row",
    "entry_from_row",
    "migrate_legacy_database",
    "timestamp",
]
