"""Data models for watched directories, catalog entries, and change batches."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from mediacat.scanning.discovery import MediaKind


def utcnow() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


class ChangeKind(str, Enum):
    """Classification of a path observed during a debounce window."""

    ADDED = "added"
    REMOVED = "removed"


class WatchedDirectory(BaseModel):
    """A registered directory tree whose contents feed the catalog.

    Attributes:
        id: Database identifier.
        path: Absolute directory path; unique among watched directories.
        name: Display name derived from the final path segment.
        is_active: Whether rescans and the watcher include this directory.
        last_scanned_at: Completion time of the most recent scan.
        file_count: Number of media files found by the most recent scan.
        created_at: Registration time.
    """

    id: int
    path: str
    name: str
    is_active: bool = True
    last_scanned_at: Optional[datetime] = None
    file_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utcnow)


class CatalogEntry(BaseModel):
    """Catalog facet of a tracked media file."""

    id: int
    file_path: str
    file_name: str
    file_type: MediaKind = MediaKind.UNKNOWN
    directory_id: Optional[int] = None
    created_at: datetime = Field(default_factory=utcnow)


class ChangeEvent(BaseModel):
    """A single classified path from a change batch."""

    model_config = ConfigDict(frozen=True)

    path: str
    kind: ChangeKind


class ChangeBatch(BaseModel):
    """Immutable set of changes emitted once per debounce window.

    Attributes:
        added: Sorted, de-duplicated paths that existed when the window fired.
        removed: Sorted, de-duplicated paths that were gone when the window fired.
    """

    model_config = ConfigDict(frozen=True)

    added: Tuple[str, ...] = ()
    removed: Tuple[str, ...] = ()

    @classmethod
    def from_paths(cls, added: Iterable[str], removed: Iterable[str]) -> "ChangeBatch":
        """Build a batch with normalized ordering."""
        return cls(added=tuple(sorted(set(added))), removed=tuple(sorted(set(removed))))

    @property
    def is_empty(self) -> bool:
        """Return whether the batch carries no changes."""
        return not self.added and not self.removed

    def events(self) -> Iterator[ChangeEvent]:
        """Yield the batch contents as individual change events."""
        for path in self.added:
            yield ChangeEvent(path=path, kind=ChangeKind.ADDED)
        for path in self.removed:
            yield ChangeEvent(path=path, kind=ChangeKind.REMOVED)


class ReconcileResult(BaseModel):
    """Outcome of applying scan results or a change batch to the catalog.

    Attributes:
        inserted: Paths that produced new catalog entries.
        linked: Number of pre-existing entries attached to a directory.
        missing: Catalogued paths reported removed from disk. They are kept in
            the catalog so user metadata survives.
    """

    inserted: List[str] = Field(default_factory=list)
    linked: int = 0
    missing: List[str] = Field(default_factory=list)


class RescanFailure(BaseModel):
    """A directory that could not be rescanned."""

    directory_id: int
    path: str
    error: str


class RescanReport(BaseModel):
    """Partial result of rescanning every active directory."""

    successes: List[WatchedDirectory] = Field(default_factory=list)
    failures: List[RescanFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Return whether every directory was rescanned."""
        return not self.failures


__all__ = [
    "utcnow",
    "MediaKind",
    "ChangeKind",
    "WatchedDirectory",
    "CatalogEntry",
    "ChangeEvent",
    "ChangeBatch",
    "ReconcileResult",
    "RescanFailure",
    "RescanReport",
]
