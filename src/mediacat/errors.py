"""Exception hierarchy shared by the catalog, watcher, and history layers."""

from __future__ import annotations


class MediacatError(Exception):
    """Base exception for mediacat operations."""


class ValidationError(MediacatError):
    """Raised when caller-supplied input is rejected."""


class PathValidationError(ValidationError):
    """Raised when a filesystem path cannot be accepted."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class NotADirectory(PathValidationError):
    """Raised when a path does not exist or is not a directory."""


class UnsupportedExtension(PathValidationError):
    """Raised when a path does not carry a supported media extension."""


class HistoryOrderError(ValidationError):
    """Raised when an undo/redo flag change would break the redo suffix."""


class NotFoundError(MediacatError):
    """Raised when a directory or action id is unknown."""


class CatalogIOError(MediacatError):
    """Raised when filesystem access fails during a catalog operation."""

    def __init__(self, operation: str, path: str, original: OSError) -> None:
        super().__init__(f"{operation} failed for {path}: {original}")
        self.operation = operation
        self.path = path
        self.original = original


class StorageError(MediacatError):
    """Raised when catalog persistence fails.

    Attributes:
        path: Directory or file the failed operation concerned, if any.
    """

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class ConcurrencyError(StorageError):
    """Raised internally when the database is locked by another writer."""


class WatchError(MediacatError):
    """Raised when filesystem notifications cannot be subscribed."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path


class PayloadError(MediacatError):
    """Raised when an action-log snapshot cannot be decoded."""


__all__ = [
    "MediacatError",
    "ValidationError",
    "PathValidationError",
    "NotADirectory",
    "UnsupportedExtension",
    "HistoryOrderError",
    "NotFoundError",
    "CatalogIOError",
    "StorageError",
    "ConcurrencyError",
    "WatchError",
    "PayloadError",
]
