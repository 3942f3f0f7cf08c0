"""Media file discovery."""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from mediacat.config.models import ScanningOptions
from mediacat.errors import CatalogIOError

LOGGER = logging.getLogger(__name__)

DEFAULT_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")
DEFAULT_VIDEO_EXTENSIONS = ("mp4", "webm", "mov")


class MediaKind(str, Enum):
    """Media category derived from a file extension."""

    IMAGE = "image"
    VIDEO = "video"
    UNKNOWN = "unknown"


def _extension(path: str) -> str:
    return os.path.splitext(path)[1].lower().lstrip(".")


class MediaScanner:
    """Discover media files within a directory tree.

    Symlinked directories are never descended, whatever the traversal
    primitive would do on its own, so cyclic links cannot loop the walk.
    Symlinked files are only reported when ``follow_symlinks`` is set.
    """

    def __init__(
        self,
        *,
        image_extensions: Iterable[str] = DEFAULT_IMAGE_EXTENSIONS,
        video_extensions: Iterable[str] = DEFAULT_VIDEO_EXTENSIONS,
        follow_symlinks: bool = False,
        on_error: Optional[Callable[[OSError], None]] = None,
    ) -> None:
        self.image_extensions = frozenset(ext.lower().lstrip(".") for ext in image_extensions)
        self.video_extensions = frozenset(ext.lower().lstrip(".") for ext in video_extensions)
        self.follow_symlinks = follow_symlinks
        self._on_error = on_error

    @classmethod
    def from_options(cls, options: ScanningOptions) -> "MediaScanner":
        """Build a scanner from the scanning section of the configuration."""
        return cls(
            image_extensions=options.image_extensions,
            video_extensions=options.video_extensions,
            follow_symlinks=options.follow_symlinks,
        )

    @property
    def supported_extensions(self) -> frozenset[str]:
        """Return every extension treated as media."""
        return self.image_extensions | self.video_extensions

    def is_supported(self, path: str | Path) -> bool:
        """Return whether ``path`` carries a supported media extension."""
        return _extension(str(path)) in self.supported_extensions

    def classify(self, path: str | Path) -> MediaKind:
        """Map a path to its media kind by extension."""
        ext = _extension(str(path))
        if ext in self.image_extensions:
            return MediaKind.IMAGE
        if ext in self.video_extensions:
            return MediaKind.VIDEO
        return MediaKind.UNKNOWN

    def accepts(self, path: str | Path) -> bool:
        """Return whether an existing ``path`` belongs in the catalog.

        The extension must be supported, and a symlinked file only counts when
        ``follow_symlinks`` is set and the link resolves to a regular file.
        Scans and the change watcher share this rule.
        """
        if not self.is_supported(path):
            return False
        if os.path.islink(path):
            return self.follow_symlinks and os.path.isfile(path)
        return True

    def scan(self, root: str | Path) -> Iterator[str]:
        """Yield absolute paths of media files under ``root``.

        The generator is lazy; calling ``scan`` again restarts the walk.
        Unreadable subdirectories are skipped and logged.

        Args:
            root: Directory to walk.

        Raises:
            CatalogIOError: If ``root`` is missing or not a directory, or,
                while iterating, if ``root`` itself cannot be listed.
        """
        root_path = os.path.abspath(os.path.expanduser(str(root)))
        if not os.path.isdir(root_path):
            raise CatalogIOError(
                "scan", root_path, NotADirectoryError(f"Not a directory: {root_path}")
            )
        return self._walk(root_path)

    def _walk(self, root_path: str) -> Iterator[str]:
        def _on_error(error: OSError) -> None:
            if error.filename is not None and os.path.abspath(error.filename) == root_path:
                raise CatalogIOError("scan", root_path, error) from error
            self._report(error)

        for current, dirnames, filenames in os.walk(
            root_path, followlinks=False, onerror=_on_error
        ):
            # os.walk with followlinks=False still lists symlinked directories;
            # prune them explicitly so the policy does not depend on walk internals.
            dirnames[:] = sorted(
                name for name in dirnames if not os.path.islink(os.path.join(current, name))
            )
            for name in sorted(filenames):
                candidate = os.path.join(current, name)
                if self.accepts(candidate):
                    yield candidate

    def _report(self, error: OSError) -> None:
        LOGGER.warning("Skipping unreadable path during scan: %s", error)
        if self._on_error is not None:
            self._on_error(error)


__all__ = ["MediaKind", "MediaScanner", "DEFAULT_IMAGE_EXTENSIONS", "DEFAULT_VIDEO_EXTENSIONS"]
