"""Media discovery and rescans."""

from .discovery import DEFAULT_IMAGE_EXTENSIONS, DEFAULT_VIDEO_EXTENSIONS, MediaKind, MediaScanner

__all__ = ["DEFAULT_IMAGE_EXTENSIONS", "DEFAULT_VIDEO_EXTENSIONS", "MediaKind", "MediaScanner"]
