"""Tests for media discovery."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import pytest

from mediacat.config.models import ScanningOptions
from mediacat.errors import CatalogIOError
from mediacat.scanning import MediaKind, MediaScanner


def test_scan_yields_only_supported_extensions(tmp_path: Path, make_tree) -> None:
    """Three media files and two other files yield exactly the media paths."""
    root = make_tree(tmp_path / "media", ["a.jpg", "B.PNG", "sub/c.mp4", "notes.txt", "doc.pdf"])

    found = sorted(MediaScanner().scan(root))

    assert found == sorted(
        [str(root / "a.jpg"), str(root / "B.PNG"), str(root / "sub" / "c.mp4")]
    )
    assert all(os.path.isabs(path) for path in found)


def test_scan_is_lazy_and_restartable(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "media", ["a.jpg", "b.webp"])
    scanner = MediaScanner()

    first = scanner.scan(root)
    assert next(first) == str(root / "a.jpg")

    assert list(scanner.scan(root)) == [str(root / "a.jpg"), str(root / "b.webp")]


def test_scan_missing_root_raises_io_error(tmp_path: Path) -> None:
    with pytest.raises(CatalogIOError) as excinfo:
        MediaScanner().scan(tmp_path / "missing")

    assert excinfo.value.operation == "scan"
    assert excinfo.value.path == str(tmp_path / "missing")


def test_scan_never_descends_symlinked_directories(tmp_path: Path, make_tree) -> None:
    """A cyclic directory link must neither loop nor duplicate results."""
    root = make_tree(tmp_path / "media", ["a.jpg", "sub/b.gif"])
    outside = make_tree(tmp_path / "outside", ["c.jpg"])
    os.symlink(root, root / "sub" / "loop")
    os.symlink(outside, root / "elsewhere")

    for follow in (False, True):
        found = sorted(MediaScanner(follow_symlinks=follow).scan(root))
        assert found == [str(root / "a.jpg"), str(root / "sub" / "b.gif")]


def test_symlinked_files_follow_policy(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "media", ["a.jpg"])
    target = make_tree(tmp_path / "outside", ["real.png"]) / "real.png"
    os.symlink(target, root / "link.png")
    os.symlink(tmp_path / "nowhere.png", root / "dangling.png")

    assert list(MediaScanner().scan(root)) == [str(root / "a.jpg")]
    assert list(MediaScanner(follow_symlinks=True).scan(root)) == [
        str(root / "a.jpg"),
        str(root / "link.png"),
    ]


def test_classify_and_options() -> None:
    scanner = MediaScanner.from_options(
        ScanningOptions(image_extensions=[".HEIC", "jpg"], video_extensions=["MKV"])
    )

    assert scanner.classify("/x/photo.heic") is MediaKind.IMAGE
    assert scanner.classify("/x/clip.mkv") is MediaKind.VIDEO
    assert scanner.classify("/x/clip.mp4") is MediaKind.UNKNOWN
    assert scanner.is_supported("/x/PHOTO.JPG")
    assert not scanner.is_supported("/x/noext")
    assert scanner.supported_extensions == frozenset({"heic", "jpg", "mkv"})


def _deny_scandir(monkeypatch: pytest.MonkeyPatch, denied: Path) -> None:
    real_scandir = os.scandir

    def _scandir(path: Any = ".") -> Any:
        if os.fspath(path) == str(denied):
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", _scandir)


def test_unreadable_root_raises_io_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, make_tree
) -> None:
    root = make_tree(tmp_path / "media", ["a.jpg"])
    _deny_scandir(monkeypatch, root)

    with pytest.raises(CatalogIOError) as excinfo:
        list(MediaScanner().scan(root))

    assert excinfo.value.path == str(root)
    assert isinstance(excinfo.value.original, PermissionError)


def test_unreadable_subdirectory_is_skipped(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, make_tree
) -> None:
    root = make_tree(tmp_path / "media", ["a.jpg", "locked/b.jpg"])
    errors: list[OSError] = []
    _deny_scandir(monkeypatch, root / "locked")

    found = list(MediaScanner(on_error=errors.append).scan(root))

    assert found == [str(root / "a.jpg")]
    assert [error.filename for error in errors] == [str(root / "locked")]
