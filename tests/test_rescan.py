"""Tests for rescanning registered directories."""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Any

import pytest

from mediacat.catalog import CatalogStore, DirectoryRegistry
from mediacat.errors import NotFoundError
from mediacat.scanning.service import RescanService


def test_rescan_directory_refreshes_count_and_catalogues_new_files(
    tmp_path: Path, store: CatalogStore, registry: DirectoryRegistry, make_tree
) -> None:
    root = make_tree(tmp_path / "photos", ["a.jpg"])
    directory = registry.add_directory(root)
    make_tree(root, ["b.png", "deep/c.webm"])

    refreshed = RescanService(registry).rescan_directory(directory.id)

    assert refreshed.file_count == 3
    assert refreshed.last_scanned_at >= directory.last_scanned_at
    assert len(store.list_entries(directory.id)) == 3


def test_rescan_directory_keeps_vanished_entries(
    tmp_path: Path, store: CatalogStore, registry: DirectoryRegistry, make_tree
) -> None:
    root = make_tree(tmp_path / "photos", ["a.jpg", "b.jpg"])
    directory = registry.add_directory(root)
    (root / "a.jpg").unlink()

    refreshed = RescanService(registry).rescan_directory(directory.id)

    assert refreshed.file_count == 1
    assert store.count_entries() == 2


def test_rescan_unknown_directory_raises(registry: DirectoryRegistry) -> None:
    with pytest.raises(NotFoundError):
        RescanService(registry).rescan_directory(7)


def test_rescan_all_active_reports_partial_failure(
    tmp_path: Path, registry: DirectoryRegistry, make_tree
) -> None:
    """A directory deleted from disk fails on its own; the others still succeed."""
    kept = registry.add_directory(make_tree(tmp_path / "kept", ["a.jpg", "b.jpg"]))
    doomed = registry.add_directory(make_tree(tmp_path / "doomed", ["c.jpg"]))
    paused = registry.add_directory(make_tree(tmp_path / "paused", ["d.jpg"]))
    registry.set_active(paused.id, False)
    shutil.rmtree(doomed.path)

    report = RescanService(registry).rescan_all_active()

    assert not report.ok
    assert [success.id for success in report.successes] == [kept.id]
    assert report.successes[0].file_count == 2
    assert len(report.failures) == 1
    failure = report.failures[0]
    assert failure.directory_id == doomed.id
    assert failure.path == doomed.path
    assert doomed.path in failure.error
    assert registry.get_directory(doomed.id).file_count == 1


def test_rescan_all_active_with_nothing_registered(registry: DirectoryRegistry) -> None:
    report = RescanService(registry).rescan_all_active()

    assert report.ok
    assert report.successes == []


def test_rescan_all_active_reports_unreadable_root_as_failure(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, registry: DirectoryRegistry, make_tree
) -> None:
    directory = registry.add_directory(make_tree(tmp_path / "photos", ["a.jpg", "b.jpg"]))
    real_scandir = os.scandir

    def _scandir(path: Any = ".") -> Any:
        if os.fspath(path) == directory.path:
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    monkeypatch.setattr(os, "scandir", _scandir)

    report = RescanService(registry).rescan_all_active()

    assert report.successes == []
    assert [failure.directory_id for failure in report.failures] == [directory.id]
    assert directory.path in report.failures[0].error
    assert registry.get_directory(directory.id).file_count == 2
