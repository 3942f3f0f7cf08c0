"""Shared fixtures for the mediacat test suite."""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import pytest
from watchdog.events import FileSystemEventHandler

from mediacat.catalog import CatalogStore, DirectoryRegistry


@pytest.fixture
def store(tmp_path: Path) -> Iterator[CatalogStore]:
    """Return an on-disk catalog store that is closed after the test.

    Args:
        tmp_path: Temporary directory provided by pytest.
    """
    catalog = CatalogStore(tmp_path / "catalog.db")
    yield catalog
    catalog.close()


@pytest.fixture
def registry(store: CatalogStore) -> DirectoryRegistry:
    """Return a directory registry using the default scanner."""
    return DirectoryRegistry(store)


class FakeObserver:
    """Observer stand-in that records subscriptions instead of watching."""

    def __init__(self, fail_on: Optional[str] = None) -> None:
        self.fail_on = fail_on
        self.handlers: dict[str, FileSystemEventHandler] = {}
        self.started = False
        self.stopped = False

    def start(self) -> None:
        self.started = True

    def schedule(self, handler: FileSystemEventHandler, path: str, recursive: bool = False) -> None:
        assert recursive
        if path == self.fail_on:
            raise PermissionError(13, "Permission denied", path)
        self.handlers[path] = handler

    def unschedule_all(self) -> None:
        self.handlers.clear()

    def stop(self) -> None:
        self.stopped = True

    def is_alive(self) -> bool:
        return False

    def join(self, timeout: Optional[float] = None) -> None:
        return None


class ObserverFactory:
    """Build :class:`FakeObserver` instances and remember each one."""

    def __init__(self) -> None:
        self.fail_on: Optional[str] = None
        self.created: list[FakeObserver] = []

    def __call__(self) -> FakeObserver:
        observer = FakeObserver(self.fail_on)
        self.created.append(observer)
        return observer

    @property
    def handler(self) -> FileSystemEventHandler:
        """Return the handler subscribed on the most recent observer."""
        return next(iter(self.created[-1].handlers.values()))


@pytest.fixture
def observer_factory() -> ObserverFactory:
    """Return a factory producing fake watchdog observers."""
    return ObserverFactory()


@pytest.fixture
def make_tree() -> Callable[[Path, Iterable[str]], Path]:
    """Return a helper that creates files relative to a root directory."""

    def _make(root: Path, names: Iterable[str]) -> Path:
        root.mkdir(parents=True, exist_ok=True)
        for name in names:
            target = root / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(b"\x00")
        return root

    return _make
