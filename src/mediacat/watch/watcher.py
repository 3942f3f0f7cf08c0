"""Debounced filesystem change detection across watched roots."""

from __future__ import annotations

import logging
import os
import queue
import threading
import time
from enum import Enum
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from mediacat.catalog.models import ChangeBatch
from mediacat.errors import WatchError
from mediacat.scanning.discovery import MediaScanner

LOGGER = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_SECONDS = 2.0
_OBSERVER_JOIN_TIMEOUT = 5.0


class WatcherState(str, Enum):
    """Externally observable watcher states."""

    STOPPED = "stopped"
    WATCHING = "watching"


class Debouncer:
    """Coalesce paths until no new path arrives for ``interval`` seconds.

    The quiescence window slides: every :meth:`notify` pushes the deadline
    out again. When the window closes, the collected paths are handed to
    ``fire`` on the debouncer's own thread. After :meth:`close`, new paths
    are ignored but a window that is already open still fires.
    """

    def __init__(self, interval: float, fire: Callable[[set[str]], None]) -> None:
        self._interval = interval
        self._fire = fire
        self._cond = threading.Condition()
        self._pending: set[str] = set()
        self._deadline = 0.0
        self._closed = False
        self._thread = threading.Thread(target=self._run, name="mediacat-debounce", daemon=True)
        self._thread.start()

    def notify(self, path: str) -> None:
        """Record ``path`` and restart the quiescence window."""
        with self._cond:
            if self._closed:
                return
            self._pending.add(path)
            self._deadline = time.monotonic() + self._interval
            self._cond.notify()

    def close(self) -> None:
        """Stop accepting paths; a pending window still fires."""
        with self._cond:
            self._closed = True
            self._cond.notify()

    def join(self, timeout: Optional[float] = None) -> None:
        """Wait for the debouncer thread to finish after :meth:`close`."""
        self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._pending and not self._closed:
                    self._cond.wait()
                if not self._pending:
                    return
                while True:
                    remaining = self._deadline - time.monotonic()
                    if remaining <= 0:
                        break
                    self._cond.wait(remaining)
                paths, self._pending = self._pending, set()
            try:
                self._fire(paths)
            except Exception:  # pragma: no cover - keep the debounce thread alive
                LOGGER.exception("Failed to emit change batch for %d path(s)", len(paths))


class _ChangeHandler(FileSystemEventHandler):
    """Forward file events from watchdog into the debouncer."""

    def __init__(self, debouncer: Debouncer) -> None:
        self._debouncer = debouncer

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle a filesystem create event."""
        self._enqueue(event)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle a filesystem delete event."""
        self._enqueue(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle a filesystem modify event."""
        self._enqueue(event)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle a filesystem move event; both ends are reported."""
        self._enqueue(event)

    def _enqueue(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._debouncer.notify(os.fsdecode(event.src_path))
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            self._debouncer.notify(os.fsdecode(dest_path))


class ChangeWatcher:
    """Watch directory trees and post one :class:`ChangeBatch` per quiet window.

    Roots, the observer, and the debouncer are guarded by a single lock;
    :meth:`start`, :meth:`stop`, and :meth:`watched_paths` serialize on it.
    Batches go to ``channel`` in the order their windows close. The watcher
    never writes to the catalog.
    """

    def __init__(
        self,
        channel: "queue.Queue[ChangeBatch]",
        *,
        scanner: Optional[MediaScanner] = None,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """Initialize the watcher.

        Args:
            channel: Single-consumer queue receiving change batches.
            scanner: Supplies the supported extension set.
            debounce_seconds: Length of the quiescence window.
            observer_factory: Builds the watchdog observer for each start.
        """
        if debounce_seconds <= 0:
            raise ValueError("debounce_seconds must be greater than zero")
        self._channel = channel
        self._scanner = scanner or MediaScanner()
        self._debounce_seconds = debounce_seconds
        self._observer_factory = observer_factory
        self._lock = threading.Lock()
        self._observer: Optional[BaseObserver] = None
        self._debouncer: Optional[Debouncer] = None
        self._paths: list[str] = []

    @property
    def state(self) -> WatcherState:
        """Return whether the watcher currently holds subscriptions."""
        with self._lock:
            return WatcherState.WATCHING if self._observer is not None else WatcherState.STOPPED

    def start(self, paths: Iterable[str]) -> None:
        """Replace the watch set with ``paths``.

        Any existing subscriptions are dropped first. Paths that are missing
        or not directories are skipped. An empty effective set leaves the
        watcher stopped.

        Raises:
            WatchError: If an existing directory cannot be subscribed. No
                subscription from this call remains active.
        """
        with self._lock:
            self._teardown()

            roots: list[str] = []
            for raw in paths:
                root = os.path.abspath(os.path.expanduser(raw))
                if not os.path.isdir(root):
                    LOGGER.debug("Skipping watch root that is not a directory: %s", root)
                    continue
                if root not in roots:
                    roots.append(root)
            if not roots:
                return

            debouncer = Debouncer(self._debounce_seconds, self._emit)
            observer = self._observer_factory()
            handler = _ChangeHandler(debouncer)
            try:
                observer.start()
                for root in roots:
                    try:
                        observer.schedule(handler, root, recursive=True)
                    except OSError as exc:
                        raise WatchError(f"Failed to watch {root}: {exc}", path=root) from exc
            except BaseException:
                self._shutdown(observer, debouncer)
                raise

            self._observer = observer
            self._debouncer = debouncer
            self._paths = roots
            LOGGER.info("File watcher started for %d directories", len(roots))

    def stop(self) -> None:
        """Drop every subscription; safe to call when already stopped."""
        with self._lock:
            was_watching = self._observer is not None
            self._teardown()
        if was_watching:
            LOGGER.info("File watcher stopped")

    def watched_paths(self) -> list[str]:
        """Return a snapshot of the watched roots."""
        with self._lock:
            return list(self._paths)

    def _teardown(self) -> None:
        if self._observer is not None and self._debouncer is not None:
            self._shutdown(self._observer, self._debouncer)
        self._observer = None
        self._debouncer = None
        self._paths = []

    @staticmethod
    def _shutdown(observer: BaseObserver, debouncer: Debouncer) -> None:
        observer.unschedule_all()
        observer.stop()
        if observer.is_alive():
            observer.join(timeout=_OBSERVER_JOIN_TIMEOUT)
        debouncer.close()

    def _emit(self, paths: set[str]) -> None:
        added: list[str] = []
        removed: list[str] = []
        for path in paths:
            if not self._scanner.is_supported(path):
                continue
            if not os.path.lexists(path):
                removed.append(path)
            elif self._scanner.accepts(path):
                added.append(path)
        batch = ChangeBatch.from_paths(added, removed)
        if batch.is_empty:
            return
        LOGGER.debug(
            "Emitting change batch: %d added, %d removed", len(batch.added), len(batch.removed)
        )
        self._channel.put(batch)


__all__ = ["ChangeWatcher", "Debouncer", "WatcherState", "DEFAULT_DEBOUNCE_SECONDS"]
