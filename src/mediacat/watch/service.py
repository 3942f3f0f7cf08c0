"""Watch service that feeds debounced change batches into the catalog."""

from __future__ import annotations

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from mediacat.catalog.models import ChangeBatch, ReconcileResult
from mediacat.catalog.registry import DirectoryRegistry
from mediacat.errors import MediacatError

from .watcher import DEFAULT_DEBOUNCE_SECONDS, ChangeWatcher

LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 0.1


@dataclass(slots=True)
class WatchBatchResult:
    """Outcome of applying one change batch.

    Attributes:
        batch_id: Sequence number of the batch within this service.
        batch: Change batch emitted by the watcher.
        result: Reconciliation outcome, or ``None`` when applying failed.
        error: Error message when the batch could not be applied.
    """

    batch_id: int
    batch: ChangeBatch
    result: Optional[ReconcileResult] = None
    error: Optional[str] = None

    @property
    def json_payload(self) -> dict[str, Any]:
        """Return a JSON-ready payload mirroring CLI output."""
        payload: dict[str, Any] = {"batch_id": self.batch_id, **self.batch.model_dump(mode="json")}
        if self.result is not None:
            payload["inserted"] = list(self.result.inserted)
            payload["linked"] = self.result.linked
            payload["missing"] = list(self.result.missing)
        if self.error is not None:
            payload["error"] = self.error
        return payload


class WatchService:
    """Own the watcher lifecycle and consume its batches in order."""

    def __init__(
        self,
        registry: DirectoryRegistry,
        *,
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        observer_factory: Callable[[], BaseObserver] = Observer,
    ) -> None:
        """Initialize the watch service.

        Args:
            registry: Registry providing active directories and the engine.
            debounce_seconds: Quiescence window passed to the watcher.
            poll_interval: Queue poll interval used by :meth:`run`.
            observer_factory: Builds the watchdog observer for each start.
        """

        self._registry = registry
        self._engine = registry.engine
        self._channel: queue.Queue[ChangeBatch] = queue.Queue()
        self._watcher = ChangeWatcher(
            self._channel,
            scanner=registry.scanner,
            debounce_seconds=debounce_seconds,
            observer_factory=observer_factory,
        )
        self._poll_interval = max(0.01, poll_interval)
        self._stop_event = threading.Event()
        self._batch_counter = 0

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    @property
    def watcher(self) -> ChangeWatcher:
        """Return the underlying change watcher."""
        return self._watcher

    def start(self, paths: Optional[list[str]] = None) -> list[str]:
        """Watch ``paths``, defaulting to the registry's active directories.

        Returns:
            list[str]: Roots that are actually being watched.

        Raises:
            WatchError: If a directory cannot be subscribed.
        """

        if paths is None:
            paths = self._registry.active_paths()
        self._watcher.start(paths)
        return self._watcher.watched_paths()

    def stop(self) -> None:
        """Stop watching; pending batches stay queued."""
        self._watcher.stop()

    def watched_paths(self) -> list[str]:
        """Return a snapshot of the watched roots."""
        return self._watcher.watched_paths()

    def run(self, callback: Callable[[WatchBatchResult], None]) -> None:
        """Apply batches in arrival order until :meth:`close` is called.

        Args:
            callback: Callable invoked with each processed batch.
        """

        self._stop_event.clear()
        try:
            while not self._stop_event.is_set():
                try:
                    batch = self._channel.get(timeout=self._poll_interval)
                except queue.Empty:
                    continue
                callback(self._apply(batch))
        finally:
            self.stop()

    def drain(self, timeout: float = 0.0) -> list[WatchBatchResult]:
        """Apply queued batches, waiting up to ``timeout`` for the first one.

        Returns:
            list[WatchBatchResult]: Results in the order batches were queued.
        """

        results: list[WatchBatchResult] = []
        try:
            if timeout > 0:
                batch = self._channel.get(timeout=timeout)
            else:
                batch = self._channel.get_nowait()
        except queue.Empty:
            return results
        while True:
            results.append(self._apply(batch))
            try:
                batch = self._channel.get_nowait()
            except queue.Empty:
                return results

    def close(self) -> None:
        """Ask :meth:`run` to exit and release the watcher."""
        self._stop_event.set()
        self.stop()

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _apply(self, batch: ChangeBatch) -> WatchBatchResult:
        batch_id = self._next_batch_id()
        try:
            result = self._engine.apply_change_batch(batch)
        except MediacatError as exc:
            LOGGER.error("Failed to apply change batch %d: %s", batch_id, exc)
            return WatchBatchResult(batch_id=batch_id, batch=batch, error=str(exc))
        LOGGER.info(
            "Batch %d applied: %d inserted, %d linked, %d missing",
            batch_id,
            len(result.inserted),
            result.linked,
            len(result.missing),
        )
        return WatchBatchResult(batch_id=batch_id, batch=batch, result=result)

    def _next_batch_id(self) -> int:
        """Return the next batch identifier."""
        self._batch_counter += 1
        return self._batch_counter


__all__ = ["WatchService", "WatchBatchResult", "DEFAULT_POLL_INTERVAL"]
