"""Live filesystem watching."""

from .service import WatchBatchResult, WatchService
from .watcher import DEFAULT_DEBOUNCE_SECONDS, ChangeWatcher, Debouncer, WatcherState

__all__ = [
    "ChangeWatcher",
    "Debouncer",
    "DEFAULT_DEBOUNCE_SECONDS",
    "WatchBatchResult",
    "WatchService",
    "WatcherState",
]
