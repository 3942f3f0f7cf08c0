"""Catalog persistence, directory registry, and reconciliation."""

from .models import (
    CatalogEntry,
    ChangeBatch,
    ChangeEvent,
    ChangeKind,
    MediaKind,
    ReconcileResult,
    RescanFailure,
    RescanReport,
    WatchedDirectory,
)
from .reconcile import ReconciliationEngine
from .registry import DirectoryRegistry
from .store import CatalogStore

__all__ = [
    "CatalogEntry",
    "CatalogStore",
    "ChangeBatch",
    "ChangeEvent",
    "ChangeKind",
    "DirectoryRegistry",
    "MediaKind",
    "ReconcileResult",
    "ReconciliationEngine",
    "RescanFailure",
    "RescanReport",
    "WatchedDirectory",
]
