"""Full-tree rescans of registered directories."""

from __future__ import annotations

import logging

from mediacat.catalog.models import RescanFailure, RescanReport, WatchedDirectory
from mediacat.catalog.registry import DirectoryRegistry
from mediacat.errors import MediacatError

LOGGER = logging.getLogger(__name__)


class RescanService:
    """Re-walk registered directories and refresh their scan statistics."""

    def __init__(self, registry: DirectoryRegistry) -> None:
        self._registry = registry

    def rescan_directory(self, directory_id: int) -> WatchedDirectory:
        """Walk one directory and persist its file count and scan time.

        Newly seen paths are catalogued; paths that disappeared are left for
        the caller to reconcile.

        Args:
            directory_id: Directory to rescan.

        Returns:
            WatchedDirectory: The directory with refreshed statistics.

        Raises:
            NotFoundError: If ``directory_id`` is unknown.
            CatalogIOError: If the directory can no longer be walked.
        """
        directory = self._registry.get_directory(directory_id)
        found = list(self._registry.scanner.scan(directory.path))
        inserted = self._registry.engine.ingest(found, directory.id)
        LOGGER.info(
            "Rescanned %s: %d file(s), %d new", directory.path, len(found), len(inserted)
        )
        return self._registry.record_scan(directory.id, len(found))

    def rescan_all_active(self) -> RescanReport:
        """Rescan every active directory one at a time.

        A failing directory is recorded in the report and the remaining
        directories are still processed.
        """
        report = RescanReport()
        for directory in self._registry.active_directories():
            try:
                report.successes.append(self.rescan_directory(directory.id))
            except MediacatError as exc:
                LOGGER.warning("Rescan of %s failed: %s", directory.path, exc)
                report.failures.append(
                    RescanFailure(directory_id=directory.id, path=directory.path, error=str(exc))
                )
        return report


__all__ = ["RescanService"]
