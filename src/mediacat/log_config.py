"""Logging setup driven by :class:`~mediacat.config.models.LoggingSettings`."""

from __future__ import annotations

import logging
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

from mediacat.config.models import LoggingSettings

_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s - %(message)s"
_configured = False
_lock = threading.Lock()


def configure_logging(settings: LoggingSettings, *, force: bool = False) -> None:
    """Install console and optional rotating file handlers on the package logger.

    Handlers attach to the ``mediacat`` logger rather than the root logger so
    embedding applications keep control of their own logging.

    Args:
        settings: Logging section of the loaded configuration.
        force: Replace handlers installed by an earlier call.
    """
    global _configured
    with _lock:
        if _configured and not force:
            return

        logger = logging.getLogger("mediacat")
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()

        level = logging.getLevelName(settings.level.upper())
        if not isinstance(level, int):
            level = logging.WARNING
        logger.setLevel(level)

        console_handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=False,
        )
        console_handler.setLevel(level)
        logger.addHandler(console_handler)

        if settings.file:
            log_path = Path(settings.file).expanduser()
            log_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=max(1, settings.max_size_mb) * 1024 * 1024,
                backupCount=max(0, settings.backup_count),
                encoding="utf-8",
            )
            file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
            file_handler.setLevel(level)
            logger.addHandler(file_handler)

        # watchdog logs every inotify hiccup at DEBUG; keep it quiet.
        logging.getLogger("watchdog").setLevel(max(level, logging.INFO))
        _configured = True


__all__ = ["configure_logging"]
