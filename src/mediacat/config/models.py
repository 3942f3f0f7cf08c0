"""Configuration models describing mediacat settings."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediacatBaseModel(BaseModel):
    """Shared configuration for mediacat Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class CatalogSettings(MediacatBaseModel):
    """Catalog database location and locking behavior.

    Attributes:
        database_path: SQLite file backing the catalog.
        legacy_database_path: Previous database location migrated on first open.
        busy_retries: Number of retries when the database is locked.
        busy_timeout_seconds: SQLite busy timeout applied to each connection.
    """

    database_path: str = "~/.mediacat/catalog.db"
    legacy_database_path: Optional[str] = "~/.image_gallery/gallery.db"
    busy_retries: int = Field(default=3, ge=0)
    busy_timeout_seconds: float = Field(default=5.0, ge=0)


class ScanningOptions(MediacatBaseModel):
    """Options governing which files count as media.

    Attributes:
        image_extensions: Extensions classified as images.
        video_extensions: Extensions classified as videos.
        follow_symlinks: Whether symlinked files are reported. Symlinked
            directories are never descended.
    """

    image_extensions: List[str] = Field(
        default_factory=lambda: ["jpg", "jpeg", "png", "gif", "webp"]
    )
    video_extensions: List[str] = Field(default_factory=lambda: ["mp4", "webm", "mov"])
    follow_symlinks: bool = False

    @field_validator("image_extensions", "video_extensions")
    @classmethod
    def _normalise_extensions(cls, value: List[str]) -> List[str]:
        return [item.lower().lstrip(".") for item in value if item.strip()]


class WatchSettings(MediacatBaseModel):
    """Filesystem watch behavior.

    Attributes:
        debounce_seconds: Quiescence interval before a change batch is emitted.
        poll_interval_seconds: How often the consumer loop checks for shutdown.
    """

    debounce_seconds: float = Field(default=2.0, gt=0)
    poll_interval_seconds: float = Field(default=0.1, gt=0)


class HistorySettings(MediacatBaseModel):
    """Action history settings.

    Attributes:
        capacity: Maximum number of action-log entries retained.
    """

    capacity: int = Field(default=50, ge=1)


class LoggingSettings(MediacatBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
        file: Optional log file path; rotation applies when set.
        max_size_mb: Maximum log size before rotation.
        backup_count: Number of historical log files to retain.
    """

    level: str = "WARNING"
    file: Optional[str] = None
    max_size_mb: int = 100
    backup_count: int = 5


class CLIOptions(MediacatBaseModel):
    """CLI behavior defaults.

    Attributes:
        quiet_default: Whether commands suppress non-error output by default.
        json_default: Whether commands emit JSON by default.
    """

    quiet_default: bool = False
    json_default: bool = False


class MediacatConfig(MediacatBaseModel):
    """Top-level configuration struct for mediacat.

    Attributes:
        catalog: Catalog database settings.
        scanning: Media discovery settings.
        watch: Filesystem watch settings.
        history: Action history settings.
        logging: Logging configuration.
        cli: CLI presentation defaults.
    """

    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    scanning: ScanningOptions = Field(default_factory=ScanningOptions)
    watch: WatchSettings = Field(default_factory=WatchSettings)
    history: HistorySettings = Field(default_factory=HistorySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    cli: CLIOptions = Field(default_factory=CLIOptions)


__all__ = [
    "MediacatBaseModel",
    "CatalogSettings",
    "ScanningOptions",
    "WatchSettings",
    "HistorySettings",
    "LoggingSettings",
    "CLIOptions",
    "MediacatConfig",
]
