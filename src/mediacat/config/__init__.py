"""Configuration management for mediacat."""

from __future__ import annotations

import os
import textwrap
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .exceptions import ConfigError
from .models import MediacatConfig
from .resolver import ENV_PREFIX, flatten_for_env, resolve_with_precedence

DEFAULT_CONFIG_PATH = Path("~/.mediacat/config.yaml")
_CONFIG_HEADER = textwrap.dedent(
    """\
    # mediacat configuration file
    # Generated automatically; manage via `mediacat config set`.
    """
)
_STAMP_PREFIX = "# Last updated:"


def assign_dotted(
    target: dict[str, Any], segments: list[str], value: Any, *, replace: bool = False
) -> None:
    """Assign ``value`` at the nested position named by ``segments``.

    Args:
        target: Mapping updated in place.
        segments: Path of keys, outermost first.
        value: Value stored at the final key.
        replace: Replace scalar values found along the path instead of failing.

    Raises:
        ConfigError: If a scalar blocks the path and ``replace`` is False.
    """
    node = target
    for segment in segments[:-1]:
        child = node.get(segment)
        if child is None or (replace and not isinstance(child, dict)):
            child = {}
            node[segment] = child
        elif not isinstance(child, dict):
            raise ConfigError(f"Cannot assign into '{segment}' because it is not a mapping.")
        node = child
    node[segments[-1]] = value


class ConfigManager:
    """Read, layer, and persist the YAML configuration file.

    Values resolve in the order defaults, file, ``MEDIACAT__`` environment
    variables, then CLI overrides; later layers win.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._config_path = (config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = env if env is not None else os.environ

    @property
    def config_path(self) -> Path:
        """Return the resolved configuration path."""
        return self._config_path

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> MediacatConfig:
        """Load configuration from disk and layer environment and CLI overrides.

        Args:
            cli_overrides: Dotted-key overrides with the highest precedence.
            include_env: Whether ``MEDIACAT__`` variables are consulted.
            ensure_file: Create the file with defaults when it is missing.
            env_overrides: Explicit environment mapping used instead of ``os.environ``.

        Returns:
            MediacatConfig: The effective configuration.

        Raises:
            ConfigError: If the file cannot be parsed or values are invalid.
        """
        if ensure_file:
            self.ensure_exists()

        env_data: Mapping[str, str] | None = None
        if include_env:
            env_data = env_overrides if env_overrides is not None else self._env

        return resolve_with_precedence(
            defaults=MediacatConfig(),
            file_overrides=self._read_file(),
            env_overrides=self._extract_env(env_data) if env_data else None,
            cli_overrides=cli_overrides,
        )

    def load_file_overrides(self) -> dict[str, Any]:
        """Return raw overrides stored on disk."""
        return self._read_file()

    def save(self, config: MediacatConfig | Mapping[str, Any]) -> None:
        """Persist a full configuration or a raw override mapping."""
        if isinstance(config, MediacatConfig):
            data = config.model_dump(mode="python")
        else:
            data = dict(config)
        self._write_file(data)

    def set_value(self, key: str, raw_value: str) -> tuple[list[str], list[str]]:
        """Validate and persist one dotted ``key`` in the configuration file.

        ``raw_value`` is parsed as a YAML literal. Nothing is written unless the
        updated file still resolves to a valid configuration.

        Returns:
            tuple[list[str], list[str]]: File lines before and after the write,
            excluding the ``Last updated`` stamp.

        Raises:
            ConfigError: If the key, the value, or the resulting config is invalid.
        """
        segments = [segment.strip() for segment in key.split(".") if segment.strip()]
        if not segments:
            raise ConfigError("KEY must specify a dotted path such as 'watch.debounce_seconds'.")
        try:
            value = yaml.safe_load(raw_value)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Unable to parse value: {exc}") from exc

        self.ensure_exists()
        data = self._read_file()
        before = self._content_lines()
        assign_dotted(data, segments, value)
        resolve_with_precedence(defaults=MediacatConfig(), file_overrides=data)
        self._write_file(data)
        return before, self._content_lines()

    def ensure_exists(self) -> Path:
        """Create a configuration file with defaults if one does not exist."""
        if not self._config_path.exists():
            self._write_file(MediacatConfig().model_dump(mode="python"))
        return self._config_path

    def read_text(self) -> str:
        """Return the current configuration file contents."""
        if not self._config_path.exists():
            return ""
        return self._config_path.read_text(encoding="utf-8")

    # Internal helpers -------------------------------------------------

    def _content_lines(self) -> list[str]:
        return [
            line for line in self.read_text().splitlines() if not line.startswith(_STAMP_PREFIX)
        ]

    def _read_file(self) -> dict[str, Any]:
        if not self._config_path.exists():
            return {}

        try:
            raw = yaml.safe_load(self._config_path.read_text(encoding="utf-8")) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc

        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return raw

    def _write_file(self, data: Mapping[str, Any]) -> None:
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
        body = yaml.safe_dump(dict(data), sort_keys=False)
        self._config_path.write_text(
            f"{_CONFIG_HEADER}{_STAMP_PREFIX} {stamp}\n{body}", encoding="utf-8"
        )

    def _extract_env(self, env: Mapping[str, str]) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for key, raw_value in env.items():
            if not key.startswith(ENV_PREFIX):
                continue
            suffix = key[len(ENV_PREFIX) :]
            segments = [segment.lower() for segment in suffix.split("__") if segment]
            if not segments:
                continue
            try:
                value: Any = yaml.safe_load(raw_value)
            except yaml.YAMLError:
                value = raw_value
            assign_dotted(overrides, segments, value, replace=True)
        return overrides


__all__ = [
    "ConfigManager",
    "DEFAULT_CONFIG_PATH",
    "MediacatConfig",
    "assign_dotted",
    "resolve_with_precedence",
    "flatten_for_env",
    "ConfigError",
]
