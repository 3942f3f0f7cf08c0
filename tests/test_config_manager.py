"""Unit tests for configuration management."""

from pathlib import Path

import pytest

from mediacat.config import (
    ConfigError,
    ConfigManager,
    MediacatConfig,
    flatten_for_env,
    resolve_with_precedence,
)


def _fresh_manager(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> ConfigManager:
    monkeypatch.setenv("HOME", str(tmp_path))
    return ConfigManager()


def test_ensure_exists_creates_default_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)

    path = manager.ensure_exists()

    assert path == tmp_path / ".mediacat" / "config.yaml"
    text = path.read_text(encoding="utf-8")
    assert "mediacat configuration file" in text
    assert "Last updated:" in text

    config = manager.load(include_env=False)
    assert isinstance(config, MediacatConfig)
    assert config.watch.debounce_seconds == pytest.approx(2.0)
    assert config.history.capacity == 50


def test_resolve_with_precedence_respects_order(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.save({"watch": {"debounce_seconds": 1.5}, "history": {"capacity": 10}})

    env = {"MEDIACAT__HISTORY__CAPACITY": "20", "MEDIACAT__CATALOG__BUSY_RETRIES": "5"}
    cli = {"history.capacity": 30}

    config = manager.load(cli_overrides=cli, env_overrides=env)

    assert config.watch.debounce_seconds == pytest.approx(1.5)
    assert config.catalog.busy_retries == 5
    # CLI overrides take precedence over environment
    assert config.history.capacity == 30


def test_environment_can_be_ignored(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = ConfigManager(
        tmp_path / "config.yaml", env={"MEDIACAT__SCANNING__FOLLOW_SYMLINKS": "true"}
    )

    assert manager.load().scanning.follow_symlinks is True
    assert manager.load(include_env=False).scanning.follow_symlinks is False


def test_invalid_yaml_raises_config_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    manager = _fresh_manager(tmp_path, monkeypatch)
    manager.ensure_exists()

    manager.config_path.write_text("- not-a-mapping", encoding="utf-8")

    with pytest.raises(ConfigError):
        manager.load()


def test_flatten_for_env_round_trips_defaults() -> None:
    flat = flatten_for_env(MediacatConfig())

    assert flat["MEDIACAT__WATCH__DEBOUNCE_SECONDS"] == "2.0"
    assert flat["MEDIACAT__SCANNING__FOLLOW_SYMLINKS"] == "false"
    assert flat["MEDIACAT__LOGGING__FILE"] == "null"
    assert flat["MEDIACAT__SCANNING__VIDEO_EXTENSIONS"] == "[mp4, webm, mov]"

    manager = ConfigManager(Path("/nonexistent/config.yaml"), env=flat)
    assert manager.load(ensure_file=False) == MediacatConfig()


def test_extensions_are_normalised() -> None:
    config = resolve_with_precedence(
        defaults=MediacatConfig(),
        file_overrides={"scanning": {"image_extensions": [".JPG", "Heic", " "]}},
    )

    assert config.scanning.image_extensions == ["jpg", "heic"]


def test_resolve_with_precedence_invalid_value_raises() -> None:
    with pytest.raises(ConfigError):
        resolve_with_precedence(
            defaults=MediacatConfig(),
            file_overrides={"history": {"capacity": 0}},
        )


def test_set_value_returns_changed_lines(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml", env={})

    before, after = manager.set_value("history.capacity", "12")

    assert "  capacity: 50" in before
    assert "  capacity: 12" in after
    assert not any(line.startswith("# Last updated:") for line in before + after)
    assert manager.load().history.capacity == 12


def test_set_value_rejects_paths_through_scalars(tmp_path: Path) -> None:
    manager = ConfigManager(tmp_path / "config.yaml", env={})
    manager.ensure_exists()
    original = manager.load_file_overrides()

    with pytest.raises(ConfigError):
        manager.set_value("history.capacity.nested", "1")
    with pytest.raises(ConfigError):
        manager.set_value(" . ", "1")

    assert manager.load_file_overrides() == original
