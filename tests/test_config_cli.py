"""CLI tests for configuration commands."""

import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from mediacat.cli import cli
from mediacat.config import ConfigManager


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    return env


def _config_path(tmp_path: Path) -> Path:
    return tmp_path / ".mediacat" / "config.yaml"


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()

    result = runner.invoke(cli, ["config", "view"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0
    assert "catalog:" in result.output
    assert _config_path(tmp_path).exists()


def test_config_view_applies_environment_unless_disabled(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    env["MEDIACAT__HISTORY__CAPACITY"] = "7"

    with_env = runner.invoke(cli, ["config", "view"], env=env)
    without_env = runner.invoke(cli, ["config", "view", "--no-env"], env=env)

    assert "capacity: 7" in with_env.output
    assert "capacity: 50" in without_env.output


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["config", "set", "watch.debounce_seconds", "--value", "0.5"], env=env
    )

    assert result.exit_code == 0
    assert "0.5" in result.output
    assert "Updated watch.debounce_seconds" in result.output

    config = ConfigManager(config_path=_config_path(tmp_path)).load(include_env=False)
    assert config.watch.debounce_seconds == pytest.approx(0.5)


def test_config_set_same_value_reports_no_change(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    runner.invoke(cli, ["config", "set", "history.capacity", "--value", "20"], env=env)
    result = runner.invoke(cli, ["config", "set", "history.capacity", "--value", "20"], env=env)

    assert result.exit_code == 0
    assert "No changes applied" in result.output


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("watch.debounce_seconds", "0"),
        ("history.capacity", "not-a-number"),
        ("catalog.unknown_option", "1"),
    ],
)
def test_config_set_rejects_invalid_values(tmp_path: Path, key: str, value: str) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", key, "--value", value], env=env)

    assert result.exit_code != 0
    assert "Invalid configuration values" in result.output
    config = ConfigManager(config_path=_config_path(tmp_path)).load(include_env=False)
    assert config.watch.debounce_seconds == pytest.approx(2.0)
    assert config.history.capacity == 50
