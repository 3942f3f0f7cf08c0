"""CLI tests for catalog commands."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

from click.testing import CliRunner, Result

from mediacat.catalog import CatalogStore
from mediacat.cli import cli
from mediacat.history import ActionLog


def _env(tmp_path: Path) -> dict[str, str]:
    """Return environment variables isolating HOME and silencing log output.

    Args:
        tmp_path: Temporary directory provided by pytest.

    Returns:
        dict[str, str]: Environment mapping for CliRunner.
    """
    env = dict(os.environ)
    env["HOME"] = str(tmp_path / "home")
    env["MEDIACAT__LOGGING__LEVEL"] = "ERROR"
    return env


def _invoke(tmp_path: Path, *args: str) -> Result:
    runner = CliRunner()
    return runner.invoke(cli, ["--db", str(tmp_path / "catalog.db"), *args], env=_env(tmp_path))


def _json(result: Result) -> Any:
    return json.loads(result.output)


def test_cli_help_displays_commands() -> None:
    result = CliRunner().invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "mediacat keeps a catalog" in result.output
    for command in ("dirs", "rescan", "watch", "history", "config"):
        assert command in result.output


def test_dirs_add_and_list(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "photos", ["a.jpg", "b.png", "c.mp4", "x.txt", "y.pdf"])

    added = _invoke(tmp_path, "dirs", "add", str(root), "--json")
    listed = _invoke(tmp_path, "dirs", "ls", "--json")

    assert added.exit_code == 0, added.output
    directory = _json(added)["directory"]
    assert directory["file_count"] == 3
    assert directory["is_active"] is True
    assert listed.exit_code == 0
    assert [item["id"] for item in _json(listed)["directories"]] == [directory["id"]]
    assert (tmp_path / "catalog.db").exists()
    assert not (tmp_path / "home" / ".mediacat" / "catalog.db").exists()


def test_dirs_add_text_summary(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "p", ["a.jpg"])

    result = _invoke(tmp_path, "dirs", "add", str(root))

    assert result.exit_code == 0
    assert "Add summary" in result.output


def test_dirs_add_rejects_missing_directory(tmp_path: Path) -> None:
    missing = tmp_path / "missing"

    text = _invoke(tmp_path, "dirs", "add", str(missing))
    as_json = _invoke(tmp_path, "dirs", "add", str(missing), "--json")

    assert text.exit_code == 1
    assert "Not a directory" in text.output
    assert as_json.exit_code == 1
    error = _json(as_json)["error"]
    assert error["code"] == "validation_error"
    assert error["details"]["path"] == str(missing)


def test_dirs_activate_and_rm(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "photos", ["a.jpg"])
    directory_id = _json(_invoke(tmp_path, "dirs", "add", str(root), "--json"))["directory"]["id"]

    paused = _invoke(tmp_path, "dirs", "activate", str(directory_id), "--off", "--json")
    rescanned = _invoke(tmp_path, "rescan", "--json")
    removed = _invoke(tmp_path, "dirs", "rm", str(directory_id), "--json")
    missing = _invoke(tmp_path, "dirs", "rm", str(directory_id), "--json")

    assert _json(paused)["directory"]["is_active"] is False
    assert rescanned.exit_code == 0
    assert _json(rescanned) == {"successes": [], "failures": []}
    assert _json(removed) == {"removed": directory_id}
    assert missing.exit_code == 1
    assert _json(missing)["error"]["code"] == "not_found"


def test_rescan_reports_partial_failure(tmp_path: Path, make_tree) -> None:
    kept = make_tree(tmp_path / "kept", ["a.jpg"])
    doomed = make_tree(tmp_path / "doomed", ["b.jpg"])
    _invoke(tmp_path, "dirs", "add", str(kept))
    _invoke(tmp_path, "dirs", "add", str(doomed))
    make_tree(kept, ["c.jpg"])
    shutil.rmtree(doomed)

    result = _invoke(tmp_path, "rescan", "--json")

    assert result.exit_code == 1
    report = _json(result)
    assert [item["file_count"] for item in report["successes"]] == [2]
    assert [item["path"] for item in report["failures"]] == [str(doomed.resolve())]


def test_rescan_single_directory(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "photos", ["a.jpg"])
    directory_id = _json(_invoke(tmp_path, "dirs", "add", str(root), "--json"))["directory"]["id"]
    make_tree(root, ["b.webp"])

    result = _invoke(tmp_path, "rescan", str(directory_id), "--json")

    assert result.exit_code == 0
    assert _json(result)["successes"][0]["file_count"] == 2


def test_history_lists_entries_and_next_targets(tmp_path: Path) -> None:
    empty = _invoke(tmp_path, "history", "--json")
    with CatalogStore(tmp_path / "catalog.db") as store:
        log = ActionLog(store)
        log.log_action("update_rating", "images", 1, "v1:1", "v1:4")
        second = log.log_action("toggle_favorite", "images", 1, "v1:false", "v1:true")
        log.mark_undone(second)

    result = _invoke(tmp_path, "history", "--json")
    text = _invoke(tmp_path, "history")

    assert _json(empty) == {"entries": [], "next_undo": None, "next_redo": None}
    payload = _json(result)
    assert [entry["action_type"] for entry in payload["entries"]] == [
        "update_rating",
        "toggle_favorite",
    ]
    assert payload["next_undo"] == payload["entries"][0]["id"]
    assert payload["next_redo"] == second
    assert text.exit_code == 0
    assert "toggle_favorite" in text.output


def test_watch_without_active_directories_exits(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "watch")

    assert result.exit_code == 0
    assert "No active directories to watch" in result.output


def test_watch_rejects_non_positive_debounce(tmp_path: Path) -> None:
    result = _invoke(tmp_path, "watch", "--debounce", "0")

    assert result.exit_code == 1
    assert "--debounce must be greater than zero" in result.output


def test_json_and_quiet_conflict(tmp_path: Path, make_tree) -> None:
    root = make_tree(tmp_path / "photos", [])

    result = _invoke(tmp_path, "dirs", "add", str(root), "--json", "--quiet")

    assert result.exit_code == 1
    assert "--json cannot be combined with --quiet" in result.output
