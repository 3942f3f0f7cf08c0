"""Command line interface for mediacat."""

from __future__ import annotations

import difflib
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, NoReturn, Optional

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from mediacat.catalog import CatalogStore, DirectoryRegistry, WatchedDirectory
from mediacat.config import ConfigError, ConfigManager, MediacatConfig
from mediacat.errors import (
    CatalogIOError,
    MediacatError,
    NotFoundError,
    StorageError,
    ValidationError,
    WatchError,
)
from mediacat.history import ActionLog, ActionLogEntry
from mediacat.log_config import configure_logging
from mediacat.scanning import MediaScanner
from mediacat.scanning.service import RescanService
from mediacat.watch import WatchBatchResult, WatchService

console = Console()


@dataclass
class _Session:
    """Objects shared by catalog-backed commands for one invocation."""

    config: MediacatConfig
    store: CatalogStore
    registry: DirectoryRegistry


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> NoReturn:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _error_code(exc: Exception) -> str:
    """Map an exception onto the machine-readable error code."""
    if isinstance(exc, ConfigError):
        return "config_error"
    if isinstance(exc, ValidationError):
        return "validation_error"
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, CatalogIOError):
        return "io_error"
    if isinstance(exc, StorageError):
        return "storage_error"
    if isinstance(exc, WatchError):
        return "watch_error"
    return "internal_error"


def _fail(exc: MediacatError, *, json_output: bool) -> NoReturn:
    """Report a domain error through :func:`_handle_cli_error`."""
    path = getattr(exc, "path", None)
    _handle_cli_error(
        str(exc),
        code=_error_code(exc),
        json_output=json_output,
        details={"path": path} if path else None,
        original=exc,
    )


def _emit_message(message: Any, *, mode: str, quiet: bool) -> None:
    """Conditionally print CLI output according to the quiet setting.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
    """

    if quiet and mode != "error":
        return
    console.print(message)


def _format_summary_line(command: str, target: str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands."""
    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {target}: {parts}.[/green]"


def _load_config(db_path: Optional[str]) -> MediacatConfig:
    """Load the effective configuration and configure logging from it.

    Args:
        db_path: Database override from ``--db``; disables legacy migration.

    Raises:
        ConfigError: If the configuration cannot be loaded.
    """

    overrides: dict[str, Any] = {}
    if db_path:
        overrides = {"catalog.database_path": db_path, "catalog.legacy_database_path": None}
    config = ConfigManager().load(cli_overrides=overrides or None)
    configure_logging(config.logging)
    return config


@contextmanager
def _open_session(ctx: click.Context, *, json_output: bool) -> Iterator[_Session]:
    """Open the catalog for a command and close it afterwards."""
    db_path = ctx.obj.get("db_path") if ctx.obj else None
    try:
        config = _load_config(db_path)
        store = CatalogStore.from_settings(config.catalog)
    except MediacatError as exc:
        _fail(exc, json_output=json_output)

    try:
        registry = DirectoryRegistry(store, scanner=MediaScanner.from_options(config.scanning))
        yield _Session(config=config, store=store, registry=registry)
    finally:
        store.close()


def _resolve_modes(
    ctx: click.Context,
    config: MediacatConfig,
    *,
    json_output: bool,
    quiet: bool = False,
) -> tuple[bool, bool]:
    """Combine explicit flags with configured CLI defaults.

    Returns:
        tuple[bool, bool]: Whether JSON output and quiet mode are enabled.

    Raises:
        click.ClickException: If both modes were requested explicitly.
    """

    explicit_json = ctx.get_parameter_source("json_output") == ParameterSource.COMMANDLINE
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE

    json_enabled = json_output if explicit_json else config.cli.json_default
    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default

    if json_enabled and quiet_enabled and explicit_quiet:
        raise click.ClickException("--json cannot be combined with --quiet.")
    return json_enabled, quiet_enabled


def _directory_table(directories: list[WatchedDirectory]) -> Table:
    table = Table(title="Watched directories")
    table.add_column("ID", justify="right")
    table.add_column("Name")
    table.add_column("Path", overflow="fold")
    table.add_column("Active")
    table.add_column("Files", justify="right")
    table.add_column("Last scanned")
    for directory in directories:
        table.add_row(
            str(directory.id),
            directory.name,
            directory.path,
            "yes" if directory.is_active else "no",
            str(directory.file_count),
            directory.last_scanned_at.isoformat() if directory.last_scanned_at else "never",
        )
    return table


def _format_history_entry(entry: ActionLogEntry) -> str:
    state = " (undone)" if entry.undone else ""
    return (
        f"[{entry.created_at.isoformat()}] #{entry.id} {entry.action_type} "
        f"{entry.target_table}:{entry.target_id}{state}"
    )


def _emit_watch_batch(batch: WatchBatchResult, *, json_output: bool, quiet: bool) -> None:
    """Render output for a processed watch batch."""

    if json_output:
        console.print_json(data=batch.json_payload)
        return

    if batch.error is not None:
        _emit_message(
            f"[red]Watch batch {batch.batch_id} failed: {batch.error}[/red]",
            mode="error",
            quiet=quiet,
        )
        return

    result = batch.result
    if result is not None and result.missing:
        _emit_message(
            f"[yellow]{len(result.missing)} catalogued file(s) no longer exist on disk.[/yellow]",
            mode="warning",
            quiet=quiet,
        )
    _emit_message(
        _format_summary_line(
            "Watch",
            f"batch {batch.batch_id}",
            {
                "added": len(batch.batch.added),
                "removed": len(batch.batch.removed),
                "inserted": len(result.inserted) if result else 0,
                "linked": result.linked if result else 0,
                "missing": len(result.missing) if result else 0,
            },
        ),
        mode="summary",
        quiet=quiet,
    )


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="mediacat")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=str),
    help="Catalog database to use instead of the configured one.",
)
@click.pass_context
def cli(ctx: click.Context, db_path: Optional[str]) -> None:
    """mediacat keeps a catalog of media files in sync with your directories.

    Args:
        ctx: Click context carrying shared options.
        db_path: Optional catalog database override.
    """
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path


# ---------------------------------------------------------------------- #
# Directory registry                                                     #
# ---------------------------------------------------------------------- #


@cli.group()
def dirs() -> None:
    """Manage the directories that feed the catalog."""


@dirs.command("add")
@click.argument("path", type=click.Path(path_type=str))
@click.option("--json", "json_output", is_flag=True, help="Emit the registered directory as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def dirs_add(ctx: click.Context, path: str, json_output: bool, quiet: bool) -> None:
    """Register PATH and catalogue the media files beneath it.

    Registering a previously added directory reactivates it and refreshes its
    file count.

    Args:
        ctx: Click context for parameter source inspection.
        path: Directory to register.
        json_output: When True, emit JSON instead of text.
        quiet: When True, suppress non-error output.
    """
    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, quiet_enabled = _resolve_modes(
            ctx, session.config, json_output=json_output, quiet=quiet
        )
        try:
            directory = session.registry.add_directory(path)
        except MediacatError as exc:
            _fail(exc, json_output=json_enabled)

        if json_enabled:
            console.print_json(data={"directory": directory.model_dump(mode="json")})
            return
        _emit_message(
            _format_summary_line(
                "Add", directory.path, {"id": directory.id, "files": directory.file_count}
            ),
            mode="summary",
            quiet=quiet_enabled,
        )


@dirs.command("rm")
@click.argument("directory_id", type=int)
@click.option("--json", "json_output", is_flag=True, help="Emit the result as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def dirs_rm(ctx: click.Context, directory_id: int, json_output: bool, quiet: bool) -> None:
    """Unregister DIRECTORY_ID; catalogued files are kept but unlinked."""
    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, quiet_enabled = _resolve_modes(
            ctx, session.config, json_output=json_output, quiet=quiet
        )
        try:
            session.registry.remove_directory(directory_id)
        except MediacatError as exc:
            _fail(exc, json_output=json_enabled)

        if json_enabled:
            console.print_json(data={"removed": directory_id})
            return
        _emit_message(
            f"[green]Removed directory {directory_id}; catalogued files were kept.[/green]",
            mode="summary",
            quiet=quiet_enabled,
        )


@dirs.command("ls")
@click.option("--json", "json_output", is_flag=True, help="Emit directories as JSON.")
@click.pass_context
def dirs_ls(ctx: click.Context, json_output: bool) -> None:
    """List registered directories, newest first."""
    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, _ = _resolve_modes(ctx, session.config, json_output=json_output)
        try:
            directories = session.registry.list_directories()
        except MediacatError as exc:
            _fail(exc, json_output=json_enabled)

        if json_enabled:
            console.print_json(
                data={"directories": [item.model_dump(mode="json") for item in directories]}
            )
            return
        if not directories:
            console.print("[yellow]No directories registered yet.[/yellow]")
            return
        console.print(_directory_table(directories))


@dirs.command("activate")
@click.argument("directory_id", type=int)
@click.option("--off", "deactivate", is_flag=True, help="Deactivate instead of activating.")
@click.option("--json", "json_output", is_flag=True, help="Emit the updated directory as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def dirs_activate(
    ctx: click.Context,
    directory_id: int,
    deactivate: bool,
    json_output: bool,
    quiet: bool,
) -> None:
    """Include DIRECTORY_ID in rescans and watching, or exclude it with --off."""
    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, quiet_enabled = _resolve_modes(
            ctx, session.config, json_output=json_output, quiet=quiet
        )
        try:
            directory = session.registry.set_active(directory_id, not deactivate)
        except MediacatError as exc:
            _fail(exc, json_output=json_enabled)

        if json_enabled:
            console.print_json(data={"directory": directory.model_dump(mode="json")})
            return
        state = "active" if directory.is_active else "inactive"
        _emit_message(
            f"[green]Directory {directory.id} ({directory.name}) is now {state}.[/green]",
            mode="summary",
            quiet=quiet_enabled,
        )


# ---------------------------------------------------------------------- #
# Scanning and watching                                                  #
# ---------------------------------------------------------------------- #


@cli.command()
@click.argument("directory_id", type=int, required=False)
@click.option("--json", "json_output", is_flag=True, help="Emit the rescan report as JSON.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def rescan(
    ctx: click.Context,
    directory_id: Optional[int],
    json_output: bool,
    quiet: bool,
) -> None:
    """Rescan DIRECTORY_ID, or every active directory when omitted.

    A directory that cannot be rescanned does not stop the others; the
    command exits non-zero when any directory failed.
    """
    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, quiet_enabled = _resolve_modes(
            ctx, session.config, json_output=json_output, quiet=quiet
        )
        service = RescanService(session.registry)

        if directory_id is not None:
            try:
                directory = service.rescan_directory(directory_id)
            except MediacatError as exc:
                _fail(exc, json_output=json_enabled)
            if json_enabled:
                console.print_json(
                    data={"successes": [directory.model_dump(mode="json")], "failures": []}
                )
                return
            _emit_message(
                _format_summary_line("Rescan", directory.path, {"files": directory.file_count}),
                mode="summary",
                quiet=quiet_enabled,
            )
            return

        report = service.rescan_all_active()
        if json_enabled:
            console.print_json(data=report.model_dump(mode="json"))
        else:
            for success in report.successes:
                _emit_message(
                    f"  {success.path}: {success.file_count} file(s)",
                    mode="detail",
                    quiet=quiet_enabled,
                )
            for failure in report.failures:
                _emit_message(
                    f"[red]  {failure.path}: {failure.error}[/red]",
                    mode="error",
                    quiet=quiet_enabled,
                )
            _emit_message(
                _format_summary_line(
                    "Rescan",
                    "active directories",
                    {"rescanned": len(report.successes), "failed": len(report.failures)},
                ),
                mode="summary",
                quiet=quiet_enabled,
            )
        if not report.ok:
            raise SystemExit(1)


@cli.command()
@click.option("--debounce", type=float, help="Override the debounce interval in seconds.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON describing each batch.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def watch(
    ctx: click.Context,
    debounce: Optional[float],
    json_output: bool,
    quiet: bool,
) -> None:
    """Watch every active directory and keep the catalog in sync until Ctrl+C.

    Args:
        ctx: Click context for parameter source inspection.
        debounce: Optional debounce override in seconds.
        json_output: When True, emit JSON payloads instead of text.
        quiet: When True, suppress non-error output.

    Raises:
        click.ClickException: If options are invalid or watching fails.
    """

    if debounce is not None and debounce <= 0:
        raise click.ClickException("--debounce must be greater than zero.")

    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, quiet_enabled = _resolve_modes(
            ctx, session.config, json_output=json_output, quiet=quiet
        )
        service = WatchService(
            session.registry,
            debounce_seconds=debounce or session.config.watch.debounce_seconds,
            poll_interval=session.config.watch.poll_interval_seconds,
        )

        try:
            roots = service.start()
        except MediacatError as exc:
            _fail(exc, json_output=json_enabled)

        if not roots:
            if json_enabled:
                console.print_json(data={"watched_paths": []})
            else:
                _emit_message(
                    "[yellow]No active directories to watch.[/yellow]",
                    mode="warning",
                    quiet=quiet_enabled,
                )
            return

        if not json_enabled:
            _emit_message(
                f"[cyan]Watching {len(roots)} director{'y' if len(roots) == 1 else 'ies'}. "
                "Press Ctrl+C to stop.[/cyan]",
                mode="detail",
                quiet=quiet_enabled,
            )

        try:
            service.run(
                lambda batch: _emit_watch_batch(
                    batch, json_output=json_enabled, quiet=quiet_enabled
                )
            )
        except KeyboardInterrupt:
            service.close()
            if not json_enabled:
                _emit_message(
                    "[yellow]Watch stopped by user request.[/yellow]",
                    mode="summary",
                    quiet=quiet_enabled,
                )


# ---------------------------------------------------------------------- #
# History                                                                #
# ---------------------------------------------------------------------- #


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit the action log as JSON.")
@click.pass_context
def history(ctx: click.Context, json_output: bool) -> None:
    """Show the action log and the next undo/redo targets."""
    with _open_session(ctx, json_output=json_output) as session:
        json_enabled, _ = _resolve_modes(ctx, session.config, json_output=json_output)
        log = ActionLog(session.store, capacity=session.config.history.capacity)
        try:
            entries = log.entries()
            next_undo = log.peek_undo()
            next_redo = log.peek_redo()
        except MediacatError as exc:
            _fail(exc, json_output=json_enabled)

        if json_enabled:
            console.print_json(
                data={
                    "entries": [entry.model_dump(mode="json") for entry in entries],
                    "next_undo": next_undo.id if next_undo else None,
                    "next_redo": next_redo.id if next_redo else None,
                }
            )
            return

        if not entries:
            console.print("[yellow]No actions recorded.[/yellow]")
            return
        for entry in entries:
            console.print(_format_history_entry(entry), markup=False)
        console.print(
            f"[green]{len(entries)} of {log.capacity} entries retained; "
            f"next undo: {next_undo.id if next_undo else '-'}, "
            f"next redo: {next_redo.id if next_redo else '-'}.[/green]"
        )


# ---------------------------------------------------------------------- #
# Configuration                                                          #
# ---------------------------------------------------------------------- #


@cli.group()
def config() -> None:
    """Manage mediacat configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        effective = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(effective.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    try:
        before, after = manager.set_value(key, value)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )
    if not diff:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {key.strip()}.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
