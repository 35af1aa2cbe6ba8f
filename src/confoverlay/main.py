"""
confoverlay CLI entry point.

Commands
--------
  confoverlay check APP [--snippet FILE]
  confoverlay apply APP CONFIG [--snippet FILE] [--write]
  confoverlay detach APP CONFIG [--snippet FILE] [--write]
  confoverlay snippet APP [--set FILE | --clear]
  confoverlay status [--config APP=FILE ...]
  confoverlay reset [--yes]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .config import load_config
from .controller import CommonConfigController, controller_for
from .detection import detect_content
from .exceptions import OverlayError
from .merge import is_plain_object
from .models import AppType
from .state import (
    CONFOVERLAY_DIR,
    clear_confoverlay,
    load_legacy_store,
    load_store,
    read_text_file,
    save_legacy_store,
    save_store,
    write_atomic,
)

logger = logging.getLogger(__name__)

# ── Typer app ─────────────────────────────────────────────────────────────────

app = typer.Typer(
    name="confoverlay",
    help="Layer a shared common-config snippet over per-provider configs.",
    no_args_is_help=True,
    add_completion=False,
)

console = Console()
err_console = Console(stderr=True)


def _configure_logging(level: str) -> None:
    if not isinstance(logging.getLevelName(level), int):
        level = "WARNING"
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


@app.callback()
def _root(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    config = load_config()
    _configure_logging("DEBUG" if verbose else str(config.get("log_level", "WARNING")).upper())


# ── Helpers ───────────────────────────────────────────────────────────────────


def _read_required(path: Path, what: str) -> str:
    try:
        text = read_text_file(path)
    except OSError as exc:
        err_console.print(f"[bold red]Cannot read {what}:[/bold red] {path} ({exc})")
        raise typer.Exit(1)
    if text is None:
        err_console.print(f"[bold red]{what.capitalize()} not found:[/bold red] {path}")
        raise typer.Exit(1)
    return text


def _snippet_source(app_type: AppType, config: dict) -> str:
    if load_store().get_snippet(app_type) is not None:
        return "store"
    if config.get("snippets", {}).get(app_type.value) is not None:
        return "config"
    return "default"


def _load_controller(
    app_type: AppType,
    config: dict,
    snippet_file: Optional[Path] = None,
    *,
    enabled: bool = False,
) -> CommonConfigController:
    """
    Build the controller for `app_type`. Snippet precedence: --snippet FILE,
    then the saved store, then a migrated legacy entry, then config, then
    the built-in default.
    """
    if snippet_file is not None:
        logger.debug("Using %s snippet from %s", app_type.value, snippet_file)
        return controller_for(
            app_type, _read_required(snippet_file, "snippet file"), config=config, enabled=enabled
        )

    store = load_store()
    stored = store.get_snippet(app_type)
    controller = controller_for(app_type, stored, config=config, enabled=enabled)

    if stored is None:
        legacy = load_legacy_store()
        if legacy:
            adopted = controller.migrate_legacy_snippet(stored, legacy)
            save_legacy_store(legacy)
            if adopted is not None:
                store.set_snippet(app_type, adopted)
                save_store(store)
                controller.mark_saved()
    return controller


def _fail(controller: CommonConfigController, exc: OverlayError) -> None:
    message = controller.error or str(exc)
    err_console.print(f"[bold red]✗[/bold red] {message}")
    raise typer.Exit(1)


def _as_file_content(
    app_type: AppType,
    controller: CommonConfigController,
    settings_config: str,
    original: str,
) -> str:
    """
    Shape the new settingsConfig like the file it came from. A Gemini config
    read from a plain .env file is written back as KEY=VALUE lines.
    """
    if app_type != AppType.GEMINI:
        return settings_config
    try:
        is_json = is_plain_object(json.loads(original))
    except json.JSONDecodeError:
        is_json = False
    if is_json:
        return settings_config
    adapter = controller.adapter
    return adapter.serialize_output(adapter.parse_input(settings_config)) + "\n"


def _emit(path: Path, content: str, write: bool) -> None:
    if write:
        try:
            write_atomic(path, content)
        except OverlayError as exc:
            err_console.print(f"[bold red]✗[/bold red] {exc}")
            raise typer.Exit(1)
        console.print(f"[green]✓[/green] Wrote {path}")
    else:
        typer.echo(content.rstrip("\n"))


def _parse_config_pairs(pairs: list[str]) -> dict[AppType, Path]:
    parsed: dict[AppType, Path] = {}
    for pair in pairs:
        name, sep, file_name = pair.partition("=")
        try:
            app_type = AppType(name.strip().lower())
        except ValueError:
            app_type = None
        if not sep or app_type is None or not file_name:
            err_console.print(f"[bold red]Expected APP=FILE, got:[/bold red] {pair}")
            raise typer.Exit(1)
        parsed[app_type] = Path(file_name)
    return parsed


# ── Commands ──────────────────────────────────────────────────────────────────


@app.command()
def check(
    app_type: AppType = typer.Argument(..., metavar="APP", help="claude | codex | gemini"),
    snippet_file: Optional[Path] = typer.Option(
        None, "--snippet", help="Check this snippet file instead of the saved snippet."
    ),
) -> None:
    """Report whether the common snippet can be applied."""
    controller = _load_controller(app_type, load_config(), snippet_file)
    message = controller.apply_error()
    if message:
        err_console.print(f"[bold red]✗[/bold red] {message}")
        raise typer.Exit(1)
    console.print(f"[green]✓[/green] {app_type.value} common config OK")


@app.command()
def apply(
    app_type: AppType = typer.Argument(..., metavar="APP", help="claude | codex | gemini"),
    config_file: Path = typer.Argument(..., metavar="CONFIG", help="Provider config file."),
    snippet_file: Optional[Path] = typer.Option(
        None, "--snippet", help="Apply this snippet file instead of the saved snippet."
    ),
    write: bool = typer.Option(False, "--write", "-w", help="Write the result back to CONFIG."),
) -> None:
    """
    Merge the common snippet into CONFIG. Keys CONFIG already sets are kept.
    Prints the result unless --write is given.
    """
    original = _read_required(config_file, "config file")
    controller = _load_controller(app_type, load_config(), snippet_file)

    try:
        result = controller.enable(original)
    except OverlayError as exc:
        _fail(controller, exc)

    if not result.changed:
        err_console.print("[dim]Config already contains the common snippet.[/dim]")
    _emit(config_file, _as_file_content(app_type, controller, result.settings_config, original), write)


@app.command()
def detach(
    app_type: AppType = typer.Argument(..., metavar="APP", help="claude | codex | gemini"),
    config_file: Path = typer.Argument(..., metavar="CONFIG", help="Provider config file."),
    snippet_file: Optional[Path] = typer.Option(
        None, "--snippet", help="Strip this snippet file instead of the saved snippet."
    ),
    write: bool = typer.Option(False, "--write", "-w", help="Write the result back to CONFIG."),
) -> None:
    """
    Remove every value the common snippet contributed to CONFIG.

    A value equal to the snippet's is removed even if it was set by hand.
    """
    original = _read_required(config_file, "config file")
    controller = _load_controller(app_type, load_config(), snippet_file, enabled=True)

    try:
        result = controller.disable(original)
    except OverlayError as exc:
        _fail(controller, exc)

    if not result.has_common_keys:
        err_console.print("[dim]Nothing to detach: no common values found.[/dim]")
        if write:
            return
    _emit(config_file, _as_file_content(app_type, controller, result.settings_config, original), write)


@app.command()
def snippet(
    app_type: AppType = typer.Argument(..., metavar="APP", help="claude | codex | gemini"),
    set_file: Optional[Path] = typer.Option(
        None, "--set", help="Store the contents of this file as the common snippet."
    ),
    clear: bool = typer.Option(False, "--clear", help="Forget the stored snippet."),
) -> None:
    """Show or store the common snippet for APP."""
    if set_file is not None and clear:
        err_console.print("[bold red]--set and --clear are mutually exclusive.[/bold red]")
        raise typer.Exit(1)

    config = load_config()

    if clear:
        store = load_store()
        store.set_snippet(app_type, None)
        save_store(store)
        console.print(f"[green]✓[/green] Cleared {app_type.value} common snippet.")
        return

    if set_file is not None:
        text = _read_required(set_file, "snippet file")
        controller = _load_controller(app_type, config)
        if not controller.set_snippet(text):
            err_console.print(f"[bold red]✗[/bold red] {controller.error}")
            raise typer.Exit(1)

        pending = controller.pending_snippet()
        if pending is not None:
            store = load_store()
            store.set_snippet(app_type, pending)
            try:
                save_store(store)
            except OverlayError as exc:
                err_console.print(f"[bold red]✗[/bold red] {exc}")
                raise typer.Exit(1)
            controller.mark_saved()
        console.print(f"[green]✓[/green] Saved {app_type.value} common snippet.")
        return

    controller = _load_controller(app_type, config)
    console.print(f"[dim]# source: {_snippet_source(app_type, config)}[/dim]")
    typer.echo(controller.snippet)


@app.command()
def status(
    configs: Optional[list[str]] = typer.Option(
        None,
        "--config",
        "-c",
        metavar="APP=FILE",
        help="Also check whether FILE already contains APP's snippet (repeatable).",
    ),
) -> None:
    """Show each app's common snippet state and, optionally, detection results."""
    config = load_config()
    config_files = _parse_config_pairs(configs or [])

    table = Table(show_header=True, header_style="bold")
    table.add_column("App")
    table.add_column("Snippet")
    table.add_column("Status")
    table.add_column("Config")
    table.add_column("Contains Snippet")

    for app_type in AppType:
        controller = _load_controller(app_type, config)
        message = controller.apply_error()
        status_str = f"[red]✗ {message}[/red]" if message else "[green]✓ ready[/green]"

        config_str = "—"
        contains_str = "—"
        path = config_files.get(app_type)
        if path is not None:
            config_str = str(path)
            text = read_text_file(path)
            if text is None:
                contains_str = "[yellow]missing[/yellow]"
            else:
                detected = detect_content(app_type, text, controller.snippet)
                if detected.parse_error:
                    contains_str = f"[yellow]? {detected.parse_error}[/yellow]"
                elif detected.has_content:
                    contains_str = "[green]yes[/green]"
                else:
                    contains_str = "no"

        table.add_row(
            app_type.value,
            _snippet_source(app_type, config),
            status_str,
            config_str,
            contains_str,
        )

    console.print(table)
    console.print()


@app.command()
def reset(
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt."),
) -> None:
    """
    Delete all .confoverlay/ state for the current repository.
    This clears saved snippets, legacy entries and repo config.
    """
    if not CONFOVERLAY_DIR.exists():
        console.print("[dim]Nothing to reset, .confoverlay/ does not exist.[/dim]")
        return

    if not yes:
        confirmed = typer.confirm(
            "Delete all .confoverlay/ state (snippets, legacy entries, config)?"
        )
        if not confirmed:
            console.print("[dim]Aborted.[/dim]")
            raise typer.Exit(0)

    clear_confoverlay()
    console.print("[green]✓[/green] Cleared .confoverlay/ for this repository.")


# ── Entry point ───────────────────────────────────────────────────────────────


def main() -> None:
    app()


if __name__ == "__main__":
    main()
