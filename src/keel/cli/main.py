"""
Main CLI entry point.
"""

import asyncio
import contextlib
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from keel import __version__
from keel.config.loader import load_config
from keel.core.api import build_manager
from keel.core.cancellation import CancellationToken
from keel.core.manager import MigrationManager
from keel.exceptions import KeelError
from keel.utils.logging import setup_logging_from_config

T = TypeVar("T")

app = typer.Typer(
    name="keel",
    help="keel - versioned SQL migrations with self-contained rollback",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


@dataclass
class CliOptions:
    project_dir: Path
    env: str | None
    source: str | None
    log_level: str | None


def version_callback(value: bool):
    """Callback to display version and exit."""
    if value:
        typer.echo(f"keel version {__version__}")
        raise typer.Exit()


@app.callback()
def entrypoint(
    ctx: typer.Context,
    project_dir: Path = typer.Option(Path("."), "--project-dir", "-d", help="Directory holding keel.yaml"),
    env: str | None = typer.Option(None, "--env", "-e", help="Environment name (loads keel.<env>.yaml)"),
    source: str | None = typer.Option(
        None, "--source", "-s", help="Migration sources: directory, .tar.gz, file: or http(s)+tar+gz: URL"
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="Override logging.level from config"),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
):
    """
    keel - apply and revert versioned database migrations.

    Run 'keel <command> --help' for help on a specific command.
    """
    ctx.obj = CliOptions(project_dir=project_dir.resolve(), env=env, source=source, log_level=log_level)


def _run_with_manager(options: CliOptions, action: Callable[[MigrationManager], Awaitable[T]]) -> T:
    """Build a manager from config, run ``action`` with it and translate failures into exit code 1."""

    async def _main() -> T:
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        with contextlib.suppress(NotImplementedError):
            # First Ctrl+C stops after the current script; a second one interrupts
            loop.add_signal_handler(signal.SIGINT, _cancel_once, loop, token)

        manager = await build_manager(
            options.project_dir, options.env, options.source, cancellation_token=token, config=config
        )
        try:
            return await action(manager)
        finally:
            manager.close()

    try:
        config = load_config(options.project_dir, options.env)
        if options.log_level:
            config.data.setdefault("logging", {})["level"] = options.log_level
        setup_logging_from_config(config.data, project_dir=options.project_dir)
        return asyncio.run(_main())
    except KeelError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)


def _cancel_once(loop: asyncio.AbstractEventLoop, token: CancellationToken) -> None:
    typer.echo("Cancellation requested, stopping after the current script...", err=True)
    token.cancel("interrupted")
    loop.remove_signal_handler(signal.SIGINT)


@app.command()
def install(
    ctx: typer.Context,
    target: str | None = typer.Option(None, "--target", "-t", help="Install up to this version (inclusive)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the schedule without executing it"),
):
    """Install pending versions."""
    options: CliOptions = ctx.obj

    async def _action(manager: MigrationManager) -> list[str]:
        if dry_run:
            return await manager.plan_install(target)
        return await manager.install(target)

    versions = _run_with_manager(options, _action)
    _print_schedule("install", versions, dry_run)


@app.command()
def rollback(
    ctx: typer.Context,
    target: str | None = typer.Option(
        None, "--target", "-t", help="Roll back down to this version (it stays installed)"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the schedule without executing it"),
):
    """Roll back installed versions."""
    options: CliOptions = ctx.obj

    async def _action(manager: MigrationManager) -> list[str]:
        if dry_run:
            return await manager.plan_rollback(target)
        return await manager.rollback(target)

    versions = _run_with_manager(options, _action)
    _print_schedule("rollback", versions, dry_run)


def _print_schedule(action: str, versions: list[str], dry_run: bool) -> None:
    if not versions:
        typer.echo(f"No versions to {action}")
        return
    if dry_run:
        typer.echo(f"[DRY RUN] Would {action} {len(versions)} version(s):")
    else:
        done = "Installed" if action == "install" else "Rolled back"
        typer.echo(f"{done} {len(versions)} version(s):")
    for version in versions:
        typer.echo(f"  {version}")


@app.command()
def status(ctx: typer.Context):
    """Show every known version and whether it is installed."""
    statuses = _run_with_manager(ctx.obj, lambda manager: manager.status())
    if not statuses:
        typer.echo("No versions found")
        return

    table = Table(title="Migrations", show_header=True)
    table.add_column("Version", style="cyan")
    table.add_column("Status", style="green")
    table.add_column("Applied at", style="dim")
    table.add_column("In sources", style="dim")
    for item in statuses:
        state = "installed" if item.installed else "pending"
        applied = item.applied_at.strftime("%Y-%m-%d %H:%M:%S UTC") if item.applied_at else ""
        table.add_row(item.version, state, applied, "yes" if item.in_sources else "no")
    console.print(table)


@app.command()
def current(ctx: typer.Context):
    """Print the current (highest installed) version."""
    version = _run_with_manager(ctx.obj, lambda manager: manager.get_current_version())
    typer.echo(version if version is not None else "(none)")


@app.command()
def log(ctx: typer.Context, version: str = typer.Argument(..., help="Installed version")):
    """Print the execution log captured when a version was installed."""
    entry = _run_with_manager(ctx.obj, lambda manager: manager.get_version_log(version))
    if entry is None:
        typer.echo(f"Version '{version}' is not installed", err=True)
        raise typer.Exit(1)
    typer.echo(entry.log_text)


def main():
    """Main CLI entry point."""
    app()


if __name__ == "__main__":
    main()
