"""Main CLI entry point for workflow-store."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import __version__
from .config import DatabaseSettings, load_settings
from .db import Database
from .errors import StoreError
from .migrations import MigrationRunner

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _settings(ctx: click.Context) -> DatabaseSettings:
    overrides: dict[str, Any] = ctx.obj or {}
    try:
        return load_settings(**overrides)
    except StoreError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise SystemExit(2) from exc


def _run(coro: Any) -> Any:
    try:
        return asyncio.run(coro)
    except StoreError as exc:
        console.print(f"[red]{exc}[/red]")
        raise SystemExit(1) from exc


@click.group()
@click.version_option(version=__version__)
@click.option("--type", "db_type", default=None, help="Database type: sqlite or postgres")
@click.option("--path", "db_path", default=None, help="SQLite file or Postgres URL")
@click.option(
    "--migrations-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding sqlite/ and postgres/ migrations",
)
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    db_type: str | None,
    db_path: str | None,
    migrations_path: Path | None,
    verbose: bool,
) -> None:
    """Workflow store administration.

    Settings come from WORKFLOW_DB_* environment variables (or .env);
    options given here take precedence.
    """
    _configure_logging(verbose)
    overrides: dict[str, Any] = {}
    if db_type is not None:
        overrides["type"] = db_type
    if db_path is not None:
        overrides["path"] = db_path
    if migrations_path is not None:
        overrides["migrations_path"] = migrations_path
    ctx.obj = overrides


# =============================================================================
# Migrations
# =============================================================================


@main.group()
def migrate() -> None:
    """Apply, roll back and inspect schema migrations."""


@migrate.command()
@click.pass_context
def up(ctx: click.Context) -> None:
    """Apply all pending migrations."""
    settings = _settings(ctx)

    async def apply() -> list[int]:
        async with Database(settings) as database:
            return await MigrationRunner(database).migrate_up()

    applied = _run(apply())
    if applied:
        console.print(f"[green]Applied migrations: {', '.join(map(str, applied))}[/green]")
    else:
        console.print("[yellow]No change: schema is up to date[/yellow]")


@migrate.command()
@click.pass_context
def down(ctx: click.Context) -> None:
    """Roll back the most recent migration."""
    settings = _settings(ctx)

    async def rollback() -> int | None:
        async with Database(settings) as database:
            return await MigrationRunner(database).rollback_one()

    version = _run(rollback())
    if version is None:
        console.print("[yellow]No change: nothing to roll back[/yellow]")
    else:
        console.print(f"[green]Rolled back migration {version}[/green]")


@migrate.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show which migrations are applied."""
    settings = _settings(ctx)

    async def show_status() -> None:
        async with Database(settings) as database:
            runner = MigrationRunner(database)
            rows = await runner.status()

        table = Table(title=f"Migrations ({settings.type})")
        table.add_column("Version", style="cyan")
        table.add_column("Name")
        table.add_column("Applied")
        table.add_column("Applied at")
        for row in rows:
            table.add_row(
                f"{row.version:03d}",
                row.name,
                "[green]yes[/green]" if row.applied else "[red]no[/red]",
                row.applied_at or "-",
            )
        console.print(table)

    _run(show_status())


# =============================================================================
# Configuration
# =============================================================================


@main.command(name="validate-config")
@click.option(
    "--file",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON config file; its 'database' section is validated",
)
@click.pass_context
def validate_config(ctx: click.Context, config_file: Path | None) -> None:
    """Validate database settings from the environment or a config file."""
    try:
        if config_file is not None:
            data = json.loads(config_file.read_text(encoding="utf-8"))
            section = data.get("database", data) if isinstance(data, dict) else None
            if not isinstance(section, dict):
                raise click.ClickException(f"{config_file}: expected a JSON object")
            settings = DatabaseSettings.from_mapping({**section, **(ctx.obj or {})})
        else:
            settings = load_settings(**(ctx.obj or {}))
    except json.JSONDecodeError as exc:
        console.print(f"[red]Invalid JSON in {config_file}: {exc}[/red]")
        raise SystemExit(2) from exc
    except StoreError as exc:
        console.print(f"[red]Configuration error: {exc}[/red]")
        raise SystemExit(2) from exc

    table = Table(title="Database configuration", show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("type", settings.type)
    table.add_row("path", settings.path if settings.is_sqlite else "<connection url>")
    table.add_row("migrations_path", str(settings.migrations_path))
    table.add_row("max_open_conns", str(settings.max_open_conns))
    table.add_row("max_idle_conns", str(settings.max_idle_conns))
    table.add_row("conn_max_lifetime", str(settings.conn_max_lifetime))
    table.add_row("operation_timeout", str(settings.operation_timeout or "-"))
    console.print(table)
    console.print("[green]Configuration is valid[/green]")


if __name__ == "__main__":
    main()
