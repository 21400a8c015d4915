"""
Store commands: schema creation and run history.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from certwatch.core.errors import PersistenceError

from ..common import CONFIG_OPTION, console, err_console, load_config

app = typer.Typer(
    help="Database operations",
    no_args_is_help=True,
)

STATUS_STYLES = {"success": "green", "partial": "yellow", "error": "red"}


@app.command("init")
def init_database(
    drop_existing: bool = typer.Option(False, "--drop", help="Drop every table before creating the schema"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask before --drop"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Create the sources, transactions, run log and notification tables."""
    from certwatch.persistence.db import dispose_engines, init_db

    config = load_config(config_path)
    if drop_existing and not yes:
        typer.confirm("Dropping tables deletes every stored transaction. Continue?", abort=True)

    async def _create() -> None:
        try:
            await init_db(config.database.url, echo=config.database.echo, drop=drop_existing)
        finally:
            await dispose_engines()

    asyncio.run(_create())
    verb = "Recreated" if drop_existing else "Initialized"
    console.print(f"[green]OK[/green] {verb} {config.database.url}")


@app.command("runs")
def show_runs(
    source_id: int = typer.Argument(..., help="Source id (see: certwatch sources list)"),
    limit: int = typer.Option(10, "--limit", "-n", min=1, help="Number of runs to show"),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Show the latest run log entries of one source."""
    from certwatch.persistence.db import dispose_engines
    from certwatch.persistence.gateway import SqlAlchemyGateway

    config = load_config(config_path)

    async def _load() -> list:
        try:
            return await SqlAlchemyGateway.from_url(config.database.url).recent_run_logs(source_id, limit)
        finally:
            await dispose_engines()

    try:
        logs = asyncio.run(_load())
    except PersistenceError as e:
        err_console.print(f"[red]Database error:[/red] {e}")
        raise typer.Exit(1)

    if not logs:
        console.print(f"[dim]No runs recorded for source {source_id}[/dim]")
        return

    table = Table(title=f"Runs of source {source_id}", header_style="bold magenta")
    table.add_column("Started")
    table.add_column("Status", justify="center")
    table.add_column("Seen", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Dup", justify="right")
    table.add_column("ms", justify="right")
    table.add_column("Message")

    for log in logs:
        style = STATUS_STYLES.get(log.status.value, "default")
        table.add_row(
            log.started_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{log.status.value}[/{style}]",
            str(log.records_seen),
            str(log.new_records),
            str(log.duplicate_records),
            str(log.duration_ms),
            log.message or "",
        )
    console.print(table)
