"""
Source management commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from certwatch.core.config import ConfigError, load_source_configs
from certwatch.core.errors import PersistenceError

from ..common import CONFIG_OPTION, console, err_console, load_config, report_config_error

app = typer.Typer(
    help="Manage monitored sources",
    no_args_is_help=True,
)


@app.command("sync")
def sync_sources(
    sources_file: Optional[Path] = typer.Option(
        None,
        "--file",
        "-f",
        help="Sources YAML (default: sources_file from app.yaml)",
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Create or update sources from the sources YAML file."""
    from certwatch.persistence.db import dispose_engines, init_db
    from certwatch.persistence.gateway import SqlAlchemyGateway

    config = load_config(config_path)
    path = sources_file or config.sources_file

    try:
        declared = load_source_configs(path)
    except ConfigError as e:
        report_config_error(e)
        raise typer.Exit(1)

    async def _sync() -> list:
        try:
            await init_db(config.database.url)
            gateway = SqlAlchemyGateway.from_url(config.database.url)
            return [await gateway.upsert_source(source) for source in declared]
        finally:
            await dispose_engines()

    try:
        endpoints = asyncio.run(_sync())
    except PersistenceError as e:
        err_console.print(f"[red]Database error:[/red] {e}")
        raise typer.Exit(1)

    for endpoint in endpoints:
        console.print(f"[green]OK[/green] {endpoint.name} (id={endpoint.id}) {endpoint.url}")
    console.print(f"Synced {len(endpoints)} sources from {path}")


@app.command("list")
def list_sources(
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """List sources and their scrape counters."""
    from certwatch.persistence.db import dispose_engines
    from certwatch.persistence.gateway import SourceFilter, SqlAlchemyGateway

    config = load_config(config_path)

    async def _load() -> list:
        try:
            gateway = SqlAlchemyGateway.from_url(config.database.url)
            return await gateway.get_source_endpoints(SourceFilter(enabled_only=False))
        finally:
            await dispose_engines()

    try:
        endpoints = asyncio.run(_load())
    except PersistenceError as e:
        err_console.print(f"[red]Database error:[/red] {e}")
        err_console.print("Initialize it with: [yellow]certwatch db init[/yellow]")
        raise typer.Exit(1)

    if not endpoints:
        console.print("[dim]No sources registered. Add them with:[/dim] certwatch sources sync")
        return

    table = Table(title="Sources", show_header=True, header_style="bold magenta")
    table.add_column("ID", justify="right")
    table.add_column("Name", style="cyan")
    table.add_column("Kind")
    table.add_column("Status", justify="center")
    table.add_column("Every", justify="right")
    table.add_column("Last Run")
    table.add_column("Last Scraped", justify="right")
    table.add_column("New Records", justify="right")
    table.add_column("Failures", justify="right")

    for source in endpoints:
        status_text = "OK" if source.enabled else "x"
        status_style = "green" if source.enabled else "red"
        last_scraped = source.last_scraped_at.strftime("%Y-%m-%d %H:%M") if source.last_scraped_at else "Never"

        table.add_row(
            str(source.id),
            source.name,
            source.kind.value,
            f"[{status_style}]{status_text}[/{status_style}]",
            f"{source.schedule_interval_hours}h",
            source.last_scrape_status or "-",
            last_scraped,
            str(source.total_new_records),
            str(source.consecutive_failures),
        )

    console.print(table)
