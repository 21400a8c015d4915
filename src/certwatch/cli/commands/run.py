"""
On-demand scrape runs.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from certwatch.core.errors import CertwatchError
from certwatch.core.models import RunStatus, ScrapeRunLog

from ..common import CONFIG_OPTION, console, err_console, load_config

STATUS_STYLES = {
    RunStatus.SUCCESS: "green",
    RunStatus.PARTIAL: "yellow",
    RunStatus.ERROR: "red",
}


def render_logs(logs: list[ScrapeRunLog]) -> Table:
    table = Table(title="Scrape Results", show_header=True, header_style="bold magenta")
    table.add_column("Source", justify="right", style="cyan")
    table.add_column("Status", justify="center")
    table.add_column("Seen", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Duplicate", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Message")

    for log in logs:
        style = STATUS_STYLES[log.status]
        table.add_row(
            str(log.source_id),
            f"[{style}]{log.status.value}[/{style}]",
            str(log.records_seen),
            str(log.new_records),
            str(log.duplicate_records),
            f"{log.duration_ms / 1000:.1f}s",
            log.message or "",
        )
    return table


def run_command(
    source: Optional[int] = typer.Option(
        None,
        "--source",
        "-s",
        help="Run only this source ID (even when disabled)",
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run one scrape cycle now."""
    from certwatch.core.orchestrator.runner import run_scrape_cycle
    from certwatch.persistence.db import dispose_engines

    config = load_config(config_path)

    async def _run() -> list[ScrapeRunLog]:
        try:
            return await run_scrape_cycle(config, source_id=source)
        finally:
            await dispose_engines()

    try:
        logs = asyncio.run(_run())
    except CertwatchError as e:
        err_console.print(f"[red]Run failed:[/red] {e}")
        raise typer.Exit(1)

    if not logs:
        console.print("[dim]No enabled sources. Register them with:[/dim] certwatch sources sync")
        return

    console.print(render_logs(logs))
    total_new = sum(log.new_records for log in logs)
    failed = sum(1 for log in logs if log.status == RunStatus.ERROR)
    console.print(f"{total_new} new records, {failed} failed sources")
