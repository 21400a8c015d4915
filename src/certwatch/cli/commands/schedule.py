"""
Scheduler commands.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Optional

import typer

from ..common import CONFIG_OPTION, console, load_config

app = typer.Typer(
    help="Run the scrape scheduler",
    no_args_is_help=True,
)


@app.command("start")
def start_scheduler(
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Start the scheduler in the foreground (Ctrl+C to stop)."""
    from certwatch.core.notifications import DatabaseNotifier
    from certwatch.core.orchestrator.runner import ScrapeOrchestrator
    from certwatch.core.scheduler.service import ScrapeScheduler
    from certwatch.persistence.db import dispose_engines, get_session_factory
    from certwatch.persistence.gateway import SqlAlchemyGateway

    config = load_config(config_path)
    if not config.scheduler.enabled:
        console.print("[yellow]Scheduler disabled in configuration[/yellow]")
        raise typer.Exit(1)

    async def _serve() -> None:
        gateway = SqlAlchemyGateway.from_url(config.database.url, echo=config.database.echo)
        notifier = DatabaseNotifier(get_session_factory(config.database.url))
        try:
            async with ScrapeOrchestrator(config, gateway, notifier=notifier) as orchestrator:
                scheduler = ScrapeScheduler(orchestrator, gateway, config.scheduler)
                await scheduler.run_forever()
        finally:
            await dispose_engines()

    console.print("[bold]Scheduler running[/bold] (Ctrl+C to stop)")
    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print("Scheduler stopped")
