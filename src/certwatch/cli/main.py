"""
certwatch command line.

Entry point installed as the ``certwatch`` script. Sub-apps cover the
store (``db``), declared sources (``sources``) and the scheduler
(``schedule``); ``run`` and ``extract`` are top-level commands.
"""

from __future__ import annotations

from typing import Optional

import typer
from dotenv import load_dotenv
from rich.traceback import install as install_rich_traceback

from certwatch import __app_name__, __version__

from .commands import db, extract, run, schedule, sources
from .common import console

load_dotenv()
install_rich_traceback(show_locals=False, width=120)

app = typer.Typer(
    name=__app_name__,
    help="Scrape green certificate tender announcements into a local store",
    rich_markup_mode="rich",
    no_args_is_help=True,
    pretty_exceptions_show_locals=False,
)

SUB_APPS = {
    "db": db.app,
    "sources": sources.app,
    "schedule": schedule.app,
}

for _name, _sub_app in SUB_APPS.items():
    app.add_typer(_sub_app, name=_name)

app.command("run")(run.run_command)
app.command("extract")(extract.extract_command)


def _show_version(value: bool) -> None:
    if not value:
        return
    console.print(f"[bold cyan]{__app_name__}[/bold cyan] {__version__}")
    raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Print the version and exit",
        callback=_show_version,
        is_eager=True,
    ),
) -> None:
    """Green certificate tender ingestion: fetch, extract, dedupe, store."""


if __name__ == "__main__":
    app()
