"""
Offline extraction of a saved page.

Useful when tuning header synonyms or checking why a page produced
nothing: runs the deterministic strategies without touching the
network or the database.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import orjson
import typer
from rich.table import Table

from certwatch.core.extract.pipeline import ExtractionPipeline
from certwatch.core.normalize.content import normalize

from ..common import CONFIG_OPTION, console, err_console, load_config


def extract_command(
    file: Path = typer.Argument(..., help="Saved HTML or markdown page", exists=True, dir_okay=False),
    url: Optional[str] = typer.Option(
        None,
        "--url",
        "-u",
        help="Page URL, used to resolve links and as the default detail link",
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print candidates as JSON",
    ),
    config_path: Optional[Path] = CONFIG_OPTION,
) -> None:
    """Run the deterministic extractors on a saved page."""
    config = load_config(config_path, configure_logging=False)
    pipeline = ExtractionPipeline(config=config.extraction)

    text = normalize(file.read_text(encoding="utf-8", errors="replace"))

    if not pipeline.is_relevant(text):
        console.print("[yellow]Page does not mention green certificates[/yellow]")
        return

    result = pipeline.run_deterministic(text, url)
    if not result.ok:
        err_console.print("[red]No candidates extracted[/red]")
        for message in result.errors + result.warnings:
            err_console.print(f"  [dim]{message}[/dim]")
        raise typer.Exit(1)

    if as_json:
        data = [candidate.model_dump() for candidate in result.candidates]
        console.print_json(orjson.dumps(data).decode("utf-8"))
        return

    table = Table(
        title=f"{len(result.candidates)} candidates ({result.extraction_method})",
        show_header=True,
        header_style="bold magenta",
    )
    table.add_column("Project", style="cyan", max_width=40)
    table.add_column("Bidding Unit", max_width=24)
    table.add_column("Winner", max_width=24)
    table.add_column("Quantity", justify="right")
    table.add_column("Unit Price", justify="right")
    table.add_column("Total", justify="right")
    table.add_column("Years")
    table.add_column("Channel", justify="center")

    for c in result.candidates:
        table.add_row(
            c.project_name,
            c.bidding_unit or "-",
            c.winning_unit or "-",
            f"{c.quantity:g}" if c.quantity is not None else "-",
            f"{c.unit_price:g}" if c.unit_price is not None else "-",
            f"{c.total_price:g}" if c.total_price is not None else "-",
            ",".join(c.cert_years or []) or "-",
            {True: "Y", False: "N", None: "-"}[c.is_channel],
        )

    console.print(table)
    for warning in result.warnings:
        console.print(f"[dim]{warning}[/dim]")
