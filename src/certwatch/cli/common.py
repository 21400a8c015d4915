"""
Helpers shared by CLI commands.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from certwatch.core.config import AppConfig, ConfigError, load_app_config
from certwatch.core.logging import setup_logging_from_config

console = Console()
err_console = Console(stderr=True)

CONFIG_OPTION = typer.Option(
    None,
    "--config",
    "-c",
    help="Path to app.yaml (default: configs/app.yaml)",
)


def report_config_error(error: ConfigError) -> None:
    err_console.print(f"[red]Configuration error:[/red] {error}")
    if error.details:
        err_console.print(f"[dim]{error.details}[/dim]")


def load_config(path: Optional[Path] = None, *, configure_logging: bool = True) -> AppConfig:
    """Load app.yaml, exiting with code 1 when it is invalid."""
    try:
        config = load_app_config(path)
    except ConfigError as e:
        report_config_error(e)
        raise typer.Exit(1)

    if configure_logging:
        setup_logging_from_config(config.logging)
    return config
