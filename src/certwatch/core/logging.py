"""
Logging setup for certwatch.

Console output goes through Rich (or a plain stream handler), file
output is one JSON object per line. Pipeline code logs through a
ContextualLogger so every line carries the source, run id and the
pipeline state it was emitted from.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

import orjson

if TYPE_CHECKING:
    from rich.console import Console

    from .config.models import LoggingConfig

ROOT_LOGGER = "certwatch"

# Record attributes copied into JSON lines and console prefixes
CONTEXT_KEYS = ("source", "run_id", "state", "url", "channel")

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "apscheduler", "aiosqlite")

LEVEL_STYLES = {
    logging.DEBUG: "dim",
    logging.INFO: "default",
    logging.WARNING: "yellow",
    logging.ERROR: "red",
    logging.CRITICAL: "bold red",
}

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def record_context(record: logging.LogRecord) -> dict[str, Any]:
    """Context attributes present on a record."""
    return {key: getattr(record, key) for key in CONTEXT_KEYS if getattr(record, key, None) is not None}


class JSONFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **record_context(record),
        }
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        return orjson.dumps(data, default=str).decode("utf-8")


class RichConsoleHandler(logging.Handler):
    """Console handler with level colours and a [source] state prefix."""

    def __init__(self, console: "Console | None" = None, level: int = logging.NOTSET):
        super().__init__(level)
        if console is None:
            from rich.console import Console

            console = Console(stderr=True)
        self.console = console

    def emit(self, record: logging.LogRecord) -> None:
        try:
            context = record_context(record)
            prefix = ""
            if "source" in context:
                prefix += f"[cyan][{context['source']}][/cyan] "
            if "state" in context:
                prefix += f"[magenta]{context['state']}[/magenta] "

            style = LEVEL_STYLES.get(record.levelno, "default")
            self.console.print(f"{prefix}[{style}]{self.format(record)}[/{style}]", highlight=False)
            if record.exc_info:
                self.console.print_exception()
        except Exception:
            self.handleError(record)


def setup_logging(
    level: str = "INFO",
    log_file: Path | str | None = None,
    json_format: bool = True,
    rich_console: bool = True,
) -> logging.Logger:
    """Configure the ``certwatch`` logger tree.

    Args:
        level: Console log level name
        log_file: File receiving every record at DEBUG and above
        json_format: Write the file as JSON lines instead of plain text
        rich_console: Use Rich for console output

    Returns:
        The package root logger
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger(ROOT_LOGGER)
    root.setLevel(logging.DEBUG if log_file else numeric_level)
    root.handlers.clear()

    console_handler: logging.Handler
    if rich_console:
        console_handler = RichConsoleHandler()
        console_handler.setFormatter(logging.Formatter("%(message)s"))
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    console_handler.setLevel(numeric_level)
    root.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            JSONFormatter() if json_format else logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        root.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def setup_logging_from_config(config: "LoggingConfig") -> logging.Logger:
    return setup_logging(
        level=config.level,
        log_file=config.file,
        json_format=config.json_format,
        rich_console=config.rich_console,
    )


def get_logger(name: str | None = None) -> logging.Logger:
    """Logger under the package root (``certwatch.<name>``)."""
    return logging.getLogger(f"{ROOT_LOGGER}.{name}" if name else ROOT_LOGGER)


class ContextualLogger(logging.LoggerAdapter):
    """Adapter that stamps bound context onto every record.

    Explicit ``extra`` values passed to a call win over bound ones.
    """

    def __init__(self, logger: logging.Logger, **context: Any):
        super().__init__(logger, {k: v for k, v in context.items() if v is not None})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        kwargs["extra"] = {**self.extra, **kwargs.get("extra", {})}
        return msg, kwargs

    def with_context(self, **context: Any) -> "ContextualLogger":
        """Copy of this logger with more context bound."""
        return ContextualLogger(self.logger, **{**self.extra, **context})


def get_contextual_logger(name: str | None = None, **context: Any) -> ContextualLogger:
    """Contextual logger, e.g. ``get_contextual_logger("orchestrator", source="csg-zbgg")``."""
    return ContextualLogger(get_logger(name), **context)
