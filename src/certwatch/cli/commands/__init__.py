"""CLI command modules."""

from . import db, extract, run, schedule, sources

__all__ = [
    "db",
    "extract",
    "run",
    "schedule",
    "sources",
]
