"""Orchestrator - per-source state machine and cycle fan-out."""

from .runner import PipelineState, RunStats, ScrapeOrchestrator, run_scrape_cycle

__all__ = [
    "PipelineState",
    "RunStats",
    "ScrapeOrchestrator",
    "run_scrape_cycle",
]
