"""Scheduler - per-source interval jobs."""

from .service import ScrapeScheduler, job_id

__all__ = ["ScrapeScheduler", "job_id"]
