"""
APScheduler integration for certwatch.

One interval job per enabled source, each running an on-demand cycle
for that source through the orchestrator.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config.models import ALLOWED_INTERVAL_HOURS, SchedulerConfig
from ..errors import CertwatchError
from ..logging import get_logger
from ..models import SourceEndpoint
from ...persistence.gateway import SourceFilter

if TYPE_CHECKING:
    from ...persistence.gateway import PersistenceGateway
    from ..orchestrator.runner import ScrapeOrchestrator

logger = get_logger("scheduler")


def job_id(source_id: int) -> str:
    return f"source:{source_id}"


class ScrapeScheduler:
    """Schedules per-source scrape cycles on an asyncio event loop.

    Usage:
        scheduler = ScrapeScheduler(orchestrator, gateway, config.scheduler)
        await scheduler.run_forever()
    """

    def __init__(
        self,
        orchestrator: "ScrapeOrchestrator",
        gateway: "PersistenceGateway",
        config: SchedulerConfig | None = None,
    ) -> None:
        self.orchestrator = orchestrator
        self.gateway = gateway
        self.config = config or SchedulerConfig()
        self._scheduler = AsyncIOScheduler(timezone=self.config.timezone)
        self._stopped: asyncio.Event | None = None

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    def interval_for(self, source: SourceEndpoint) -> int:
        """Source interval, falling back to the configured default."""
        if source.schedule_interval_hours in ALLOWED_INTERVAL_HOURS:
            return source.schedule_interval_hours
        return self.config.default_interval_hours

    async def execute(self, source_id: int) -> None:
        """Job body: run one cycle for one source."""
        try:
            logs = await self.orchestrator.run_cycle(source_id)
        except CertwatchError as e:
            logger.warning("Scheduled run for source %s skipped: %s", source_id, e)
            return
        for log in logs:
            logger.info(
                "Scheduled run for source %s: %s (%d new)",
                source_id,
                log.status.value,
                log.new_records,
            )

    async def sync_jobs(self) -> list[str]:
        """Register one interval job per enabled source.

        Jobs for sources that are no longer enabled are removed.

        Returns:
            IDs of the registered jobs
        """
        sources = await self.gateway.get_source_endpoints(SourceFilter(enabled_only=True))
        wanted = {job_id(source.id) for source in sources}

        for job in self._scheduler.get_jobs():
            if job.id not in wanted:
                self._scheduler.remove_job(job.id)

        for source in sources:
            hours = self.interval_for(source)
            self._scheduler.add_job(
                self.execute,
                IntervalTrigger(hours=hours, timezone=self.config.timezone),
                id=job_id(source.id),
                name=source.label,
                args=[source.id],
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            logger.info("Scheduled %s every %dh", source.label, hours)

        return sorted(wanted)

    async def start(self) -> None:
        """Sync jobs and start the scheduler (requires a running loop)."""
        await self.sync_jobs()
        self._scheduler.start()
        logger.info("Scheduler started with %d jobs", len(self._scheduler.get_jobs()))

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
        if self._stopped is not None:
            self._stopped.set()

    async def run_forever(self) -> None:
        """Start and block until shutdown() is called or the task is cancelled."""
        self._stopped = asyncio.Event()
        await self.start()
        try:
            await self._stopped.wait()
        finally:
            self.shutdown()
