"""
Scrape cycle orchestrator.

Coordinates the full workflow for each source:
fetch → change check → (discover) → extract → dedupe → persist → log → notify.

Sources run concurrently as independent tasks. Within a source every
step runs in order and the cycle always ends in exactly one run log.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable

from ..config.models import AppConfig, ExtractionMode, SourceKind
from ..dedupe import Deduplicator
from ..discover.links import LinkDiscoverer
from ..errors import CertwatchError, ExtractionError, FetchError
from ..extract.llm import LLMExtractor
from ..extract.pipeline import ExtractionPipeline
from ..fetch.fetcher import Fetcher
from ..fetch.throttling import RateLimitConfig, RateLimiter
from ..logging import ContextualLogger, get_contextual_logger
from ..models import FetchSnapshot, RunStatus, ScrapeRunLog, SourceEndpoint, utcnow
from ..normalize.canonical import ExtractionCandidate
from ..normalize.content import normalize
from ..normalize.fingerprint import ChangeDetector
from ..notifications import LoggingNotifier, Notifier, new_data_event, scrape_error_event
from ...persistence.gateway import PersistenceGateway, SourceFilter

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Steps of one source's cycle."""

    FETCHING = "fetching"
    EXTRACTING = "extracting"
    DEDUPLICATING = "deduplicating"
    PERSISTING = "persisting"
    LOGGING = "logging"
    NOTIFYING = "notifying"
    DONE = "done"
    ERRORED = "errored"


@dataclass
class RunStats:
    """Statistics for one source's cycle."""

    records_seen: int = 0
    new_records: int = 0
    duplicate_records: int = 0

    # Listing sources
    links_found: int = 0
    links_failed: int = 0
    links_skipped: int = 0

    unchanged: bool = False

    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        """Get run duration in seconds."""
        if self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "records_seen": self.records_seen,
            "new_records": self.new_records,
            "duplicate_records": self.duplicate_records,
            "links_found": self.links_found,
            "links_failed": self.links_failed,
            "links_skipped": self.links_skipped,
            "unchanged": self.unchanged,
            "duration_seconds": self.duration_seconds,
        }


class ScrapeOrchestrator:
    """Runs scrape cycles over the configured sources.

    Coordinates:
    - Source selection
    - Fetching with channel fallback and per-domain pacing
    - Change detection on the normalized page
    - Detail-link discovery for listing sources
    - Extraction, deduplication and persistence
    - Run logs, source counters and notifications
    """

    def __init__(
        self,
        config: AppConfig,
        gateway: PersistenceGateway,
        *,
        fetcher: Fetcher | None = None,
        extractor: ExtractionPipeline | None = None,
        notifier: Notifier | None = None,
        discoverer: LinkDiscoverer | None = None,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            config: Application configuration
            gateway: Storage used for sources, records and run logs
            fetcher: Page fetcher (built from config if None)
            extractor: Extraction pipeline (built from config if None)
            notifier: Event sink (logs events if None)
            discoverer: Link discoverer for listing sources
            rate_limiter: Per-domain pacing between listing requests
            sleep: Sleep coroutine for backoff and pacing
        """
        self.config = config
        self.gateway = gateway

        self._owns_fetcher = fetcher is None
        self.fetcher = fetcher or Fetcher(config.fetch, sleep=sleep)

        self._owns_extractor = extractor is None
        if extractor is None:
            llm = None
            if config.llm.enabled or config.extraction.mode == ExtractionMode.LLM:
                llm = LLMExtractor(config.llm)
            extractor = ExtractionPipeline(llm=llm, config=config.extraction)
        self.extractor = extractor

        self.notifier = notifier or LoggingNotifier()
        self.discoverer = discoverer or LinkDiscoverer(config.discovery)
        self.rate_limiter = rate_limiter or RateLimiter(
            RateLimitConfig(
                min_delay_ms=config.politeness.min_delay_ms,
                max_delay_ms=config.politeness.max_delay_ms,
            ),
            sleep=sleep,
        )
        self.change_detector = ChangeDetector(gateway)
        self.deduplicator = Deduplicator(gateway)

    # -------------------------------------------------------------------------
    # Cycle
    # -------------------------------------------------------------------------

    async def run_cycle(self, source_id: int | None = None) -> list[ScrapeRunLog]:
        """Run one cycle over enabled sources, or over one requested source.

        A requested source runs even when disabled.

        Args:
            source_id: Restrict the cycle to this source

        Returns:
            Run logs in completion order

        Raises:
            CertwatchError: The requested source does not exist
        """
        sources = await self.gateway.get_source_endpoints(
            SourceFilter(source_id=source_id, enabled_only=source_id is None)
        )
        if source_id is not None and not sources:
            raise CertwatchError(f"Source {source_id} not found", context={"source_id": source_id})

        logger.info("Starting scrape cycle over %d sources", len(sources))

        tasks = [asyncio.create_task(self.run_source(source)) for source in sources]
        logs: list[ScrapeRunLog] = []
        for future in asyncio.as_completed(tasks):
            try:
                logs.append(await future)
            except Exception:
                # Only reachable when the run log itself could not be written
                logger.exception("Scrape cycle could not be recorded")

        logger.info("Scrape cycle finished: %d of %d sources recorded", len(logs), len(sources))
        return logs

    async def run_source(self, source: SourceEndpoint) -> ScrapeRunLog:
        """Run the full pipeline for one source.

        Returns:
            The run log that was written

        Raises:
            PersistenceError: The run log or source counters could not be written
        """
        run_id = uuid.uuid4().hex[:8]
        log = get_contextual_logger("orchestrator", source=source.label, run_id=run_id)
        stats = RunStats()
        started = time.monotonic()

        status = RunStatus.SUCCESS
        error: CertwatchError | None = None
        message: str | None = None
        state = PipelineState.FETCHING

        try:
            log.with_context(state=state.value).info("Fetching %s", source.url)
            result = await self.fetcher.fetch(
                source.url,
                defended=source.defended,
                min_length=source.min_content_length,
            )
            snapshot = FetchSnapshot(
                source_id=source.id,
                raw_content=result.content,
                channel_used=result.channel or "",
                fetched_at=result.fetched_at,
            )
            text = normalize(snapshot.raw_content)

            change = self.change_detector.has_changed(source, text)
            if not change.changed:
                stats.unchanged = True
                message = "Content unchanged"
                log.info("Content unchanged since last scrape")
            else:
                state = PipelineState.EXTRACTING
                if source.kind == SourceKind.LISTING:
                    candidates = await self._extract_listing(source, text, stats, log)
                else:
                    candidates = await self.extractor.extract(
                        text, source.id, source.owner_id, source.url
                    )
                stats.records_seen = len(candidates)

                state = PipelineState.DEDUPLICATING
                dedup = await self.deduplicator.dedupe(candidates, source.id, source.owner_id)

                state = PipelineState.PERSISTING
                inserted = await self.gateway.insert_transactions(dedup.new_records)
                stats.new_records = inserted
                # Rows that lost an insert race count as duplicates
                stats.duplicate_records = dedup.duplicate_count + len(dedup.new_records) - inserted

                if stats.links_failed:
                    status = RunStatus.PARTIAL
                    message = f"{stats.links_failed} of {stats.links_found} detail links failed"
                else:
                    await self.change_detector.commit(source, change.new_hash)

        except CertwatchError as e:
            status = RunStatus.ERROR
            error = e
            log.with_context(state=state.value).error("Scrape failed while %s: %s", state.value, e)
        except Exception as e:
            status = RunStatus.ERROR
            error = CertwatchError(f"Unexpected error: {e}", context={"type": type(e).__name__})
            log.with_context(state=state.value).exception("Unexpected error while %s", state.value)

        stats.finished_at = utcnow()
        duration_ms = int((time.monotonic() - started) * 1000)

        run_log = ScrapeRunLog(
            source_id=source.id,
            status=status,
            records_seen=stats.records_seen,
            new_records=stats.new_records,
            duplicate_records=stats.duplicate_records,
            duration_ms=duration_ms,
            error_detail=error.to_detail() if error else None,
            message=error.message if error else message,
            started_at=stats.started_at,
        )

        state = PipelineState.LOGGING
        await self.gateway.insert_run_log(run_log)
        await self._update_counters(source, run_log)

        state = PipelineState.NOTIFYING
        if error is not None:
            await self._notify(scrape_error_event(source, error.message), log)
        elif stats.new_records > 0:
            await self._notify(new_data_event(source, stats.new_records, duration_ms), log)

        log.with_context(state=PipelineState.DONE.value).info(
            "Finished with %s: %d seen, %d new, %d duplicate",
            status.value,
            stats.records_seen,
            stats.new_records,
            stats.duplicate_records,
        )
        return run_log

    # -------------------------------------------------------------------------
    # Listing sources
    # -------------------------------------------------------------------------

    async def _fetch_normalized(self, source: SourceEndpoint, url: str) -> str:
        await self.rate_limiter.acquire(url)
        result = await self.fetcher.fetch(
            url,
            defended=source.defended,
            min_length=source.min_content_length,
        )
        return normalize(result.content)

    async def _extract_listing(
        self,
        source: SourceEndpoint,
        text: str,
        stats: RunStats,
        log: ContextualLogger,
    ) -> list[ExtractionCandidate]:
        """Discover detail links and extract each detail page in turn.

        A listing without detail links is extracted as a page itself.
        """

        async def fetch_page(url: str) -> str:
            return await self._fetch_normalized(source, url)

        links = await self.discoverer.discover_all(text, source.url, fetch_page)
        stats.links_found = len(links)
        log.info("Discovered %d detail links", len(links))

        if not links:
            return await self.extractor.extract(text, source.id, source.owner_id, source.url)

        candidates: list[ExtractionCandidate] = []
        last_error: CertwatchError | None = None
        for link in links:
            try:
                page = await self._fetch_normalized(source, link)
                result = await self.extractor.extract_result(page, link)
            except (FetchError, ExtractionError) as e:
                stats.links_failed += 1
                stats.errors.append(f"{link}: {e}")
                last_error = e
                log.warning("Detail link failed: %s", e, extra={"url": link})
                continue

            if result.irrelevant:
                stats.links_skipped += 1
                continue
            candidates.extend(result.candidates)

        if stats.links_failed == len(links):
            raise CertwatchError(
                f"All {len(links)} detail links failed",
                context={"links": len(links), "last_error": last_error.to_detail() if last_error else None},
            )
        return candidates

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    async def _update_counters(self, source: SourceEndpoint, run_log: ScrapeRunLog) -> None:
        failed = run_log.status == RunStatus.ERROR
        patch = {
            "last_scraped_at": utcnow(),
            "last_scrape_status": run_log.status.value,
            "last_error_message": run_log.message if run_log.status != RunStatus.SUCCESS else None,
            "consecutive_failures": source.consecutive_failures + 1 if failed else 0,
            "total_scrape_count": source.total_scrape_count + 1,
            "total_new_records": source.total_new_records + run_log.new_records,
        }
        await self.gateway.update_source_stats(source.id, patch)
        for key, value in patch.items():
            setattr(source, key, value)

    async def _notify(self, event: Any, log: ContextualLogger) -> None:
        try:
            await self.notifier.notify(event)
        except Exception:
            log.exception("Notifier failed for %s event", event.kind.value)

    async def close(self) -> None:
        if self._owns_fetcher:
            await self.fetcher.close()
        if self._owns_extractor:
            await self.extractor.close()

    async def __aenter__(self) -> "ScrapeOrchestrator":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


async def run_scrape_cycle(config: AppConfig, source_id: int | None = None) -> list[ScrapeRunLog]:
    """Convenience function to run one cycle against the configured database.

    Args:
        config: Application configuration
        source_id: Restrict the cycle to one source

    Returns:
        Run logs in completion order
    """
    from ...persistence.db import get_session_factory
    from ...persistence.gateway import SqlAlchemyGateway
    from ..notifications import DatabaseNotifier

    gateway = SqlAlchemyGateway.from_url(config.database.url, echo=config.database.echo)
    notifier = DatabaseNotifier(get_session_factory(config.database.url))

    async with ScrapeOrchestrator(config, gateway, notifier=notifier) as orchestrator:
        return await orchestrator.run_cycle(source_id)
