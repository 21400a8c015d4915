"""
Persistence gateway used by the ingestion pipeline.

The pipeline talks to storage only through PersistenceGateway. The
SQLAlchemy implementation maps ORM rows to the runtime dataclasses and
wraps every database failure in PersistenceError.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Sequence

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..core.config.models import SourceConfig, SourceKind
from ..core.errors import PersistenceError
from ..core.models import RunStatus, ScrapeRunLog, SourceEndpoint, TransactionRecord
from .db import get_async_engine, get_session_factory
from .models import ScrapeLog, Source, Transaction

logger = logging.getLogger(__name__)

# Columns the orchestrator and change detector may patch
SOURCE_STAT_FIELDS = frozenset(
    {
        "last_content_hash",
        "last_scraped_at",
        "last_scrape_status",
        "last_error_message",
        "consecutive_failures",
        "total_scrape_count",
        "total_new_records",
    }
)


@dataclass
class SourceFilter:
    """Selects sources to load. An explicit id ignores ``enabled_only``."""

    source_id: int | None = None
    enabled_only: bool = True


class PersistenceGateway(ABC):
    """Storage contract consumed by the pipeline."""

    @abstractmethod
    async def get_source_endpoints(self, filter: SourceFilter | None = None) -> list[SourceEndpoint]:
        """Load sources matching a filter."""

    @abstractmethod
    async def update_source_stats(self, source_id: int, patch: dict[str, Any]) -> None:
        """Apply a single-row update to a source's counters or hash."""

    @abstractmethod
    async def query_existing_hashes(self, source_id: int, hashes: Sequence[str]) -> set[str]:
        """Return the subset of hashes already stored for a source."""

    @abstractmethod
    async def insert_transactions(self, records: Sequence[TransactionRecord]) -> int:
        """Insert records, skipping any that already exist.

        Returns:
            Number of rows actually inserted
        """

    @abstractmethod
    async def insert_run_log(self, log: ScrapeRunLog) -> None:
        """Append a run log."""


def _to_endpoint(row: Source) -> SourceEndpoint:
    return SourceEndpoint(
        id=row.id,
        url=row.url,
        name=row.name,
        kind=SourceKind(row.kind),
        enabled=row.enabled,
        schedule_interval_hours=row.schedule_interval_hours,
        last_content_hash=row.last_content_hash,
        last_scraped_at=row.last_scraped_at,
        consecutive_failures=row.consecutive_failures,
        owner_id=row.owner_id,
        defended=row.defended,
        min_content_length=row.min_content_length,
        last_scrape_status=row.last_scrape_status,
        last_error_message=row.last_error_message,
        total_scrape_count=row.total_scrape_count,
        total_new_records=row.total_new_records,
    )


class SqlAlchemyGateway(PersistenceGateway):
    """PersistenceGateway on async SQLAlchemy."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
    ):
        self.engine = engine
        self.session_factory = session_factory or async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            autoflush=False,
            expire_on_commit=False,
        )

    @classmethod
    def from_url(cls, url: str, echo: bool = False) -> "SqlAlchemyGateway":
        """Gateway on the cached engine for a database URL."""
        return cls(get_async_engine(url, echo=echo), get_session_factory(url, echo=echo))

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @asynccontextmanager
    async def _session(self, action: str) -> AsyncGenerator[AsyncSession, None]:
        session = self.session_factory()
        try:
            yield session
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            raise PersistenceError(f"Failed to {action}: {e}", cause=e) from e
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    # -------------------------------------------------------------------------
    # Sources
    # -------------------------------------------------------------------------

    async def get_source_endpoints(self, filter: SourceFilter | None = None) -> list[SourceEndpoint]:
        filter = filter or SourceFilter()
        stmt = select(Source)
        if filter.source_id is not None:
            stmt = stmt.where(Source.id == filter.source_id)
        elif filter.enabled_only:
            stmt = stmt.where(Source.enabled == True)  # noqa: E712
        stmt = stmt.order_by(Source.id)

        async with self._session("load sources") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [_to_endpoint(row) for row in rows]

    async def update_source_stats(self, source_id: int, patch: dict[str, Any]) -> None:
        unknown = set(patch) - SOURCE_STAT_FIELDS
        if unknown:
            raise PersistenceError(f"Cannot patch source fields: {sorted(unknown)}")
        if not patch:
            return

        stmt = update(Source).where(Source.id == source_id).values(**patch)
        async with self._session("update source stats") as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                raise PersistenceError(f"Source {source_id} not found")

    async def upsert_source(self, config: SourceConfig) -> SourceEndpoint:
        """Create or update a source from operator config, keyed by name.

        Counters and the content hash are left untouched on update.
        """
        values = {
            "url": str(config.url),
            "kind": config.kind.value,
            "enabled": config.enabled,
            "schedule_interval_hours": config.schedule_interval_hours,
            "defended": config.defended,
            "min_content_length": config.min_content_length,
            "owner_id": config.owner_id,
        }

        async with self._session("upsert source") as session:
            stmt = select(Source).where(Source.name == config.name)
            row = (await session.execute(stmt)).scalar_one_or_none()
            if row is None:
                row = Source(name=config.name, **values)
                session.add(row)
                logger.info("Created source %s", config.name)
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            await session.flush()
            await session.refresh(row)
            return _to_endpoint(row)

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def query_existing_hashes(self, source_id: int, hashes: Sequence[str]) -> set[str]:
        if not hashes:
            return set()
        stmt = select(Transaction.data_hash).where(
            Transaction.source_id == source_id,
            Transaction.data_hash.in_(list(hashes)),
        )
        async with self._session("query existing hashes") as session:
            return set((await session.execute(stmt)).scalars().all())

    async def insert_transactions(self, records: Sequence[TransactionRecord]) -> int:
        if not records:
            return 0

        rows = [record.to_row() for record in records]
        if self.dialect in ("sqlite", "postgresql"):
            return await self._insert_on_conflict(rows)
        return await self._insert_each(rows)

    async def _insert_on_conflict(self, rows: list[dict[str, Any]]) -> int:
        insert = sqlite_insert if self.dialect == "sqlite" else pg_insert
        inserted = 0
        async with self._session("insert transactions") as session:
            for row in rows:
                stmt = insert(Transaction).values(**row).on_conflict_do_nothing(
                    index_elements=["source_id", "data_hash"]
                )
                result = await session.execute(stmt)
                inserted += result.rowcount or 0
        return inserted

    async def _insert_each(self, rows: list[dict[str, Any]]) -> int:
        inserted = 0
        async with self._session("insert transactions") as session:
            for row in rows:
                try:
                    async with session.begin_nested():
                        session.add(Transaction(**row))
                except IntegrityError:
                    # Already stored
                    continue
                inserted += 1
        return inserted

    # -------------------------------------------------------------------------
    # Run logs
    # -------------------------------------------------------------------------

    async def insert_run_log(self, log: ScrapeRunLog) -> None:
        row = ScrapeLog(
            source_id=log.source_id,
            status=log.status.value,
            records_seen=log.records_seen,
            new_records=log.new_records,
            duplicate_records=log.duplicate_records,
            duration_ms=log.duration_ms,
            message=log.message,
            error_detail=log.error_detail,
            started_at=log.started_at,
        )
        async with self._session("insert run log") as session:
            session.add(row)

    async def recent_run_logs(self, source_id: int, limit: int = 10) -> list[ScrapeRunLog]:
        """Latest run logs for a source, newest first."""
        stmt = (
            select(ScrapeLog)
            .where(ScrapeLog.source_id == source_id)
            .order_by(ScrapeLog.started_at.desc(), ScrapeLog.id.desc())
            .limit(limit)
        )
        async with self._session("load run logs") as session:
            rows = (await session.execute(stmt)).scalars().all()
            return [
                ScrapeRunLog(
                    source_id=row.source_id,
                    status=RunStatus(row.status),
                    records_seen=row.records_seen,
                    new_records=row.new_records,
                    duplicate_records=row.duplicate_records,
                    duration_ms=row.duration_ms,
                    error_detail=row.error_detail,
                    message=row.message,
                    started_at=row.started_at,
                )
                for row in rows
            ]
