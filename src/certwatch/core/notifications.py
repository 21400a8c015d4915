"""
Notification events for scrape outcomes.

The orchestrator emits one event per cycle when new records were
stored or the cycle failed. Delivery is pluggable; failures inside a
notifier are the orchestrator's to log, never the pipeline's to act on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from .models import NotificationEvent, NotificationKind, SourceEndpoint

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


def new_data_event(source: SourceEndpoint, new_records: int, duration_ms: int) -> NotificationEvent:
    """Event for a cycle that stored new records."""
    return NotificationEvent(
        owner_id=source.owner_id,
        kind=NotificationKind.NEW_DATA,
        title=f"抓取成功：发现 {new_records} 条新数据",
        message=f"从 {source.url} 抓取到 {new_records} 条新数据",
        link=source.url,
        metadata={
            "urlId": source.id,
            "url": source.url,
            "newRecordsCount": new_records,
            "scrapeDuration": duration_ms,
        },
    )


def scrape_error_event(source: SourceEndpoint, error: str) -> NotificationEvent:
    """Event for a failed cycle."""
    return NotificationEvent(
        owner_id=source.owner_id,
        kind=NotificationKind.SCRAPE_ERROR,
        title="抓取失败",
        message=f"从 {source.url} 抓取数据失败: {error}",
        link=source.url,
        metadata={
            "urlId": source.id,
            "url": source.url,
            "error": error,
        },
    )


class Notifier(ABC):
    """Delivers notification events."""

    @abstractmethod
    async def notify(self, event: NotificationEvent) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes events to the log."""

    async def notify(self, event: NotificationEvent) -> None:
        level = logging.WARNING if event.kind == NotificationKind.SCRAPE_ERROR else logging.INFO
        logger.log(level, "%s | %s", event.title, event.message, extra={"url": event.link})


class DatabaseNotifier(Notifier):
    """Stores events in the notifications table."""

    def __init__(self, session_factory: "async_sessionmaker[AsyncSession]"):
        self.session_factory = session_factory

    async def notify(self, event: NotificationEvent) -> None:
        from ..persistence.models import Notification

        async with self.session_factory() as session:
            session.add(
                Notification(
                    owner_id=event.owner_id,
                    kind=event.kind.value,
                    title=event.title,
                    message=event.message,
                    link=event.link,
                    metadata_json=event.metadata,
                )
            )
            await session.commit()
