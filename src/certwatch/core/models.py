"""
Runtime data types passed between pipeline stages.

These are plain dataclasses; the persistence layer maps them to and
from its ORM rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .config.models import SourceKind
from .normalize.canonical import ExtractionCandidate


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RunStatus(str, Enum):
    """Outcome of one orchestration cycle for one source."""

    SUCCESS = "success"
    ERROR = "error"
    PARTIAL = "partial"


class NotificationKind(str, Enum):
    """Notification event types."""

    NEW_DATA = "new_data"
    SCRAPE_ERROR = "scrape_error"


@dataclass
class SourceEndpoint:
    """An operator-registered page the pipeline monitors."""

    id: int
    url: str
    name: str = ""
    kind: SourceKind = SourceKind.SINGLE
    enabled: bool = True
    schedule_interval_hours: int = 24
    last_content_hash: str | None = None
    last_scraped_at: datetime | None = None
    consecutive_failures: int = 0
    owner_id: str | None = None

    # Operator settings
    defended: bool = False
    min_content_length: int | None = None

    # Reporting counters
    last_scrape_status: str | None = None
    last_error_message: str | None = None
    total_scrape_count: int = 0
    total_new_records: int = 0

    @property
    def label(self) -> str:
        return self.name or self.url


@dataclass
class FetchSnapshot:
    """Raw content held for the duration of one cycle. Never persisted."""

    source_id: int
    raw_content: str
    channel_used: str
    fetched_at: datetime = field(default_factory=utcnow)


@dataclass
class TransactionRecord:
    """A deduplicated candidate ready to be stored."""

    candidate: ExtractionCandidate
    source_id: int
    owner_id: str | None
    data_hash: str
    first_seen_at: datetime = field(default_factory=utcnow)
    last_updated_at: datetime = field(default_factory=utcnow)

    def to_row(self) -> dict[str, Any]:
        """Flatten to column values."""
        return {
            **self.candidate.model_dump(),
            "source_id": self.source_id,
            "owner_id": self.owner_id,
            "data_hash": self.data_hash,
            "first_seen_at": self.first_seen_at,
            "last_updated_at": self.last_updated_at,
        }


@dataclass
class ScrapeRunLog:
    """Append-only outcome record, one per cycle per source."""

    source_id: int
    status: RunStatus
    records_seen: int = 0
    new_records: int = 0
    duplicate_records: int = 0
    duration_ms: int = 0
    error_detail: dict[str, Any] | None = None
    message: str | None = None
    started_at: datetime = field(default_factory=utcnow)


@dataclass
class NotificationEvent:
    """Event emitted to the notifier; never read back by the pipeline."""

    owner_id: str | None
    kind: NotificationKind
    title: str
    message: str
    link: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
