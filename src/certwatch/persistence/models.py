"""
SQLAlchemy ORM models for certwatch.

Defines the database schema:
- Sources: Monitored endpoints and their scrape counters
- Transactions: Deduplicated certificate transaction records
- ScrapeLogs: One outcome row per cycle per source
- Notifications: Events emitted by the pipeline
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from ..core.models import utcnow


# =============================================================================
# Base Class
# =============================================================================


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    type_annotation_map = {
        dict[str, Any]: JSON,
        list[str]: JSON,
    }


# =============================================================================
# Mixins
# =============================================================================


class TimestampMixin:
    """Mixin providing created_at and updated_at columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime | None] = mapped_column(
        DateTime,
        default=None,
        onupdate=utcnow,
        nullable=True,
    )


# =============================================================================
# Source Model
# =============================================================================


class Source(Base, TimestampMixin):
    """A monitored announcement page or listing."""

    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="single")
    owner_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)

    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    schedule_interval_hours: Mapped[int] = mapped_column(Integer, default=24, nullable=False)
    defended: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    min_content_length: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Change detection
    last_content_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Status
    last_scraped_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_scrape_status: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    consecutive_failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Statistics
    total_scrape_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_new_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="source",
        cascade="all, delete-orphan",
    )
    scrape_logs: Mapped[list["ScrapeLog"]] = relationship(
        "ScrapeLog",
        back_populates="source",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Source(id={self.id}, name='{self.name}')>"


# =============================================================================
# Transaction Model
# =============================================================================


class Transaction(Base):
    """A stored certificate transaction. Insert-only."""

    __tablename__ = "transactions"
    __table_args__ = (
        UniqueConstraint("source_id", "data_hash", name="uq_transaction_source_hash"),
        Index("ix_transactions_award_date", "award_date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    owner_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    data_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    project_name: Mapped[str] = mapped_column(String(1000), nullable=False)
    bidding_unit: Mapped[str | None] = mapped_column(String(500), nullable=True)
    bidder_unit: Mapped[str | None] = mapped_column(String(500), nullable=True)
    winning_unit: Mapped[str | None] = mapped_column(String(500), nullable=True)
    total_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    quantity: Mapped[float | None] = mapped_column(Float, nullable=True)
    unit_price: Mapped[float | None] = mapped_column(Float, nullable=True)
    detail_link: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    is_channel: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    cert_years: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    bid_start_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    bid_end_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    award_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    procurement_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    first_seen_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    last_updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    source: Mapped["Source"] = relationship("Source", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<Transaction(id={self.id}, project='{self.project_name[:30]}')>"


# =============================================================================
# ScrapeLog Model
# =============================================================================


class ScrapeLog(Base):
    """Outcome of one cycle for one source. Append-only."""

    __tablename__ = "scrape_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sources.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    records_seen: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    new_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duplicate_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    duration_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    error_detail: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    source: Mapped["Source"] = relationship("Source", back_populates="scrape_logs")

    def __repr__(self) -> str:
        return f"<ScrapeLog(id={self.id}, source={self.source_id}, status='{self.status}')>"


# =============================================================================
# Notification Model
# =============================================================================


class Notification(Base, TimestampMixin):
    """Stored notification event for an owner."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
    kind: Mapped[str] = mapped_column(String(30), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    link: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    metadata_json: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, kind='{self.kind}')>"
