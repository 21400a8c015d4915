"""
Async engine and session management.

One engine (plus its session factory) is kept per database URL, so the
CLI, the scheduler and the test suite can each address their own store
within a single process.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from .models import Base

DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///data/certwatch.db"

# Plain driver prefixes mapped to their asyncio drivers
ASYNC_DRIVERS = {
    "sqlite:///": "sqlite+aiosqlite:///",
    "postgresql://": "postgresql+asyncpg://",
    "postgres://": "postgresql+asyncpg://",
}

SQLITE_PRAGMAS = (
    "PRAGMA foreign_keys=ON",
    "PRAGMA journal_mode=WAL",
    "PRAGMA busy_timeout=5000",
)


@dataclass
class _Store:
    engine: AsyncEngine
    sessions: async_sessionmaker[AsyncSession]


_stores: dict[str, _Store] = {}


def async_url(url: str) -> str:
    """Rewrite a plain database URL to use an asyncio driver."""
    for prefix, replacement in ASYNC_DRIVERS.items():
        if url.startswith(prefix):
            return replacement + url[len(prefix):]
    return url


def _sqlite_file(url: str) -> Path | None:
    _, _, location = url.partition(":///")
    if not location or location == ":memory:":
        return None
    return Path(location)


def _create_engine(url: str, echo: bool) -> AsyncEngine:
    if not url.startswith("sqlite"):
        return create_async_engine(url, echo=echo, pool_pre_ping=True, max_overflow=10)

    path = _sqlite_file(url)
    if path is not None:
        path.parent.mkdir(parents=True, exist_ok=True)

    engine = create_async_engine(url, echo=echo)

    @event.listens_for(engine.sync_engine, "connect")
    def _apply_pragmas(dbapi_connection, _connection_record):
        cursor = dbapi_connection.cursor()
        for pragma in SQLITE_PRAGMAS:
            cursor.execute(pragma)
        cursor.close()

    return engine


def _store(url: str, echo: bool = False) -> _Store:
    key = async_url(url)
    store = _stores.get(key)
    if store is None:
        engine = _create_engine(key, echo)
        store = _Store(
            engine=engine,
            sessions=async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False),
        )
        _stores[key] = store
    return store


def get_async_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> AsyncEngine:
    """Cached engine for ``url``; created on first use."""
    return _store(url, echo).engine


def get_session_factory(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> async_sessionmaker[AsyncSession]:
    return _store(url, echo).sessions


@asynccontextmanager
async def get_async_session(url: str = DEFAULT_DATABASE_URL) -> AsyncGenerator[AsyncSession, None]:
    """Session committed on clean exit and rolled back on error.

    Usage:
        async with get_async_session(url) as session:
            await session.execute(...)
    """
    async with get_session_factory(url)() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(url: str = DEFAULT_DATABASE_URL, echo: bool = False, drop: bool = False) -> None:
    """Create missing tables.

    Args:
        url: Database URL
        echo: Log emitted SQL
        drop: Drop every table first. Deletes all stored data.
    """
    async with get_async_engine(url, echo=echo).begin() as conn:
        if drop:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engines() -> None:
    """Close every cached engine; call once on shutdown."""
    stores = list(_stores.values())
    _stores.clear()
    for store in stores:
        await store.engine.dispose()
