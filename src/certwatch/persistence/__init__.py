"""Database models, engine management and the persistence gateway."""

from .db import dispose_engines, get_async_engine, get_async_session, get_session_factory, init_db
from .gateway import PersistenceGateway, SourceFilter, SqlAlchemyGateway
from .models import Base, Notification, ScrapeLog, Source, Transaction

__all__ = [
    "Base",
    "Notification",
    "PersistenceGateway",
    "ScrapeLog",
    "Source",
    "SourceFilter",
    "SqlAlchemyGateway",
    "Transaction",
    "dispose_engines",
    "get_async_engine",
    "get_async_session",
    "get_session_factory",
    "init_db",
]
