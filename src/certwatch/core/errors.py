"""
Exception taxonomy for the ingestion pipeline.

FetchError and ExtractionError end a single source's cycle and are
recorded in its run log. RateLimitError is retried inside the fetcher
and never reaches the orchestrator.
"""

from __future__ import annotations

from typing import Any


class CertwatchError(Exception):
    """Base exception for pipeline errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_detail(self) -> dict[str, Any]:
        """Serialize for ScrapeRunLog.error_detail."""
        return {
            "type": type(self).__name__,
            "message": self.message,
            "context": self.context,
        }


class FetchError(CertwatchError):
    """Page could not be retrieved or the response was rejected."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        status_code: int | None = None,
        cause: Exception | None = None,
        all_channels_exhausted: bool = False,
        channels: list[str] | None = None,
    ):
        super().__init__(
            message,
            context={
                "url": url,
                "status_code": status_code,
                "all_channels_exhausted": all_channels_exhausted,
                "channels": channels or [],
            },
        )
        self.url = url
        self.status_code = status_code
        self.cause = cause
        self.all_channels_exhausted = all_channels_exhausted
        self.channels = channels or []


class BlockedError(FetchError):
    """Response looks like an anti-bot block page."""
    pass


class RateLimitError(FetchError):
    """Rate limit hit (429)."""

    def __init__(
        self,
        message: str,
        url: str | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message, url=url, status_code=429)
        self.retry_after = retry_after


class ExtractionError(CertwatchError):
    """No usable candidates could be derived from page content."""
    pass


class PersistenceError(CertwatchError):
    """Storage read or write failed."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message, context={"cause": repr(cause) if cause else None})
        self.cause = cause
