"""
Fetch channel contract.

A backend performs exactly one GET through one transport and reports
what came back. Retries, channel fallback and content validation live
in ``certwatch.core.fetch``; a backend only classifies transport
outcomes into the error types below.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..errors import BlockedError, FetchError, RateLimitError
from ..models import utcnow

__all__ = [
    "Backend",
    "BlockedError",
    "FetchError",
    "FetchResult",
    "RateLimitError",
    "RequestSpec",
]


@dataclass
class RequestSpec:
    """One GET as a channel will issue it.

    ``url`` is the page the caller asked for; channels that rewrite it
    (the reader proxy) do so inside the backend.
    """

    url: str
    headers: dict[str, str] = field(default_factory=dict)
    cookies: dict[str, str] = field(default_factory=dict)
    timeout: float = 30.0
    follow_redirects: bool = True


@dataclass
class FetchResult:
    url: str
    final_url: str
    status_code: int
    content: str
    headers: dict[str, str] = field(default_factory=dict)
    elapsed_ms: float = 0.0
    fetched_at: datetime = field(default_factory=utcnow)
    channel: str | None = None  # stamped by the fetcher

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def content_length(self) -> int:
        """Length in characters, the unit used by the minimum-length checks."""
        return len(self.content)


class Backend(ABC):
    """A single transport used by one or more fetch channels."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    async def fetch(self, request: RequestSpec) -> FetchResult:
        """Issue the GET described by ``request``.

        Raises:
            RateLimitError: HTTP 429, carrying any Retry-After value
            FetchError: Timeout, connection failure or other non-2xx status
        """

    async def close(self) -> None:
        """Release pooled connections. Default: nothing to release."""

    async def __aenter__(self) -> "Backend":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
