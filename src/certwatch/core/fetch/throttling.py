"""
Per-domain request pacing.

Consecutive requests to the same host are separated by a jittered
delay so that listing sources walking many detail pages do not trip
the target site's rate limits.
"""

from __future__ import annotations

import asyncio
import random
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable
from urllib.parse import urlparse


@dataclass
class RateLimitConfig:
    """Bounds of the pause between two requests to one host."""

    min_delay_ms: int = 500
    max_delay_ms: int = 2000


class RateLimiter:
    """Serializes requests per host and spaces them with a random pause.

    The first request to a host is not delayed.
    """

    def __init__(
        self,
        config: RateLimitConfig | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config or RateLimitConfig()
        self._sleep = sleep
        self._seen: set[str] = set()
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    def next_delay(self) -> float:
        """Pause in seconds before the next request to an already-contacted host."""
        return random.randint(self.config.min_delay_ms, self.config.max_delay_ms) / 1000

    async def acquire(self, url: str) -> float:
        """Wait until a request to ``url``'s domain may be sent.

        Returns:
            Seconds waited
        """
        host = urlparse(url).netloc
        async with self._locks[host]:
            if host not in self._seen:
                self._seen.add(host)
                return 0.0
            delay = self.next_delay()
            if delay > 0:
                await self._sleep(delay)
            return delay
