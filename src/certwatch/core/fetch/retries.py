"""
Retry utilities with tenacity.

A RetryPolicy describes how many times to retry and how long to wait
between attempts; retry_async applies any policy to any fallible
async call.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from ..errors import RateLimitError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (retry index starting at 0, error that triggered the retry) -> seconds
BackoffFn = Callable[[int, "BaseException | None"], float]

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_SECONDS = 1.0
DEFAULT_RATE_LIMIT_BASE_SECONDS = 5.0
DEFAULT_JITTER_MS = 500


def exponential_backoff(
    base_seconds: float = DEFAULT_BASE_SECONDS,
    jitter_ms: int = DEFAULT_JITTER_MS,
    rate_limit_base_seconds: float | None = DEFAULT_RATE_LIMIT_BASE_SECONDS,
) -> BackoffFn:
    """Build a ``base * 2^attempt`` backoff with +/- jitter.

    Rate-limit errors follow their own, longer schedule (5s, 10s, 20s
    by default). A server Retry-After raises the base of that schedule
    but never flattens it.

    Args:
        base_seconds: Base delay for ordinary failures
        jitter_ms: Uniform jitter window added to every delay
        rate_limit_base_seconds: Base delay after a 429 (None to treat
            rate limits like any other failure)

    Returns:
        Backoff function for RetryPolicy
    """
    def backoff(attempt: int, error: BaseException | None) -> float:
        if rate_limit_base_seconds is not None and isinstance(error, RateLimitError):
            base = max(rate_limit_base_seconds, error.retry_after or 0.0)
        else:
            base = base_seconds
        delay = base * (2 ** attempt)
        if jitter_ms:
            delay += random.uniform(-jitter_ms, jitter_ms) / 1000.0
        return max(0.0, delay)

    return backoff


@dataclass
class RetryPolicy:
    """How a fallible call is retried.

    ``max_retries`` counts retries after the first attempt, so a policy
    with ``max_retries=3`` makes at most four calls.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    backoff: BackoffFn = field(default_factory=exponential_backoff)
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_state: RetryCallState) -> float:
        """tenacity wait callback."""
        error = retry_state.outcome.exception() if retry_state.outcome else None
        return self.backoff(retry_state.attempt_number - 1, error)


async def retry_async(
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """Execute an async function under a retry policy.

    Args:
        coro_func: Async function to call
        *args: Positional arguments
        policy: Retry policy (default: 3 retries, exponential backoff)
        sleep: Sleep coroutine used between attempts
        **kwargs: Keyword arguments

    Returns:
        Function result

    Raises:
        The last exception once retries are exhausted, or immediately
        for exceptions outside ``policy.retry_on``
    """
    if policy is None:
        policy = RetryPolicy()

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.delay_for,
        retry=retry_if_exception_type(policy.retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    ):
        with attempt:
            return await coro_func(*args, **kwargs)
