"""Fetching: channel fallback, retries and pacing."""

from .fetcher import FetchChannel, Fetcher
from .retries import RetryPolicy, exponential_backoff, retry_async
from .throttling import RateLimitConfig, RateLimiter

__all__ = [
    "FetchChannel",
    "Fetcher",
    "RateLimitConfig",
    "RateLimiter",
    "RetryPolicy",
    "exponential_backoff",
    "retry_async",
]
