"""Fetch channel backends."""

from .base import (
    Backend,
    BlockedError,
    FetchError,
    FetchResult,
    RateLimitError,
    RequestSpec,
)
from .http_backend import HttpBackend, ProxyBackend, browser_headers, disguised_headers

__all__ = [
    "Backend",
    "BlockedError",
    "FetchError",
    "FetchResult",
    "HttpBackend",
    "ProxyBackend",
    "RateLimitError",
    "RequestSpec",
    "browser_headers",
    "disguised_headers",
]
