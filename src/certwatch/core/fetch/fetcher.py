"""
Multi-channel page fetcher.

Tries each fetch channel in turn (direct, disguised for defended
sites, then the content-extraction proxy over http and https), retrying
every channel under the same RetryPolicy before moving on. A channel
that exhausts its retries on HTTP 429 ends the chain, so one URL gets a
single rate-limit retry budget. A response only counts as fetched
when it passes the content checks: 2xx status, non-empty body, minimum
length and no block-page signature.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import httpx

from ..backends.base import Backend, FetchResult, RequestSpec
from ..backends.http_backend import HttpBackend, ProxyBackend, browser_headers, disguised_headers
from ..config.models import FetchConfig
from ..errors import BlockedError, FetchError, RateLimitError
from .retries import RetryPolicy, exponential_backoff, retry_async

logger = logging.getLogger(__name__)

# Larger pages may legitimately mention a signature (login widgets, scripts)
BLOCK_PAGE_MAX_LENGTH = 50_000


class FetchChannel(str, Enum):
    """Network paths used to retrieve a page."""

    DIRECT = "direct"
    DISGUISED = "disguised"
    PROXY_HTTP = "proxy_http"
    PROXY_HTTPS = "proxy_https"


class Fetcher:
    """Fetch page content with channel fallback and retries.

    Usage:
        async with Fetcher(config.fetch) as fetcher:
            result = await fetcher.fetch(url, defended=True)
    """

    def __init__(
        self,
        config: FetchConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the fetcher.

        Args:
            config: Fetch settings (defaults when None)
            transport: Custom httpx transport shared by every channel
            retry_policy: Per-channel retry policy (built from config when None)
            sleep: Sleep coroutine used for backoff
        """
        self.config = config or FetchConfig()
        self._sleep = sleep
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout_seconds),
            follow_redirects=True,
            transport=transport,
        )

        self.retry_policy = retry_policy or RetryPolicy(
            max_retries=self.config.max_retries,
            backoff=exponential_backoff(
                base_seconds=self.config.retry_base_seconds,
                jitter_ms=self.config.jitter_ms,
                rate_limit_base_seconds=self.config.rate_limit_base_seconds,
            ),
            retry_on=(FetchError,),
        )

        self.direct = HttpBackend(timeout=self.config.timeout_seconds, client=self._client)
        self.proxies: dict[FetchChannel, ProxyBackend] = {}
        if self.config.proxy_enabled:
            for channel, scheme in (
                (FetchChannel.PROXY_HTTP, "http"),
                (FetchChannel.PROXY_HTTPS, "https"),
            ):
                self.proxies[channel] = ProxyBackend(
                    proxy_base_url=self.config.proxy_base_url,
                    upstream_scheme=scheme,
                    timeout=self.config.timeout_seconds,
                    client=self._client,
                )

    def _plan(self, url: str, defended: bool) -> list[tuple[FetchChannel, Backend, RequestSpec]]:
        """Channels to try for a URL, in order."""
        timeout = self.config.timeout_seconds
        user_agent = self.config.user_agent

        plan: list[tuple[FetchChannel, Backend, RequestSpec]] = [
            (
                FetchChannel.DIRECT,
                self.direct,
                RequestSpec(url=url, headers=browser_headers(user_agent), timeout=timeout),
            )
        ]
        if defended:
            plan.append(
                (
                    FetchChannel.DISGUISED,
                    self.direct,
                    RequestSpec(
                        url=url,
                        headers=disguised_headers(url, user_agent),
                        cookies=dict(self.config.cookies),
                        timeout=timeout,
                    ),
                )
            )
        for channel, backend in self.proxies.items():
            plan.append(
                (
                    channel,
                    backend,
                    RequestSpec(url=url, headers={"Accept": "text/plain, text/markdown, */*"}, timeout=timeout),
                )
            )
        return plan

    def validate(self, result: FetchResult, min_length: int | None = None) -> None:
        """Reject responses that are not usable page content.

        Raises:
            FetchError: Empty or too-short body
            BlockedError: Body matches a block-page signature
        """
        body = (result.content or "").strip()
        if not body:
            raise FetchError("Empty response body", url=result.url, status_code=result.status_code)

        threshold = self.config.min_content_length if min_length is None else min_length
        if len(body) < threshold:
            raise FetchError(
                f"Response body too short ({len(body)} < {threshold} chars)",
                url=result.url,
                status_code=result.status_code,
            )

        if len(body) < BLOCK_PAGE_MAX_LENGTH:
            lowered = body.lower()
            for signature in self.config.block_signatures:
                if signature.lower() in lowered:
                    raise BlockedError(
                        f"Block page detected: '{signature}' in response",
                        url=result.url,
                        status_code=result.status_code,
                    )

    async def _attempt(
        self,
        backend: Backend,
        request: RequestSpec,
        min_length: int | None,
    ) -> FetchResult:
        result = await backend.fetch(request)
        self.validate(result, min_length)
        return result

    async def fetch(
        self,
        url: str,
        *,
        defended: bool = False,
        min_length: int | None = None,
    ) -> FetchResult:
        """Fetch a URL through the channel chain.

        Args:
            url: Target URL
            defended: Add the disguised channel for anti-bot protected sites
            min_length: Minimum accepted body length (config default if None)

        Returns:
            FetchResult with ``channel`` set to the channel that succeeded

        Raises:
            FetchError: Every channel and every retry failed
        """
        attempted: list[str] = []
        last_error: FetchError | None = None

        for channel, backend, request in self._plan(url, defended):
            attempted.append(channel.value)
            try:
                result = await retry_async(
                    self._attempt,
                    backend,
                    request,
                    min_length,
                    policy=self.retry_policy,
                    sleep=self._sleep,
                )
            except FetchError as e:
                logger.warning(
                    "Channel %s failed for %s: %s",
                    channel.value,
                    url,
                    e,
                    extra={"url": url, "channel": channel.value},
                )
                last_error = e
                if isinstance(e, RateLimitError):
                    break
                continue

            result.channel = channel.value
            logger.debug(
                "Fetched %s via %s (%d chars)",
                url,
                channel.value,
                result.content_length,
                extra={"url": url, "channel": channel.value},
            )
            return result

        raise FetchError(
            f"All fetch channels exhausted for {url}: {last_error}",
            url=url,
            status_code=last_error.status_code if last_error else None,
            cause=last_error,
            all_channels_exhausted=True,
            channels=attempted,
        )

    async def close(self) -> None:
        if not self._client.is_closed:
            await self._client.aclose()

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
