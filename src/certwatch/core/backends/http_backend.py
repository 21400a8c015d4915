"""
httpx transports for the fetch channels.

``HttpBackend`` serves the direct and disguised channels (they differ
only in the headers the fetcher puts on the request). ``ProxyBackend``
routes the request through a reader proxy that returns a text rendering
of the target page.
"""

from __future__ import annotations

import time
from email.utils import parsedate_to_datetime
from urllib.parse import urlparse

import httpx

from ..models import utcnow
from .base import Backend, FetchError, FetchResult, RateLimitError, RequestSpec

CHROME_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
MAC_CHROME_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)


def browser_headers(user_agent: str | None = None) -> dict[str, str]:
    """Headers of an ordinary Chinese-locale browser navigation."""
    return {
        "User-Agent": user_agent or CHROME_UA,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
        "Accept-Language": "zh-CN,zh;q=0.9,en;q=0.8",
        "Accept-Encoding": "gzip, deflate",
        "Upgrade-Insecure-Requests": "1",
    }


def disguised_headers(url: str, user_agent: str | None = None) -> dict[str, str]:
    """Browser headers plus the same-site navigation metadata defended sites check."""
    parts = urlparse(url)
    origin = f"{parts.scheme}://{parts.netloc}"
    headers = browser_headers(user_agent or MAC_CHROME_UA)
    headers.update(
        {
            "Referer": f"{origin}/",
            "Origin": origin,
            "Cache-Control": "max-age=0",
            "Pragma": "no-cache",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "same-origin",
            "Sec-Fetch-User": "?1",
            "Sec-Ch-Ua": '"Chromium";v="124", "Google Chrome";v="124", "Not-A.Brand";v="99"',
            "Sec-Ch-Ua-Mobile": "?0",
            "Sec-Ch-Ua-Platform": '"Windows"',
        }
    )
    return headers


def parse_retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header (delta-seconds or HTTP date)."""
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        return None
    return max(0.0, (when - utcnow()).total_seconds())


def check_response(response: httpx.Response, url: str, channel: str) -> None:
    """Classify a non-2xx response.

    Raises:
        RateLimitError: 429
        FetchError: Any other non-2xx status
    """
    status = response.status_code
    if status == 429:
        raise RateLimitError(
            f"HTTP 429 from {channel}",
            url=url,
            retry_after=parse_retry_after(response.headers.get("Retry-After")),
        )
    if status < 200 or status >= 300:
        raise FetchError(f"HTTP {status} from {channel}", url=url, status_code=status)


class HttpBackend(Backend):
    """One GET per call on a pooled httpx client.

    A client passed in is shared and left open by ``close``.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.timeout = timeout
        self._transport = transport
        self._shared = client is not None
        self._client = client

    @property
    def name(self) -> str:
        return "http"

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                transport=self._transport,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )
            self._shared = False
        return self._client

    def build_url(self, url: str) -> str:
        """Address actually requested for a page."""
        return url

    async def fetch(self, request: RequestSpec) -> FetchResult:
        started = time.monotonic()
        try:
            response = await self.client.get(
                self.build_url(request.url),
                headers=request.headers or None,
                cookies=request.cookies or None,
                timeout=request.timeout,
                follow_redirects=request.follow_redirects,
            )
        except httpx.HTTPError as e:
            raise FetchError(f"Transport error via {self.name}: {e}", url=request.url, cause=e) from e

        check_response(response, request.url, self.name)
        return FetchResult(
            url=request.url,
            final_url=str(response.url),
            status_code=response.status_code,
            content=response.text,
            headers=dict(response.headers),
            elapsed_ms=(time.monotonic() - started) * 1000,
        )

    async def close(self) -> None:
        client, self._client = self._client, None
        if client is not None and not self._shared and not client.is_closed:
            await client.aclose()


class ProxyBackend(HttpBackend):
    """Reader proxy: GET ``{proxy_base}/{scheme}://{host}{path}``.

    ``upstream_scheme`` is the scheme the proxy uses to reach the target,
    so the same page can be tried over http and https.
    """

    def __init__(
        self,
        proxy_base_url: str = "https://r.jina.ai",
        upstream_scheme: str = "https",
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(timeout=timeout, client=client, transport=transport)
        self.proxy_base_url = proxy_base_url.rstrip("/")
        self.upstream_scheme = upstream_scheme

    @property
    def name(self) -> str:
        return f"proxy_{self.upstream_scheme}"

    def build_url(self, url: str) -> str:
        parts = urlparse(url)
        target = f"{self.upstream_scheme}://{parts.netloc}{parts.path or '/'}"
        if parts.query:
            target = f"{target}?{parts.query}"
        return f"{self.proxy_base_url}/{target}"
