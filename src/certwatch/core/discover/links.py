"""
Detail-link discovery for listing sources.

Pulls anchor targets out of a listing page, keeps only those that look
like announcement detail pages, and walks subsequent listing pages
until they stop producing new links.
"""

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable
from urllib.parse import parse_qs, urldefrag, urlencode, urljoin, urlparse, urlunparse

from lxml import etree
from lxml import html as lxml_html

from ..config.models import DiscoveryConfig
from ..errors import FetchError
from ..normalize.content import looks_like_html

logger = logging.getLogger(__name__)

MARKDOWN_LINK = re.compile(r"\[[^\]]*\]\(\s*<?([^)\s>]+)>?(?:\s+\"[^\"]*\")?\s*\)")
BARE_URL = re.compile(r"https?://[^\s)\]\"'<>]+")
INDEX_PAGE = re.compile(r"/index(?:_(\d+))?\.(jhtml|s?html?)$")

# (page URL) -> normalized page text
PageFetcher = Callable[[str], Awaitable[str]]


class LinkDiscoverer:
    """Find announcement detail links on listing pages."""

    def __init__(self, config: DiscoveryConfig | None = None):
        self.config = config or DiscoveryConfig()
        self._id_pattern = re.compile(rf"\d{{{self.config.min_id_digits},}}")
        self._detail = [re.compile(p, re.IGNORECASE) for p in self.config.detail_patterns]
        self._index = [re.compile(p, re.IGNORECASE) for p in self.config.index_patterns]
        self._allow = [re.compile(p, re.IGNORECASE) for p in self.config.allow_patterns]
        self._deny = [re.compile(p, re.IGNORECASE) for p in self.config.deny_patterns]

    # -------------------------------------------------------------------------
    # Single page
    # -------------------------------------------------------------------------

    def _anchor_hrefs(self, content: str) -> list[str] | None:
        """Anchor targets from markup, or None when it cannot be parsed."""
        try:
            doc = lxml_html.fromstring(content)
        except (etree.ParserError, ValueError):
            return None
        return [href.strip() for href in doc.xpath("//a/@href") if href and href.strip()]

    def _pattern_hrefs(self, content: str, base_url: str) -> list[str]:
        """Plain-text fallback restricted to the allow-domain set."""
        allowed = {urlparse(base_url).netloc.lower(), *(d.lower() for d in self.config.allow_domains)}
        hrefs = MARKDOWN_LINK.findall(content) + BARE_URL.findall(content)

        kept = []
        for href in hrefs:
            host = urlparse(urljoin(base_url, href)).netloc.lower()
            if any(host == domain or host.endswith("." + domain) for domain in allowed):
                kept.append(href)
        return kept

    def is_detail_link(self, url: str) -> bool:
        """Whether an absolute URL passes every detail-link filter."""
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https"):
            return False

        path = parsed.path
        target = path + (f"?{parsed.query}" if parsed.query else "")

        if not self._id_pattern.search(path):
            return False
        if not any(p.search(path) for p in self._detail):
            return False
        if any(p.search(path) for p in self._index):
            return False
        if self._allow and not any(p.search(target) for p in self._allow):
            return False
        if any(p.search(target) for p in self._deny):
            return False
        return True

    def discover(self, normalized_text: str, base_url: str) -> list[str]:
        """Extract detail-page links from one listing page.

        Args:
            normalized_text: Normalized listing content (markup or markdown)
            base_url: URL the content was fetched from

        Returns:
            Absolute detail URLs in first-seen order, without duplicates
        """
        hrefs = None
        if looks_like_html(normalized_text):
            hrefs = self._anchor_hrefs(normalized_text)
        if hrefs is None:
            hrefs = self._pattern_hrefs(normalized_text, base_url)

        links: list[str] = []
        seen: set[str] = set()
        for href in hrefs:
            if href.startswith(("javascript:", "mailto:", "#")):
                continue
            url, _ = urldefrag(urljoin(base_url, href))
            if url in seen or not self.is_detail_link(url):
                continue
            seen.add(url)
            links.append(url)

        return links

    # -------------------------------------------------------------------------
    # Pagination
    # -------------------------------------------------------------------------

    def page_url(self, url: str, page: int) -> str:
        """Build the URL of listing page ``page`` (1-based).

        Mutates a known pagination parameter when present, otherwise
        rewrites ``index.jhtml`` style paths, otherwise appends the
        first configured parameter.
        """
        parsed = urlparse(url)
        query = parse_qs(parsed.query, keep_blank_values=True)

        for param in self.config.pagination_params:
            if param in query:
                query[param] = [str(page)]
                return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

        match = INDEX_PAGE.search(parsed.path)
        if match:
            suffix = f"index.{match.group(2)}" if page == 1 else f"index_{page}.{match.group(2)}"
            path = parsed.path[: match.start()] + "/" + suffix
            return urlunparse(parsed._replace(path=path))

        query[self.config.pagination_params[0]] = [str(page)]
        return urlunparse(parsed._replace(query=urlencode(query, doseq=True)))

    async def discover_all(
        self,
        first_page_text: str,
        base_url: str,
        fetch_page: PageFetcher,
    ) -> list[str]:
        """Discover links across paginated listing pages.

        Stops when a page yields no new links, when its new-link count
        falls below half of the running average, when ``max_pages`` is
        reached, or when a page cannot be fetched.

        Args:
            first_page_text: Normalized content of the first page
            base_url: URL of the first page
            fetch_page: Coroutine returning normalized content for a URL

        Returns:
            All discovered detail links in first-seen order
        """
        links: list[str] = []
        seen: set[str] = set()

        def add_new(found: list[str]) -> int:
            fresh = [link for link in found if link not in seen]
            seen.update(fresh)
            links.extend(fresh)
            return len(fresh)

        counts = [add_new(self.discover(first_page_text, base_url))]
        if counts[0] == 0:
            return links

        previous_url = base_url
        for page in range(2, self.config.max_pages + 1):
            url = self.page_url(base_url, page)
            if url == previous_url:
                break
            previous_url = url

            try:
                text = await fetch_page(url)
            except FetchError as e:
                logger.warning("Stopping pagination at page %d: %s", page, e, extra={"url": url})
                break

            average = sum(counts) / len(counts)
            new_count = add_new(self.discover(text, url))
            logger.debug("Page %d yielded %d new links", page, new_count, extra={"url": url})

            if new_count == 0:
                break
            if new_count < average / 2:
                logger.debug("Link volume dropped (%d < %.1f / 2), stopping", new_count, average)
                break
            counts.append(new_count)

        return links
