"""
Heuristic list extraction for repeated announcement blocks.

Listing-style pages repeat a block per transaction: a numbered or
titled line followed by "key：value" lines. In markup the blocks are
list items, articles or item-classed divs.
"""

from __future__ import annotations

import re
from typing import Any

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from ..normalize.content import html_to_text, looks_like_html
from .base import (
    ExtractionResult,
    Extractor,
    assign_field,
    finalize_candidate,
    split_key_value,
    unwrap_markdown_link,
)

# Trailing info lines read under one block title
MAX_INFO_LINES = 10

ITEM_CLASS_HINTS = ("item", "transaction", "result", "record", "card")

BLOCK_TITLE = re.compile(
    r"^(?:#{1,6}\s*)?(?:\d+[.、．)]|[（(]\d+[)）]|[一二三四五六七八九十]+、)\s*(.+)$"
)
MARKDOWN_HEADING = re.compile(r"^#{1,6}\s+(.+)$")


def _strip_title(title: str) -> str:
    return title.strip().strip("*").strip()


class ListExtractor(Extractor):
    """Extract one candidate per titled block with key：value details."""

    def __init__(self, fuzzy_threshold: int = 80):
        self.fuzzy_threshold = fuzzy_threshold

    @property
    def name(self) -> str:
        return "list"

    def extract(self, content: str, url: str | None = None) -> ExtractionResult:
        result = ExtractionResult(extraction_method=self.name)

        if looks_like_html(content):
            blocks = self._html_blocks(content, result)
        else:
            blocks = self._text_blocks(content.splitlines())

        for title, lines in blocks:
            raw = self._read_block(title, lines, url)
            if raw is None:
                continue
            candidate = finalize_candidate(raw, url)
            if candidate is not None:
                result.candidates.append(candidate)

        return result

    def _read_block(self, title: str | None, lines: list[str], url: str | None) -> dict[str, Any] | None:
        """Map a block's info lines; None when no line maps to a field."""
        raw: dict[str, Any] = {}
        mapped = 0
        for line in lines[:MAX_INFO_LINES]:
            pair = split_key_value(line)
            if pair is None:
                continue
            key, value = pair
            value, link = unwrap_markdown_link(value, url)
            if assign_field(raw, key, value, self.fuzzy_threshold):
                mapped += 1
            if link and not raw.get("detail_link"):
                raw["detail_link"] = link

        if mapped == 0:
            return None

        if title and not raw.get("project_name"):
            text, link = unwrap_markdown_link(_strip_title(title), url)
            raw["project_name"] = text
            if link and not raw.get("detail_link"):
                raw["detail_link"] = link
        return raw

    # -------------------------------------------------------------------------
    # Text / markdown blocks
    # -------------------------------------------------------------------------

    @staticmethod
    def _title_of(line: str) -> str | None:
        if split_key_value(line) is not None:
            return None
        match = BLOCK_TITLE.match(line) or MARKDOWN_HEADING.match(line)
        return match.group(1) if match else None

    def _text_blocks(self, lines: list[str]) -> list[tuple[str | None, list[str]]]:
        blocks: list[tuple[str | None, list[str]]] = []
        title: str | None = None
        body: list[str] = []
        for line in lines:
            line = line.strip()
            if not line:
                continue
            heading = self._title_of(line)
            if heading is not None:
                if title is not None:
                    blocks.append((title, body))
                title, body = heading, []
            elif title is not None:
                body.append(line)
        if title is not None:
            blocks.append((title, body))
        return blocks

    # -------------------------------------------------------------------------
    # HTML blocks
    # -------------------------------------------------------------------------

    @staticmethod
    def _is_item(element: HtmlElement) -> bool:
        if element.tag in ("li", "article"):
            return True
        classes = (element.get("class") or "").lower()
        return element.tag == "div" and any(hint in classes for hint in ITEM_CLASS_HINTS)

    def _html_blocks(
        self,
        content: str,
        result: ExtractionResult,
    ) -> list[tuple[str | None, list[str]]]:
        try:
            doc = lxml_html.fromstring(content)
        except (etree.ParserError, ValueError) as e:
            result.add_error(f"Failed to parse HTML: {e}")
            return []

        items: list[HtmlElement] = []
        for element in doc.iter("li", "article", "div"):
            if not self._is_item(element):
                continue
            if any(ancestor in items for ancestor in element.iterancestors()):
                continue
            items.append(element)

        blocks: list[tuple[str | None, list[str]]] = []
        for item in items:
            lines = html_to_text(lxml_html.tostring(item, encoding="unicode")).splitlines()
            if not lines:
                continue
            title = None
            if split_key_value(lines[0]) is None:
                title, lines = lines[0], lines[1:]
            blocks.append((title, lines))
        return blocks
