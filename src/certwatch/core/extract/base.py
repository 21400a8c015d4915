"""
Extraction base classes and data structures.

Defines the interface for all extraction strategies and the
label/value helpers shared by the line-oriented parsers.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urljoin

from ..config.synonyms import match_field
from ..normalize.canonical import ExtractionCandidate, build_candidate
from ..normalize.parsing import parse_cert_years


@dataclass
class ExtractionResult:
    """Result of an extraction operation."""

    candidates: list[ExtractionCandidate] = field(default_factory=list)

    # Content did not mention the monitored subject at all
    irrelevant: bool = False

    warnings: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    extraction_method: str | None = None

    @property
    def ok(self) -> bool:
        """Check if extraction produced candidates."""
        return len(self.candidates) > 0

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)

    def add_error(self, message: str) -> None:
        self.errors.append(message)


class Extractor(ABC):
    """Abstract base class for extraction strategies."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Extractor identifier."""
        pass

    @abstractmethod
    def extract(self, content: str, url: str | None = None) -> ExtractionResult:
        """Extract candidates from normalized content.

        Args:
            content: Normalized markup or text
            url: Page URL, used as the default detail link

        Returns:
            ExtractionResult (empty when the strategy does not apply)
        """
        pass


# =============================================================================
# Shared helpers
# =============================================================================


# "1.2 项目名称：xxx", "- **采购人**: xxx"
KEY_VALUE_LINE = re.compile(
    r"^\s*(?:[-*•]\s*)?(?:\d+(?:\.\d+)*[.、．]?\s*)?(?:\*\*)?([^:：|]{1,20}?)(?:\*\*)?\s*[:：]\s*(.*)$"
)
MARKDOWN_LINK = re.compile(r"\[([^\]]*)\]\(\s*([^)\s]+)[^)]*\)")


def split_key_value(line: str) -> tuple[str, str] | None:
    """Split a "key：value" line, or return None."""
    match = KEY_VALUE_LINE.match(line)
    if not match:
        return None
    key = match.group(1).strip()
    if not key or key.lower().startswith(("http", "https", "www")):
        return None
    return key, match.group(2).strip().strip("*").strip()


def unwrap_markdown_link(value: str, base_url: str | None = None) -> tuple[str, str | None]:
    """Return (text, link) for a value that may be a markdown link."""
    match = MARKDOWN_LINK.search(value)
    if not match:
        return value, None
    text = MARKDOWN_LINK.sub(lambda m: m.group(1), value).strip()
    link = match.group(2)
    if base_url:
        link = urljoin(base_url, link)
    return text, link


def assign_field(
    raw: dict[str, Any],
    key: str,
    value: str,
    fuzzy_threshold: int = 80,
) -> str | None:
    """Map a label to a field and store its value if not already set.

    Returns:
        The field name the label mapped to, or None
    """
    field_name = match_field(key, fuzzy_threshold)
    if field_name is None or not value:
        return field_name
    if raw.get(field_name) in (None, ""):
        raw[field_name] = value
    return field_name


def finalize_candidate(raw: dict[str, Any], url: str | None) -> ExtractionCandidate | None:
    """Fill page-level defaults and validate a raw record.

    The detail link defaults to the page URL and certificate years fall
    back to years mentioned in the project name.
    """
    data = dict(raw)
    if not data.get("detail_link") and url:
        data["detail_link"] = url
    if not data.get("cert_years") and data.get("project_name"):
        data["cert_years"] = parse_cert_years(str(data["project_name"]))
    return build_candidate(data)
