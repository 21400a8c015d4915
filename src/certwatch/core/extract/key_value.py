"""
Line-by-line "key：value" extraction.

The last deterministic strategy: reads labels anywhere in the text. A
numbered heading line starts a new candidate; a project-name label
with no open candidate starts one as well.
"""

from __future__ import annotations

import re
from typing import Any

from ..config.synonyms import match_field
from ..normalize.content import html_to_text
from .base import (
    ExtractionResult,
    Extractor,
    finalize_candidate,
    split_key_value,
    unwrap_markdown_link,
)

NUMBERED_HEADING = re.compile(r"^(?:#{1,6}\s*)?\d+[.、．)]\s*(.+)$")


class KeyValueExtractor(Extractor):
    """Group labelled lines into candidates."""

    def __init__(self, fuzzy_threshold: int = 80):
        self.fuzzy_threshold = fuzzy_threshold

    @property
    def name(self) -> str:
        return "key_value"

    def extract(self, content: str, url: str | None = None) -> ExtractionResult:
        result = ExtractionResult(extraction_method=self.name)

        records: list[dict[str, Any]] = []
        current: dict[str, Any] | None = None

        for line in html_to_text(content).splitlines():
            line = line.strip()
            pair = split_key_value(line)

            if pair is None:
                heading = NUMBERED_HEADING.match(line)
                if heading:
                    current = {"project_name": heading.group(1).strip().strip("*")}
                    records.append(current)
                continue

            key, value = pair
            value, link = unwrap_markdown_link(value, url)
            field_name = match_field(key, self.fuzzy_threshold)

            if current is None or (field_name == "project_name" and current.get("_named")):
                current = {}
                records.append(current)

            if field_name == "project_name" and value:
                # A labelled name replaces a heading title
                current["project_name"] = value
                current["_named"] = True
            elif field_name and value and not current.get(field_name):
                current[field_name] = value
            if link and not current.get("detail_link"):
                current["detail_link"] = link

        for raw in records:
            raw.pop("_named", None)
            if not raw.get("project_name"):
                continue
            if not any(raw.get(k) for k in raw if k != "project_name"):
                continue
            candidate = finalize_candidate(raw, url)
            if candidate is not None:
                result.candidates.append(candidate)

        return result
