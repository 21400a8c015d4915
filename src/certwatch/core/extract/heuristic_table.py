"""
Heuristic table extraction with header synonym mapping.

Finds HTML tables and markdown pipe tables, maps their header cells to
candidate fields (ordered substring rules, fuzzy fallback) and reads
one candidate per data row.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import urljoin

from lxml import etree
from lxml import html as lxml_html
from lxml.html import HtmlElement

from ..config.synonyms import match_field
from ..normalize.content import looks_like_html
from .base import ExtractionResult, Extractor, finalize_candidate, unwrap_markdown_link

# Minimum fuzzy match score to consider a match
FUZZY_MATCH_THRESHOLD = 80

MARKDOWN_SEPARATOR = re.compile(r"^\|?\s*:?-{2,}:?\s*(\|\s*:?-{2,}:?\s*)*\|?\s*$")


@dataclass
class FieldMapping:
    """Mapping of a table header to a candidate field."""

    header_text: str
    canonical_field: str
    column_index: int


class TableExtractor(Extractor):
    """Extract one candidate per table row.

    A table qualifies when its header maps a project-name column and at
    least one other field.
    """

    def __init__(self, fuzzy_threshold: int = FUZZY_MATCH_THRESHOLD):
        self.fuzzy_threshold = fuzzy_threshold

    @property
    def name(self) -> str:
        return "table"

    def extract(self, content: str, url: str | None = None) -> ExtractionResult:
        result = ExtractionResult(extraction_method=self.name)

        if looks_like_html(content):
            tables = self._html_tables(content, url, result)
        else:
            tables = self._markdown_tables(content, url)

        for rows in tables:
            for raw in rows:
                candidate = finalize_candidate(raw, url)
                if candidate is not None:
                    result.candidates.append(candidate)

        if not result.candidates and tables:
            result.add_warning(f"Tried {len(tables)} tables, no row formed a candidate")
        return result

    # -------------------------------------------------------------------------
    # Header mapping
    # -------------------------------------------------------------------------

    def _map_headers(self, headers: list[str]) -> list[FieldMapping]:
        mappings: list[FieldMapping] = []
        claimed: set[str] = set()
        for index, header in enumerate(headers):
            field_name = match_field(header, self.fuzzy_threshold)
            if field_name and field_name not in claimed:
                claimed.add(field_name)
                mappings.append(FieldMapping(header, field_name, index))
        return mappings

    @staticmethod
    def _qualifies(mappings: list[FieldMapping]) -> bool:
        fields = {m.canonical_field for m in mappings}
        return "project_name" in fields and len(fields) >= 2

    @staticmethod
    def _row_record(mappings: list[FieldMapping], cells: list[str]) -> dict[str, Any]:
        record: dict[str, Any] = {}
        for mapping in mappings:
            if mapping.column_index < len(cells) and cells[mapping.column_index]:
                record[mapping.canonical_field] = cells[mapping.column_index]
        return record

    # -------------------------------------------------------------------------
    # HTML tables
    # -------------------------------------------------------------------------

    @staticmethod
    def _cell_text(cell: HtmlElement) -> str:
        return re.sub(r"\s+", " ", cell.text_content()).strip()

    @staticmethod
    def _row_link(row: HtmlElement, base_url: str | None) -> str | None:
        links = row.xpath(".//a/@href")
        for href in links:
            href = href.strip()
            if href and not href.startswith(("javascript:", "#", "mailto:")):
                return urljoin(base_url, href) if base_url else href
        return None

    def _html_tables(
        self,
        content: str,
        base_url: str | None,
        result: ExtractionResult,
    ) -> list[list[dict[str, Any]]]:
        try:
            doc = lxml_html.fromstring(content)
        except (etree.ParserError, ValueError) as e:
            result.add_error(f"Failed to parse HTML: {e}")
            return []

        tables: list[list[dict[str, Any]]] = []
        for table in doc.xpath("//table[not(ancestor::table)]"):
            rows = [tr for tr in table.iter("tr") if next(tr.iterancestors("table")) is table]
            if len(rows) < 2:
                continue

            header_cells = rows[0].xpath("./th|./td")
            mappings = self._map_headers([self._cell_text(c) for c in header_cells])
            if not self._qualifies(mappings):
                continue

            records = []
            for row in rows[1:]:
                cells = row.xpath("./td|./th")
                # Short rows are layout (merged section titles, notes)
                if len(cells) < len(mappings):
                    continue
                record = self._row_record(mappings, [self._cell_text(c) for c in cells])
                if "detail_link" not in record:
                    link = self._row_link(row, base_url)
                    if link:
                        record["detail_link"] = link
                records.append(record)
            tables.append(records)

        return tables

    # -------------------------------------------------------------------------
    # Markdown tables
    # -------------------------------------------------------------------------

    @staticmethod
    def _split_row(line: str) -> list[str]:
        cells = [cell.strip() for cell in line.strip().split("|")]
        if cells and cells[0] == "":
            cells = cells[1:]
        if cells and cells[-1] == "":
            cells = cells[:-1]
        return cells

    def _markdown_tables(self, content: str, base_url: str | None) -> list[list[dict[str, Any]]]:
        blocks: list[list[str]] = []
        current: list[str] = []
        for line in content.splitlines():
            if line.strip().startswith("|"):
                current.append(line)
            elif current:
                blocks.append(current)
                current = []
        if current:
            blocks.append(current)

        tables: list[list[dict[str, Any]]] = []
        for block in blocks:
            if len(block) < 2:
                continue
            header = self._split_row(block[0])
            mappings = self._map_headers(header)
            if not self._qualifies(mappings):
                continue

            records = []
            for line in block[1:]:
                if MARKDOWN_SEPARATOR.match(line.strip()):
                    continue
                cells = self._split_row(line)
                if len(cells) < len(mappings):
                    continue

                link = None
                plain_cells = []
                for cell in cells:
                    text, cell_link = unwrap_markdown_link(cell, base_url)
                    plain_cells.append(text)
                    link = link or cell_link

                record = self._row_record(mappings, plain_cells)
                if link and "detail_link" not in record:
                    record["detail_link"] = link
                records.append(record)
            tables.append(records)

        return tables
