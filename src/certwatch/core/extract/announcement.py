"""
Single-announcement pattern extraction.

Recognizes the canonical procurement announcement layout (a 采购编号
label plus a 项目名称 label) and reads one candidate from it. Prices
and quantity come out of the 项目概况 (project overview) prose.
"""

from __future__ import annotations

import re

from ..normalize.content import html_to_text
from ..normalize.parsing import classify_channel
from .base import ExtractionResult, Extractor, finalize_candidate

NUMBER = r"\d[\d,，]*(?:\.\d+)?"
DATE = r"\d{4}\s*[-/.年]\s*\d{1,2}\s*[-/.月]\s*\d{1,2}\s*日?"
TIME = r"(?:\s*\d{1,2}[:：]\d{2}(?:[:：]\d{2})?)?"

PROCUREMENT_NUMBER = re.compile(r"采购编号\s*[:：]\s*([A-Za-z0-9][A-Za-z0-9\-_]*)")
PROJECT_NAME = re.compile(r"项目名称\s*[:：]\s*(.+)")
BIDDING_UNIT = re.compile(r"(?:采购人|招标人|采购单位|招标单位)(?:名称)?\s*[:：]\s*(.+)")
WINNING_UNIT = re.compile(r"(?:中标人|中标单位|中标供应商|成交供应商|成交人)(?:名称)?\s*[:：]\s*(.+)")
AWARD_DATE = re.compile(rf"(?:中标日期|成交日期|公示日期)\s*[:：]\s*({DATE})")

QUANTITY = re.compile(rf"({NUMBER})\s*(万)?\s*张")
UNIT_PRICE = re.compile(rf"(?:单张限价|单张价格|限价单价|单价)[^\d\n]{{0,8}}({NUMBER})\s*(万)?\s*元")
TOTAL_PRICE = re.compile(rf"共计[^\d\n]{{0,10}}({NUMBER})\s*(万)?\s*元")
TABLE_TOTAL = re.compile(rf"\|\s*1\s*\|[^|\n]*\|\s*({NUMBER})\s*\|")
DATE_RANGE = re.compile(rf"({DATE}){TIME}\s*(?:至|到|~|～)\s*({DATE})")

OVERVIEW_LABEL = "项目概况"
OVERVIEW_MAX_LINES = 6
# Numbered section headings or another "label：" line end the overview block
SECTION_BREAK = re.compile(r"^(?:#+\s*)?(?:\d+(?:\.\d+)*[.、．]|[一二三四五六七八九十]+、|[^:：\s]{2,12}[:：])")

# Another label following a value on the same line ("项目名称：X 采购人：Y")
TRAILING_LABEL = re.compile(r"\s+[一-龥A-Za-z]{2,8}\s*[:：].*$")


def _clean_value(value: str) -> str:
    value = TRAILING_LABEL.sub("", value)
    return value.strip().strip("*").strip(" ，,。;；")


def _with_unit(match: re.Match[str]) -> str:
    return match.group(1) + (match.group(2) or "")


class AnnouncementExtractor(Extractor):
    """Extract one candidate from a single procurement announcement."""

    @property
    def name(self) -> str:
        return "announcement"

    @staticmethod
    def _overview(lines: list[str]) -> str | None:
        """Text of the project overview block, if present."""
        for index, line in enumerate(lines):
            if OVERVIEW_LABEL not in line:
                continue
            block = [line]
            for follower in lines[index + 1 : index + 1 + OVERVIEW_MAX_LINES]:
                if SECTION_BREAK.match(follower):
                    break
                block.append(follower)
            return " ".join(block)
        return None

    def extract(self, content: str, url: str | None = None) -> ExtractionResult:
        result = ExtractionResult(extraction_method=self.name)

        text = html_to_text(content)
        number_match = PROCUREMENT_NUMBER.search(text)
        name_match = PROJECT_NAME.search(text)
        if not number_match or not name_match:
            return result

        raw: dict[str, object] = {
            "procurement_number": number_match.group(1),
            "project_name": _clean_value(name_match.group(1)),
        }

        if match := BIDDING_UNIT.search(text):
            raw["bidding_unit"] = _clean_value(match.group(1))
        if match := WINNING_UNIT.search(text):
            raw["winning_unit"] = _clean_value(match.group(1))
        if match := AWARD_DATE.search(text):
            raw["award_date"] = match.group(1)

        overview = self._overview(text.splitlines())
        if overview is None:
            result.add_warning("No project overview block; scanning whole document")
            overview = text

        if match := QUANTITY.search(overview):
            raw["quantity"] = _with_unit(match)
        if match := UNIT_PRICE.search(overview):
            raw["unit_price"] = _with_unit(match)
        if match := TOTAL_PRICE.search(overview):
            raw["total_price"] = _with_unit(match)
        elif match := TABLE_TOTAL.search(content):
            raw["total_price"] = match.group(1)

        if match := DATE_RANGE.search(text):
            raw["bid_start_date"] = match.group(1)
            raw["bid_end_date"] = match.group(2)

        raw["is_channel"] = classify_channel(text)

        candidate = finalize_candidate(raw, url)
        if candidate is None:
            result.add_warning("Announcement fields did not form a valid candidate")
            return result

        result.candidates.append(candidate)
        return result
