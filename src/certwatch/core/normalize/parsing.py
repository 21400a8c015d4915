"""
Parsing utilities for normalizing extracted values.

Handles money, quantity, date, certificate year and channel-flag
parsing from the free-form Chinese text found on tender pages.
"""

from __future__ import annotations

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

import dateparser


# Values that explicitly mean "not provided"
NULL_MARKERS = {"", "-", "--", "—", "——", "/", "无", "暂无", "n/a", "na", "null", "none"}


def normalize_whitespace(text: str) -> str:
    """Collapse runs of whitespace (including full-width spaces) to one space."""
    return re.sub(r"[\s　\xa0]+", " ", text).strip()


def is_null_marker(value: Any) -> bool:
    return isinstance(value, str) and normalize_whitespace(value).lower() in NULL_MARKERS


# =============================================================================
# Money / Quantity Parsing
# =============================================================================


# Chinese magnitude units
UNIT_MULTIPLIERS = {
    "万": Decimal(10_000),
    "亿": Decimal(100_000_000),
}

NUMBER_PATTERN = re.compile(r"(\d[\d,，]*(?:\.\d+)?|\.\d+)\s*(万|亿)?")


def _parse_numeric(text: str) -> Decimal | None:
    """Parse a numeric string, stripping thousands separators."""
    cleaned = text.replace(",", "").replace("，", "").strip()
    if not cleaned:
        return None
    try:
        return Decimal(cleaned)
    except InvalidOperation:
        return None


def parse_money(value: str | int | float | Decimal | None) -> float | None:
    """Parse a monetary amount in yuan.

    Handles:
    - Thousands separators ("6,500.00" -> 6500)
    - 万/亿 multipliers ("1.5万元" -> 15000)
    - Currency decorations (¥, 人民币, 元, 含税)
    - Null markers ("-", "/", "无" -> None)

    Args:
        value: String or number to parse

    Returns:
        Amount as float, or None when no amount is present
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float, Decimal)):
        return float(value)

    text = normalize_whitespace(str(value))
    if is_null_marker(text):
        return None

    match = NUMBER_PATTERN.search(text)
    if not match:
        return None

    amount = _parse_numeric(match.group(1))
    if amount is None:
        return None

    unit = match.group(2)
    if unit:
        amount *= UNIT_MULTIPLIERS[unit]

    return float(amount)


def parse_quantity(value: str | int | float | Decimal | None) -> float | None:
    """Parse a certificate quantity ("2480张", "1.2万张")."""
    return parse_money(value)


# =============================================================================
# Date Parsing
# =============================================================================


DATE_PATTERN = re.compile(r"(\d{4})\s*[-/.年]\s*(\d{1,2})\s*[-/.月]\s*(\d{1,2})\s*日?")

DATEPARSER_SETTINGS = {
    "DATE_ORDER": "YMD",
    "PREFER_DAY_OF_MONTH": "first",
    "RETURN_AS_TIMEZONE_AWARE": False,
    "REQUIRE_PARTS": ["day", "month", "year"],
}


def parse_date(value: str | date | datetime | None) -> str | None:
    """Parse a date into ISO ``YYYY-MM-DD`` form.

    Tries the common numeric layouts first (2025-01-08, 2025/1/8,
    2025年1月8日) and falls back to dateparser for anything else that
    looks like a date.

    Args:
        value: Date text or date object

    Returns:
        ISO date string or None
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    text = normalize_whitespace(str(value))
    if is_null_marker(text) or not re.search(r"\d", text):
        return None

    match = DATE_PATTERN.search(text)
    if match:
        year, month, day = (int(g) for g in match.groups())
        try:
            return date(year, month, day).isoformat()
        except ValueError:
            return None

    try:
        parsed = dateparser.parse(text, languages=["zh", "en"], settings=DATEPARSER_SETTINGS)
    except (ValueError, TypeError, OverflowError):
        return None

    return parsed.date().isoformat() if parsed else None


# =============================================================================
# Certificate Year / Channel Parsing
# =============================================================================


YEAR_PATTERN = re.compile(r"(?<!\d)((?:19|20)\d{2})(?!\d)")


def parse_cert_years(value: str | int | list[Any] | None) -> list[str] | None:
    """Normalize certificate production years to a list of year strings.

    "2024/2025" -> ["2024", "2025"]; "2025" -> ["2025"]; 2025 -> ["2025"].
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return [str(value)]

    if isinstance(value, (list, tuple)):
        years: list[str] = []
        for item in value:
            for year in parse_cert_years(item) or []:
                if year not in years:
                    years.append(year)
        return years or None

    years = []
    for year in YEAR_PATTERN.findall(str(value)):
        if year not in years:
            years.append(year)
    return years or None


def classify_channel(text: str | None) -> bool | None:
    """Classify cross-province channel trades from free text.

    "非通道" anywhere means a non-channel trade. Otherwise "通道" or
    "跨省绿证" means a channel trade. Neither present means unknown.
    """
    if not text:
        return None
    if "非通道" in text:
        return False
    if "通道" in text or "跨省绿证" in text:
        return True
    return None


def parse_channel_flag(value: str | bool | None) -> bool | None:
    """Parse a channel column value ("是"/"否" or descriptive text)."""
    if value is None or isinstance(value, bool):
        return value

    text = normalize_whitespace(str(value))
    if is_null_marker(text):
        return None
    if text.lower() in {"是", "true", "yes", "y"}:
        return True
    if text.lower() in {"否", "false", "no", "n"}:
        return False
    return classify_channel(text)


def clean_text(value: Any) -> str | None:
    """Collapse whitespace and map null markers to None."""
    if value is None:
        return None
    text = normalize_whitespace(str(value))
    if is_null_marker(text):
        return None
    return text
