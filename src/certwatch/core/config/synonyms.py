"""
Header and label synonym mappings for certificate tender pages.

Maps the Chinese column headers and "key：value" labels seen on
announcement pages to ExtractionCandidate field names. Used by the
table, list and key-value extractors.
"""

from __future__ import annotations

from thefuzz import fuzz

# =============================================================================
# Ordered substring rules
# =============================================================================

# First rule whose alias occurs in the header wins. Specific headers come
# before generic ones: "中标日期" must map to award_date before "中标"
# claims it as the winning unit, and "日期" alone is the last resort.
HEADER_RULES: list[tuple[str, tuple[str, ...]]] = [
    ("procurement_number", ("编号", "项目号")),
    ("project_name", ("项目名称", "工程名称", "标段名称", "采购项目")),
    ("award_date", ("中标日期", "成交日期", "中标时间", "成交时间", "公示日期")),
    ("bid_start_date", ("开始日期", "开始时间", "招标开始", "报价开始", "开标日期")),
    ("bid_end_date", ("结束日期", "截止日期", "截止时间", "结束时间", "招标结束", "报价截止")),
    ("unit_price", ("单价", "限价")),
    ("total_price", ("总价", "金额", "总额", "合计", "价款")),
    ("quantity", ("数量", "张数", "成交量", "规模")),
    ("is_channel", ("通道",)),
    ("cert_years", ("年份", "年度")),
    ("winning_unit", ("中标单位", "中标人", "中标供应商", "成交供应商", "成交单位", "中标")),
    ("bidder_unit", ("投标单位", "投标人", "报价单位", "投标")),
    ("bidding_unit", ("招标单位", "招标人", "采购人", "采购单位", "招标", "采购方")),
    ("project_name", ("项目", "名称", "标题")),
    ("detail_link", ("链接", "详情", "网址")),
    ("award_date", ("日期",)),
]

# Labels that look like fields but are not (publish dates, row numbers, overviews)
IGNORED_LABELS = ("发布", "序号", "浏览", "概况")

# Flat alias view used for fuzzy fallback
HEADER_SYNONYMS: dict[str, list[str]] = {}
for _field, _aliases in HEADER_RULES:
    HEADER_SYNONYMS.setdefault(_field, []).extend(_aliases)


def _clean_label(text: str) -> str:
    """Strip numbering, whitespace and trailing separators from a label."""
    label = text.strip().lstrip("#*>- ").strip()
    label = label.lstrip("0123456789.、()（） ")
    return label.rstrip(":：").replace(" ", "").replace("　", "")


def find_canonical_field(header_text: str) -> str | None:
    """Find the field name for a header or label by substring rule.

    Args:
        header_text: Raw header text from a table or label before a colon

    Returns:
        Field name if a rule matches, None otherwise
    """
    label = _clean_label(header_text)
    if not label or any(ignored in label for ignored in IGNORED_LABELS):
        return None

    for canonical, aliases in HEADER_RULES:
        if any(alias in label for alias in aliases):
            return canonical

    return None


def match_field(header_text: str, fuzzy_threshold: int = 80) -> str | None:
    """Match a header to a field, falling back to fuzzy matching.

    Args:
        header_text: Raw header text
        fuzzy_threshold: Minimum thefuzz ratio (0-100) for a fuzzy match

    Returns:
        Field name or None
    """
    canonical = find_canonical_field(header_text)
    if canonical:
        return canonical

    label = _clean_label(header_text).lower()
    if not label or any(ignored in label for ignored in IGNORED_LABELS):
        return None

    best_match: str | None = None
    best_score = 0
    for field, aliases in HEADER_SYNONYMS.items():
        for alias in aliases:
            score = fuzz.ratio(label, alias.lower())
            if score > best_score and score >= fuzzy_threshold:
                best_score = score
                best_match = field

    return best_match
