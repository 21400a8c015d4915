"""
Unit tests for core/normalize/parsing.py and the candidate model.
"""

import pytest

from certwatch.core.normalize.canonical import CANDIDATE_FIELDS, ExtractionCandidate, build_candidate
from certwatch.core.normalize.parsing import (
    classify_channel,
    clean_text,
    parse_cert_years,
    parse_channel_flag,
    parse_date,
    parse_money,
    parse_quantity,
)


class TestParseMoney:
    """Tests for parse_money()"""

    def test_wan_multiplier(self):
        assert parse_money("1.5万元") == 15000

    def test_thousands_separator(self):
        assert parse_money("6,500.00") == 6500
        assert parse_money("6，500") == 6500

    def test_yi_multiplier(self):
        assert parse_money("2亿") == 200_000_000

    def test_currency_decorations(self):
        assert parse_money("¥ 16,120 元（含税）") == 16120

    @pytest.mark.parametrize("marker", ["-", "—", "", "/", "无", "  "])
    def test_null_markers(self, marker):
        assert parse_money(marker) is None

    def test_no_number(self):
        assert parse_money("面议") is None

    def test_numbers_pass_through(self):
        assert parse_money(6.5) == 6.5
        assert parse_money(100) == 100.0

    def test_bool_is_not_money(self):
        assert parse_money(True) is None


class TestParseQuantity:
    def test_sheets(self):
        assert parse_quantity("2480张") == 2480

    def test_wan_sheets(self):
        assert parse_quantity("1.2万张") == 12000


class TestParseDate:
    """Tests for parse_date()"""

    def test_chinese_date(self):
        assert parse_date("2025年1月8日") == "2025-01-08"

    def test_slash_date_with_time(self):
        assert parse_date("2025/1/8 10:30") == "2025-01-08"

    def test_iso_date(self):
        assert parse_date("2025-03-10") == "2025-03-10"

    def test_invalid_calendar_date(self):
        assert parse_date("2025-02-30") is None

    def test_null_marker(self):
        assert parse_date("-") is None

    def test_text_without_digits(self):
        assert parse_date("待定") is None


class TestParseCertYears:
    def test_slash_separated(self):
        assert parse_cert_years("2024/2025") == ["2024", "2025"]

    def test_bare_year(self):
        assert parse_cert_years("2025") == ["2025"]

    def test_int_year(self):
        assert parse_cert_years(2025) == ["2025"]

    def test_year_inside_text(self):
        assert parse_cert_years("2025年绿证采购") == ["2025"]

    def test_list_deduplicated(self):
        assert parse_cert_years(["2024", 2024, "2025年"]) == ["2024", "2025"]

    def test_no_year(self):
        assert parse_cert_years("绿证采购") is None


class TestChannel:
    def test_non_channel_wins(self):
        assert classify_channel("非通道绿证，不属于跨省绿证通道") is False

    def test_channel(self):
        assert classify_channel("本批为通道绿证") is True

    def test_cross_province(self):
        assert classify_channel("跨省绿证交易") is True

    def test_unknown(self):
        assert classify_channel("绿证采购") is None
        assert classify_channel(None) is None

    def test_flag_values(self):
        assert parse_channel_flag("是") is True
        assert parse_channel_flag("否") is False
        assert parse_channel_flag("-") is None


class TestCleanText:
    def test_collapses_whitespace(self):
        assert clean_text("  广东　电网 \n 公司 ") == "广东 电网 公司"

    def test_null_marker(self):
        assert clean_text("——") is None


class TestExtractionCandidate:
    """The candidate model normalizes every field the same way."""

    def test_has_fourteen_fields(self):
        assert len(CANDIDATE_FIELDS) == 14
        assert "procurement_number" in CANDIDATE_FIELDS

    def test_string_values_normalized(self):
        candidate = ExtractionCandidate(
            project_name=" 2025年绿证采购 ",
            total_price="1.5万元",
            quantity="2480张",
            unit_price="-",
            is_channel="是",
            cert_years="2024/2025",
            award_date="2025年3月1日",
        )
        assert candidate.project_name == "2025年绿证采购"
        assert candidate.total_price == 15000
        assert candidate.quantity == 2480
        assert candidate.unit_price is None
        assert candidate.is_channel is True
        assert candidate.cert_years == ["2024", "2025"]
        assert candidate.award_date == "2025-03-01"

    def test_frozen(self):
        candidate = ExtractionCandidate(project_name="x")
        with pytest.raises(Exception):
            candidate.project_name = "y"

    def test_build_candidate_requires_project_name(self):
        assert build_candidate({"total_price": "100"}) is None
        assert build_candidate({"project_name": "-"}) is None

    def test_build_candidate_ignores_unknown_keys(self):
        candidate = build_candidate({"project_name": "绿证", "_named": True})
        assert candidate is not None
        assert candidate.project_name == "绿证"
