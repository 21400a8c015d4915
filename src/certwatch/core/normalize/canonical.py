"""
Canonical extraction candidate.

Every extraction strategy, deterministic or model-based, produces its
records through this model so that value normalization is identical
regardless of where a value came from.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .parsing import (
    clean_text,
    parse_cert_years,
    parse_channel_flag,
    parse_date,
    parse_money,
    parse_quantity,
)

logger = logging.getLogger(__name__)


class ExtractionCandidate(BaseModel):
    """An extracted, not yet deduplicated, certificate transaction.

    Immutable: a changed real-world fact yields a new candidate.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    project_name: str = Field(..., min_length=1)
    bidding_unit: str | None = None
    bidder_unit: str | None = None
    winning_unit: str | None = None
    total_price: float | None = None
    quantity: float | None = None
    unit_price: float | None = None
    detail_link: str | None = None
    is_channel: bool | None = None
    cert_years: list[str] | None = None
    bid_start_date: str | None = None
    bid_end_date: str | None = None
    award_date: str | None = None
    procurement_number: str | None = None

    @field_validator(
        "project_name",
        "bidding_unit",
        "bidder_unit",
        "winning_unit",
        "detail_link",
        "procurement_number",
        mode="before",
    )
    @classmethod
    def _clean_text(cls, v: Any) -> Any:
        return clean_text(v) if isinstance(v, str) else v

    @field_validator("total_price", "unit_price", mode="before")
    @classmethod
    def _parse_money(cls, v: Any) -> Any:
        return parse_money(v) if isinstance(v, str) else v

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, v: Any) -> Any:
        return parse_quantity(v) if isinstance(v, str) else v

    @field_validator("is_channel", mode="before")
    @classmethod
    def _parse_channel(cls, v: Any) -> Any:
        return parse_channel_flag(v) if isinstance(v, str) else v

    @field_validator("cert_years", mode="before")
    @classmethod
    def _parse_years(cls, v: Any) -> Any:
        return parse_cert_years(v) if isinstance(v, (str, int, list)) and not isinstance(v, bool) else v

    @field_validator("bid_start_date", "bid_end_date", "award_date", mode="before")
    @classmethod
    def _parse_date(cls, v: Any) -> Any:
        return parse_date(v) if isinstance(v, str) else v


CANDIDATE_FIELDS: tuple[str, ...] = tuple(ExtractionCandidate.model_fields)


def build_candidate(raw: dict[str, Any]) -> ExtractionCandidate | None:
    """Build a candidate from loosely extracted values.

    Unknown keys are ignored. Returns None when the values cannot form
    a valid candidate (for example, no project name).
    """
    data = {key: value for key, value in raw.items() if key in CANDIDATE_FIELDS}
    try:
        return ExtractionCandidate.model_validate(data)
    except ValidationError as e:
        logger.debug("Discarding candidate %r: %s", data.get("project_name"), e)
        return None
