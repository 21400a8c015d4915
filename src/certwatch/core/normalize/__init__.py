"""Content normalization, value parsing and fingerprinting."""

from .canonical import CANDIDATE_FIELDS, ExtractionCandidate, build_candidate
from .content import html_to_text, looks_like_html, normalize
from .fingerprint import ChangeDetector, ChangeResult, compute_data_hash, content_fingerprint
from .parsing import (
    classify_channel,
    parse_cert_years,
    parse_date,
    parse_money,
    parse_quantity,
)

__all__ = [
    "CANDIDATE_FIELDS",
    "ChangeDetector",
    "ChangeResult",
    "ExtractionCandidate",
    "build_candidate",
    "classify_channel",
    "compute_data_hash",
    "content_fingerprint",
    "html_to_text",
    "looks_like_html",
    "normalize",
    "parse_cert_years",
    "parse_date",
    "parse_money",
    "parse_quantity",
]
