"""
Fingerprinting for change detection and record deduplication.

Two digests live here: the content fingerprint of a whole normalized
page, compared against the source's last stored value, and the data
hash of a single candidate, used as the storage dedup key.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .canonical import ExtractionCandidate

if TYPE_CHECKING:
    from ..models import SourceEndpoint
    from ...persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)

# Fields that identify a transaction; order is part of the hash
DATA_HASH_FIELDS = (
    "project_name",
    "bidding_unit",
    "winning_unit",
    "total_price",
    "award_date",
    "bid_start_date",
    "detail_link",
)


def content_fingerprint(normalized_text: str) -> str:
    """SHA-256 hex digest of normalized page content."""
    return hashlib.sha256(normalized_text.encode("utf-8")).hexdigest()


def _canonical_value(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return f"{value:.6f}".rstrip("0").rstrip(".")
    return str(value)


def compute_data_hash(candidate: ExtractionCandidate) -> str:
    """Compute the deterministic dedup key for a candidate.

    Args:
        candidate: Extracted candidate

    Returns:
        64-character hex digest over the identifying fields
    """
    parts = [_canonical_value(getattr(candidate, name)) for name in DATA_HASH_FIELDS]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


@dataclass
class ChangeResult:
    """Result of comparing page content to the stored fingerprint."""

    changed: bool
    new_hash: str


class ChangeDetector:
    """Short-circuits cycles whose page content has not changed.

    The stored hash is only replaced through commit(), which the
    orchestrator calls after a fully successful extract and persist.
    """

    def __init__(self, gateway: "PersistenceGateway"):
        self.gateway = gateway

    def has_changed(self, source: "SourceEndpoint", normalized_text: str) -> ChangeResult:
        new_hash = content_fingerprint(normalized_text)
        changed = new_hash != source.last_content_hash
        if not changed:
            logger.debug("Content unchanged for source %s (%s)", source.id, new_hash[:12])
        return ChangeResult(changed=changed, new_hash=new_hash)

    async def commit(self, source: "SourceEndpoint", new_hash: str) -> None:
        """Persist the new fingerprint for a source."""
        await self.gateway.update_source_stats(source.id, {"last_content_hash": new_hash})
        source.last_content_hash = new_hash
