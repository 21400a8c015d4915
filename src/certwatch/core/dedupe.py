"""
Per-record deduplication against stored transactions.

Records are identified by their data hash within a source. Existing
rows are never updated: a candidate whose hash is already stored is a
duplicate, whatever else may differ.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .models import TransactionRecord, utcnow
from .normalize.canonical import ExtractionCandidate
from .normalize.fingerprint import compute_data_hash

if TYPE_CHECKING:
    from ..persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


@dataclass
class DedupeResult:
    """Outcome of classifying a batch of candidates."""

    new_records: list[TransactionRecord] = field(default_factory=list)
    duplicate_count: int = 0


class Deduplicator:
    """Classify candidates as new or already stored."""

    def __init__(self, gateway: "PersistenceGateway"):
        self.gateway = gateway

    async def dedupe(
        self,
        candidates: list[ExtractionCandidate],
        source_id: int,
        owner_id: str | None = None,
    ) -> DedupeResult:
        """Split candidates into new records and duplicates.

        Repeats within the batch count as duplicates, and so do hashes
        already stored for the source.

        Args:
            candidates: Extracted candidates for one source
            source_id: Owning source
            owner_id: Owning user, copied onto new records

        Returns:
            DedupeResult with records in first-seen order
        """
        result = DedupeResult()
        if not candidates:
            return result

        unique: dict[str, ExtractionCandidate] = {}
        for candidate in candidates:
            data_hash = compute_data_hash(candidate)
            if data_hash in unique:
                result.duplicate_count += 1
                continue
            unique[data_hash] = candidate

        existing = await self.gateway.query_existing_hashes(source_id, list(unique))

        now = utcnow()
        for data_hash, candidate in unique.items():
            if data_hash in existing:
                result.duplicate_count += 1
                continue
            result.new_records.append(
                TransactionRecord(
                    candidate=candidate,
                    source_id=source_id,
                    owner_id=owner_id,
                    data_hash=data_hash,
                    first_seen_at=now,
                    last_updated_at=now,
                )
            )

        logger.debug(
            "Source %s: %d new, %d duplicate of %d candidates",
            source_id,
            len(result.new_records),
            result.duplicate_count,
            len(candidates),
        )
        return result
