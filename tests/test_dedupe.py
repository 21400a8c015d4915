"""
Tests for per-record deduplication.
"""

from certwatch.core.dedupe import Deduplicator
from certwatch.core.models import TransactionRecord
from certwatch.core.normalize.canonical import ExtractionCandidate
from certwatch.core.normalize.fingerprint import compute_data_hash

from conftest import InMemoryGateway, make_source


def candidate(name: str, **fields) -> ExtractionCandidate:
    return ExtractionCandidate(project_name=name, **fields)


class TestDeduplicator:
    async def test_all_new(self):
        gateway = InMemoryGateway([make_source()])
        result = await Deduplicator(gateway).dedupe([candidate("A"), candidate("B")], 1, "user-1")

        assert [r.candidate.project_name for r in result.new_records] == ["A", "B"]
        assert result.duplicate_count == 0
        assert all(r.owner_id == "user-1" for r in result.new_records)
        assert all(r.first_seen_at == r.last_updated_at for r in result.new_records)

    async def test_repeats_within_batch(self):
        gateway = InMemoryGateway([make_source()])
        result = await Deduplicator(gateway).dedupe([candidate("A"), candidate("A")], 1)

        assert len(result.new_records) == 1
        assert result.duplicate_count == 1

    async def test_stored_hashes_are_duplicates(self):
        gateway = InMemoryGateway([make_source()])
        stored = candidate("A", total_price=100)
        data_hash = compute_data_hash(stored)
        gateway.transactions[(1, data_hash)] = TransactionRecord(stored, 1, None, data_hash)

        # Differs only in a field outside the hash
        result = await Deduplicator(gateway).dedupe([candidate("A", total_price=100, quantity=5), candidate("B")], 1)

        assert [r.candidate.project_name for r in result.new_records] == ["B"]
        assert result.duplicate_count == 1

    async def test_hashes_are_scoped_per_source(self):
        gateway = InMemoryGateway([make_source(1), make_source(2)])
        stored = candidate("A")
        data_hash = compute_data_hash(stored)
        gateway.transactions[(1, data_hash)] = TransactionRecord(stored, 1, None, data_hash)

        result = await Deduplicator(gateway).dedupe([candidate("A")], 2)
        assert len(result.new_records) == 1

    async def test_empty_batch(self):
        result = await Deduplicator(InMemoryGateway()).dedupe([], 1)
        assert result.new_records == []
        assert result.duplicate_count == 0
