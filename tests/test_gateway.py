"""
Tests for the SQLAlchemy gateway against a temporary SQLite database.
"""

import httpx
import pytest
from sqlalchemy import select

from certwatch.core.config.models import SourceConfig, SourceKind
from certwatch.core.dedupe import Deduplicator
from certwatch.core.errors import PersistenceError
from certwatch.core.fetch import Fetcher
from certwatch.core.models import NotificationKind, RunStatus, ScrapeRunLog
from certwatch.core.normalize.canonical import ExtractionCandidate
from certwatch.core.notifications import DatabaseNotifier, new_data_event
from certwatch.core.orchestrator import ScrapeOrchestrator
from certwatch.persistence import SourceFilter, SqlAlchemyGateway, dispose_engines, init_db
from certwatch.persistence.db import get_async_session, get_session_factory
from certwatch.persistence.models import Notification

from conftest import ANNOUNCEMENT_HTML

LISTING_URL = "https://www.bidding.csg.cn/zbgg/index.jhtml"
DETAIL_URL = "https://www.bidding.csg.cn/zbgg/2025/1234567.jhtml"


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path}/certwatch.db"


@pytest.fixture
async def gateway(db_url):
    await init_db(db_url)
    yield SqlAlchemyGateway.from_url(db_url)
    await dispose_engines()


class TestSources:
    async def test_upsert_creates_then_updates(self, gateway):
        created = await gateway.upsert_source(SourceConfig(name="csg-zbgg", url=LISTING_URL, defended=True))

        assert created.id is not None
        assert created.url == LISTING_URL
        assert created.kind == SourceKind.LISTING
        assert created.defended is True
        assert created.total_scrape_count == 0

        updated = await gateway.upsert_source(
            SourceConfig(name="csg-zbgg", url=LISTING_URL, enabled=False, schedule_interval_hours=6)
        )
        assert updated.id == created.id
        assert updated.enabled is False
        assert updated.schedule_interval_hours == 6

    async def test_filters(self, gateway):
        enabled = await gateway.upsert_source(SourceConfig(name="a", url=LISTING_URL))
        disabled = await gateway.upsert_source(SourceConfig(name="b", url=DETAIL_URL, kind="single", enabled=False))

        assert [s.id for s in await gateway.get_source_endpoints()] == [enabled.id]
        everything = await gateway.get_source_endpoints(SourceFilter(enabled_only=False))
        assert {s.id for s in everything} == {enabled.id, disabled.id}

        by_id = await gateway.get_source_endpoints(SourceFilter(source_id=disabled.id))
        assert len(by_id) == 1
        assert by_id[0].kind == SourceKind.SINGLE

    async def test_update_stats(self, gateway):
        source = await gateway.upsert_source(SourceConfig(name="a", url=LISTING_URL))

        await gateway.update_source_stats(source.id, {"last_content_hash": "ab" * 32, "total_scrape_count": 3})

        reloaded = (await gateway.get_source_endpoints(SourceFilter(source_id=source.id)))[0]
        assert reloaded.last_content_hash == "ab" * 32
        assert reloaded.total_scrape_count == 3

    async def test_update_rejects_unknown_fields(self, gateway):
        source = await gateway.upsert_source(SourceConfig(name="a", url=LISTING_URL))
        with pytest.raises(PersistenceError):
            await gateway.update_source_stats(source.id, {"url": "https://evil.example.com"})

    async def test_update_missing_source(self, gateway):
        with pytest.raises(PersistenceError, match="not found"):
            await gateway.update_source_stats(404, {"total_scrape_count": 1})


class TestTransactions:
    async def test_insert_is_idempotent(self, gateway):
        source = await gateway.upsert_source(SourceConfig(name="a", url=LISTING_URL))
        candidates = [
            ExtractionCandidate(project_name="2025年绿证采购（一）", total_price=97500, cert_years=["2024", "2025"]),
            ExtractionCandidate(project_name="2025年绿证采购（二）", is_channel=False),
        ]
        dedup = await Deduplicator(gateway).dedupe(candidates, source.id, "user-1")

        assert await gateway.insert_transactions(dedup.new_records) == 2
        assert await gateway.insert_transactions(dedup.new_records) == 0

        hashes = [r.data_hash for r in dedup.new_records]
        assert await gateway.query_existing_hashes(source.id, hashes) == set(hashes)
        assert await gateway.query_existing_hashes(source.id + 1, hashes) == set()

        again = await Deduplicator(gateway).dedupe(candidates, source.id)
        assert again.new_records == []
        assert again.duplicate_count == 2

    async def test_empty_insert(self, gateway):
        assert await gateway.insert_transactions([]) == 0


class TestRunLogs:
    async def test_round_trip(self, gateway):
        source = await gateway.upsert_source(SourceConfig(name="a", url=LISTING_URL))

        await gateway.insert_run_log(ScrapeRunLog(source_id=source.id, status=RunStatus.SUCCESS, new_records=2))
        await gateway.insert_run_log(
            ScrapeRunLog(
                source_id=source.id,
                status=RunStatus.ERROR,
                message="HTTP 500",
                error_detail={"type": "FetchError", "message": "HTTP 500", "context": {"status_code": 500}},
            )
        )

        logs = await gateway.recent_run_logs(source.id)
        assert [log.status for log in logs] == [RunStatus.ERROR, RunStatus.SUCCESS]
        assert logs[0].error_detail["context"]["status_code"] == 500
        assert logs[1].new_records == 2


class TestDatabaseNotifier:
    async def test_stores_event(self, gateway, db_url):
        source = await gateway.upsert_source(SourceConfig(name="a", url=LISTING_URL, owner_id="user-1"))

        await DatabaseNotifier(get_session_factory(db_url)).notify(new_data_event(source, 3, 1200))

        async with get_async_session(db_url) as session:
            stored = (await session.execute(select(Notification))).scalar_one()
        assert stored.kind == NotificationKind.NEW_DATA.value
        assert stored.owner_id == "user-1"
        assert stored.title == "抓取成功：发现 3 条新数据"
        assert stored.metadata_json == {
            "urlId": source.id,
            "url": LISTING_URL,
            "newRecordsCount": 3,
            "scrapeDuration": 1200,
        }


class TestCycleAgainstDatabase:
    async def test_cycle_persists_everything(self, gateway, db_url, app_config, fake_sleep):
        source = await gateway.upsert_source(SourceConfig(name="detail", url=DETAIL_URL, kind="single"))
        page = ANNOUNCEMENT_HTML.format(name="2025年绿证采购项目（第一批）")
        fetcher = Fetcher(
            app_config.fetch,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text=page)),
            sleep=fake_sleep,
        )
        notifier = DatabaseNotifier(get_session_factory(db_url))

        async with ScrapeOrchestrator(app_config, gateway, fetcher=fetcher, notifier=notifier) as orchestrator:
            first = await orchestrator.run_cycle()
            second = await orchestrator.run_cycle()

        assert first[0].new_records == 1
        assert second[0].message == "Content unchanged"

        reloaded = (await gateway.get_source_endpoints(SourceFilter(source_id=source.id)))[0]
        assert reloaded.total_scrape_count == 2
        assert reloaded.total_new_records == 1
        assert reloaded.last_content_hash is not None
        assert len(await gateway.recent_run_logs(source.id)) == 2
