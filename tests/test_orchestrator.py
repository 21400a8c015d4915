"""
End-to-end cycle tests for the scrape orchestrator.

Pages are served by an httpx MockTransport and stored through the
in-memory gateway, so every step from fetch to notification runs.
"""

import httpx
import pytest

from certwatch.core.config.models import SourceKind
from certwatch.core.errors import CertwatchError, PersistenceError
from certwatch.core.fetch import Fetcher
from certwatch.core.models import NotificationKind, RunStatus
from certwatch.core.orchestrator import ScrapeOrchestrator

from conftest import (
    ANNOUNCEMENT_HTML,
    TABLE_HTML,
    InMemoryGateway,
    RecordingNotifier,
    listing_html,
    make_source,
)

DETAIL_URL = "https://www.bidding.csg.cn/zbgg/2025/1234567.jhtml"
LISTING_URL = "https://www.bidding.csg.cn/zbgg/index.jhtml"
EXTRA_ROW = (
    "<tr><td>3</td><td>2025年绿证采购（三）</td><td>海南电网</td><td>某光伏公司</td>"
    "<td>500</td><td>8</td><td>4000</td><td>否</td><td>2025</td></tr>\n</table>"
)


class Site:
    """Mutable URL -> (status, body) map served through a mock transport."""

    def __init__(self, pages=None):
        self.pages = dict(pages or {})
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(str(request.url))
        status, body = self.pages.get(str(request.url), (404, "not found"))
        return httpx.Response(status, text=body)


@pytest.fixture
def site():
    return Site()


@pytest.fixture
def make_orchestrator(app_config, notifier, fake_sleep, site):
    def factory(gateway, notifier=notifier):
        fetcher = Fetcher(app_config.fetch, transport=httpx.MockTransport(site.handler), sleep=fake_sleep)
        return ScrapeOrchestrator(app_config, gateway, fetcher=fetcher, notifier=notifier, sleep=fake_sleep)

    return factory


def announcement(name="2025年绿证采购项目（第一批）"):
    return ANNOUNCEMENT_HTML.format(name=name)


class TestSingleSource:
    async def test_new_data(self, make_orchestrator, site, notifier):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source()])

        logs = await make_orchestrator(gateway).run_cycle()

        assert len(logs) == 1
        log = logs[0]
        assert log.status == RunStatus.SUCCESS
        assert log.records_seen == 1
        assert log.new_records == 1
        assert log.duplicate_records == 0
        assert log.error_detail is None
        assert gateway.run_logs == logs

        record = next(iter(gateway.transactions.values()))
        assert record.candidate.procurement_number == "CSG2025001"
        assert record.owner_id == "user-1"

        assert len(notifier.events) == 1
        event = notifier.events[0]
        assert event.kind == NotificationKind.NEW_DATA
        assert event.title == "抓取成功：发现 1 条新数据"
        assert event.metadata["urlId"] == 1
        assert event.metadata["newRecordsCount"] == 1

        source = gateway.sources[1]
        assert source.last_content_hash is not None
        assert source.total_scrape_count == 1
        assert source.total_new_records == 1
        assert source.last_scrape_status == "success"

    async def test_unchanged_page_is_idempotent(self, make_orchestrator, site, notifier):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source()])
        orchestrator = make_orchestrator(gateway)

        await orchestrator.run_cycle()
        second = (await orchestrator.run_cycle())[0]

        assert second.status == RunStatus.SUCCESS
        assert second.message == "Content unchanged"
        assert second.new_records == 0
        assert len(gateway.transactions) == 1
        assert len(notifier.events) == 1
        assert gateway.sources[1].total_scrape_count == 2

    async def test_changed_page_counts_duplicates(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (200, TABLE_HTML)
        gateway = InMemoryGateway([make_source()])
        orchestrator = make_orchestrator(gateway)

        first = (await orchestrator.run_cycle())[0]
        site.pages[DETAIL_URL] = (200, TABLE_HTML.replace("</table>", EXTRA_ROW))
        second = (await orchestrator.run_cycle())[0]

        assert first.new_records == 2
        assert second.records_seen == 3
        assert second.new_records == 1
        assert second.duplicate_records == 2
        assert len(gateway.transactions) == 3

    async def test_irrelevant_page(self, make_orchestrator, site, notifier):
        site.pages[DETAIL_URL] = (200, "<html><body><p>关于开展电力市场交易的通知</p></body></html>")
        gateway = InMemoryGateway([make_source()])

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.SUCCESS
        assert log.records_seen == 0
        assert notifier.events == []
        assert gateway.sources[1].last_content_hash is not None

    async def test_unstructured_page_is_an_extraction_error(self, make_orchestrator, site, notifier):
        site.pages[DETAIL_URL] = (200, "<html><body><p>绿证市场动态，敬请关注后续公告</p></body></html>")
        gateway = InMemoryGateway([make_source()])

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.ERROR
        assert log.error_detail["type"] == "ExtractionError"
        assert notifier.events[0].kind == NotificationKind.SCRAPE_ERROR
        assert gateway.sources[1].last_content_hash is None


class TestFailures:
    async def test_failing_source_is_isolated(self, make_orchestrator, site, notifier):
        broken_url = "https://www.bidding.csg.cn/zbgg/2025/7654321.jhtml"
        site.pages[DETAIL_URL] = (200, announcement())
        site.pages[broken_url] = (500, "server error")
        gateway = InMemoryGateway([make_source(1), make_source(2, url=broken_url)])

        logs = await make_orchestrator(gateway).run_cycle()

        by_source = {log.source_id: log for log in logs}
        assert by_source[1].status == RunStatus.SUCCESS
        assert by_source[1].new_records == 1
        assert by_source[2].status == RunStatus.ERROR
        assert by_source[2].error_detail["type"] == "FetchError"
        assert by_source[2].error_detail["context"]["all_channels_exhausted"] is True

        kinds = sorted(event.kind.value for event in notifier.events)
        assert kinds == ["new_data", "scrape_error"]
        error_event = next(e for e in notifier.events if e.kind == NotificationKind.SCRAPE_ERROR)
        assert error_event.title == "抓取失败"
        assert error_event.message.startswith(f"从 {broken_url} 抓取数据失败")

        broken = gateway.sources[2]
        assert broken.consecutive_failures == 1
        assert broken.last_scrape_status == "error"
        assert broken.last_error_message

    async def test_consecutive_failures_reset_on_success(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (500, "server error")
        gateway = InMemoryGateway([make_source()])
        orchestrator = make_orchestrator(gateway)

        await orchestrator.run_cycle()
        await orchestrator.run_cycle()
        assert gateway.sources[1].consecutive_failures == 2

        site.pages[DETAIL_URL] = (200, announcement())
        await orchestrator.run_cycle()
        assert gateway.sources[1].consecutive_failures == 0
        assert gateway.sources[1].last_error_message is None

    async def test_notifier_failure_is_swallowed(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source()])

        logs = await make_orchestrator(gateway, notifier=RecordingNotifier(fail=True)).run_cycle()

        assert logs[0].status == RunStatus.SUCCESS
        assert logs[0].new_records == 1

    async def test_persistence_error(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source()])
        gateway.fail_inserts = True

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.ERROR
        assert log.error_detail["type"] == "PersistenceError"
        assert gateway.sources[1].last_content_hash is None

    async def test_unwritable_run_log_does_not_stop_cycle(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source()])

        async def broken_insert(log):
            raise PersistenceError("disk full")

        gateway.insert_run_log = broken_insert

        assert await make_orchestrator(gateway).run_cycle() == []


class TestListingSource:
    def listing_source(self):
        return make_source(url=LISTING_URL, kind=SourceKind.LISTING)

    async def test_partial_failure(self, make_orchestrator, site, fake_sleep):
        site.pages[LISTING_URL] = (200, listing_html("/zbgg/2025/1000001.jhtml", "/zbgg/2025/1000002.jhtml"))
        site.pages["https://www.bidding.csg.cn/zbgg/2025/1000001.jhtml"] = (200, announcement())
        gateway = InMemoryGateway([self.listing_source()])

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.PARTIAL
        assert log.new_records == 1
        assert log.message == "1 of 2 detail links failed"
        assert gateway.sources[1].last_content_hash is None
        assert gateway.sources[1].consecutive_failures == 0
        assert fake_sleep.calls
        assert all(0.5 <= delay <= 2.0 for delay in fake_sleep.calls)

        record = next(iter(gateway.transactions.values()))
        assert record.candidate.detail_link == "https://www.bidding.csg.cn/zbgg/2025/1000001.jhtml"

    async def test_all_details_fail(self, make_orchestrator, site):
        site.pages[LISTING_URL] = (200, listing_html("/zbgg/2025/1000001.jhtml", "/zbgg/2025/1000002.jhtml"))
        gateway = InMemoryGateway([self.listing_source()])

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.ERROR
        assert log.message == "All 2 detail links failed"

    async def test_irrelevant_details_are_skipped(self, make_orchestrator, site):
        site.pages[LISTING_URL] = (200, listing_html("/zbgg/2025/1000001.jhtml", "/zbgg/2025/1000002.jhtml"))
        site.pages["https://www.bidding.csg.cn/zbgg/2025/1000001.jhtml"] = (200, announcement())
        site.pages["https://www.bidding.csg.cn/zbgg/2025/1000002.jhtml"] = (
            200,
            "<html><body><p>关于配电网改造项目的招标公告</p></body></html>",
        )
        gateway = InMemoryGateway([self.listing_source()])

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.SUCCESS
        assert log.new_records == 1
        assert gateway.sources[1].last_content_hash is not None

    async def test_listing_without_links_is_extracted_directly(self, make_orchestrator, site):
        page = TABLE_HTML.replace('<a href="/zbhxr/2025/1000001.jhtml">', "").replace("</a>", "")
        site.pages[LISTING_URL] = (200, page)
        gateway = InMemoryGateway([self.listing_source()])

        log = (await make_orchestrator(gateway).run_cycle())[0]

        assert log.status == RunStatus.SUCCESS
        assert log.new_records == 2


class TestSourceSelection:
    async def test_disabled_sources_skipped(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source(enabled=False)])

        assert await make_orchestrator(gateway).run_cycle() == []

    async def test_requested_source_runs_when_disabled(self, make_orchestrator, site):
        site.pages[DETAIL_URL] = (200, announcement())
        gateway = InMemoryGateway([make_source(enabled=False)])

        logs = await make_orchestrator(gateway).run_cycle(source_id=1)
        assert logs[0].new_records == 1

    async def test_unknown_source(self, make_orchestrator):
        with pytest.raises(CertwatchError, match="not found"):
            await make_orchestrator(InMemoryGateway()).run_cycle(source_id=99)
