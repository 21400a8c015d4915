"""
Shared fixtures: in-memory gateway, recording notifier, fake sleep and
sample pages.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Sequence

import pytest

from certwatch.core.config.models import (
    AppConfig,
    FetchConfig,
    PolitenessConfig,
    SourceKind,
)
from certwatch.core.errors import PersistenceError
from certwatch.core.models import NotificationEvent, ScrapeRunLog, SourceEndpoint, TransactionRecord
from certwatch.core.notifications import Notifier
from certwatch.persistence.gateway import PersistenceGateway, SourceFilter


class InMemoryGateway(PersistenceGateway):
    """Dict-backed gateway with the same uniqueness rule as the database."""

    def __init__(self, sources: Sequence[SourceEndpoint] = ()):
        self.sources: dict[int, SourceEndpoint] = {s.id: s for s in sources}
        self.transactions: dict[tuple[int, str], TransactionRecord] = {}
        self.run_logs: list[ScrapeRunLog] = []
        self.fail_inserts = False

    async def get_source_endpoints(self, filter: SourceFilter | None = None) -> list[SourceEndpoint]:
        filter = filter or SourceFilter()
        if filter.source_id is not None:
            found = self.sources.get(filter.source_id)
            return [replace(found)] if found else []
        return [
            replace(source)
            for source in self.sources.values()
            if source.enabled or not filter.enabled_only
        ]

    async def update_source_stats(self, source_id: int, patch: dict[str, Any]) -> None:
        source = self.sources[source_id]
        for key, value in patch.items():
            setattr(source, key, value)

    async def query_existing_hashes(self, source_id: int, hashes: Sequence[str]) -> set[str]:
        return {h for h in hashes if (source_id, h) in self.transactions}

    async def insert_transactions(self, records: Sequence[TransactionRecord]) -> int:
        if self.fail_inserts:
            raise PersistenceError("database is locked")
        inserted = 0
        for record in records:
            key = (record.source_id, record.data_hash)
            if key not in self.transactions:
                self.transactions[key] = record
                inserted += 1
        return inserted

    async def insert_run_log(self, log: ScrapeRunLog) -> None:
        self.run_logs.append(log)


class RecordingNotifier(Notifier):
    def __init__(self, fail: bool = False):
        self.events: list[NotificationEvent] = []
        self.fail = fail

    async def notify(self, event: NotificationEvent) -> None:
        if self.fail:
            raise RuntimeError("notification service unavailable")
        self.events.append(event)


class FakeSleep:
    """Records requested delays instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> FakeSleep:
    return FakeSleep()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def app_config() -> AppConfig:
    """Config with no proxy and no retries so failures surface quickly."""
    return AppConfig(
        fetch=FetchConfig(proxy_enabled=False, max_retries=0, min_content_length=10),
        politeness=PolitenessConfig(min_delay_ms=500, max_delay_ms=2000),
    )


def make_source(
    source_id: int = 1,
    url: str = "https://www.bidding.csg.cn/zbgg/2025/1234567.jhtml",
    kind: SourceKind = SourceKind.SINGLE,
    **kwargs: Any,
) -> SourceEndpoint:
    return SourceEndpoint(id=source_id, url=url, name=f"source-{source_id}", kind=kind, owner_id="user-1", **kwargs)


# =============================================================================
# Sample pages
# =============================================================================

ANNOUNCEMENT_TEXT = """\
# 2025年绿证采购公告
采购编号: ABC123
项目名称: 2025年绿证采购
采购人: 广东电网有限责任公司
项目概况: 现拟采购2480张绿证，共计16120元，单张限价为6.5元。
"""

ANNOUNCEMENT_HTML = """\
<html>
<head><title>采购公告</title><script>var tracker = 1;</script></head>
<body>
  <div class="content">
    <p>采购编号：CSG2025001</p>
    <p>项目名称：{name}</p>
    <p>采购人：广东电网有限责任公司</p>
    <p>项目概况：现拟采购2480张绿证，共计16120元，单张限价为6.5元。</p>
    <p>报价时间：2025年3月1日 09:00 至 2025年3月10日</p>
    <p>本项目为跨省绿证通道交易。</p>
  </div>
</body>
</html>
"""

TABLE_HTML = """\
<html><body>
<h2>绿证交易结果公示</h2>
<table>
  <tr><th>序号</th><th>项目名称</th><th>招标单位</th><th>中标单位</th><th>数量（张）</th>
      <th>单价（元/张）</th><th>总价（元）</th><th>是否通道</th><th>年份</th></tr>
  <tr><td>1</td><td><a href="/zbhxr/2025/1000001.jhtml">2025年绿证采购（一）</a></td><td>广东电网</td>
      <td>某新能源公司</td><td>1.5万</td><td>6.5</td><td>9.75万</td><td>是</td><td>2024/2025</td></tr>
  <tr><td>2</td><td>2025年绿证采购（二）</td><td>广西电网</td>
      <td>某风电公司</td><td>3,000</td><td>7</td><td>21,000.00</td><td>否</td><td>2025</td></tr>
</table>
</body></html>
"""


def listing_html(*hrefs: str) -> str:
    items = "\n".join(f'<li><a href="{href}">2025年绿证采购项目 {i}</a></li>' for i, href in enumerate(hrefs))
    return f"<html><body><ul class='list'>{items}</ul><a href='/zbgg/index_2.jhtml'>下一页</a></body></html>"


@pytest.fixture
def announcement_html() -> str:
    return ANNOUNCEMENT_HTML.format(name="2025年绿证采购项目（第一批）")
