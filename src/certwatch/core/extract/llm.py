"""
Model-based extraction through a chat-completions endpoint.

The model is asked for a JSON array of objects carrying every
candidate field. Its reply is treated as untrusted input: the first
top-level array is located, parsed, and every object is checked for
the exact key set and JSON types before it becomes a candidate. Any
violation is an ExtractionError; there is no repair and no fallback.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx
import orjson
from pydantic import ValidationError

from ..config.models import LLMConfig
from ..errors import ExtractionError
from ..normalize.canonical import CANDIDATE_FIELDS, ExtractionCandidate
from ..normalize.content import normalize
from ..normalize.parsing import is_null_marker, parse_money
from .base import ExtractionResult

logger = logging.getLogger(__name__)

SYSTEM_INSTRUCTION = """你是绿证（绿色电力证书）招标公告信息抽取助手。
从用户提供的页面内容中提取每一条绿证交易/招标记录，只输出一个 JSON 数组，不要输出其他文字。
数组中每个对象必须且只能包含以下 14 个键（缺失的值用 null）：
- project_name: 项目名称（字符串，必填）
- bidding_unit: 招标单位/采购人
- bidder_unit: 投标单位
- winning_unit: 中标单位/成交供应商
- total_price: 总价（元，数字）
- quantity: 数量（张，数字）
- unit_price: 单价（元/张，数字）
- detail_link: 详情链接
- is_channel: 是否通道绿证（true/false/null；出现"非通道"为 false）
- cert_years: 绿证年份（字符串数组，如 ["2024","2025"]）
- bid_start_date: 投标开始日期（YYYY-MM-DD）
- bid_end_date: 投标截止日期（YYYY-MM-DD）
- award_date: 中标日期（YYYY-MM-DD）
- procurement_number: 采购编号
如果没有任何记录，输出 []。"""

_TEXT = (str, type(None))
_NUMBER = (int, float, str, type(None))

# JSON types accepted per key; bools are rejected for numeric fields separately
FIELD_TYPES: dict[str, tuple[type, ...]] = {
    "project_name": (str,),
    "bidding_unit": _TEXT,
    "bidder_unit": _TEXT,
    "winning_unit": _TEXT,
    "total_price": _NUMBER,
    "quantity": _NUMBER,
    "unit_price": _NUMBER,
    "detail_link": _TEXT,
    "is_channel": (bool, type(None)),
    "cert_years": (list, str, type(None)),
    "bid_start_date": _TEXT,
    "bid_end_date": _TEXT,
    "award_date": _TEXT,
    "procurement_number": _TEXT,
}


def find_json_array(text: str) -> str | None:
    """Return the first top-level ``[...]`` span in text.

    Brackets inside JSON strings are ignored. Returns None when no
    balanced array exists.
    """
    start = text.find("[")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue
            if char == '"':
                in_string = True
            elif char == "[":
                depth += 1
            elif char == "]":
                depth -= 1
                if depth == 0:
                    return text[start : index + 1]
        # Unbalanced from this opening bracket; try the next one
        start = text.find("[", start + 1)
    return None


def validate_item(item: Any, index: int) -> dict[str, Any]:
    """Check one model object against the candidate key set and types.

    Raises:
        ExtractionError: On any missing, extra or mistyped key, or a
            numeric field holding text that is not an amount
    """
    if not isinstance(item, dict):
        raise ExtractionError(
            f"Model item {index} is not an object",
            context={"index": index, "type": type(item).__name__},
        )

    keys = set(item)
    expected = set(CANDIDATE_FIELDS)
    if keys != expected:
        raise ExtractionError(
            f"Model item {index} has the wrong key set",
            context={
                "index": index,
                "missing": sorted(expected - keys),
                "unexpected": sorted(keys - expected),
            },
        )

    for key, allowed in FIELD_TYPES.items():
        value = item[key]
        mistyped = not isinstance(value, allowed)
        if _NUMBER is allowed and isinstance(value, bool):
            mistyped = True
        if key == "cert_years" and isinstance(value, list):
            mistyped = not all(isinstance(v, (str, int)) and not isinstance(v, bool) for v in value)
        if mistyped:
            raise ExtractionError(
                f"Model item {index} has an invalid value for {key}",
                context={"index": index, "field": key, "type": type(value).__name__},
            )
        if _NUMBER is allowed and isinstance(value, str) and not is_null_marker(value) and parse_money(value) is None:
            raise ExtractionError(
                f"Model item {index} has a non-numeric {key}",
                context={"index": index, "field": key, "value": value},
            )
    return item


def parse_model_output(text: str) -> list[ExtractionCandidate]:
    """Parse and strictly validate a model reply into candidates.

    Raises:
        ExtractionError: When the reply holds no valid candidate array
    """
    span = find_json_array(text)
    if span is None:
        raise ExtractionError("Model reply contains no JSON array", context={"reply": text[:200]})

    try:
        items = orjson.loads(span)
    except orjson.JSONDecodeError as e:
        raise ExtractionError(f"Model reply is not valid JSON: {e}", context={"reply": span[:200]}) from e

    candidates = []
    for index, item in enumerate(items):
        data = validate_item(item, index)
        try:
            candidates.append(ExtractionCandidate.model_validate(data))
        except ValidationError as e:
            raise ExtractionError(
                f"Model item {index} failed validation",
                context={"index": index, "errors": e.errors(include_url=False, include_input=False)},
            ) from e
    return candidates


class LLMExtractor:
    """Extract candidates by asking a chat-completions model.

    Unlike the deterministic strategies this one is async and raises
    instead of returning an empty result.
    """

    def __init__(
        self,
        config: LLMConfig,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(transport=transport)

    @property
    def name(self) -> str:
        return "llm"

    @property
    def endpoint(self) -> str:
        return self.config.base_url.rstrip("/") + "/chat/completions"

    def build_payload(self, content: str) -> dict[str, Any]:
        """Request body for one page."""
        body = normalize(content, for_model=True)[: self.config.max_input_chars]
        return {
            "model": self.config.model,
            "temperature": self.config.temperature,
            "messages": [
                {"role": "system", "content": SYSTEM_INSTRUCTION},
                {"role": "user", "content": body},
            ],
        }

    async def _complete(self, payload: dict[str, Any]) -> str:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        try:
            response = await self._client.post(
                self.endpoint,
                content=orjson.dumps(payload),
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise ExtractionError(f"Model request failed: {e}", context={"endpoint": self.endpoint}) from e

        if response.status_code >= 400:
            raise ExtractionError(
                f"Model endpoint returned HTTP {response.status_code}",
                context={"endpoint": self.endpoint, "status_code": response.status_code},
            )

        try:
            return response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ExtractionError("Unexpected completion response shape") from e

    async def extract(self, content: str, url: str | None = None) -> ExtractionResult:
        """Extract candidates from content.

        Args:
            content: Normalized page content
            url: Page URL, used when the model leaves detail_link empty

        Returns:
            ExtractionResult with the validated candidates

        Raises:
            ExtractionError: On timeout, transport failure or invalid output
        """
        payload = self.build_payload(content)
        try:
            reply = await asyncio.wait_for(self._complete(payload), timeout=self.config.timeout_seconds)
        except asyncio.TimeoutError as e:
            raise ExtractionError(
                f"Model call exceeded {self.config.timeout_seconds}s",
                context={"endpoint": self.endpoint, "url": url},
            ) from e

        candidates = parse_model_output(reply)
        if url:
            candidates = [
                c if c.detail_link else c.model_copy(update={"detail_link": url})
                for c in candidates
            ]

        logger.info("Model returned %d candidates for %s", len(candidates), url)
        return ExtractionResult(candidates=candidates, extraction_method=self.name)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
