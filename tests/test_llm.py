"""
Tests for the model extractor: reply parsing, strict validation and
transport failures.
"""

import asyncio
import json

import httpx
import pytest

from certwatch.core.config.models import ExtractionConfig, ExtractionMode, LLMConfig
from certwatch.core.errors import ExtractionError
from certwatch.core.extract import ExtractionPipeline, LLMExtractor, parse_model_output
from certwatch.core.extract.llm import find_json_array
from certwatch.core.normalize.canonical import CANDIDATE_FIELDS

PAGE_URL = "https://www.bidding.csg.cn/zbgg/2025/1234567.jhtml"


def model_item(**overrides):
    item = {name: None for name in CANDIDATE_FIELDS}
    item["project_name"] = "2025年绿证采购"
    item.update(overrides)
    return item


def completion(content: str) -> dict:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


def make_extractor(handler, **config) -> LLMExtractor:
    llm_config = LLMConfig(enabled=True, api_key="sk-test", base_url="https://llm.example.com/v1", **config)
    return LLMExtractor(llm_config, transport=httpx.MockTransport(handler))


class TestParseModelOutput:
    def test_fenced_json(self):
        reply = "以下是结果：\n```json\n" + json.dumps([model_item(total_price="1.5万元")], ensure_ascii=False) + "\n```"
        candidates = parse_model_output(reply)

        assert len(candidates) == 1
        assert candidates[0].project_name == "2025年绿证采购"
        assert candidates[0].total_price == 15000

    def test_empty_array(self):
        assert parse_model_output("[]") == []

    def test_missing_key(self):
        item = model_item()
        del item["award_date"]
        with pytest.raises(ExtractionError) as exc_info:
            parse_model_output(json.dumps([item]))
        assert exc_info.value.context["missing"] == ["award_date"]

    def test_extra_key(self):
        with pytest.raises(ExtractionError) as exc_info:
            parse_model_output(json.dumps([model_item(remarks="x")]))
        assert exc_info.value.context["unexpected"] == ["remarks"]

    def test_wrong_type(self):
        with pytest.raises(ExtractionError) as exc_info:
            parse_model_output(json.dumps([model_item(is_channel="yes")]))
        assert exc_info.value.context["field"] == "is_channel"

    def test_bool_is_not_a_number(self):
        with pytest.raises(ExtractionError):
            parse_model_output(json.dumps([model_item(quantity=True)]))

    def test_non_numeric_text_in_number_field(self):
        item = model_item(total_price="待定", quantity="很多")
        with pytest.raises(ExtractionError) as exc_info:
            parse_model_output(json.dumps([item], ensure_ascii=False))
        assert exc_info.value.context["field"] == "total_price"
        assert exc_info.value.context["value"] == "待定"

    def test_null_marker_in_number_field(self):
        candidates = parse_model_output(json.dumps([model_item(unit_price="无", quantity="2480张")], ensure_ascii=False))

        assert candidates[0].unit_price is None
        assert candidates[0].quantity == 2480

    def test_null_project_name(self):
        with pytest.raises(ExtractionError):
            parse_model_output(json.dumps([model_item(project_name=None)]))

    def test_no_array(self):
        with pytest.raises(ExtractionError):
            parse_model_output("没有找到相关记录")

    def test_invalid_json(self):
        with pytest.raises(ExtractionError):
            parse_model_output("[{'project_name': 'x'}]")


class TestFindJsonArray:
    def test_bracket_inside_string(self):
        text = 'prefix [{"project_name": "a]b"}] suffix [1]'
        assert find_json_array(text) == '[{"project_name": "a]b"}]'

    def test_unbalanced(self):
        assert find_json_array("[1, 2") is None


class TestLLMExtractor:
    async def test_successful_call(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion(json.dumps([model_item(quantity=2480)])))

        extractor = make_extractor(handler)
        result = await extractor.extract('<div class="x"><p>绿证</p></div>', PAGE_URL)
        await extractor.close()

        assert seen["url"] == "https://llm.example.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert "<div><p>绿证</p></div>" in seen["body"]["messages"][1]["content"]
        assert result.extraction_method == "llm"
        assert result.candidates[0].quantity == 2480
        assert result.candidates[0].detail_link == PAGE_URL

    async def test_input_truncated(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json=completion("[]"))

        extractor = make_extractor(handler, max_input_chars=1000)
        await extractor.extract("绿" * 5000, PAGE_URL)

        assert len(seen["body"]["messages"][1]["content"]) == 1000

    async def test_http_error(self):
        extractor = make_extractor(lambda request: httpx.Response(500, text="upstream error"))
        with pytest.raises(ExtractionError) as exc_info:
            await extractor.extract("绿证", PAGE_URL)
        assert exc_info.value.context["status_code"] == 500

    async def test_unexpected_shape(self):
        extractor = make_extractor(lambda request: httpx.Response(200, json={"result": "ok"}))
        with pytest.raises(ExtractionError):
            await extractor.extract("绿证", PAGE_URL)

    async def test_timeout(self):
        async def handler(request):
            await asyncio.sleep(1)
            return httpx.Response(200, json=completion("[]"))

        extractor = make_extractor(handler, timeout_seconds=0.05)
        with pytest.raises(ExtractionError, match="exceeded"):
            await extractor.extract("绿证", PAGE_URL)


class TestPipelineWithModel:
    async def test_llm_mode_does_not_fall_back(self):
        extractor = make_extractor(lambda request: httpx.Response(200, json=completion("no data")))
        pipeline = ExtractionPipeline(llm=extractor, config=ExtractionConfig(mode=ExtractionMode.LLM))

        announcement = "采购编号: ABC123\n项目名称: 2025年绿证采购\n"
        with pytest.raises(ExtractionError):
            await pipeline.extract(announcement, source_id=1)

    async def test_auto_mode_asks_model_last(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=completion(json.dumps([model_item()])))

        pipeline = ExtractionPipeline(llm=make_extractor(handler))

        candidates = await pipeline.extract("绿证相关新闻，无结构化内容", detail_url=PAGE_URL)
        assert len(calls) == 1
        assert candidates[0].project_name == "2025年绿证采购"

        await pipeline.extract("采购编号: ABC123\n项目名称: 2025年绿证采购\n项目概况: 100张", detail_url=PAGE_URL)
        assert len(calls) == 1
