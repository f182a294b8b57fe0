import base64

import pytest

from conftest import FakeModel
from svc.ai_proxy import AIProxy
from svc.genai_client import ErrorKind, ModelDispatchError
from svc.response_parser import AIProxyError, MissingParameterError, ResponseParseError, ResponseShapeError

FENCED_NAMES = '```json\n["Acme Labs","BrightPath","NovaDesk"]\n```'


class TestSuggestNames:
    @pytest.mark.asyncio
    async def test_fenced_array_is_returned_unchanged(self):
        model = FakeModel(text=FENCED_NAMES)

        result = await AIProxy(model).suggest_names("productivity tools")

        assert result == {"names": ["Acme Labs", "BrightPath", "NovaDesk"]}
        assert '"productivity tools"' in model.text_calls[0]["prompt"]

    @pytest.mark.asyncio
    async def test_numeric_element_fails_validation(self):
        model = FakeModel(text='```json\n["Acme Labs",7,"NovaDesk"]\n```')

        with pytest.raises(ResponseShapeError) as excinfo:
            await AIProxy(model).suggest_names("productivity tools")
        assert excinfo.value.kind == ErrorKind.GENERIC

    @pytest.mark.asyncio
    async def test_non_json_text_is_generic_parse_error(self):
        model = FakeModel(text="Sure! Acme Labs, BrightPath")

        with pytest.raises(ResponseParseError) as excinfo:
            await AIProxy(model).suggest_names("productivity tools")
        assert excinfo.value.kind == ErrorKind.GENERIC

    @pytest.mark.asyncio
    async def test_missing_niche_fails_before_dispatch(self):
        model = FakeModel(text=FENCED_NAMES)

        with pytest.raises(MissingParameterError):
            await AIProxy(model).suggest_names("   ")
        assert model.text_calls == []

    @pytest.mark.asyncio
    async def test_quota_error_keeps_rate_limited_kind(self):
        model = FakeModel(error=ModelDispatchError("429 RESOURCE_EXHAUSTED", kind=ErrorKind.RATE_LIMITED))

        with pytest.raises(AIProxyError) as excinfo:
            await AIProxy(model).suggest_names("productivity tools")
        assert excinfo.value.kind == ErrorKind.RATE_LIMITED


class TestSuggestKeywords:
    @pytest.mark.asyncio
    async def test_grounding_metadata_is_passed_through(self):
        chunks = [{"web": {"uri": "https://example.com/seo", "title": "SEO guide"}}]
        model = FakeModel(text='["seo basics", "keyword research"]', grounding_chunks=chunks)

        result = await AIProxy(model).suggest_keywords("content marketing")

        assert result == {"keywords": ["seo basics", "keyword research"], "groundingMetadata": chunks}
        assert model.text_calls[0]["google_search"] is True

    @pytest.mark.asyncio
    async def test_grounding_metadata_defaults_to_empty(self):
        model = FakeModel(text='["seo basics"]')

        result = await AIProxy(model).suggest_keywords("content marketing")

        assert result["groundingMetadata"] == []

    @pytest.mark.asyncio
    async def test_topic_required(self):
        with pytest.raises(MissingParameterError, match="Niche or Topic is required"):
            await AIProxy(FakeModel()).suggest_keywords(None)


class TestGenerateArticle:
    @pytest.mark.asyncio
    async def test_object_is_returned_without_deep_validation(self):
        text = '```json\n{"title": "Cold Brew 101", "body": "<p>Hi</p>", "inlineImagePrompts": "oops"}\n```'
        model = FakeModel(text=text)

        result = await AIProxy(model).generate_article("cold brew", "coffee")

        assert result["articleParts"]["title"] == "Cold Brew 101"
        assert result["articleParts"]["inlineImagePrompts"] == "oops"
        prompt = model.text_calls[0]["prompt"]
        assert '"cold brew"' in prompt and '"coffee"' in prompt

    @pytest.mark.asyncio
    async def test_keyword_and_niche_required(self):
        with pytest.raises(MissingParameterError, match="Keyword and Niche are required"):
            await AIProxy(FakeModel()).generate_article("cold brew", "")


class TestGenerateImage:
    @pytest.mark.asyncio
    async def test_returns_data_uri(self):
        model = FakeModel(image_bytes=b"jpeg-bytes")

        result = await AIProxy(model).generate_image(prompt="a lighthouse at dusk")

        expected = base64.b64encode(b"jpeg-bytes").decode("ascii")
        assert result == {"imageUrl": f"data:image/jpeg;base64,{expected}"}
        assert model.image_calls[0]["prompt"] == "a lighthouse at dusk"

    @pytest.mark.asyncio
    async def test_title_synthesizes_prompt(self):
        model = FakeModel()

        await AIProxy(model).generate_image(title="Cold Brew 101")

        assert model.image_calls[0]["prompt"] == "Featured image for article titled: Cold Brew 101"

    @pytest.mark.asyncio
    async def test_no_image_bytes_is_hard_failure(self):
        with pytest.raises(AIProxyError, match="No image data"):
            await AIProxy(FakeModel(image_bytes=None)).generate_image(prompt="a lighthouse")

    @pytest.mark.asyncio
    async def test_prompt_or_title_required(self):
        with pytest.raises(MissingParameterError):
            await AIProxy(FakeModel()).generate_image()
