"""Tests for the narrative provider adapters and the image fetcher."""

import asyncio
import json
import logging
from types import SimpleNamespace

import httpx
import pytest

from vision_thread.adapters import anthropic_narrative_client
from vision_thread.adapters.anthropic_narrative_client import AnthropicNarrativeClient
from vision_thread.adapters.gemini_narrative_client import GeminiNarrativeClient
from vision_thread.adapters.image_fetcher import HttpxImageFetcher
from vision_thread.adapters.openai_narrative_client import OpenAINarrativeClient
from vision_thread.domain.chapters import ChapterContext, ImagePayload
from vision_thread.domain.errors import UpstreamGeneratorError, ValidationError
from vision_thread.domain.narrative import FALLBACK_NARRATIVE
from tests.conftest import PNG_BYTES

_PAYLOAD = {
    "narrative": "Two gulls argue over a chip.",
    "connections": ["The harbor from chapter 1"],
    "tags": ["gulls", "harbor"],
    "theme": "Rivalry",
}
_IMAGE = ImagePayload(data=PNG_BYTES, mime_type="image/png")
_CONTEXT = [ChapterContext(chapter_number=1, narrative="Harbor at dusk.", tags=())]


class _FakeCompletions:
    def __init__(self, content: str | None) -> None:
        self.content = content
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _FakeOpenAI:
    def __init__(self, content: str | None) -> None:
        self.chat = SimpleNamespace(completions=_FakeCompletions(content))


def test_openai_client_sends_image_and_parses_output() -> None:
    fake = _FakeOpenAI(json.dumps(_PAYLOAD))
    client = OpenAINarrativeClient(client=fake)

    result = asyncio.run(client.generate(_IMAGE, _CONTEXT))

    assert result.narrative == _PAYLOAD["narrative"]
    assert result.tags == ["gulls", "harbor"]
    payload = fake.chat.completions.last_payload
    assert payload["response_format"] == {"type": "json_object"}
    user_content = payload["messages"][1]["content"]
    assert "Chapter 1: Harbor at dusk." in user_content[0]["text"]
    assert user_content[1]["image_url"]["url"].startswith("data:image/png;base64,")


def test_openai_client_empty_content_falls_back() -> None:
    client = OpenAINarrativeClient(client=_FakeOpenAI(None))

    result = asyncio.run(client.generate(_IMAGE, []))

    assert result.narrative == FALLBACK_NARRATIVE


class _FakeMessages:
    def __init__(self, blocks: list[SimpleNamespace], error: Exception | None = None):
        self.blocks = blocks
        self.error = error
        self.last_payload: dict[str, object] | None = None

    async def create(self, **kwargs):  # type: ignore[no-untyped-def]
        self.last_payload = kwargs
        if self.error is not None:
            raise self.error
        return SimpleNamespace(content=self.blocks)


def test_anthropic_client_parses_text_block() -> None:
    messages = _FakeMessages([SimpleNamespace(type="text", text=json.dumps(_PAYLOAD))])
    client = AnthropicNarrativeClient(client=SimpleNamespace(messages=messages))

    result = asyncio.run(client.generate(_IMAGE, []))

    assert result.theme == "Rivalry"
    image_block, text_block = messages.last_payload["messages"][0]["content"]
    assert image_block["source"]["media_type"] == "image/png"
    assert "first image in a new story" in text_block["text"]


def test_anthropic_client_without_text_block_falls_back() -> None:
    messages = _FakeMessages([SimpleNamespace(type="tool_use", text=None)])
    client = AnthropicNarrativeClient(client=SimpleNamespace(messages=messages))

    result = asyncio.run(client.generate(_IMAGE, []))

    assert result.narrative == FALLBACK_NARRATIVE


def test_anthropic_client_wraps_request_failure(
    caplog: pytest.LogCaptureFixture,
) -> None:
    messages = _FakeMessages([], error=RuntimeError("401 unauthorized"))
    client = AnthropicNarrativeClient(client=SimpleNamespace(messages=messages))

    adapter_logger = logging.getLogger(anthropic_narrative_client.__name__)
    adapter_logger.addHandler(caplog.handler)
    try:
        with pytest.raises(UpstreamGeneratorError, match="401 unauthorized"):
            asyncio.run(client.generate(_IMAGE, []))
    finally:
        adapter_logger.removeHandler(caplog.handler)

    failures = [r for r in caplog.records if "request failed" in r.getMessage()]
    assert [r.levelname for r in failures] == ["WARNING"]
    assert failures[0].exc_info is None


class _FakeGeminiModels:
    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = outcomes
        self.calls: list[dict[str, object]] = []

    async def generate_content(self, **kwargs):  # type: ignore[no-untyped-def]
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(text=outcome)


def _gemini(outcomes: list[object]) -> tuple[GeminiNarrativeClient, _FakeGeminiModels]:
    models = _FakeGeminiModels(outcomes)
    fake = SimpleNamespace(aio=SimpleNamespace(models=models))
    return (
        GeminiNarrativeClient(client=fake, overload_backoff_seconds=0.0),
        models,
    )


def test_gemini_client_parses_output() -> None:
    client, models = _gemini([json.dumps(_PAYLOAD)])

    result = asyncio.run(client.generate(_IMAGE, _CONTEXT))

    assert result.connections == ["The harbor from chapter 1"]
    assert models.calls[0]["model"] == "gemini-2.5-pro"


def test_gemini_client_retries_when_overloaded() -> None:
    client, models = _gemini(
        [RuntimeError("503 The model is overloaded"), json.dumps(_PAYLOAD)]
    )

    result = asyncio.run(client.generate(_IMAGE, []))

    assert result.narrative == _PAYLOAD["narrative"]
    assert len(models.calls) == 2


def test_gemini_client_surfaces_terminal_failure() -> None:
    client, models = _gemini([RuntimeError("overloaded")] * 4)

    with pytest.raises(UpstreamGeneratorError, match="Failed to analyze image"):
        asyncio.run(client.generate(_IMAGE, []))

    assert len(models.calls) == 4


def test_gemini_client_does_not_retry_other_errors() -> None:
    client, models = _gemini([RuntimeError("400 INVALID_ARGUMENT")])

    with pytest.raises(UpstreamGeneratorError):
        asyncio.run(client.generate(_IMAGE, []))

    assert len(models.calls) == 1


def test_image_fetcher_uses_content_type() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/cat.webp"
        return httpx.Response(
            200, content=b"bytes", headers={"content-type": "image/webp; q=1"}
        )

    transport = httpx.MockTransport(handler)
    fetcher = HttpxImageFetcher(http_client=httpx.AsyncClient(transport=transport))

    image = asyncio.run(fetcher.fetch("https://images.test/cat.webp"))

    assert image.data == b"bytes"
    assert image.mime_type == "image/webp"


def test_image_fetcher_sniffs_missing_content_type() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=PNG_BYTES, headers={"content-type": ""})

    transport = httpx.MockTransport(handler)
    fetcher = HttpxImageFetcher(http_client=httpx.AsyncClient(transport=transport))

    image = asyncio.run(fetcher.fetch("https://images.test/raw"))

    assert image.mime_type == "image/png"


def test_image_fetcher_raises_on_http_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(404))
    fetcher = HttpxImageFetcher(http_client=httpx.AsyncClient(transport=transport))

    with pytest.raises(httpx.HTTPStatusError):
        asyncio.run(fetcher.fetch("https://images.test/missing.png"))


def test_image_fetcher_rejects_declared_oversized_body() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            content=b"\xff\xd8\xff" + b"\0" * 64,
            headers={"content-type": "image/jpeg"},
        )

    transport = httpx.MockTransport(handler)
    fetcher = HttpxImageFetcher(
        http_client=httpx.AsyncClient(transport=transport), max_bytes=32
    )

    with pytest.raises(ValidationError, match="limit"):
        asyncio.run(fetcher.fetch("https://images.test/huge.jpg"))


def test_image_fetcher_stops_reading_past_limit() -> None:
    served: list[int] = []

    async def body():  # type: ignore[no-untyped-def]
        for index in range(50):
            served.append(index)
            yield b"\0" * 16

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, content=body(), headers={"content-type": "image/png"}
        )

    transport = httpx.MockTransport(handler)
    fetcher = HttpxImageFetcher(
        http_client=httpx.AsyncClient(transport=transport), max_bytes=40
    )

    with pytest.raises(ValidationError):
        asyncio.run(fetcher.fetch("https://images.test/endless.png"))

    assert len(served) < 50


def test_gemini_client_close_releases_async_transport() -> None:
    closed: list[bool] = []

    async def aclose() -> None:
        closed.append(True)

    fake = SimpleNamespace(aio=SimpleNamespace(models=None, aclose=aclose))
    client = GeminiNarrativeClient(client=fake)

    asyncio.run(client.close())

    assert closed == [True]
