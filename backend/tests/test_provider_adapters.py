from __future__ import annotations

import json

import httpx
import pytest

from paychat.errors import UpstreamProviderError
from paychat.providers.anthropic import AnthropicAdapter
from paychat.providers.base import AIProviderConfig
from paychat.providers.catalog import MODEL_CATALOG
from paychat.providers.content import ChatMessage
from paychat.providers.deepseek import DeepseekAdapter
from paychat.providers.openai import OpenAIAdapter
from tests.utils import FakeUpstream, TrackingStream, anthropic_delta, openai_delta, sse_body

IMAGE_MESSAGE = ChatMessage.from_wire(
    {
        "role": "user",
        "content": [
            {"type": "text", "text": "what is this?"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ],
    }
)


def _adapter(cls, model: str, client: httpx.AsyncClient, **kwargs):
    return cls(
        spec=MODEL_CATALOG[model],
        api_key=kwargs.pop("api_key", "test-key"),
        base_url=kwargs.pop("base_url", "https://upstream.test/v1"),
        client=client,
        **kwargs,
    )


def _config(model: str, *messages: ChatMessage, system_prompt: str | None = "be brief") -> AIProviderConfig:
    return AIProviderConfig(
        model=model,
        messages=list(messages) or [ChatMessage.text("user", "hello")],
        temperature=0.5,
        max_tokens=512,
        system_prompt=system_prompt,
    )


@pytest.mark.asyncio
async def test_openai_adapter_sends_bearer_auth_and_passes_images_through():
    upstream = FakeUpstream()
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(OpenAIAdapter, "gpt-5", client)
        response = await adapter.chat(_config("gpt-5", IMAGE_MESSAGE))

    request = upstream.requests[0]
    body = json.loads(request.content)
    assert request.url.path == "/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer test-key"
    assert body["model"] == "gpt-4o"
    assert body["stream"] is False
    assert body["messages"][0] == {"role": "system", "content": "be brief"}
    assert body["messages"][1]["content"][1]["type"] == "image_url"
    assert response.content == "Hello from the model"
    assert response.model == "gpt-5"
    assert response.cost == pytest.approx(0.10)
    assert response.usage == {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}


@pytest.mark.asyncio
async def test_deepseek_adapter_never_sends_image_parts():
    upstream = FakeUpstream()
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(DeepseekAdapter, "deepseek", client)
        response = await adapter.chat(_config("deepseek", IMAGE_MESSAGE))

    body = upstream.json_bodies("/chat/completions")[0]
    assert body["model"] == "deepseek-chat"
    assert body["messages"][-1] == {"role": "user", "content": "what is this?"}
    assert all(isinstance(m["content"], str) for m in body["messages"])
    assert response.cost == pytest.approx(0.03)


@pytest.mark.asyncio
async def test_anthropic_adapter_moves_system_prompt_out_of_messages():
    upstream = FakeUpstream()
    system = ChatMessage.text("system", "ignored because explicit prompt wins")
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(AnthropicAdapter, "claude-sonnet-4-5", client)
        response = await adapter.chat(_config("claude-sonnet-4-5", system, IMAGE_MESSAGE))

    request = upstream.requests[0]
    body = json.loads(request.content)
    assert request.url.path == "/v1/messages"
    assert request.headers["x-api-key"] == "test-key"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert body["system"] == "be brief"
    assert [m["role"] for m in body["messages"]] == ["user"]
    assert body["messages"][0]["content"][1]["source"] == {
        "type": "base64",
        "media_type": "image/png",
        "data": "AAAA",
    }
    assert response.content == "Hello from the model"
    assert response.total_tokens == 17
    assert response.cost == pytest.approx(0.20)


@pytest.mark.asyncio
async def test_anthropic_adapter_falls_back_to_first_system_message():
    upstream = FakeUpstream()
    system = ChatMessage.text("system", "from history")
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(AnthropicAdapter, "claude-sonnet-4-5", client)
        await adapter.chat(_config("claude-sonnet-4-5", system, ChatMessage.text("user", "hi"), system_prompt=None))

    body = upstream.json_bodies("/messages")[0]
    assert body["system"] == "from history"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("cls", "model"),
    [(DeepseekAdapter, "deepseek"), (OpenAIAdapter, "gpt-5"), (AnthropicAdapter, "claude-sonnet-4-5")],
)
async def test_streamed_text_matches_non_streamed_content(cls, model):
    upstream = FakeUpstream()
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(cls, model, client)
        complete = await adapter.chat(_config(model))
        chunks = [c async for c in adapter.stream_chat(_config(model))]

    assert "".join(c.text for c in chunks) == complete.content
    assert [c.is_complete for c in chunks].count(True) == 1
    assert chunks[-1].is_complete is True
    assert chunks[-1].text == ""


@pytest.mark.asyncio
async def test_openai_stream_handles_events_split_across_network_chunks():
    raw = sse_body([openai_delta("Hel"), openai_delta("lo")])
    pieces = [raw[i : i + 7] for i in range(0, len(raw), 7)]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=TrackingStream(pieces))

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = _adapter(OpenAIAdapter, "gpt-5", client)
        chunks = [c async for c in adapter.stream_chat(_config("gpt-5"))]

    assert "".join(c.text for c in chunks) == "Hello"


@pytest.mark.asyncio
async def test_stream_skips_malformed_json_lines():
    body = b"data: {not json}\n\n" + sse_body([openai_delta("ok")])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = _adapter(DeepseekAdapter, "deepseek", client)
        chunks = [c async for c in adapter.stream_chat(_config("deepseek"))]

    assert [c.text for c in chunks] == ["ok", ""]


@pytest.mark.asyncio
async def test_anthropic_stream_error_event_raises():
    body = sse_body([anthropic_delta("par"), {"type": "error", "error": {"message": "overloaded"}}], done=False)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=body)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = _adapter(AnthropicAdapter, "claude-sonnet-4-5", client)
        with pytest.raises(UpstreamProviderError) as excinfo:
            async for _ in adapter.stream_chat(_config("claude-sonnet-4-5")):
                pass

    assert "overloaded" in str(excinfo.value)


@pytest.mark.asyncio
async def test_consumer_cancellation_releases_upstream_connection():
    stream = TrackingStream([sse_body([openai_delta("a"), openai_delta("b"), openai_delta("c")])])

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, stream=stream)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = _adapter(OpenAIAdapter, "gpt-5", client)
        gen = adapter.stream_chat(_config("gpt-5"))
        first = await gen.__anext__()
        await gen.aclose()

    assert first.text == "a"
    assert stream.closed is True


@pytest.mark.asyncio
async def test_non_2xx_raises_upstream_provider_error_with_status():
    upstream = FakeUpstream()
    upstream.chat_status = 503
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(OpenAIAdapter, "gpt-5", client)
        with pytest.raises(UpstreamProviderError) as excinfo:
            await adapter.chat(_config("gpt-5"))
        with pytest.raises(UpstreamProviderError):
            async for _ in adapter.stream_chat(_config("gpt-5")):
                pass

    assert excinfo.value.status_code == 503
    assert excinfo.value.provider == "GPT-5"


@pytest.mark.asyncio
async def test_transport_error_is_wrapped():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom")

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        adapter = _adapter(DeepseekAdapter, "deepseek", client)
        with pytest.raises(UpstreamProviderError) as excinfo:
            await adapter.chat(_config("deepseek"))

    assert "boom" in excinfo.value.message
    assert excinfo.value.status_code is None


@pytest.mark.asyncio
async def test_missing_api_key_fails_before_any_request():
    upstream = FakeUpstream()
    async with httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler)) as client:
        adapter = _adapter(AnthropicAdapter, "claude-sonnet-4-5", client, api_key=None)
        with pytest.raises(UpstreamProviderError) as excinfo:
            await adapter.chat(_config("claude-sonnet-4-5"))

    assert "not configured" in str(excinfo.value)
    assert upstream.requests == []
