"""
Anthropic Messages API 适配器。

与 OpenAI 风格的差异：
- system 提示词放在独立的 `system` 字段，不出现在 messages 中；
- 图片使用 {"type": "image", "source": {...}} 内容块；
- 流式事件以 content_block_delta / text_delta 携带文本增量。
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from paychat.errors import UpstreamProviderError
from paychat.logging_config import logger

from .base import AIProviderConfig, AIResponse, ProviderAdapter, StreamChunk
from .content import ApiStyle, content_to_text, to_provider_messages
from .sse import DONE_SENTINEL, iter_sse_data

DEFAULT_ANTHROPIC_VERSION = "2023-06-01"


class AnthropicAdapter(ProviderAdapter):
    api_style = ApiStyle.ANTHROPIC

    def __init__(self, *, anthropic_version: str = DEFAULT_ANTHROPIC_VERSION, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.anthropic_version = anthropic_version

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self._require_api_key(),
            "anthropic-version": self.anthropic_version,
        }

    def build_payload(self, config: AIProviderConfig, *, stream: bool) -> dict[str, Any]:
        system_prompt = system_text(config)
        conversation = [m for m in config.messages if m.role != "system"]
        payload: dict[str, Any] = {
            "model": self.spec.upstream_model,
            "max_tokens": config.max_tokens,
            "temperature": config.temperature,
            "messages": to_provider_messages(self.api_style, conversation),
        }
        if system_prompt:
            payload["system"] = system_prompt
        if stream:
            payload["stream"] = True
        return payload

    async def chat(self, config: AIProviderConfig) -> AIResponse:
        headers = self._headers()
        payload = self.build_payload(config, stream=False)
        logger.info(
            "provider: sending non-streaming request model=%s upstream=%s",
            self.model_id,
            self.spec.upstream_model,
        )
        try:
            response = await self.client.post(self.endpoint, headers=headers, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("provider: %s request error: %s", self.name, exc)
            raise UpstreamProviderError(self.name, f"request failed: {exc}") from exc

        self._raise_for_status(response, response.text)
        try:
            data = response.json()
        except ValueError as exc:
            raise UpstreamProviderError(self.name, "invalid JSON response") from exc

        text = "".join(
            block.get("text") or ""
            for block in data.get("content") or []
            if isinstance(block, dict) and block.get("type") == "text"
        )
        usage = data.get("usage") or {}
        input_tokens = usage.get("input_tokens")
        output_tokens = usage.get("output_tokens")
        total = None
        if input_tokens is not None or output_tokens is not None:
            total = (input_tokens or 0) + (output_tokens or 0)
        return AIResponse(
            content=text,
            model=self.model_id,
            cost=self.spec.price_usd,
            prompt_tokens=input_tokens,
            completion_tokens=output_tokens,
            total_tokens=total,
        )

    async def stream_chat(self, config: AIProviderConfig) -> AsyncIterator[StreamChunk]:
        headers = self._headers()
        payload = self.build_payload(config, stream=True)
        logger.info(
            "provider: sending streaming request model=%s upstream=%s",
            self.model_id,
            self.spec.upstream_model,
        )
        try:
            async with self.client.stream(
                "POST", self.endpoint, headers=headers, json=payload
            ) as response:
                if response.status_code >= 400:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    self._raise_for_status(response, body)

                async for data in iter_sse_data(response):
                    if data == DONE_SENTINEL:
                        break
                    try:
                        event = json.loads(data)
                    except ValueError:
                        logger.warning("provider: failed to parse %s event: %r", self.name, data[:200])
                        continue
                    if not isinstance(event, dict):
                        continue

                    event_type = event.get("type")
                    if event_type == "content_block_delta":
                        delta = event.get("delta") or {}
                        if delta.get("type") == "text_delta" and delta.get("text"):
                            yield StreamChunk(text=delta["text"])
                    elif event_type == "message_stop":
                        break
                    elif event_type == "error":
                        error = event.get("error") or {}
                        raise UpstreamProviderError(
                            self.name, str(error.get("message") or "stream error")
                        )
        except httpx.HTTPError as exc:
            logger.warning("provider: %s stream error: %s", self.name, exc)
            raise UpstreamProviderError(self.name, f"stream failed: {exc}") from exc

        yield StreamChunk(text="", is_complete=True)


def system_text(config: AIProviderConfig) -> str | None:
    """The system prompt that would be sent in the `system` field, if any."""
    if config.system_prompt:
        return config.system_prompt
    for message in config.messages:
        if message.role == "system":
            return content_to_text(message.content)
    return None


__all__ = ["DEFAULT_ANTHROPIC_VERSION", "AnthropicAdapter"]
