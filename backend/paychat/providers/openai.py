"""
OpenAI Chat Completions 适配器（同时作为 OpenAI 兼容上游的基类）。
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any

import httpx

from paychat.errors import UpstreamProviderError
from paychat.logging_config import logger

from .base import AIProviderConfig, AIResponse, ProviderAdapter, StreamChunk
from .content import ApiStyle, ChatMessage, to_provider_messages
from .sse import DONE_SENTINEL, iter_sse_data


class OpenAIAdapter(ProviderAdapter):
    api_style = ApiStyle.OPENAI

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._require_api_key()}",
        }

    def build_payload(self, config: AIProviderConfig, *, stream: bool) -> dict[str, Any]:
        messages: list[ChatMessage] = list(config.messages)
        if config.system_prompt and not any(m.role == "system" for m in messages):
            messages.insert(0, ChatMessage.text("system", config.system_prompt))
        return {
            "model": self.spec.upstream_model,
            "messages": to_provider_messages(self.api_style, messages),
            "stream": stream,
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        }

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

        choices = data.get("choices") or [{}]
        message = (choices[0] or {}).get("message") or {}
        usage = data.get("usage") or {}
        return AIResponse(
            content=message.get("content") or "",
            model=self.model_id,
            cost=self.spec.price_usd,
            prompt_tokens=usage.get("prompt_tokens"),
            completion_tokens=usage.get("completion_tokens"),
            total_tokens=usage.get("total_tokens"),
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
                        yield StreamChunk(text="", is_complete=True)
                        return
                    try:
                        parsed = json.loads(data)
                    except ValueError:
                        logger.warning("provider: failed to parse %s chunk: %r", self.name, data[:200])
                        continue
                    delta = self._extract_delta(parsed)
                    if delta:
                        yield StreamChunk(text=delta)
        except httpx.HTTPError as exc:
            logger.warning("provider: %s stream error: %s", self.name, exc)
            raise UpstreamProviderError(self.name, f"stream failed: {exc}") from exc

        yield StreamChunk(text="", is_complete=True)

    @staticmethod
    def _extract_delta(parsed: Any) -> str | None:
        if not isinstance(parsed, dict):
            return None
        choices = parsed.get("choices") or []
        if not choices or not isinstance(choices[0], dict):
            return None
        delta = choices[0].get("delta") or {}
        content = delta.get("content") if isinstance(delta, dict) else None
        return content if isinstance(content, str) else None


__all__ = ["OpenAIAdapter"]
