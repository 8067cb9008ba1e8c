"""
模型 id -> ProviderAdapter 的路由。

适配器在首次使用时惰性构建并缓存；未知模型 id 抛出 UnsupportedModelError。
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from contextlib import aclosing
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from paychat.errors import UnsupportedModelError
from paychat.settings import Settings

from .anthropic import AnthropicAdapter
from .base import AIProviderConfig, AIResponse, ProviderAdapter, StreamChunk
from .catalog import (
    CLAUDE_SONNET_4_5,
    DEEPSEEK,
    GPT_5,
    MODEL_CATALOG,
    SUPPORTED_MODELS,
    ModelSpec,
)
from .deepseek import DeepseekAdapter
from .openai import OpenAIAdapter

if TYPE_CHECKING:
    from paychat.payments.pricing import ModelPrice


@dataclass(frozen=True)
class ProviderCredentials:
    api_key: str | None
    base_url: str


@dataclass(frozen=True)
class ProviderClients:
    """上游凭据 + 共享的 httpx 客户端，启动时从 Settings 构建一次。"""

    client: httpx.AsyncClient
    deepseek: ProviderCredentials
    openai: ProviderCredentials
    anthropic: ProviderCredentials
    anthropic_version: str = "2023-06-01"

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient) -> ProviderClients:
        return cls(
            client=client,
            deepseek=ProviderCredentials(settings.deepseek_api_key, settings.deepseek_base_url),
            openai=ProviderCredentials(settings.openai_api_key, settings.openai_base_url),
            anthropic=ProviderCredentials(settings.anthropic_api_key, settings.anthropic_base_url),
            anthropic_version=settings.anthropic_version,
        )


class ProviderRouter:
    def __init__(
        self,
        clients: ProviderClients,
        pricing: Mapping[str, ModelPrice] | None = None,
    ) -> None:
        self.clients = clients
        # 与 PaymentGate 共用同一张价格表；缺省时使用目录价
        self.pricing = pricing
        self._adapters: dict[str, ProviderAdapter] = {}

    def _spec(self, model: str) -> ModelSpec:
        spec = MODEL_CATALOG.get(model)
        if spec is None:
            raise UnsupportedModelError(model, SUPPORTED_MODELS)
        return spec

    def _build_adapter(self, spec: ModelSpec) -> ProviderAdapter:
        if spec.model_id == DEEPSEEK:
            creds = self.clients.deepseek
            return DeepseekAdapter(
                spec=spec, api_key=creds.api_key, base_url=creds.base_url, client=self.clients.client
            )
        if spec.model_id == GPT_5:
            creds = self.clients.openai
            return OpenAIAdapter(
                spec=spec, api_key=creds.api_key, base_url=creds.base_url, client=self.clients.client
            )
        if spec.model_id == CLAUDE_SONNET_4_5:
            creds = self.clients.anthropic
            return AnthropicAdapter(
                spec=spec,
                api_key=creds.api_key,
                base_url=creds.base_url,
                client=self.clients.client,
                anthropic_version=self.clients.anthropic_version,
            )
        raise UnsupportedModelError(spec.model_id, SUPPORTED_MODELS)

    def get_adapter(self, model: str) -> ProviderAdapter:
        adapter = self._adapters.get(model)
        if adapter is None:
            adapter = self._build_adapter(self._spec(model))
            self._adapters[model] = adapter
        return adapter

    async def chat(self, config: AIProviderConfig) -> AIResponse:
        return await self.get_adapter(config.model).chat(config)

    async def stream_chat(self, config: AIProviderConfig) -> AsyncIterator[StreamChunk]:
        adapter = self.get_adapter(config.model)
        async with aclosing(adapter.stream_chat(config)) as chunks:
            async for chunk in chunks:
                yield chunk

    def get_model_price(self, model: str, has_vision: bool = False) -> float:
        """USD price quoted for one message, taken from the configured price table."""
        spec = self._spec(model)
        if self.pricing is None:
            return spec.price_usd
        from paychat.payments.pricing import get_model_price, micro_usdc_to_usd

        return micro_usdc_to_usd(get_model_price(dict(self.pricing), model, has_vision))

    def get_model_name(self, model: str) -> str:
        return self._spec(model).display_name

    def supports_vision(self, model: str) -> bool:
        return self._spec(model).supports_vision

    @staticmethod
    def supported_models() -> tuple[str, ...]:
        return SUPPORTED_MODELS


__all__ = ["ProviderClients", "ProviderCredentials", "ProviderRouter"]
