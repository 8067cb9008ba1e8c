"""
Provider 适配层基类和接口定义
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

import httpx

from paychat.errors import UpstreamProviderError

from .catalog import ModelSpec
from .content import ApiStyle, ChatMessage


@dataclass
class AIProviderConfig:
    """一次上游调用所需的全部参数"""

    model: str
    messages: list[ChatMessage] = field(default_factory=list)
    temperature: float = 0.7
    max_tokens: int = 1024
    system_prompt: str | None = None


@dataclass(frozen=True)
class StreamChunk:
    text: str
    is_complete: bool = False


@dataclass
class AIResponse:
    content: str
    model: str
    # 固定单价（USD），与 token 用量无关
    cost: float = 0.0
    prompt_tokens: int | None = None
    completion_tokens: int | None = None
    total_tokens: int | None = None

    @property
    def usage(self) -> dict[str, int] | None:
        if self.prompt_tokens is None and self.completion_tokens is None:
            return None
        prompt = self.prompt_tokens or 0
        completion = self.completion_tokens or 0
        total = self.total_tokens if self.total_tokens is not None else prompt + completion
        return {
            "prompt_tokens": prompt,
            "completion_tokens": completion,
            "total_tokens": total,
        }


class ProviderAdapter(ABC):
    """
    上游 LLM 适配器基类。

    职责：
    - 将 provider 无关的消息列表转换为上游 wire 格式；
    - 发送请求并把响应/SSE 流解析回 AIResponse / StreamChunk。

    不负责：
    - 计费、持久化、重试（由上层 ChatOrchestrator 处理）
    """

    api_style: ApiStyle = ApiStyle.OPENAI

    def __init__(
        self,
        *,
        spec: ModelSpec,
        api_key: str | None,
        base_url: str,
        client: httpx.AsyncClient,
    ) -> None:
        self.spec = spec
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.client = client

    @property
    def model_id(self) -> str:
        return self.spec.model_id

    @property
    def name(self) -> str:
        return self.spec.display_name

    def _require_api_key(self) -> str:
        if not self.api_key:
            raise UpstreamProviderError(self.name, "API key is not configured")
        return self.api_key

    def _raise_for_status(self, response: httpx.Response, body: str) -> None:
        if response.status_code >= 400:
            raise UpstreamProviderError(
                self.name,
                f"API error: {response.status_code} - {body[:500]}",
                status_code=response.status_code,
            )

    @abstractmethod
    async def chat(self, config: AIProviderConfig) -> AIResponse:
        """发送非流式请求，返回完整回复"""

    @abstractmethod
    def stream_chat(self, config: AIProviderConfig) -> AsyncIterator[StreamChunk]:
        """
        发送流式请求，逐个产出文本增量。

        最后一个 chunk 的 is_complete=True 且 text 为空；调用方提前退出迭代时
        底层连接随 async with 一起释放。
        """


__all__ = [
    "AIProviderConfig",
    "AIResponse",
    "ProviderAdapter",
    "StreamChunk",
]
