from __future__ import annotations

import datetime as dt
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

DEFAULT_MODEL = "deepseek"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 1024


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class AttachmentPayload(_CamelModel):
    name: Any = None
    type: Any = None
    size: Any = None
    data_url: Any = None


class ChatRequest(_CamelModel):
    """POST /api/chat 请求体；字段类型放宽，具体校验在 ChatOrchestrator.prepare 中完成。"""

    message: str | None = None
    wallet_address: str | None = None
    chat_id: str | None = None
    model: str = DEFAULT_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS
    files: list[AttachmentPayload] | None = None


class TokenUsage(BaseModel):
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class ChatResponse(_CamelModel):
    message: str
    model: str
    chat_id: str
    token_usage: TokenUsage
    cost: float
    timestamp: str = Field(default_factory=lambda: dt.datetime.now(dt.UTC).isoformat())


class ChatCreateRequest(_CamelModel):
    wallet_address: str | None = None
    title: str | None = None
    model: str = DEFAULT_MODEL
    system_prompt: str | None = None


class ChatUpdateRequest(_CamelModel):
    wallet_address: str | None = None
    title: str | None = None


class ChatSummary(_CamelModel):
    id: str
    title: str
    ai_model: str
    total_messages: int
    total_cost_usdc: float
    last_message_at: str | None = None


class ChatMessageFile(_CamelModel):
    id: str
    name: str
    type: str
    size: int
    url: str
    mime_type: str | None = None


class ChatMessageItem(_CamelModel):
    id: str
    role: str
    content: str
    created_at: str
    cost_usdc: float | None = None
    ai_model: str | None = None
    files: list[ChatMessageFile] = Field(default_factory=list)


__all__ = [
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_MODEL",
    "DEFAULT_TEMPERATURE",
    "AttachmentPayload",
    "ChatCreateRequest",
    "ChatMessageFile",
    "ChatMessageItem",
    "ChatRequest",
    "ChatResponse",
    "ChatSummary",
    "ChatUpdateRequest",
    "TokenUsage",
]
