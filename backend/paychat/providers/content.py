"""
消息内容标准化：provider 无关的 ChatMessage <-> 各上游的 wire 格式。

内容是一个封闭的和类型：
- TextContent：纯文本；
- PartsContent：有序的 TextPart / ImagePart 列表（至少一个元素）。

所有转换函数都显式处理这两个分支；纯文本 provider 永远不会收到图片片段，
而是得到确定性的文本占位。
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal, Union

Role = Literal["user", "assistant", "system"]

IMAGES_UNSUPPORTED_PLACEHOLDER = "[Images are not supported by this model]"
IMAGE_DETAILS: tuple[str, ...] = ("low", "high", "auto")

# data:<mime>;base64,<payload>（Anthropic base64 image source 仅接受 image/*）
DATA_IMAGE_URL_PATTERN = re.compile(r"^data:(image/[\w.+-]+);base64,(.+)$", re.DOTALL)
_DATA_URL_PATTERN = re.compile(r"^data:[\w.+-]+/[\w.+-]+;base64,", re.IGNORECASE)


class ApiStyle(str, Enum):
    TEXT_ONLY = "text_only"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


@dataclass(frozen=True)
class TextPart:
    text: str


@dataclass(frozen=True)
class ImagePart:
    url: str
    detail: str = "auto"

    def __post_init__(self) -> None:
        if not (self.url.startswith("https://") or _DATA_URL_PATTERN.match(self.url)):
            raise ValueError("image url must be an https:// URL or a base64 data: URL")
        if self.detail not in IMAGE_DETAILS:
            raise ValueError(f"unsupported image detail: {self.detail!r}")


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class TextContent:
    text: str


@dataclass(frozen=True)
class PartsContent:
    parts: tuple[ContentPart, ...]

    def __post_init__(self) -> None:
        if not self.parts:
            raise ValueError("array content must contain at least one part")

    @property
    def text_parts(self) -> list[TextPart]:
        return [p for p in self.parts if isinstance(p, TextPart)]

    @property
    def image_parts(self) -> list[ImagePart]:
        return [p for p in self.parts if isinstance(p, ImagePart)]


MessageContent = Union[TextContent, PartsContent]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: MessageContent

    @classmethod
    def text(cls, role: Role, text: str) -> ChatMessage:
        return cls(role=role, content=TextContent(text))

    @classmethod
    def parts(cls, role: Role, parts: Iterable[ContentPart]) -> ChatMessage:
        return cls(role=role, content=PartsContent(tuple(parts)))

    @classmethod
    def from_wire(cls, raw: dict[str, Any]) -> ChatMessage:
        role = raw.get("role")
        if role not in ("user", "assistant", "system"):
            raise ValueError(f"unsupported role: {role!r}")
        return cls(role=role, content=parse_content(raw.get("content")))

    def to_wire(self) -> dict[str, Any]:
        return {"role": self.role, "content": content_to_wire(self.content)}

    @property
    def has_images(self) -> bool:
        return isinstance(self.content, PartsContent) and bool(self.content.image_parts)


def parse_content(raw: Any) -> MessageContent:
    """Parse OpenAI-shaped content (string or list of typed parts)."""
    if isinstance(raw, str):
        return TextContent(raw)
    if not isinstance(raw, list):
        raise ValueError("content must be a string or a list of parts")

    parts: list[ContentPart] = []
    for item in raw:
        if not isinstance(item, dict):
            raise ValueError("content part must be an object")
        kind = item.get("type")
        if kind == "text":
            parts.append(TextPart(str(item.get("text") or "")))
        elif kind == "image_url":
            image = item.get("image_url") or {}
            if not isinstance(image, dict) or not isinstance(image.get("url"), str):
                raise ValueError("image_url part requires image_url.url")
            parts.append(ImagePart(url=image["url"], detail=image.get("detail") or "auto"))
        else:
            raise ValueError(f"unsupported content part type: {kind!r}")
    return PartsContent(tuple(parts))


def content_to_wire(content: MessageContent) -> str | list[dict[str, Any]]:
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, PartsContent):
        wire: list[dict[str, Any]] = []
        for part in content.parts:
            if isinstance(part, TextPart):
                wire.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                wire.append(
                    {"type": "image_url", "image_url": {"url": part.url, "detail": part.detail}}
                )
            else:  # pragma: no cover - closed union
                raise TypeError(f"unknown content part: {part!r}")
        return wire
    raise TypeError(f"unknown message content: {content!r}")  # pragma: no cover


def content_to_text(content: MessageContent) -> str:
    """
    纯文本 provider 的内容折叠：

    - 文本片段以换行拼接；
    - 只有图片、没有任何文本片段时，返回固定占位文本（绝不返回空串）。
    """
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, PartsContent):
        texts = [p.text for p in content.text_parts]
        if not texts and content.image_parts:
            return IMAGES_UNSUPPORTED_PLACEHOLDER
        return "\n".join(texts)
    raise TypeError(f"unknown message content: {content!r}")  # pragma: no cover


def parse_data_image_url(url: str) -> tuple[str, str] | None:
    """Return (media_type, base64_data) for a data:image/...;base64 URL, else None."""
    match = DATA_IMAGE_URL_PATTERN.match(url)
    if not match:
        return None
    return match.group(1), match.group(2)


def to_anthropic_blocks(content: MessageContent) -> str | list[dict[str, Any]]:
    if isinstance(content, TextContent):
        return content.text
    if isinstance(content, PartsContent):
        blocks: list[dict[str, Any]] = []
        for part in content.parts:
            if isinstance(part, TextPart):
                blocks.append({"type": "text", "text": part.text})
            elif isinstance(part, ImagePart):
                parsed = parse_data_image_url(part.url)
                if parsed is not None:
                    media_type, data = parsed
                    source: dict[str, Any] = {
                        "type": "base64",
                        "media_type": media_type,
                        "data": data,
                    }
                else:
                    source = {"type": "url", "url": part.url}
                blocks.append({"type": "image", "source": source})
            else:  # pragma: no cover - closed union
                raise TypeError(f"unknown content part: {part!r}")
        return blocks
    raise TypeError(f"unknown message content: {content!r}")  # pragma: no cover


def to_provider_message(style: ApiStyle, message: ChatMessage) -> dict[str, Any]:
    if style is ApiStyle.TEXT_ONLY:
        return {"role": message.role, "content": content_to_text(message.content)}
    if style is ApiStyle.OPENAI:
        # OpenAI 的 wire 格式与内部格式一致，直接透传
        return {"role": message.role, "content": content_to_wire(message.content)}
    if style is ApiStyle.ANTHROPIC:
        return {"role": message.role, "content": to_anthropic_blocks(message.content)}
    raise ValueError(f"unknown api style: {style!r}")


def to_provider_messages(style: ApiStyle, messages: Sequence[ChatMessage]) -> list[dict[str, Any]]:
    return [to_provider_message(style, m) for m in messages]


def _normalize_role(value: Any) -> Role:
    if value == "assistant":
        return "assistant"
    if value == "system":
        return "system"
    return "user"


def _is_image_file(file: Any) -> bool:
    return str(getattr(file, "mime_type", None) or "").startswith("image/") and bool(
        getattr(file, "file_url", None)
    )


def reconstruct_history(stored: Any, supports_vision: bool) -> ChatMessage:
    """
    从持久化的消息行重建 ChatMessage。

    带图片附件的 user 消息在目标模型支持视觉时还原为 [text?, image×N]，
    否则返回纯文本内容。
    """
    role = _normalize_role(getattr(stored, "role", None))
    text = getattr(stored, "content", None) or ""
    files = list(getattr(stored, "files", None) or [])
    images = [f for f in files if _is_image_file(f)]

    if role == "user" and supports_vision and images:
        parts: list[ContentPart] = []
        if text:
            parts.append(TextPart(text))
        for file in images:
            try:
                parts.append(ImagePart(url=file.file_url, detail="auto"))
            except ValueError:
                continue
        if parts:
            return ChatMessage.parts(role, parts)
    return ChatMessage.text(role, text)


def vision_downgrade_note(image_names: Sequence[str], model_name: str) -> str:
    """Deterministic note appended when images are sent to a text-only model."""
    names = ", ".join(image_names)
    return (
        f"\n\n[Note: User attached images ({names}), but {model_name} doesn't support vision. "
        "Images are stored but cannot be analyzed.]"
    )


__all__ = [
    "DATA_IMAGE_URL_PATTERN",
    "IMAGES_UNSUPPORTED_PLACEHOLDER",
    "ApiStyle",
    "ChatMessage",
    "ContentPart",
    "ImagePart",
    "MessageContent",
    "PartsContent",
    "Role",
    "TextContent",
    "TextPart",
    "content_to_text",
    "content_to_wire",
    "parse_content",
    "parse_data_image_url",
    "reconstruct_history",
    "to_anthropic_blocks",
    "to_provider_message",
    "to_provider_messages",
    "vision_downgrade_note",
]
