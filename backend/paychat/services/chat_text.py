"""
文本处理：用户输入清洗、模型回复去 Markdown、会话标题。
"""

from __future__ import annotations

import re

from paychat.schemas.chat import TokenUsage

SYSTEM_PROMPT = """You are an AI assistant for X402Chatly. Provide concise, accurate answers using clear sentences.
- Do NOT use Markdown symbols such as **, ##, ---, or /// in your replies.
- If you need emphasis, use natural language (for example: "Important:" or "Key point:").
- Keep line breaks meaningful and avoid excessive spacing.
- Mention costs or blockchain details only if the user asks.
- If the user asks about payments, remind them that Solana USDC micropayments are handled automatically via X402.
- Never fabricate wallet details or transaction IDs."""

DEFAULT_CHAT_TITLE = "New Chat"
TITLE_MAX_CHARS = 48

_TRAILING_WS = re.compile(r"[ \t\f\v]+$", re.MULTILINE)

# 顺序有意义：先去成对强调，再处理残留的连续符号
_ASSISTANT_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\*\*(.*?)\*\*"), r"\1"),
    (re.compile(r"__(.*?)__"), r"\1"),
    (re.compile(r"`{1,3}([\s\S]*?)`{1,3}"), r"\1"),
    (re.compile(r"#+\s?"), ""),
    (re.compile(r"^[-*]\s+", re.MULTILINE), "• "),
    (re.compile(r"/{2,}"), "/"),
    (re.compile(r"_{2,}"), " "),
    (re.compile(r"-{3,}"), "-"),
)


def sanitize_user_message(text: str) -> str:
    text = text.replace("\r", "")
    return _TRAILING_WS.sub("", text).strip()


def sanitize_assistant_response(text: str) -> str:
    for pattern, replacement in _ASSISTANT_RULES:
        text = pattern.sub(replacement, text)
    return _TRAILING_WS.sub("", text).strip()


def format_chat_title(message: str) -> str:
    condensed = " ".join(message.split())
    if not condensed:
        return DEFAULT_CHAT_TITLE
    if len(condensed) > TITLE_MAX_CHARS:
        return f"{condensed[:TITLE_MAX_CHARS]}…"
    return condensed


def to_token_usage(usage: dict[str, int] | None) -> TokenUsage:
    usage = usage or {}
    return TokenUsage(
        prompt_tokens=usage.get("prompt_tokens") or 0,
        completion_tokens=usage.get("completion_tokens") or 0,
        total_tokens=usage.get("total_tokens") or 0,
    )


__all__ = [
    "DEFAULT_CHAT_TITLE",
    "SYSTEM_PROMPT",
    "format_chat_title",
    "sanitize_assistant_response",
    "sanitize_user_message",
    "to_token_usage",
]
