"""Deepseek：OpenAI 兼容协议，但只接受纯文本消息。"""

from __future__ import annotations

from .content import ApiStyle
from .openai import OpenAIAdapter


class DeepseekAdapter(OpenAIAdapter):
    api_style = ApiStyle.TEXT_ONLY


__all__ = ["DeepseekAdapter"]
