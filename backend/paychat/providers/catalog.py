"""
Static model catalog: the closed set of model ids the gateway sells.
"""

from __future__ import annotations

from dataclasses import dataclass

DEEPSEEK = "deepseek"
GPT_5 = "gpt-5"
CLAUDE_SONNET_4_5 = "claude-sonnet-4-5"


@dataclass(frozen=True)
class ModelSpec:
    model_id: str
    display_name: str
    provider: str
    # 固定单价（USD / 条消息），与实际 token 用量无关
    price_usd: float
    supports_vision: bool
    upstream_model: str


MODEL_CATALOG: dict[str, ModelSpec] = {
    DEEPSEEK: ModelSpec(
        model_id=DEEPSEEK,
        display_name="Deepseek",
        provider="Deepseek",
        price_usd=0.03,
        supports_vision=False,
        upstream_model="deepseek-chat",
    ),
    GPT_5: ModelSpec(
        model_id=GPT_5,
        display_name="GPT-5",
        provider="OpenAI",
        price_usd=0.10,
        supports_vision=True,
        upstream_model="gpt-4o",
    ),
    CLAUDE_SONNET_4_5: ModelSpec(
        model_id=CLAUDE_SONNET_4_5,
        display_name="Claude 4.5 Sonnet",
        provider="Anthropic",
        price_usd=0.20,
        supports_vision=True,
        upstream_model="claude-sonnet-4-5",
    ),
}

SUPPORTED_MODELS: tuple[str, ...] = tuple(MODEL_CATALOG)


def get_model_spec(model_id: str) -> ModelSpec | None:
    return MODEL_CATALOG.get(model_id)


__all__ = [
    "CLAUDE_SONNET_4_5",
    "DEEPSEEK",
    "GPT_5",
    "MODEL_CATALOG",
    "SUPPORTED_MODELS",
    "ModelSpec",
    "get_model_spec",
]
