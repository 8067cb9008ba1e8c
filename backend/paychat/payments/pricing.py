"""
x402 支付配置与按模型定价。

价格统一使用 USDC 最小单位（6 位小数）的十进制字符串，例如 "30000" = $0.03。
"""

from __future__ import annotations

from dataclasses import dataclass

from paychat.errors import ConfigError
from paychat.logging_config import logger
from paychat.providers.catalog import CLAUDE_SONNET_4_5, DEEPSEEK, GPT_5, MODEL_CATALOG
from paychat.schemas.x402 import PaymentRequirements, PaymentRequirementsExtra
from paychat.settings import Settings

USDC_MINT_ADDRESSES: dict[str, str] = {
    "solana-devnet": "4zMMC9srt5Ri5X14GAgXhaHii3GnPAEERYPJgZJDncDU",
    "solana": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
}

# System Program 地址，仅用于开发环境缺少收款地址时占位
PLACEHOLDER_TREASURY = "11111111111111111111111111111111"
MAX_TIMEOUT_SECONDS = 300
MICRO_USDC_PER_USD = 1_000_000


@dataclass(frozen=True)
class ModelPrice:
    base: str
    vision: str


FALLBACK_PRICING: dict[str, ModelPrice] = {
    DEEPSEEK: ModelPrice(base="30000", vision="30000"),
    GPT_5: ModelPrice(base="100000", vision="150000"),
    CLAUDE_SONNET_4_5: ModelPrice(base="200000", vision="250000"),
}


@dataclass(frozen=True)
class X402Config:
    network: str
    treasury_wallet: str
    base_url: str
    facilitator_url: str
    facilitator_fee_payer: str
    usdc_mint: str
    max_timeout_seconds: int = MAX_TIMEOUT_SECONDS

    @classmethod
    def from_settings(cls, settings: Settings) -> X402Config:
        treasury = settings.treasury_wallet_address
        if not treasury:
            message = "TREASURY_WALLET_ADDRESS environment variable is required"
            if settings.is_production:
                raise ConfigError(message)
            logger.warning("%s. Using placeholder address for development.", message)
            treasury = PLACEHOLDER_TREASURY

        fee_payer = settings.facilitator_fee_payer
        if not fee_payer:
            log = logger.warning if settings.is_production else logger.info
            log(
                "X402_FACILITATOR_FEE_PAYER is not set. Falling back to the treasury wallet address."
            )
            fee_payer = treasury

        return cls(
            network=settings.network,
            treasury_wallet=treasury,
            base_url=settings.base_url.rstrip("/"),
            facilitator_url=settings.facilitator_url.rstrip("/"),
            facilitator_fee_payer=fee_payer,
            usdc_mint=USDC_MINT_ADDRESSES[settings.network],
            max_timeout_seconds=settings.payment_timeout_seconds,
        )


def resolve_price(value: str | None, fallback: str) -> str:
    """只接受纯数字字符串，否则回退到默认价格。"""
    if value is not None:
        value = value.strip()
        if value.isascii() and value.isdigit():
            return value
    return fallback


def _monotonic(model: str, price: ModelPrice) -> ModelPrice:
    if int(price.vision) < int(price.base):
        logger.warning(
            "pricing: vision price %s below base price %s for model=%s; using base price",
            price.vision,
            price.base,
            model,
        )
        return ModelPrice(base=price.base, vision=price.base)
    return price


def load_model_pricing(settings: Settings) -> dict[str, ModelPrice]:
    """
    从环境配置构建价格表。

    - PRICE_VISION_ADDON 是 gpt-5 / claude 共用的视觉价格；
    - 视觉价格不会低于基础价格（附带图片不会更便宜）。
    """
    deepseek = FALLBACK_PRICING[DEEPSEEK]
    gpt = FALLBACK_PRICING[GPT_5]
    claude = FALLBACK_PRICING[CLAUDE_SONNET_4_5]
    pricing = {
        DEEPSEEK: ModelPrice(
            base=resolve_price(settings.price_deepseek, deepseek.base),
            vision=resolve_price(settings.price_deepseek_vision, deepseek.vision),
        ),
        GPT_5: ModelPrice(
            base=resolve_price(settings.price_gpt, gpt.base),
            vision=resolve_price(settings.price_vision_addon, gpt.vision),
        ),
        CLAUDE_SONNET_4_5: ModelPrice(
            base=resolve_price(settings.price_claude, claude.base),
            vision=resolve_price(settings.price_vision_addon, claude.vision),
        ),
    }
    return {model: _monotonic(model, price) for model, price in pricing.items()}


def get_model_price(pricing: dict[str, ModelPrice], model: str, has_vision: bool = False) -> str:
    price = pricing.get(model)
    if price is None:
        logger.error("pricing: unknown model %s (available: %s)", model, ", ".join(pricing))
        raise ConfigError(f"Unknown AI model: {model}")
    return price.vision if has_vision else price.base


def build_payment_requirements(
    config: X402Config,
    pricing: dict[str, ModelPrice],
    model: str,
    *,
    has_vision: bool = False,
    endpoint: str = "/api/chat",
) -> PaymentRequirements:
    price = get_model_price(pricing, model, has_vision)
    description = f"AI Chat - {MODEL_CATALOG[model].display_name}"
    if has_vision:
        description += " (Vision)"
    return PaymentRequirements(
        scheme="exact",
        network=config.network,
        max_amount_required=price,
        resource=f"{config.base_url}{endpoint}",
        description=description,
        mime_type="application/json",
        pay_to=config.treasury_wallet,
        max_timeout_seconds=config.max_timeout_seconds,
        asset=config.usdc_mint,
        extra=PaymentRequirementsExtra(fee_payer=config.facilitator_fee_payer),
    )


def micro_usdc_to_usd(value: str | int | None) -> float:
    if value in (None, ""):
        return 0.0
    try:
        return int(value) / MICRO_USDC_PER_USD
    except (TypeError, ValueError):
        return 0.0


def usd_to_micro_usdc(usd: float) -> str:
    return str(round(usd * MICRO_USDC_PER_USD))


__all__ = [
    "FALLBACK_PRICING",
    "MAX_TIMEOUT_SECONDS",
    "PLACEHOLDER_TREASURY",
    "USDC_MINT_ADDRESSES",
    "ModelPrice",
    "X402Config",
    "build_payment_requirements",
    "get_model_price",
    "load_model_pricing",
    "micro_usdc_to_usd",
    "resolve_price",
    "usd_to_micro_usdc",
]
