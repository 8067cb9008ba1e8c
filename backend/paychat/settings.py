"""
Process-wide configuration loaded from the environment (and an optional .env).

Values are resolved once at startup and treated as immutable afterwards;
use `get_settings()` or the module-level `settings` instance.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_NETWORKS: tuple[str, ...] = ("solana", "solana-devnet")
DEFAULT_NETWORK = "solana-devnet"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
    )
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    database_url: str = Field(
        default="sqlite:///./paychat.db",
        validation_alias="DATABASE_URL",
    )

    # x402 / Solana
    network: str = Field(
        default=DEFAULT_NETWORK,
        validation_alias=AliasChoices(
            "NETWORK",
            "NEXT_PUBLIC_NETWORK",
            "NEXT_PUBLIC_SOLANA_NETWORK",
        ),
    )
    base_url: str = Field(
        default="http://localhost:3000",
        validation_alias=AliasChoices("BASE_URL", "NEXT_PUBLIC_BASE_URL"),
    )
    treasury_wallet_address: str | None = Field(
        default=None,
        validation_alias="TREASURY_WALLET_ADDRESS",
    )
    facilitator_url: str = Field(
        default="https://facilitator.payai.network",
        validation_alias=AliasChoices("X402_FACILITATOR_URL", "FACILITATOR_URL"),
    )
    facilitator_fee_payer: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "X402_FACILITATOR_FEE_PAYER",
            "NEXT_PUBLIC_X402_FEE_PAYER",
            "FACILITATOR_FEE_PAYER",
        ),
    )
    payment_timeout_seconds: int = Field(
        default=300,
        validation_alias="X402_MAX_TIMEOUT_SECONDS",
    )

    # 每条消息价格（USDC 最小单位字符串）；非纯数字时回退到内置默认值
    price_deepseek: str | None = Field(default=None, validation_alias="PRICE_DEEPSEEK")
    price_deepseek_vision: str | None = Field(
        default=None, validation_alias="PRICE_DEEPSEEK_VISION"
    )
    price_gpt: str | None = Field(default=None, validation_alias="PRICE_GPT")
    price_claude: str | None = Field(default=None, validation_alias="PRICE_CLAUDE")
    price_vision_addon: str | None = Field(
        default=None, validation_alias="PRICE_VISION_ADDON"
    )

    # Upstream LLM providers
    deepseek_api_key: str | None = Field(default=None, validation_alias="DEEPSEEK_API_KEY")
    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    anthropic_api_key: str | None = Field(default=None, validation_alias="ANTHROPIC_API_KEY")
    deepseek_base_url: str = Field(
        default="https://api.deepseek.com/v1", validation_alias="DEEPSEEK_BASE_URL"
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1", validation_alias="OPENAI_BASE_URL"
    )
    anthropic_base_url: str = Field(
        default="https://api.anthropic.com/v1", validation_alias="ANTHROPIC_BASE_URL"
    )
    anthropic_version: str = Field(default="2023-06-01", validation_alias="ANTHROPIC_VERSION")
    upstream_timeout: float = Field(default=120.0, validation_alias="UPSTREAM_TIMEOUT")

    # Chat behaviour
    chat_history_limit: int = Field(default=12, validation_alias="CHAT_HISTORY_LIMIT")
    chat_message_limit: int = Field(default=80, validation_alias="CHAT_MESSAGE_LIMIT")

    @field_validator("network", mode="before")
    @classmethod
    def _normalize_network(cls, value: object) -> str:
        if isinstance(value, str) and value.strip() in SUPPORTED_NETWORKS:
            return value.strip()
        return DEFAULT_NETWORK

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()


__all__ = ["DEFAULT_NETWORK", "SUPPORTED_NETWORKS", "Settings", "get_settings", "settings"]
