"""
x402 协议的数据结构（Solana USDC "exact" scheme）。

字段在 Python 侧使用 snake_case，序列化/反序列化时使用协议规定的 camelCase。
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

X402_VERSION = 1


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class PaymentRequirementsExtra(_CamelModel):
    fee_payer: str | None = None


class PaymentRequirements(_CamelModel):
    scheme: Literal["exact"] = "exact"
    network: str
    max_amount_required: str
    resource: str
    description: str
    mime_type: str = "application/json"
    pay_to: str
    max_timeout_seconds: int
    asset: str
    extra: PaymentRequirementsExtra | None = None


class PaymentAuthorization(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    from_: str = Field(alias="from")
    to: str
    value: str
    valid_after: str
    valid_before: str
    nonce: str


class ExactPaymentData(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    signature: str
    authorization: PaymentAuthorization


class PaymentPayload(_CamelModel):
    """钱包签名后的支付凭证；收到后不可变。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    x402_version: int
    scheme: str
    network: str
    payload: ExactPaymentData


class VerificationResult(_CamelModel):
    is_valid: bool
    error: str | None = None
    invalid_reason: str | None = None
    payer: str | None = None


class SettlementResult(_CamelModel):
    success: bool
    transaction: str | None = None
    amount: str | None = None
    error: str | None = None
    network_id: str | None = None


class FacilitatorVerifyResponse(_CamelModel):
    """Facilitator /verify 响应；所有字段可缺省。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    is_valid: bool | None = None
    error: str | None = None
    invalid_reason: str | None = None
    payer: str | None = None


class FacilitatorSettleResponse(_CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    success: bool | None = None
    error: str | None = None
    error_reason: str | None = None
    transaction: str | None = None
    amount: str | None = None
    network_id: str | None = None


class PaymentRequiredBody(_CamelModel):
    x402_version: int = X402_VERSION
    error: str
    accepts: list[PaymentRequirements]


class PaymentReceipt(_CamelModel):
    """X-PAYMENT-RESPONSE 头中携带的结算回执。"""

    success: bool
    transaction: str
    network: str
    amount: str
    timestamp: str


__all__ = [
    "X402_VERSION",
    "ExactPaymentData",
    "FacilitatorSettleResponse",
    "FacilitatorVerifyResponse",
    "PaymentAuthorization",
    "PaymentPayload",
    "PaymentReceipt",
    "PaymentRequiredBody",
    "PaymentRequirements",
    "PaymentRequirementsExtra",
    "SettlementResult",
    "VerificationResult",
]
