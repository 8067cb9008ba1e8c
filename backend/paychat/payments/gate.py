"""
x402 支付网关：verify -> settle 状态机。

状态流转：
    AWAITING_PROOF --(无凭证)--> REJECTED_402
    AWAITING_PROOF --(有凭证)--> VERIFYING --(无效)--> REJECTED_402
    VERIFYING --(有效)--> SETTLING --(失败)--> REJECTED_402
    SETTLING --(成功)--> GRANTED

约定：
- settle 每个请求最多调用一次，且只在 verify 成功之后；
- facilitator 的任何异常都被折叠为失败结果（-> 402），不会以 5xx 形式泄漏；
- verify + settle 合计受 max_timeout_seconds 约束，超时视为失败。
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import datetime as dt
import json
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.responses import Response

from paychat.errors import FacilitatorError, MalformedProofError
from paychat.logging_config import logger
from paychat.schemas.x402 import (
    PaymentPayload,
    PaymentReceipt,
    PaymentRequiredBody,
    PaymentRequirements,
    SettlementResult,
    VerificationResult,
)

from .facilitator import FacilitatorClient
from .pricing import ModelPrice, X402Config, build_payment_requirements

PAYMENT_HEADER = "X-PAYMENT"
PAYMENT_RESPONSE_HEADER = "X-PAYMENT-RESPONSE"

CORS_HEADERS: dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-PAYMENT",
    "Access-Control-Expose-Headers": PAYMENT_RESPONSE_HEADER,
}


class PaymentState(str, Enum):
    AWAITING_PROOF = "awaiting_proof"
    VERIFYING = "verifying"
    SETTLING = "settling"
    REJECTED_402 = "rejected_402"
    GRANTED = "granted"


@dataclass
class PaymentFlowResult:
    state: PaymentState
    requirements: PaymentRequirements
    response: JSONResponse | None = None
    settlement: SettlementResult | None = None
    payment_amount: str | None = None
    payload: PaymentPayload | None = None
    payer: str | None = None

    @property
    def granted(self) -> bool:
        return self.state is PaymentState.GRANTED


def _b64encode_json(data: dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def decode_receipt(header_value: str) -> dict[str, Any]:
    """Decode an X-PAYMENT-RESPONSE header value back into its JSON object."""
    return json.loads(base64.b64decode(header_value).decode("utf-8"))


class PaymentGate:
    def __init__(
        self,
        *,
        config: X402Config,
        pricing: dict[str, ModelPrice],
        facilitator: FacilitatorClient,
    ) -> None:
        self.config = config
        self.pricing = pricing
        self.facilitator = facilitator

    def build_requirements(
        self,
        model: str,
        has_vision: bool = False,
        endpoint: str = "/api/chat",
    ) -> PaymentRequirements:
        return build_payment_requirements(
            self.config,
            self.pricing,
            model,
            has_vision=has_vision,
            endpoint=endpoint,
        )

    @staticmethod
    def extract_proof(headers: Mapping[str, str]) -> str | None:
        wanted = PAYMENT_HEADER.lower()
        for key, value in headers.items():
            if key.lower() == wanted:
                value = (value or "").strip()
                return value or None
        return None

    @staticmethod
    def decode_proof(raw: str) -> PaymentPayload:
        try:
            padded = raw.strip() + "=" * (-len(raw.strip()) % 4)
            decoded = base64.b64decode(padded, validate=True).decode("utf-8")
            data = json.loads(decoded)
        except (binascii.Error, UnicodeDecodeError, ValueError) as exc:
            raise MalformedProofError("payment header is not base64-encoded JSON") from exc
        try:
            return PaymentPayload.model_validate(data)
        except ValidationError as exc:
            raise MalformedProofError("payment header does not describe a payment payload") from exc

    @staticmethod
    def encode_proof(payload: PaymentPayload) -> str:
        return _b64encode_json(payload.to_wire())

    async def verify(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> VerificationResult:
        try:
            result = await self.facilitator.verify(payload, requirements)
        except FacilitatorError as exc:
            logger.warning("payment: verification error: %s", exc, extra={"biz": "x402"})
            return VerificationResult(is_valid=False, error=exc.message)
        return VerificationResult(
            is_valid=bool(result.is_valid),
            error=result.error,
            invalid_reason=result.invalid_reason,
            payer=result.payer,
        )

    async def settle(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> SettlementResult:
        try:
            result = await self.facilitator.settle(payload, requirements)
        except FacilitatorError as exc:
            logger.warning("payment: settlement error: %s", exc, extra={"biz": "x402"})
            return SettlementResult(success=False, error=exc.message)
        return SettlementResult(
            success=bool(result.success),
            transaction=result.transaction,
            amount=result.amount,
            error=result.error or result.error_reason,
            network_id=result.network_id,
        )

    def build_402_response(
        self,
        requirements: PaymentRequirements,
        error: str = "Payment required",
    ) -> JSONResponse:
        body = PaymentRequiredBody(error=error, accepts=[requirements])
        return JSONResponse(
            status_code=402,
            content=body.model_dump(by_alias=True, exclude_none=True),
            headers=dict(CORS_HEADERS),
        )

    def _reject(
        self,
        requirements: PaymentRequirements,
        error: str,
        *,
        payload: PaymentPayload | None = None,
        settlement: SettlementResult | None = None,
    ) -> PaymentFlowResult:
        return PaymentFlowResult(
            state=PaymentState.REJECTED_402,
            requirements=requirements,
            response=self.build_402_response(requirements, error),
            payload=payload,
            settlement=settlement,
        )

    async def drive_payment_flow(
        self,
        headers: Mapping[str, str],
        model: str,
        has_vision: bool = False,
        endpoint: str = "/api/chat",
    ) -> PaymentFlowResult:
        requirements = self.build_requirements(model, has_vision, endpoint)

        raw = self.extract_proof(headers)
        if raw is None:
            return self._reject(requirements, "Payment required")

        try:
            payload = self.decode_proof(raw)
        except MalformedProofError as exc:
            logger.info("payment: malformed proof: %s", exc, extra={"biz": "x402"})
            return self._reject(requirements, f"Payment verification failed: {exc}")

        loop = asyncio.get_running_loop()
        deadline = loop.time() + requirements.max_timeout_seconds

        try:
            verification = await asyncio.wait_for(
                self.verify(payload, requirements),
                timeout=max(deadline - loop.time(), 0),
            )
        except TimeoutError:
            verification = VerificationResult(is_valid=False, error="verification timed out")

        if not verification.is_valid:
            reason = verification.error or verification.invalid_reason or "invalid payment"
            logger.info(
                "payment: verification rejected model=%s reason=%s",
                model,
                reason,
                extra={"biz": "x402"},
            )
            return self._reject(
                requirements, f"Payment verification failed: {reason}", payload=payload
            )

        remaining = deadline - loop.time()
        if remaining <= 0:
            settlement = SettlementResult(success=False, error="settlement timed out")
        else:
            try:
                settlement = await asyncio.wait_for(
                    self.settle(payload, requirements), timeout=remaining
                )
            except TimeoutError:
                settlement = SettlementResult(success=False, error="settlement timed out")

        if not settlement.success:
            reason = settlement.error or "unknown error"
            logger.warning(
                "payment: settlement failed model=%s reason=%s",
                model,
                reason,
                extra={"biz": "x402"},
            )
            return self._reject(
                requirements,
                f"Payment settlement failed: {reason}",
                payload=payload,
                settlement=settlement,
            )

        logger.info(
            "payment: granted model=%s amount=%s tx=%s",
            model,
            requirements.max_amount_required,
            settlement.transaction,
            extra={"biz": "x402"},
        )
        return PaymentFlowResult(
            state=PaymentState.GRANTED,
            requirements=requirements,
            settlement=settlement,
            payment_amount=requirements.max_amount_required,
            payload=payload,
            payer=verification.payer,
        )

    def build_receipt(self, settlement: SettlementResult) -> PaymentReceipt | None:
        if not (settlement.success and settlement.transaction):
            return None
        return PaymentReceipt(
            success=True,
            transaction=settlement.transaction,
            network=self.config.network,
            amount=settlement.amount or "0",
            timestamp=dt.datetime.now(dt.UTC).isoformat().replace("+00:00", "Z"),
        )

    def attach_receipt(self, response: Response, settlement: SettlementResult | None) -> Response:
        if settlement is None:
            return response
        receipt = self.build_receipt(settlement)
        if receipt is None:
            return response
        response.headers[PAYMENT_RESPONSE_HEADER] = _b64encode_json(receipt.to_wire())
        response.headers["Access-Control-Expose-Headers"] = PAYMENT_RESPONSE_HEADER
        return response


__all__ = [
    "CORS_HEADERS",
    "PAYMENT_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "PaymentFlowResult",
    "PaymentGate",
    "PaymentState",
    "decode_receipt",
]
