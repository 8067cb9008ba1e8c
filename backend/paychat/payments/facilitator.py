"""
x402 facilitator 的 HTTP 客户端。

所有失败（网络错误、非 2xx、非 JSON 响应）统一抛出 FacilitatorError，
由 PaymentGate 捕获并降级为失败结果。
"""

from __future__ import annotations

from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from paychat.errors import FacilitatorError
from paychat.logging_config import logger
from paychat.schemas.x402 import (
    FacilitatorSettleResponse,
    FacilitatorVerifyResponse,
    PaymentPayload,
    PaymentRequirements,
)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class FacilitatorClient:
    def __init__(self, base_url: str, client: httpx.AsyncClient) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def call(
        self,
        endpoint: str,
        body: dict[str, Any],
        response_model: type[ResponseT],
    ) -> ResponseT:
        url = f"{self.base_url}{endpoint}"
        try:
            response = await self.client.post(
                url,
                json=body,
                headers={"Content-Type": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.warning("facilitator: request to %s failed: %s", url, exc)
            raise FacilitatorError(f"Facilitator request failed: {exc}") from exc

        if response.status_code >= 400:
            logger.warning(
                "facilitator: %s returned status=%s body=%s",
                url,
                response.status_code,
                response.text[:500],
            )
            raise FacilitatorError(
                f"Facilitator API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response_model.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            raise FacilitatorError(
                "Facilitator returned an invalid response body",
                status_code=response.status_code,
            ) from exc

    @staticmethod
    def _body(payload: PaymentPayload, requirements: PaymentRequirements) -> dict[str, Any]:
        return {
            "paymentPayload": payload.to_wire(),
            "paymentRequirements": requirements.to_wire(),
        }

    async def verify(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> FacilitatorVerifyResponse:
        return await self.call("/verify", self._body(payload, requirements), FacilitatorVerifyResponse)

    async def settle(
        self, payload: PaymentPayload, requirements: PaymentRequirements
    ) -> FacilitatorSettleResponse:
        return await self.call("/settle", self._body(payload, requirements), FacilitatorSettleResponse)


__all__ = ["FacilitatorClient"]
