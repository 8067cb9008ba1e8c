"""
错误类型与 HTTP 错误构造工具。

- 领域异常（ConfigError / MalformedProofError / FacilitatorError / ...）由业务层抛出；
- `http_error` 系列返回 HTTPException，detail 统一为 {"error": ..., "details": ...}，
  由 routes.create_app 注册的异常处理器展开为顶层 JSON。
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from fastapi import HTTPException, status


class PaychatError(Exception):
    """Base class for gateway errors."""


class ConfigError(PaychatError):
    """Unknown model or a required secret/config value is missing."""


class MalformedProofError(PaychatError):
    """The X-PAYMENT header is not base64-encoded JSON of a payment payload."""


class FacilitatorError(PaychatError):
    """Transport failure or non-2xx answer from the payment facilitator."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status={self.status_code})"


class UpstreamProviderError(PaychatError):
    """The LLM backend failed or is not configured."""

    def __init__(self, provider: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message
        self.status_code = status_code


class UnsupportedModelError(PaychatError, ValueError):
    def __init__(self, model: str, supported: Iterable[str]) -> None:
        self.model = model
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported model: {model}. Available: {', '.join(self.supported)}"
        )


class PersistenceError(PaychatError):
    """A write or read against the chat store failed."""


class InvalidAttachmentError(PaychatError, ValueError):
    """An uploaded file is oversized, malformed or over the per-message limit."""


class PdfExtractionError(PaychatError):
    """Text could not be extracted from an uploaded PDF."""


def http_error(
    status_code: int,
    *,
    message: str,
    details: Any | None = None,
) -> HTTPException:
    detail: dict[str, Any] = {"error": message}
    if details is not None:
        detail["details"] = details
    return HTTPException(status_code=status_code, detail=detail)


def bad_request(message: str, *, details: Any | None = None) -> HTTPException:
    return http_error(status.HTTP_400_BAD_REQUEST, message=message, details=details)


def not_found(message: str, *, details: Any | None = None) -> HTTPException:
    return http_error(status.HTTP_404_NOT_FOUND, message=message, details=details)


def unprocessable(message: str, *, details: Any | None = None) -> HTTPException:
    return http_error(
        status.HTTP_422_UNPROCESSABLE_ENTITY, message=message, details=details
    )


def internal_error(message: str = "Internal server error", *, details: Any | None = None) -> HTTPException:
    return http_error(
        status.HTTP_500_INTERNAL_SERVER_ERROR, message=message, details=details
    )


__all__ = [
    "ConfigError",
    "FacilitatorError",
    "InvalidAttachmentError",
    "MalformedProofError",
    "PaychatError",
    "PdfExtractionError",
    "PersistenceError",
    "UnsupportedModelError",
    "UpstreamProviderError",
    "bad_request",
    "http_error",
    "internal_error",
    "not_found",
    "unprocessable",
]
