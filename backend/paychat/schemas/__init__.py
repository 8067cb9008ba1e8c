from .chat import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_MODEL,
    DEFAULT_TEMPERATURE,
    AttachmentPayload,
    ChatCreateRequest,
    ChatMessageFile,
    ChatMessageItem,
    ChatRequest,
    ChatResponse,
    ChatSummary,
    ChatUpdateRequest,
    TokenUsage,
)
from .x402 import (
    X402_VERSION,
    ExactPaymentData,
    FacilitatorSettleResponse,
    FacilitatorVerifyResponse,
    PaymentAuthorization,
    PaymentPayload,
    PaymentReceipt,
    PaymentRequiredBody,
    PaymentRequirements,
    PaymentRequirementsExtra,
    SettlementResult,
    VerificationResult,
)

__all__ = [
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_MODEL",
    "DEFAULT_TEMPERATURE",
    "X402_VERSION",
    "AttachmentPayload",
    "ChatCreateRequest",
    "ChatMessageFile",
    "ChatMessageItem",
    "ChatRequest",
    "ChatResponse",
    "ChatSummary",
    "ChatUpdateRequest",
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
    "TokenUsage",
    "VerificationResult",
]
