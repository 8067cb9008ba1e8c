from .facilitator import FacilitatorClient
from .gate import (
    CORS_HEADERS,
    PAYMENT_HEADER,
    PAYMENT_RESPONSE_HEADER,
    PaymentFlowResult,
    PaymentGate,
    PaymentState,
    decode_receipt,
)
from .pricing import (
    USDC_MINT_ADDRESSES,
    ModelPrice,
    X402Config,
    build_payment_requirements,
    load_model_pricing,
    micro_usdc_to_usd,
)

__all__ = [
    "CORS_HEADERS",
    "PAYMENT_HEADER",
    "PAYMENT_RESPONSE_HEADER",
    "USDC_MINT_ADDRESSES",
    "FacilitatorClient",
    "ModelPrice",
    "PaymentFlowResult",
    "PaymentGate",
    "PaymentState",
    "X402Config",
    "build_payment_requirements",
    "decode_receipt",
    "load_model_pricing",
    "micro_usdc_to_usd",
]
