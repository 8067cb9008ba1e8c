from .attachments import NormalizedAttachment, normalize_attachments
from .chat_service import ChatOrchestrator, PaymentContext, PersistedChat, PreparedChat
from .side_effects import SideEffectResult, run_best_effort

__all__ = [
    "ChatOrchestrator",
    "NormalizedAttachment",
    "PaymentContext",
    "PersistedChat",
    "PreparedChat",
    "SideEffectResult",
    "normalize_attachments",
    "run_best_effort",
]
