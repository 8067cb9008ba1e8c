from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin
from .billing import ApiUsageStat, Transaction
from .chat import MESSAGE_ROLES, PAYMENT_STATUSES, Chat, Message, MessageFile
from .user import User

__all__ = [
    "MESSAGE_ROLES",
    "PAYMENT_STATUSES",
    "ApiUsageStat",
    "Base",
    "Chat",
    "Message",
    "MessageFile",
    "TimestampMixin",
    "Transaction",
    "UUIDPrimaryKeyMixin",
    "User",
]
