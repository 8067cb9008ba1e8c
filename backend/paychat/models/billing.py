from __future__ import annotations

from sqlalchemy import Column, Date, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped

from paychat.db.types import JSONBCompat, UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Transaction(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """一次已结算的 x402 支付；signature 为 facilitator 返回的链上交易 ID。"""

    __tablename__ = "transactions"

    user_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    message_id: Mapped[PG_UUID | None] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("messages.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    chat_id: Mapped[PG_UUID | None] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("chats.id", ondelete="SET NULL"),
        nullable=True,
    )
    signature: Mapped[str] = Column(String(256), nullable=False, unique=True, index=True)
    amount_usdc: Mapped[float] = Column(Float, nullable=False)
    from_wallet: Mapped[str] = Column(String(128), nullable=False, index=True)
    to_wallet: Mapped[str] = Column(String(128), nullable=False)
    ai_model: Mapped[str] = Column(String(64), nullable=False)
    x402_request_id: Mapped[str | None] = Column(Text, nullable=True)
    x402_response_headers = Column(JSONBCompat(), nullable=True)
    status: Mapped[str] = Column(String(16), nullable=False, default="confirmed", index=True)
    confirmed_at = Column(UTCDateTime(), nullable=True)


class ApiUsageStat(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """按 用户 × 模型 × 日期 聚合的调用量与费用。"""

    __tablename__ = "api_usage_stats"
    __table_args__ = (
        UniqueConstraint("user_id", "ai_model", "usage_date", name="uq_api_usage_user_model_date"),
    )

    user_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ai_model: Mapped[str] = Column(String(64), nullable=False)
    usage_date = Column(Date, nullable=False)
    request_count: Mapped[int] = Column(Integer, nullable=False, default=0)
    prompt_tokens: Mapped[int] = Column(Integer, nullable=False, default=0)
    completion_tokens: Mapped[int] = Column(Integer, nullable=False, default=0)
    total_tokens: Mapped[int] = Column(Integer, nullable=False, default=0)
    total_cost_usdc: Mapped[float] = Column(Float, nullable=False, default=0.0)


__all__ = ["ApiUsageStat", "Transaction"]
