from __future__ import annotations

from sqlalchemy import Column, Float, Integer, String
from sqlalchemy.orm import Mapped

from paychat.db.types import UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow


class User(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """钱包用户：以钱包地址作为唯一身份。"""

    __tablename__ = "users"

    wallet_address: Mapped[str] = Column(String(128), nullable=False, unique=True, index=True)
    display_name: Mapped[str | None] = Column(String(255), nullable=True)
    preferred_model: Mapped[str] = Column(String(64), nullable=False, default="deepseek")
    total_spent_usdc: Mapped[float] = Column(Float, nullable=False, default=0.0)
    total_messages: Mapped[int] = Column(Integer, nullable=False, default=0)
    last_seen_at = Column(UTCDateTime(), nullable=False, default=utcnow)


__all__ = ["User"]
