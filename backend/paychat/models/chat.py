from __future__ import annotations

from sqlalchemy import BigInteger, Column, Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import Mapped, relationship

from paychat.db.types import JSONBCompat, UTCDateTime

from .base import Base, TimestampMixin, UUIDPrimaryKeyMixin, utcnow

MESSAGE_ROLES: tuple[str, ...] = ("user", "assistant", "system")
PAYMENT_STATUSES: tuple[str, ...] = ("pending", "paid", "failed", "refunded")


class Chat(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """单个会话；计数/累计费用在写入消息时同步更新。"""

    __tablename__ = "chats"

    user_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = Column(String(255), nullable=False, default="New Chat")
    ai_model: Mapped[str] = Column(String(64), nullable=False, default="deepseek")
    system_prompt: Mapped[str | None] = Column(Text, nullable=True)
    total_messages: Mapped[int] = Column(Integer, nullable=False, default=0)
    total_cost_usdc: Mapped[float] = Column(Float, nullable=False, default=0.0)
    last_message_at = Column(UTCDateTime(), nullable=False, default=utcnow, index=True)

    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Message(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_chat_created", "chat_id", "created_at"),)

    chat_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("chats.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role: Mapped[str] = Column(String(16), nullable=False)
    content: Mapped[str] = Column(Text, nullable=False)
    content_type: Mapped[str] = Column(String(16), nullable=False, default="text")
    # "metadata" 是 declarative 保留属性名，这里用 meta 映射到 metadata 列
    meta = Column("metadata", JSONBCompat(), nullable=False, default=dict)

    ai_model: Mapped[str | None] = Column(String(64), nullable=True)
    prompt_tokens: Mapped[int | None] = Column(Integer, nullable=True)
    completion_tokens: Mapped[int | None] = Column(Integer, nullable=True)
    total_tokens: Mapped[int | None] = Column(Integer, nullable=True)

    cost_usdc: Mapped[float | None] = Column(Float, nullable=True)
    transaction_signature: Mapped[str | None] = Column(String(256), nullable=True, index=True)
    payment_status: Mapped[str] = Column(String(16), nullable=False, default="pending", index=True)

    chat = relationship("Chat", back_populates="messages")
    files = relationship(
        "MessageFile",
        back_populates="message",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="MessageFile.created_at",
    )


class MessageFile(UUIDPrimaryKeyMixin, Base):
    """消息附件；file_url 保存原始 data URL（图片可直接回放给视觉模型）。"""

    __tablename__ = "message_files"

    message_id: Mapped[PG_UUID] = Column(
        PG_UUID(as_uuid=True),
        ForeignKey("messages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    file_name: Mapped[str] = Column(String(255), nullable=False)
    file_type: Mapped[str] = Column(String(128), nullable=False)
    file_size: Mapped[int] = Column(BigInteger, nullable=False)
    file_url: Mapped[str] = Column(Text, nullable=False)
    mime_type: Mapped[str | None] = Column(String(128), nullable=True)
    meta = Column("metadata", JSONBCompat(), nullable=False, default=dict)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    message = relationship("Message", back_populates="files")


__all__ = ["MESSAGE_ROLES", "PAYMENT_STATUSES", "Chat", "Message", "MessageFile"]
