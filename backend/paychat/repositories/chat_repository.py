from __future__ import annotations

import datetime as dt
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from paychat.errors import PersistenceError
from paychat.models import ApiUsageStat, Chat, Message, MessageFile, Transaction, User
from paychat.models.base import utcnow


@dataclass(frozen=True)
class NewMessageFile:
    file_name: str
    file_type: str
    file_size: int
    file_url: str
    mime_type: str | None = None
    metadata: dict[str, Any] | None = None


def _parse_uuid(value: str | uuid.UUID | None) -> uuid.UUID | None:
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _commit(db: Session, action: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"{action} failed: {exc}") from exc


def _flush(db: Session, action: str) -> None:
    try:
        db.flush()
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"{action} failed: {exc}") from exc


def commit(db: Session, action: str) -> None:
    """Commit a unit of work staged with `commit=False`; rolls back and raises PersistenceError on failure."""
    _commit(db, action)


def get_user_by_wallet(db: Session, wallet_address: str) -> User | None:
    stmt: Select[tuple[User]] = select(User).where(User.wallet_address == wallet_address)
    return db.execute(stmt).scalars().first()


def get_or_create_user(db: Session, wallet_address: str) -> User:
    user = get_user_by_wallet(db, wallet_address)
    if user is not None:
        user.last_seen_at = utcnow()
        _commit(db, "touch user")
        return user

    user = User(wallet_address=wallet_address)
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # 并发请求同时创建同一钱包用户
        db.rollback()
        existing = get_user_by_wallet(db, wallet_address)
        if existing is None:
            raise PersistenceError(f"create user failed for {wallet_address}")
        return existing
    except SQLAlchemyError as exc:
        db.rollback()
        raise PersistenceError(f"create user failed: {exc}") from exc
    db.refresh(user)
    return user


def get_owned_chat(db: Session, chat_id: str | uuid.UUID, user_id: uuid.UUID) -> Chat | None:
    """Return the chat only when it exists and belongs to `user_id`."""
    parsed = _parse_uuid(chat_id)
    if parsed is None:
        return None
    chat = db.get(Chat, parsed)
    if chat is None or chat.user_id != user_id:
        return None
    return chat


def list_user_chats(
    db: Session,
    user_id: uuid.UUID,
    *,
    limit: int = 20,
    offset: int = 0,
) -> list[Chat]:
    stmt: Select[tuple[Chat]] = (
        select(Chat)
        .where(Chat.user_id == user_id)
        .order_by(Chat.last_message_at.desc(), Chat.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    return list(db.execute(stmt).scalars().all())


def list_chat_messages(
    db: Session,
    chat_id: uuid.UUID,
    *,
    limit: int = 80,
    offset: int = 0,
    latest: bool = False,
) -> list[Message]:
    """
    按时间正序返回会话消息（附件一并加载）。

    latest=True 时取最近的 `limit` 条（用于拼装上下文），否则从 offset 开始分页。
    """
    stmt: Select[tuple[Message]] = (
        select(Message)
        .options(selectinload(Message.files))
        .where(Message.chat_id == chat_id)
    )
    if latest:
        stmt = stmt.order_by(Message.created_at.desc()).limit(limit)
        rows = list(db.execute(stmt).scalars().all())
        rows.reverse()
        return rows

    stmt = stmt.order_by(Message.created_at.asc()).offset(offset).limit(limit)
    return list(db.execute(stmt).scalars().all())


def count_chat_messages(db: Session, chat_id: uuid.UUID) -> int:
    stmt = select(func.count()).select_from(Message).where(Message.chat_id == chat_id)
    return int(db.execute(stmt).scalar_one())


def create_chat(
    db: Session,
    *,
    user_id: uuid.UUID,
    title: str,
    ai_model: str,
    system_prompt: str | None = None,
    commit: bool = True,
) -> Chat:
    chat = Chat(
        user_id=user_id,
        title=title,
        ai_model=ai_model,
        system_prompt=system_prompt,
        total_messages=0,
        total_cost_usdc=0.0,
        last_message_at=utcnow(),
    )
    db.add(chat)
    if not commit:
        _flush(db, "create chat")
        return chat
    _commit(db, "create chat")
    db.refresh(chat)
    return chat


def update_chat_title(db: Session, chat: Chat, title: str) -> Chat:
    chat.title = title
    _commit(db, "update chat title")
    db.refresh(chat)
    return chat


def delete_chat(db: Session, chat: Chat) -> None:
    # SQLite 默认不强制外键，先显式清理附件/消息
    message_ids = select(Message.id).where(Message.chat_id == chat.id)
    db.execute(delete(MessageFile).where(MessageFile.message_id.in_(message_ids)))
    db.execute(delete(Message).where(Message.chat_id == chat.id))
    db.delete(chat)
    _commit(db, "delete chat")


def add_message(
    db: Session,
    *,
    chat: Chat,
    user: User,
    role: str,
    content: str,
    ai_model: str | None = None,
    content_type: str = "text",
    metadata: dict[str, Any] | None = None,
    prompt_tokens: int | None = None,
    completion_tokens: int | None = None,
    total_tokens: int | None = None,
    cost_usdc: float | None = None,
    transaction_signature: str | None = None,
    payment_status: str = "pending",
    created_at: dt.datetime | None = None,
    commit: bool = True,
) -> Message:
    """
    写入一条消息并同步更新会话/用户计数。

    这是主写入路径：失败时回滚并抛出 PersistenceError。
    commit=False 时只 flush，由调用方通过 `commit()` 一次性提交。
    """
    now = created_at or utcnow()
    message = Message(
        chat_id=chat.id,
        user_id=user.id,
        role=role,
        content=content,
        content_type=content_type,
        meta=metadata or {},
        ai_model=ai_model,
        prompt_tokens=prompt_tokens,
        completion_tokens=completion_tokens,
        total_tokens=total_tokens,
        cost_usdc=cost_usdc,
        transaction_signature=transaction_signature,
        payment_status=payment_status,
        created_at=now,
    )
    db.add(message)

    chat.total_messages = (chat.total_messages or 0) + 1
    chat.last_message_at = now
    if role == "user":
        user.total_messages = (user.total_messages or 0) + 1
    if cost_usdc:
        chat.total_cost_usdc = (chat.total_cost_usdc or 0.0) + cost_usdc
        user.total_spent_usdc = (user.total_spent_usdc or 0.0) + cost_usdc

    if not commit:
        _flush(db, f"add {role} message")
        return message
    _commit(db, f"add {role} message")
    db.refresh(message)
    return message


def add_message_files(
    db: Session,
    message: Message,
    files: Sequence[NewMessageFile],
) -> list[MessageFile]:
    rows = [
        MessageFile(
            message_id=message.id,
            file_name=f.file_name,
            file_type=f.file_type,
            file_size=f.file_size,
            file_url=f.file_url,
            mime_type=f.mime_type,
            meta=f.metadata or {},
        )
        for f in files
    ]
    db.add_all(rows)
    _commit(db, "add message files")
    return rows


def record_transaction(
    db: Session,
    *,
    user_id: uuid.UUID,
    signature: str,
    amount_usdc: float,
    from_wallet: str,
    to_wallet: str,
    ai_model: str,
    message_id: uuid.UUID | None = None,
    chat_id: uuid.UUID | None = None,
    x402_request_id: str | None = None,
    x402_response_headers: dict[str, Any] | None = None,
) -> Transaction:
    tx = Transaction(
        user_id=user_id,
        message_id=message_id,
        chat_id=chat_id,
        signature=signature,
        amount_usdc=amount_usdc,
        from_wallet=from_wallet,
        to_wallet=to_wallet,
        ai_model=ai_model,
        x402_request_id=x402_request_id,
        x402_response_headers=x402_response_headers,
        status="confirmed",
        confirmed_at=utcnow(),
    )
    db.add(tx)
    _commit(db, "record transaction")
    return tx


def record_api_usage(
    db: Session,
    *,
    user_id: uuid.UUID,
    ai_model: str,
    prompt_tokens: int,
    completion_tokens: int,
    total_tokens: int,
    cost_usdc: float,
    usage_date: dt.date | None = None,
) -> ApiUsageStat:
    """按 用户 × 模型 × 日期 累加调用量（不存在则创建）。"""
    day = usage_date or utcnow().date()
    stmt: Select[tuple[ApiUsageStat]] = select(ApiUsageStat).where(
        ApiUsageStat.user_id == user_id,
        ApiUsageStat.ai_model == ai_model,
        ApiUsageStat.usage_date == day,
    )
    stat = db.execute(stmt).scalars().first()
    if stat is None:
        stat = ApiUsageStat(
            user_id=user_id,
            ai_model=ai_model,
            usage_date=day,
            request_count=0,
            prompt_tokens=0,
            completion_tokens=0,
            total_tokens=0,
            total_cost_usdc=0.0,
        )
        db.add(stat)

    stat.request_count = (stat.request_count or 0) + 1
    stat.prompt_tokens = (stat.prompt_tokens or 0) + prompt_tokens
    stat.completion_tokens = (stat.completion_tokens or 0) + completion_tokens
    stat.total_tokens = (stat.total_tokens or 0) + total_tokens
    stat.total_cost_usdc = (stat.total_cost_usdc or 0.0) + cost_usdc
    _commit(db, "record api usage")
    return stat


__all__ = [
    "NewMessageFile",
    "add_message",
    "add_message_files",
    "commit",
    "count_chat_messages",
    "create_chat",
    "delete_chat",
    "get_or_create_user",
    "get_owned_chat",
    "get_user_by_wallet",
    "list_chat_messages",
    "list_user_chats",
    "record_api_usage",
    "record_transaction",
    "update_chat_title",
]
