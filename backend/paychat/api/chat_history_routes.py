from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from paychat.deps import get_db
from paychat.errors import bad_request, not_found, unprocessable
from paychat.models import Chat, Message
from paychat.providers.catalog import SUPPORTED_MODELS
from paychat.repositories import chat_repository as repo
from paychat.schemas.chat import (
    ChatCreateRequest,
    ChatMessageFile,
    ChatMessageItem,
    ChatSummary,
    ChatUpdateRequest,
)

router = APIRouter(tags=["chats"], prefix="/api/chats")

TITLE_MAX_CHARS = 120


def _iso(value) -> str | None:
    return value.isoformat() if value is not None else None


def _to_summary(chat: Chat) -> ChatSummary:
    return ChatSummary(
        id=str(chat.id),
        title=chat.title,
        ai_model=chat.ai_model,
        total_messages=chat.total_messages or 0,
        total_cost_usdc=float(chat.total_cost_usdc or 0),
        last_message_at=_iso(chat.last_message_at),
    )


def _to_message_item(message: Message) -> ChatMessageItem:
    return ChatMessageItem(
        id=str(message.id),
        role=message.role,
        content=message.content,
        created_at=_iso(message.created_at) or "",
        cost_usdc=float(message.cost_usdc) if message.cost_usdc is not None else None,
        ai_model=message.ai_model,
        files=[
            ChatMessageFile(
                id=str(f.id),
                name=f.file_name,
                type=f.file_type,
                size=f.file_size,
                url=f.file_url,
                mime_type=f.mime_type,
            )
            for f in message.files
        ],
    )


def _require_wallet(wallet_address: str | None, *, in_query: bool = True) -> str:
    wallet = (wallet_address or "").strip()
    if not wallet:
        suffix = " query parameter" if in_query else ""
        raise bad_request(f"walletAddress{suffix} is required")
    return wallet


def _owned_chat_or_404(db: Session, chat_id: str, wallet: str) -> Chat:
    user = repo.get_user_by_wallet(db, wallet)
    chat = repo.get_owned_chat(db, chat_id, user.id) if user is not None else None
    if chat is None:
        raise not_found("Chat not found")
    return chat


@router.get("")
def list_chats(
    wallet_address: str | None = Query(None, alias="walletAddress"),
    limit: int = Query(20, ge=0, le=100),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> dict:
    """
    列出钱包用户的会话，按最近消息时间倒序。
    """
    wallet = _require_wallet(wallet_address)
    user = repo.get_or_create_user(db, wallet)
    chats = repo.list_user_chats(db, user.id, limit=limit, offset=offset)
    return {"chats": [_to_summary(c).model_dump(by_alias=True) for c in chats]}


@router.post("", status_code=status.HTTP_201_CREATED)
def create_chat(payload: ChatCreateRequest, db: Session = Depends(get_db)) -> dict:
    wallet = _require_wallet(payload.wallet_address, in_query=False)
    if payload.model not in SUPPORTED_MODELS:
        raise bad_request(f"Invalid model. Available: {', '.join(SUPPORTED_MODELS)}")

    title = (payload.title or "").strip()[:TITLE_MAX_CHARS] or "New Chat"
    user = repo.get_or_create_user(db, wallet)
    chat = repo.create_chat(
        db,
        user_id=user.id,
        title=title,
        ai_model=payload.model,
        system_prompt=payload.system_prompt,
    )
    return {"chat": _to_summary(chat).model_dump(by_alias=True)}


@router.get("/{chat_id}")
def get_chat(
    chat_id: str,
    wallet_address: str | None = Query(None, alias="walletAddress"),
    db: Session = Depends(get_db),
) -> dict:
    chat = _owned_chat_or_404(db, chat_id, _require_wallet(wallet_address))
    return {"chat": _to_summary(chat).model_dump(by_alias=True)}


@router.patch("/{chat_id}")
def rename_chat(
    chat_id: str,
    payload: ChatUpdateRequest,
    db: Session = Depends(get_db),
) -> dict:
    wallet = _require_wallet(payload.wallet_address, in_query=False)
    title = " ".join((payload.title or "").split())
    if not title:
        raise unprocessable("Title cannot be empty")
    if len(title) > TITLE_MAX_CHARS:
        raise unprocessable("Title is too long. Please keep it under 120 characters.")

    chat = _owned_chat_or_404(db, chat_id, wallet)
    chat = repo.update_chat_title(db, chat, title)
    return {"chat": _to_summary(chat).model_dump(by_alias=True)}


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_chat(
    chat_id: str,
    wallet_address: str | None = Query(None, alias="walletAddress"),
    db: Session = Depends(get_db),
) -> Response:
    chat = _owned_chat_or_404(db, chat_id, _require_wallet(wallet_address))
    repo.delete_chat(db, chat)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{chat_id}/messages")
def list_messages(
    chat_id: str,
    wallet_address: str | None = Query(None, alias="walletAddress"),
    limit: int = Query(80, ge=1, le=200),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> dict:
    """
    返回会话消息（按时间正序）及其附件；只包含 user / assistant 角色。
    """
    chat = _owned_chat_or_404(db, chat_id, _require_wallet(wallet_address))
    rows = repo.list_chat_messages(db, chat.id, limit=limit, offset=offset)
    items = [_to_message_item(m) for m in rows if m.role in ("user", "assistant")]
    return {"messages": [item.model_dump(by_alias=True) for item in items]}


__all__ = ["router"]
