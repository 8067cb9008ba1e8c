"""
ChatOrchestrator：支付网关之后的请求处理。

流程拆成两段，路由层负责在中间插入 PaymentGate：
1. prepare()：纯校验 + 读库（不写库），任何 4xx 都在收费之前返回；
2. complete() / stream()：拼装消息、调用上游、清洗输出并持久化。
"""

from __future__ import annotations

import datetime as dt
import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from paychat.errors import (
    InvalidAttachmentError,
    PdfExtractionError,
    PersistenceError,
    UpstreamProviderError,
    bad_request,
    http_error,
    not_found,
    unprocessable,
)
from paychat.logging_config import logger
from paychat.models import Chat, Message, User
from paychat.models.base import utcnow
from paychat.payments.gate import PaymentFlowResult
from paychat.payments.pricing import micro_usdc_to_usd
from paychat.providers.base import AIProviderConfig
from paychat.providers.catalog import MODEL_CATALOG, SUPPORTED_MODELS, ModelSpec
from paychat.providers.content import (
    ChatMessage,
    ContentPart,
    ImagePart,
    TextPart,
    reconstruct_history,
    vision_downgrade_note,
)
from paychat.providers.router import ProviderRouter
from paychat.repositories import chat_repository as repo
from paychat.schemas.chat import ChatRequest, ChatResponse
from paychat.schemas.x402 import PaymentPayload, SettlementResult

from .attachments import NormalizedAttachment, normalize_attachments
from .chat_text import (
    SYSTEM_PROMPT,
    format_chat_title,
    sanitize_assistant_response,
    sanitize_user_message,
    to_token_usage,
)
from .pdf_text import extract_pdf_text
from .side_effects import SideEffectResult, run_best_effort

IMAGES_ONLY_PLACEHOLDER = "[Images only]"
MIN_MAX_TOKENS, MAX_MAX_TOKENS = 256, 2048
MIN_TEMPERATURE, MAX_TEMPERATURE = 0.0, 2.0


@dataclass
class PreparedChat:
    wallet_address: str
    model: str
    spec: ModelSpec
    user_text: str
    attachments: list[NormalizedAttachment]
    temperature: float
    max_tokens: int
    user: User | None = None
    chat: Chat | None = None
    history: list[Message] = field(default_factory=list)

    @property
    def image_attachments(self) -> list[NormalizedAttachment]:
        return [a for a in self.attachments if a.is_image]

    @property
    def has_vision(self) -> bool:
        """按视觉价格计费：附带图片且模型支持视觉。"""
        return bool(self.image_attachments) and self.spec.supports_vision


@dataclass(frozen=True)
class PaymentContext:
    settlement: SettlementResult
    payment_amount: str | None = None
    payload: PaymentPayload | None = None
    payer: str | None = None

    @classmethod
    def from_flow(cls, flow: PaymentFlowResult) -> PaymentContext:
        if not flow.granted or flow.settlement is None:
            raise ValueError("payment flow was not granted")
        return cls(
            settlement=flow.settlement,
            payment_amount=flow.payment_amount,
            payload=flow.payload,
            payer=flow.payer,
        )

    @property
    def receipt_id(self) -> str | None:
        if self.settlement.transaction:
            return self.settlement.transaction
        if self.payload is not None:
            return self.payload.payload.signature
        return None

    @property
    def amount_micro(self) -> str | None:
        return self.settlement.amount or self.payment_amount

    def details(self, cost_usdc: float) -> dict[str, Any]:
        authorization = self.payload.payload.authorization if self.payload else None
        return {
            "signature": self.receipt_id,
            "from": authorization.from_ if authorization else self.payer,
            "to": authorization.to if authorization else None,
            "amountMicro": self.amount_micro,
            "amountUsdc": cost_usdc,
            "nonce": authorization.nonce if authorization else None,
            "network": self.settlement.network_id,
        }


@dataclass
class PersistedChat:
    chat: Chat
    assistant_message: Message
    cost_usdc: float
    side_effects: list[SideEffectResult] = field(default_factory=list)


def _sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"


class ChatOrchestrator:
    def __init__(
        self,
        db: Session,
        router: ProviderRouter,
        *,
        history_limit: int = 12,
        message_limit: int = 80,
        treasury_wallet: str | None = None,
    ) -> None:
        self.db = db
        self.router = router
        self.history_limit = history_limit
        self.message_limit = message_limit
        self.treasury_wallet = treasury_wallet

    # ------------------------------------------------------------------
    # 1. 校验（收费之前）
    # ------------------------------------------------------------------
    def prepare(self, request: ChatRequest) -> PreparedChat:
        try:
            attachments = normalize_attachments(request.files)
        except InvalidAttachmentError as exc:
            raise bad_request(str(exc))

        raw_message = request.message if isinstance(request.message, str) else ""
        wallet = (request.wallet_address or "").strip()
        if not wallet or (not raw_message and not attachments):
            raise bad_request("Missing content. Provide a message or at least one attachment.")

        spec = MODEL_CATALOG.get(request.model)
        if spec is None:
            raise bad_request(f"Invalid model. Available: {', '.join(SUPPORTED_MODELS)}")

        user_text = sanitize_user_message(raw_message)
        if not user_text and not attachments:
            raise unprocessable("Message cannot be empty after sanitization.")

        prepared = PreparedChat(
            wallet_address=wallet,
            model=spec.model_id,
            spec=spec,
            user_text=user_text,
            attachments=attachments,
            temperature=min(max(float(request.temperature), MIN_TEMPERATURE), MAX_TEMPERATURE),
            max_tokens=min(max(int(request.max_tokens), MIN_MAX_TOKENS), MAX_MAX_TOKENS),
            user=repo.get_user_by_wallet(self.db, wallet),
        )

        if request.chat_id:
            chat = (
                repo.get_owned_chat(self.db, request.chat_id, prepared.user.id)
                if prepared.user is not None
                else None
            )
            if chat is None:
                raise not_found("Chat not found for this wallet.")
            if repo.count_chat_messages(self.db, chat.id) >= self.message_limit:
                raise bad_request(
                    f"This chat has reached the limit of {self.message_limit} messages. "
                    "Please start a new chat to continue."
                )
            prepared.chat = chat
            prepared.history = repo.list_chat_messages(
                self.db, chat.id, limit=self.history_limit, latest=True
            )
        return prepared

    # ------------------------------------------------------------------
    # 2. 消息拼装
    # ------------------------------------------------------------------
    def _pdf_sections(self, attachments: list[NormalizedAttachment]) -> str:
        sections: list[str] = []
        for attachment in attachments:
            if not attachment.is_pdf:
                continue
            try:
                text = extract_pdf_text(attachment.data_url)
            except PdfExtractionError as exc:
                logger.warning("pdf: failed to extract %s: %s", attachment.file_name, exc)
                sections.append(f"\n\n[Error: Could not read PDF file {attachment.file_name}]")
                continue
            logger.info("pdf: extracted %d characters from %s", len(text), attachment.file_name)
            sections.append(f"\n\n--- Content from {attachment.file_name} ---\n{text}")
        return "".join(sections)

    def build_messages(self, prepared: PreparedChat) -> list[ChatMessage]:
        supports_vision = prepared.spec.supports_vision
        messages = [reconstruct_history(row, supports_vision) for row in prepared.history]

        text = prepared.user_text + self._pdf_sections(prepared.attachments)
        images = prepared.image_attachments

        if images and supports_vision:
            parts: list[ContentPart] = []
            if text:
                parts.append(TextPart(text))
            parts.extend(ImagePart(url=a.data_url, detail="auto") for a in images)
            messages.append(ChatMessage.parts("user", parts))
        else:
            if images:
                text += vision_downgrade_note([a.file_name for a in images], prepared.spec.display_name)
            messages.append(ChatMessage.text("user", text))
        return messages

    def _config(self, prepared: PreparedChat) -> AIProviderConfig:
        return AIProviderConfig(
            model=prepared.model,
            messages=self.build_messages(prepared),
            temperature=prepared.temperature,
            max_tokens=prepared.max_tokens,
            system_prompt=SYSTEM_PROMPT,
        )

    @staticmethod
    def _upstream_error(prepared: PreparedChat, exc: UpstreamProviderError) -> HTTPException:
        logger.error("chat: %s API error: %s", prepared.model, exc, extra={"biz": "chat"})
        return http_error(502, message=f"Failed to call {prepared.model}", details=exc.message)

    # ------------------------------------------------------------------
    # 3. 调用上游
    # ------------------------------------------------------------------
    async def complete(self, prepared: PreparedChat, payment: PaymentContext) -> ChatResponse:
        try:
            reply = await self.router.chat(self._config(prepared))
        except UpstreamProviderError as exc:
            raise self._upstream_error(prepared, exc)

        content = sanitize_assistant_response(reply.content)
        usage = to_token_usage(reply.usage)
        persisted = self.persist(prepared, payment, content=content, usage=usage.model_dump())
        return ChatResponse(
            message=content,
            model=prepared.model,
            chat_id=str(persisted.chat.id),
            token_usage=usage,
            cost=persisted.cost_usdc,
        )

    async def stream(self, prepared: PreparedChat, payment: PaymentContext) -> AsyncIterator[str]:
        """
        以 SSE 文本产出增量；上游完成后才落库并发送 done 事件。

        客户端中途断开时生成器被关闭，上游连接随之释放，不会写入半截回复。
        """
        collected: list[str] = []
        try:
            async with aclosing(self.router.stream_chat(self._config(prepared))) as chunks:
                async for chunk in chunks:
                    if chunk.text:
                        collected.append(chunk.text)
                        yield _sse({"type": "delta", "text": chunk.text})
                    if chunk.is_complete:
                        break
        except UpstreamProviderError as exc:
            err = self._upstream_error(prepared, exc)
            yield _sse({"type": "error", **err.detail})
            return

        content = sanitize_assistant_response("".join(collected))
        try:
            persisted = self.persist(prepared, payment, content=content, usage=None)
        except (PersistenceError, SQLAlchemyError) as exc:
            logger.error("chat: failed to persist streamed reply: %s", exc, extra={"biz": "chat"})
            yield _sse({"type": "error", "error": "Internal server error", "details": str(exc)})
            return
        yield _sse(
            {
                "type": "done",
                "chatId": str(persisted.chat.id),
                "message": content,
                "cost": persisted.cost_usdc,
            }
        )

    # ------------------------------------------------------------------
    # 4. 持久化
    # ------------------------------------------------------------------
    def persist(
        self,
        prepared: PreparedChat,
        payment: PaymentContext,
        *,
        content: str,
        usage: dict[str, int] | None,
    ) -> PersistedChat:
        """
        主写入（用户/会话/两条消息）失败抛出 PersistenceError；
        附件、交易、用量为 best-effort。
        """
        tokens = to_token_usage(usage)
        amount_micro = payment.amount_micro
        cost_usdc = (
            micro_usdc_to_usd(amount_micro)
            if amount_micro
            else self.router.get_model_price(prepared.model, prepared.has_vision)
        )
        signature = payment.receipt_id

        user = repo.get_or_create_user(self.db, prepared.wallet_address)

        user_meta: dict[str, Any] = {}
        if prepared.attachments:
            user_meta["attachments"] = [
                {"name": a.file_name, "mimeType": a.mime_type, "size": a.size}
                for a in prepared.attachments
            ]
        assistant_meta: dict[str, Any] = {
            "tokenUsage": tokens.model_dump(),
            "temperature": prepared.temperature,
            "maxTokens": prepared.max_tokens,
        }
        if signature:
            assistant_meta["payment"] = payment.details(cost_usdc)

        # 会话 + 两条消息 + 计数在同一个事务里提交，任何一步失败都整体回滚
        try:
            chat = prepared.chat or repo.create_chat(
                self.db,
                user_id=user.id,
                title=format_chat_title(prepared.user_text),
                ai_model=prepared.model,
                commit=False,
            )
            user_at = utcnow()
            user_message = repo.add_message(
                self.db,
                chat=chat,
                user=user,
                role="user",
                content=prepared.user_text or IMAGES_ONLY_PLACEHOLDER,
                ai_model=prepared.model,
                metadata=user_meta,
                payment_status="paid",
                created_at=user_at,
                commit=False,
            )
            assistant_message = repo.add_message(
                self.db,
                chat=chat,
                user=user,
                role="assistant",
                content=content,
                ai_model=prepared.model,
                metadata=assistant_meta,
                prompt_tokens=tokens.prompt_tokens,
                completion_tokens=tokens.completion_tokens,
                total_tokens=tokens.total_tokens,
                cost_usdc=cost_usdc,
                transaction_signature=signature,
                payment_status="paid",
                created_at=max(utcnow(), user_at + dt.timedelta(milliseconds=1)),
                commit=False,
            )
            repo.commit(self.db, "persist chat reply")
        except PersistenceError:
            self.db.rollback()
            raise

        effects: list[SideEffectResult] = []
        if prepared.attachments:
            files = [
                repo.NewMessageFile(
                    file_name=a.file_name,
                    file_type=a.mime_type,
                    file_size=a.size,
                    file_url=a.data_url,
                    mime_type=a.mime_type,
                    metadata={"source": "user-upload"},
                )
                for a in prepared.attachments
            ]
            effects.append(
                run_best_effort(
                    "message_files", lambda: repo.add_message_files(self.db, user_message, files)
                )
            )

        if signature:
            details = payment.details(cost_usdc)
            effects.append(
                run_best_effort(
                    "transaction",
                    lambda: repo.record_transaction(
                        self.db,
                        user_id=user.id,
                        message_id=assistant_message.id,
                        chat_id=chat.id,
                        signature=signature,
                        amount_usdc=cost_usdc,
                        from_wallet=details["from"] or prepared.wallet_address,
                        to_wallet=details["to"] or self.treasury_wallet or "unknown",
                        ai_model=prepared.model,
                        x402_request_id=details["nonce"],
                        x402_response_headers=payment.settlement.to_wire(),
                    ),
                )
            )

        effects.append(
            run_best_effort(
                "api_usage",
                lambda: repo.record_api_usage(
                    self.db,
                    user_id=user.id,
                    ai_model=prepared.model,
                    prompt_tokens=tokens.prompt_tokens,
                    completion_tokens=tokens.completion_tokens,
                    total_tokens=tokens.total_tokens,
                    cost_usdc=cost_usdc,
                ),
            )
        )

        logger.info(
            "chat: persisted chat=%s model=%s cost=%.6f tx=%s",
            chat.id,
            prepared.model,
            cost_usdc,
            signature,
            extra={"biz": "chat"},
        )
        return PersistedChat(
            chat=chat,
            assistant_message=assistant_message,
            cost_usdc=cost_usdc,
            side_effects=effects,
        )


__all__ = [
    "ChatOrchestrator",
    "PaymentContext",
    "PersistedChat",
    "PreparedChat",
]
