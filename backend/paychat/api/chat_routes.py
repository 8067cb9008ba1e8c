"""
付费聊天接口：prepare -> PaymentGate -> complete/stream -> 回执头。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, Response, StreamingResponse
from sqlalchemy.exc import SQLAlchemyError

from paychat.deps import get_chat_orchestrator, get_payment_gate
from paychat.errors import PaychatError
from paychat.logging_config import logger
from paychat.payments.gate import CORS_HEADERS, PaymentGate
from paychat.schemas.chat import ChatRequest
from paychat.services.chat_service import ChatOrchestrator, PaymentContext

router = APIRouter(tags=["chat"], prefix="/api/chat")

CHAT_ENDPOINT = "/api/chat"
STREAM_ENDPOINT = "/api/chat/stream"


def _preflight() -> Response:
    return Response(status_code=200, headers=dict(CORS_HEADERS))


@router.options("")
def chat_preflight() -> Response:
    return _preflight()


@router.options("/stream")
def chat_stream_preflight() -> Response:
    return _preflight()


@router.post("")
async def chat(
    body: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
    gate: PaymentGate = Depends(get_payment_gate),
) -> Response:
    prepared = orchestrator.prepare(body)
    logger.info(
        "chat: request wallet=%s... model=%s chat=%s attachments=%d",
        prepared.wallet_address[:8],
        prepared.model,
        body.chat_id,
        len(prepared.attachments),
        extra={"biz": "chat"},
    )

    flow = await gate.drive_payment_flow(
        request.headers, prepared.model, prepared.has_vision, CHAT_ENDPOINT
    )
    if not flow.granted:
        return flow.response

    payment = PaymentContext.from_flow(flow)
    # 已完成结算：之后的任何错误响应都要带上回执
    try:
        result = await orchestrator.complete(prepared, payment)
        response: Response = JSONResponse(content=result.model_dump(by_alias=True))
    except HTTPException as exc:
        response = JSONResponse(status_code=exc.status_code, content=exc.detail)
    except (PaychatError, SQLAlchemyError) as exc:
        logger.exception("chat: failed to complete paid request")
        response = JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "details": str(exc)},
        )
    return gate.attach_receipt(response, payment.settlement)


@router.post("/stream")
async def chat_stream(
    body: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
    gate: PaymentGate = Depends(get_payment_gate),
) -> Response:
    prepared = orchestrator.prepare(body)
    flow = await gate.drive_payment_flow(
        request.headers, prepared.model, prepared.has_vision, STREAM_ENDPOINT
    )
    if not flow.granted:
        return flow.response

    payment = PaymentContext.from_flow(flow)
    response = StreamingResponse(
        orchestrator.stream(prepared, payment),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
    return gate.attach_receipt(response, payment.settlement)


__all__ = ["router"]
