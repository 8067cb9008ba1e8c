"""
FastAPI 应用工厂。

共享资源（httpx 客户端、ProviderRouter、PaymentGate）在 lifespan 中构建一次，
挂到 app.state 上，由 deps 注入到各路由。
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import chat_history_router, chat_router
from .db import engine, init_db
from .errors import PaychatError
from .logging_config import logger
from .middleware import RequestLoggingMiddleware
from .payments.facilitator import FacilitatorClient
from .payments.gate import PaymentGate
from .payments.pricing import X402Config, load_model_pricing
from .providers.router import ProviderClients, ProviderRouter
from .settings import Settings, get_settings


def _error_body(detail: object) -> dict:
    if isinstance(detail, dict) and "error" in detail:
        return detail
    return {"error": str(detail)}


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """
    构建应用。

    `transport` 仅用于测试：注入 httpx.MockTransport 以替换所有外部 HTTP 调用
    （facilitator 与三个 LLM 上游）。
    """
    resolved = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        init_db(engine)
        x402_config = X402Config.from_settings(resolved)
        pricing = load_model_pricing(resolved)
        async with httpx.AsyncClient(
            timeout=resolved.upstream_timeout,
            transport=transport,
        ) as client:
            app.state.http_client = client
            app.state.provider_router = ProviderRouter(
                ProviderClients.from_settings(resolved, client), pricing
            )
            app.state.payment_gate = PaymentGate(
                config=x402_config,
                pricing=pricing,
                facilitator=FacilitatorClient(x402_config.facilitator_url, client),
            )
            for name in ("deepseek_api_key", "openai_api_key", "anthropic_api_key"):
                if not getattr(resolved, name):
                    logger.warning("Missing %s", name.upper())
            logger.info(
                "paychat started network=%s facilitator=%s",
                x402_config.network,
                x402_config.facilitator_url,
            )
            yield

    app = FastAPI(title="paychat", version="0.1.0", lifespan=lifespan)
    app.state.settings = resolved
    app.add_middleware(RequestLoggingMiddleware)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.detail),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": "Invalid request body", "details": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(PaychatError)
    async def paychat_exception_handler(request: Request, exc: PaychatError) -> JSONResponse:
        logger.exception("Unhandled gateway error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    app.include_router(chat_router)
    app.include_router(chat_history_router)
    return app


__all__ = ["create_app"]
