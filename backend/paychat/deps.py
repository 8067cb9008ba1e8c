from collections.abc import Iterator

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .db import get_db_session
from .payments.gate import PaymentGate
from .providers.router import ProviderRouter
from .services.chat_service import ChatOrchestrator
from .settings import Settings


def get_db() -> Iterator[Session]:
    """
    Provide a synchronous SQLAlchemy session.
    """
    yield from get_db_session()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_provider_router(request: Request) -> ProviderRouter:
    return request.app.state.provider_router


def get_payment_gate(request: Request) -> PaymentGate:
    return request.app.state.payment_gate


def get_chat_orchestrator(
    db: Session = Depends(get_db),
    router: ProviderRouter = Depends(get_provider_router),
    gate: PaymentGate = Depends(get_payment_gate),
    settings: Settings = Depends(get_app_settings),
) -> ChatOrchestrator:
    return ChatOrchestrator(
        db,
        router,
        history_limit=settings.chat_history_limit,
        message_limit=settings.chat_message_limit,
        treasury_wallet=gate.config.treasury_wallet,
    )


__all__ = [
    "get_app_settings",
    "get_chat_orchestrator",
    "get_db",
    "get_payment_gate",
    "get_provider_router",
]
