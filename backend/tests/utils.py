from __future__ import annotations

import base64
import json
from collections.abc import Iterable
from typing import Any

import httpx
from fastapi import FastAPI
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from paychat.deps import get_db
from paychat.models import Base
from paychat.settings import Settings

FACILITATOR_URL = "https://facilitator.test"
TREASURY = "Treasury1111111111111111111111111111111111"
PAYER = "Payer11111111111111111111111111111111111111"


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "environment": "test",
        "log_level": "WARNING",
        "database_url": "sqlite://",
        "network": "solana-devnet",
        "base_url": "http://testserver",
        "treasury_wallet_address": TREASURY,
        "facilitator_url": FACILITATOR_URL,
        "facilitator_fee_payer": "FeePayer111",
        "deepseek_api_key": "ds-test-key",
        "openai_api_key": "oa-test-key",
        "anthropic_api_key": "an-test-key",
        "deepseek_base_url": "https://deepseek.test/v1",
        "openai_base_url": "https://openai.test/v1",
        "anthropic_base_url": "https://anthropic.test/v1",
        "price_deepseek": None,
        "price_deepseek_vision": None,
        "price_gpt": None,
        "price_claude": None,
        "price_vision_addon": None,
    }
    values.update(overrides)
    return Settings(**values)


def build_inmemory_sessionmaker() -> sessionmaker[Session]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def install_inmemory_db(app: FastAPI) -> sessionmaker[Session]:
    SessionLocal = build_inmemory_sessionmaker()

    def override_get_db():
        session = SessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    return SessionLocal


def make_payment_payload(
    *,
    signature: str = "sig-abc",
    value: str = "30000",
    nonce: str = "nonce-1",
) -> dict[str, Any]:
    return {
        "x402Version": 1,
        "scheme": "exact",
        "network": "solana-devnet",
        "payload": {
            "signature": signature,
            "authorization": {
                "from": PAYER,
                "to": TREASURY,
                "value": value,
                "validAfter": "0",
                "validBefore": "9999999999",
                "nonce": nonce,
            },
        },
    }


def encode_payment_header(payload: dict[str, Any] | None = None) -> str:
    raw = json.dumps(payload or make_payment_payload()).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


def payment_headers(payload: dict[str, Any] | None = None) -> dict[str, str]:
    return {"X-PAYMENT": encode_payment_header(payload)}


def sse_body(events: Iterable[Any], *, done: bool = True) -> bytes:
    lines = []
    for event in events:
        data = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {data}\n\n")
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


def openai_delta(text: str) -> dict[str, Any]:
    return {"choices": [{"index": 0, "delta": {"content": text}}]}


def anthropic_delta(text: str) -> dict[str, Any]:
    return {"type": "content_block_delta", "index": 0, "delta": {"type": "text_delta", "text": text}}


class TrackingStream(httpx.AsyncByteStream):
    """Response body that records whether the client closed it."""

    def __init__(self, chunks: list[bytes]) -> None:
        self.chunks = chunks
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class FakeUpstream:
    """
    单个 MockTransport handler 同时模拟 facilitator 与三个 LLM 上游，
    并记录所有请求，便于断言调用顺序/次数。
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.verify_status = 200
        self.verify_response: dict[str, Any] = {"isValid": True, "payer": PAYER}
        self.settle_status = 200
        self.settle_response: dict[str, Any] = {
            "success": True,
            "transaction": "abc123",
            "amount": "30000",
            "networkId": "solana-devnet",
        }
        self.chat_status = 200
        self.reply_chunks: list[str] = ["Hello", " from", " the model"]
        self.usage = {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17}

    @property
    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]

    def count(self, suffix: str) -> int:
        return sum(1 for p in self.paths if p.endswith(suffix))

    def json_bodies(self, suffix: str) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith(suffix)]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path.endswith("/verify"):
            return httpx.Response(self.verify_status, json=self.verify_response)
        if path.endswith("/settle"):
            return httpx.Response(self.settle_status, json=self.settle_response)

        if self.chat_status >= 400 and path.endswith(("/chat/completions", "/messages")):
            return httpx.Response(self.chat_status, text="upstream exploded")

        body = json.loads(request.content)
        text = "".join(self.reply_chunks)
        if path.endswith("/chat/completions"):
            if body.get("stream"):
                return httpx.Response(
                    200,
                    content=sse_body(openai_delta(c) for c in self.reply_chunks),
                    headers={"content-type": "text/event-stream"},
                )
            return httpx.Response(
                200,
                json={
                    "choices": [{"index": 0, "message": {"role": "assistant", "content": text}}],
                    "usage": self.usage,
                },
            )
        if path.endswith("/messages"):
            if body.get("stream"):
                events = [{"type": "message_start"}]
                events += [anthropic_delta(c) for c in self.reply_chunks]
                events.append({"type": "message_stop"})
                return httpx.Response(
                    200,
                    content=sse_body(events, done=False),
                    headers={"content-type": "text/event-stream"},
                )
            return httpx.Response(
                200,
                json={
                    "content": [{"type": "text", "text": text}],
                    "usage": {"input_tokens": 12, "output_tokens": 5},
                },
            )
        return httpx.Response(404, json={"error": "not found"})
