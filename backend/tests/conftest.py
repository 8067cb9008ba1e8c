from __future__ import annotations

"""
Shared pytest configuration.

This file ensures the backend directory is on sys.path so that `import paychat`
works consistently in all tests, and provides reusable fixtures for tests.
"""

import sys
from pathlib import Path

# Ensure project root is importable for test modules.
# This MUST be done before importing paychat modules.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker

from paychat.routes import create_app
from paychat.settings import Settings
from tests.utils import FakeUpstream, install_inmemory_db, make_settings


@pytest.fixture()
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture()
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture()
def app_with_inmemory_db(
    test_settings, fake_upstream
) -> tuple[FastAPI, sessionmaker[Session]]:
    fastapi_app = create_app(
        test_settings,
        transport=httpx.MockTransport(fake_upstream.handler),
    )
    SessionLocal: sessionmaker[Session] = install_inmemory_db(fastapi_app)

    # Patch paychat.routes.engine so the lifespan creates tables in the in-memory DB
    import paychat.routes
    original_engine = paychat.routes.engine
    paychat.routes.engine = SessionLocal.kw["bind"]

    try:
        yield fastapi_app, SessionLocal
    finally:
        paychat.routes.engine = original_engine


@pytest.fixture()
def client(app_with_inmemory_db):
    app, _ = app_with_inmemory_db
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def db_session(app_with_inmemory_db):
    _, SessionLocal = app_with_inmemory_db
    with SessionLocal() as session:
        yield session


@pytest.fixture()
def session_factory() -> sessionmaker[Session]:
    """Standalone in-memory database for service/repository tests."""
    from tests.utils import build_inmemory_sessionmaker

    return build_inmemory_sessionmaker()
