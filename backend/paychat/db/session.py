"""
SQLAlchemy engine / session factory.
"""

from __future__ import annotations

from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from paychat.settings import settings


def build_engine(database_url: str) -> Engine:
    connect_args: dict[str, object] = {}
    if database_url.startswith("sqlite"):
        # FastAPI 在线程池里执行同步依赖，SQLite 需要允许跨线程使用连接
        connect_args["check_same_thread"] = False
    return create_engine(database_url, future=True, pool_pre_ping=True, connect_args=connect_args)


engine = build_engine(settings.database_url)
SessionLocal: sessionmaker[Session] = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


def get_db_session() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db(bind: Engine | None = None) -> None:
    """Create tables that do not exist yet (dev/test convenience, no migrations)."""
    from paychat.models import Base

    Base.metadata.create_all(bind=bind or engine)


__all__ = ["SessionLocal", "build_engine", "engine", "get_db_session", "init_db"]
