from __future__ import annotations

import datetime as dt
import uuid

from sqlalchemy import Column
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base

from paychat.db.types import UTCDateTime

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.UTC)


class UUIDPrimaryKeyMixin:
    """Opaque UUID primary key shared by every table."""

    id = Column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )


class TimestampMixin:
    """created_at / updated_at maintained on the Python side (microsecond precision)."""

    created_at = Column(UTCDateTime(), default=utcnow, nullable=False, index=True)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow, nullable=False)


__all__ = ["Base", "TimestampMixin", "UUIDPrimaryKeyMixin", "utcnow"]
