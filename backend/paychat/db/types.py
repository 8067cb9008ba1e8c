from __future__ import annotations

import datetime as dt

from sqlalchemy import JSON, DateTime
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.types import TypeDecorator


class JSONBCompat(TypeDecorator):
    """消息/附件 metadata 列：PostgreSQL 上使用 JSONB，其它方言（测试用 SQLite）回退为 JSON。"""

    impl = JSONB
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


class UTCDateTime(TypeDecorator):
    """
    带时区的时间列，读写统一为 UTC：
    - PostgreSQL 原生保存 timestamptz；
    - SQLite 保存 naive UTC，读出时补齐 tzinfo，保证比较/序列化一致。
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None or not isinstance(value, dt.datetime):
            return value
        if value.tzinfo is None:
            return value
        as_utc = value.astimezone(dt.UTC)
        if dialect.name == "postgresql":
            return as_utc
        return as_utc.replace(tzinfo=None)

    def process_result_value(self, value, dialect):
        if value is None or not isinstance(value, dt.datetime):
            return value
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


__all__ = ["JSONBCompat", "UTCDateTime"]
