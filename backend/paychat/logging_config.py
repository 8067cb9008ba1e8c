"""
Central logger for the gateway.

Every module logs through `from paychat.logging_config import logger` so that
handlers/levels are configured in exactly one place.
"""

from __future__ import annotations

import logging
import sys

from .settings import settings

LOGGER_NAME = "paychat"
_LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class _BizFieldFilter(logging.Filter):
    """给没有 biz 标签的记录补一个默认值，方便格式化与检索。"""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "biz"):
            record.biz = "-"
        return True


def setup_logging(level: str | int | None = None) -> logging.Logger:
    log = logging.getLogger(LOGGER_NAME)
    resolved = level if level is not None else settings.log_level
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO
    log.setLevel(resolved)

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler.addFilter(_BizFieldFilter())
        log.addHandler(handler)
    log.propagate = True
    return log


logger = setup_logging()


__all__ = ["LOGGER_NAME", "logger", "setup_logging"]
