"""
Best-effort 副作用：失败只记日志，不影响主流程。

用于附件落库、交易记录、用量聚合等次要写入。
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from paychat.errors import PaychatError
from paychat.logging_config import logger


@dataclass(frozen=True)
class SideEffectResult:
    name: str
    ok: bool
    error: str | None = None


def run_best_effort(name: str, fn: Callable[[], object]) -> SideEffectResult:
    try:
        fn()
    except (PaychatError, SQLAlchemyError) as exc:
        logger.warning("side effect %s failed: %s", name, exc, extra={"biz": "persistence"})
        return SideEffectResult(name=name, ok=False, error=str(exc))
    return SideEffectResult(name=name, ok=True)


__all__ = ["SideEffectResult", "run_best_effort"]
