from __future__ import annotations

from sqlalchemy.exc import OperationalError

from paychat.errors import PersistenceError
from paychat.services.side_effects import run_best_effort


def test_success_is_reported():
    calls = []

    result = run_best_effort("noop", lambda: calls.append(1))

    assert result.ok is True
    assert result.error is None
    assert calls == [1]


def test_persistence_errors_are_contained():
    def boom():
        raise PersistenceError("record transaction failed")

    result = run_best_effort("transaction", boom)

    assert result.ok is False
    assert result.name == "transaction"
    assert "record transaction failed" in result.error


def test_sqlalchemy_errors_are_contained():
    def boom():
        raise OperationalError("INSERT", {}, Exception("disk full"))

    assert run_best_effort("api_usage", boom).ok is False
