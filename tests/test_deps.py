"""Tests for store connection retries and the linear backoff policy."""

from unittest.mock import MagicMock, call

import pytest
import tenacity.nap
from sqlalchemy.exc import OperationalError

from loadnetwork.core.deps import StoreConnectionError, connect_with_retry, reconnect, with_retry


def refused():
    return OperationalError("SELECT 1", {}, Exception("could not connect to server"))


@pytest.fixture
def waits(monkeypatch):
    recorded = []
    monkeypatch.setattr(tenacity.nap.time, "sleep", recorded.append)
    return recorded


class TestConnect:
    def test_gives_up_after_three_pings(self, waits):
        engine = MagicMock()
        engine.connect.side_effect = refused()

        with pytest.raises(StoreConnectionError):
            connect_with_retry(engine, attempts=3, base_delay=2.0)
        assert engine.connect.call_count == 3
        assert waits == [2.0, 4.0]

    def test_recovers_on_later_attempt(self, waits):
        engine = MagicMock()
        engine.connect.side_effect = [refused(), MagicMock()]

        assert connect_with_retry(engine, attempts=3, base_delay=1.0) is engine
        assert engine.connect.call_count == 2
        assert waits == [1.0]

    def test_reconnect_disposes_pool_then_pings(self, waits):
        engine = MagicMock()

        assert reconnect(engine, attempts=3, base_delay=1.0) is engine
        assert engine.mock_calls[0] == call.dispose()
        assert engine.connect.call_count == 1
        assert waits == []


class TestWithRetry:
    def test_transient_error_retried(self, waits):
        outcomes = [refused(), refused(), "ok"]

        def operation():
            outcome = outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome

        assert with_retry(operation, attempts=3, base_delay=0.5) == "ok"
        assert waits == [0.5, 1.0]

    def test_last_error_reraised(self, waits):
        def operation():
            raise refused()

        with pytest.raises(OperationalError):
            with_retry(operation, attempts=2, base_delay=0.5)
        assert waits == [0.5]

    def test_other_errors_not_retried(self, waits):
        calls = []

        def operation():
            calls.append(1)
            raise ValueError("bad row")

        with pytest.raises(ValueError):
            with_retry(operation, attempts=3, base_delay=0.5)
        assert calls == [1]
        assert waits == []
