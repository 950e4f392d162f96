"""Tests for the bounded retry policy."""

from __future__ import annotations

import threading

import pytest

from docsite.config import RetryConfig
from docsite.errors import FatalBackendError, TransientBackendError
from docsite.retry import Cancelled, RetryPolicy


def test_delay_doubles_and_is_capped() -> None:
    policy = RetryPolicy(base_delay=1.0, max_delay=5.0, jitter=lambda: 1.0)

    assert [policy.delay(attempt) for attempt in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


def test_delay_jitter_stays_in_upper_half() -> None:
    low = RetryPolicy(base_delay=2.0, max_delay=30.0, jitter=lambda: 0.0)
    high = RetryPolicy(base_delay=2.0, max_delay=30.0, jitter=lambda: 1.0)

    assert low.delay(2) == pytest.approx(2.0)
    assert high.delay(2) == pytest.approx(4.0)


def test_from_config_copies_bounds() -> None:
    policy = RetryPolicy.from_config(RetryConfig(max_attempts=5, base_delay=0.5, max_delay=8.0))

    assert (policy.max_attempts, policy.base_delay, policy.max_delay) == (5, 0.5, 8.0)


def test_transient_errors_are_retried_until_success() -> None:
    outcomes = [TransientBackendError("busy"), TransientBackendError("busy"), "done"]
    attempts: list[int] = []

    def operation() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    result = RetryPolicy(max_attempts=3, base_delay=0).call(operation, label="test", on_attempt=attempts.append)

    assert result == "done"
    assert attempts == [1, 2, 3]


def test_last_transient_error_is_raised_after_max_attempts() -> None:
    calls = []

    def operation() -> str:
        calls.append(1)
        raise TransientBackendError(f"failure {len(calls)}")

    with pytest.raises(TransientBackendError, match="failure 4"):
        RetryPolicy(max_attempts=4, base_delay=0).call(operation, label="test")

    assert len(calls) == 4


def test_non_transient_errors_propagate_immediately() -> None:
    calls = []

    def operation() -> str:
        calls.append(1)
        raise FatalBackendError("denied")

    with pytest.raises(FatalBackendError):
        RetryPolicy(max_attempts=3, base_delay=0).call(operation, label="test")

    assert len(calls) == 1


def test_cancelled_before_first_attempt() -> None:
    cancel = threading.Event()
    cancel.set()
    calls = []

    with pytest.raises(Cancelled):
        RetryPolicy().call(lambda: calls.append(1), label="test", cancel_event=cancel)

    assert calls == []


def test_cancel_interrupts_backoff_wait() -> None:
    cancel = threading.Event()
    calls = []

    def operation() -> str:
        calls.append(1)
        cancel.set()
        raise TransientBackendError("busy")

    with pytest.raises(Cancelled):
        RetryPolicy(max_attempts=3, base_delay=60.0, max_delay=60.0).call(
            operation, label="test", cancel_event=cancel
        )

    assert len(calls) == 1
