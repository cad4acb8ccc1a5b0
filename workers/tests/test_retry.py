from __future__ import annotations

import asyncio

import pytest

from conftest import RecordingSleep
from curator.core.retry import RetryPolicy, linear_backoff, no_backoff, single_attempt
from curator.engine.errors import AuthFailure, TransientProviderError


class Flaky:
    def __init__(self, failures: int, exc: Exception | None = None) -> None:
        self.failures = failures
        self.exc = exc or TransientProviderError("node busy")
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.exc
        return "ok"


def test_linear_backoff_grows_per_attempt() -> None:
    backoff = linear_backoff(1.5)

    assert [backoff(attempt) for attempt in (1, 2, 3)] == [1.5, 3.0, 4.5]
    assert no_backoff(7) == 0.0


def test_retry_policy_recovers_from_transient_failures(recording_sleep: RecordingSleep) -> None:
    operation = Flaky(failures=3)
    policy = RetryPolicy(max_attempts=5, backoff=linear_backoff(1.0), sleep=recording_sleep)

    assert asyncio.run(policy.run(operation, label="get_content")) == "ok"
    assert operation.calls == 4
    assert recording_sleep.delays == [1.0, 2.0, 3.0]


def test_retry_policy_reraises_when_attempts_run_out(recording_sleep: RecordingSleep) -> None:
    operation = Flaky(failures=5)
    policy = RetryPolicy(max_attempts=3, sleep=recording_sleep)

    with pytest.raises(TransientProviderError):
        asyncio.run(policy.run(operation))
    assert operation.calls == 3
    assert recording_sleep.delays == [0.0, 0.0]


def test_retry_policy_does_not_retry_other_errors(recording_sleep: RecordingSleep) -> None:
    operation = Flaky(failures=1, exc=AuthFailure("revoked"))
    policy = RetryPolicy(max_attempts=5, sleep=recording_sleep)

    with pytest.raises(AuthFailure):
        asyncio.run(policy.run(operation))
    assert operation.calls == 1
    assert recording_sleep.delays == []


def test_single_attempt_never_retries() -> None:
    operation = Flaky(failures=1)

    with pytest.raises(TransientProviderError):
        asyncio.run(single_attempt().run(operation))
    assert operation.calls == 1
