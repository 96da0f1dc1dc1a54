"""Tests for RetryPolicy and call_with_retry."""

import pytest

from scenario_runner.errors import StepExecutionError
from scenario_runner.transport.retry_policy import (
    RetryPolicy,
    call_with_retry,
    no_retry_policy,
    step_retry_policy,
)


def test_delay_grows_and_is_capped():
    policy = RetryPolicy(max_retries=5, initial_delay=1.0, backoff_factor=2.0, max_delay=5.0)
    assert [policy.get_delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 5.0]


def test_default_policy_makes_one_attempt():
    assert no_retry_policy().attempts == 1
    assert step_retry_policy(None).attempts == 1
    assert step_retry_policy(-3).attempts == 1
    assert step_retry_policy(2).attempts == 3


class Flaky:
    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise StepExecutionError("connection reset")
        return "ok"


@pytest.mark.asyncio
async def test_call_with_retry_reissues_until_success():
    call = Flaky(failures=2)
    result = await call_with_retry(call, step_retry_policy(2, initial_delay=0), (StepExecutionError,))
    assert result == "ok"
    assert call.calls == 3


@pytest.mark.asyncio
async def test_call_with_retry_raises_last_error():
    call = Flaky(failures=5)
    with pytest.raises(StepExecutionError):
        await call_with_retry(call, step_retry_policy(1, initial_delay=0), (StepExecutionError,))
    assert call.calls == 2


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    async def broken():
        calls.append(1)
        raise ValueError("bad")

    with pytest.raises(ValueError):
        await call_with_retry(broken, step_retry_policy(3, initial_delay=0), (StepExecutionError,))
    assert len(calls) == 1
