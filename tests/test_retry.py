import asyncio

import httpx
import pytest

from grand_central.circuit_breaker import CBState, CircuitBreakerRegistry
from grand_central.errors import CircuitOpenError, ErrorCode, ProviderTimeout, RateLimited
from grand_central.models import Provider
from grand_central.retry import RetryExecutor


def failing(error, counter):
    async def op():
        counter.append(1)
        raise error
    return op


def test_backoff_schedule_is_capped():
    executor = RetryExecutor(CircuitBreakerRegistry())
    delays = [executor.backoff_delay(a) for a in range(6)]
    assert delays == [1.0, 2.0, 4.0, 8.0, 10.0, 10.0]
    assert delays == sorted(delays)


async def test_success_first_try(breakers, sleep):
    executor = RetryExecutor(breakers, sleep=sleep)

    async def op():
        return "hello"

    assert await executor.execute(Provider.OPENAI, op) == "hello"
    assert sleep.delays == []
    assert breakers.get(Provider.OPENAI).stats.total_successes == 1


async def test_recovers_after_transient_failures(breakers, sleep):
    executor = RetryExecutor(breakers, sleep=sleep)
    calls = []

    async def op():
        calls.append(1)
        if len(calls) < 3:
            raise httpx.ReadTimeout("read timed out")
        return "ok"

    attempts = []
    assert await executor.execute(Provider.CLAUDE, op, attempts) == "ok"
    assert len(calls) == 3
    assert sleep.delays == [1.0, 2.0]
    assert [a.error.code for a in attempts] == [ErrorCode.TIMEOUT, ErrorCode.TIMEOUT]
    assert breakers.state(Provider.CLAUDE) == CBState.CLOSED


async def test_exhausts_max_retries_plus_one_attempts(clock, sleep):
    """With a breaker that never trips, an always-failing call runs 4 times."""
    breakers = CircuitBreakerRegistry(failure_threshold=10, clock=clock)
    executor = RetryExecutor(breakers, max_retries=3, sleep=sleep)
    calls = []

    with pytest.raises(RateLimited):
        await executor.execute(Provider.GROK, failing(RateLimited("rate limit"), calls))

    assert len(calls) == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


async def test_breaker_opening_mid_retry_short_circuits(breakers, sleep):
    """Default threshold 3 opens the circuit before the fourth attempt."""
    executor = RetryExecutor(breakers, sleep=sleep)
    calls = []
    attempts = []

    with pytest.raises(CircuitOpenError):
        await executor.execute(
            Provider.OPENAI, failing(ProviderTimeout("timed out"), calls), attempts
        )

    assert len(calls) == 3
    assert len(attempts) == 3
    assert breakers.state(Provider.OPENAI) == CBState.OPEN


async def test_open_circuit_rejects_without_calling(breakers, sleep):
    for _ in range(3):
        breakers.record_failure(Provider.DEEPSEEK)
    executor = RetryExecutor(breakers, sleep=sleep)
    calls = []

    with pytest.raises(CircuitOpenError) as exc_info:
        await executor.execute(Provider.DEEPSEEK, failing(RuntimeError("boom"), calls))

    assert calls == []
    assert sleep.delays == []
    assert exc_info.value.code == ErrorCode.CIRCUIT_OPEN
    # A refusal is not a failure of the provider
    assert breakers.get(Provider.DEEPSEEK).consecutive_failures == 3


async def test_raw_exceptions_are_classified(clock, sleep):
    breakers = CircuitBreakerRegistry(failure_threshold=10, clock=clock)
    executor = RetryExecutor(breakers, max_retries=0, sleep=sleep)
    calls = []

    with pytest.raises(Exception) as exc_info:
        await executor.execute(Provider.OPENAI, failing(asyncio.TimeoutError(), calls))

    assert exc_info.value.code == ErrorCode.TIMEOUT
    assert exc_info.value.provider == Provider.OPENAI
