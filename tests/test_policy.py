"""
Tests for CallPolicy: timeouts, retries and fallbacks.
"""

import asyncio

import pytest

from pulse_worker.policy import CallPolicy


class Flaky:
    """Fails with the given errors in order, then returns 'ok'."""

    def __init__(self, *errors: Exception):
        self.errors = list(errors)
        self.attempts = 0

    async def __call__(self) -> str:
        self.attempts += 1
        if self.errors:
            raise self.errors.pop(0)
        return "ok"


class TestCall:
    async def test_returns_value(self):
        policy = CallPolicy(timeout=1.0)
        assert await policy.call(Flaky()) == "ok"

    async def test_timeout_raises(self):
        policy = CallPolicy(timeout=0.01)
        with pytest.raises(TimeoutError):
            await policy.call(lambda: asyncio.sleep(1))

    async def test_retries_listed_errors(self):
        flaky = Flaky(ValueError("bad output"))
        policy = CallPolicy(timeout=1.0, retries=1, backoff=0, retry_on=(ValueError,))

        assert await policy.call(flaky) == "ok"
        assert flaky.attempts == 2

    async def test_does_not_retry_other_errors(self):
        flaky = Flaky(KeyError("boom"))
        policy = CallPolicy(timeout=1.0, retries=3, backoff=0, retry_on=(ValueError,))

        with pytest.raises(KeyError):
            await policy.call(flaky)
        assert flaky.attempts == 1

    async def test_gives_up_after_retries(self):
        flaky = Flaky(ValueError("1"), ValueError("2"), ValueError("3"))
        policy = CallPolicy(timeout=1.0, retries=1, backoff=0, retry_on=(ValueError,))

        with pytest.raises(ValueError):
            await policy.call(flaky)
        assert flaky.attempts == 2


class TestCallOrFallback:
    async def test_success(self):
        outcome = await CallPolicy(timeout=1.0).call_or_fallback(Flaky(), fallback="fallback")
        assert outcome.ok
        assert outcome.value == "ok"

    async def test_failure_returns_fallback(self):
        outcome = await CallPolicy(timeout=1.0).call_or_fallback(Flaky(RuntimeError("down")), fallback="fallback")
        assert not outcome.ok
        assert outcome.value == "fallback"
        assert isinstance(outcome.error, RuntimeError)

    async def test_timeout_returns_fallback(self):
        outcome = await CallPolicy(timeout=0.01).call_or_fallback(lambda: asyncio.sleep(1), fallback=None)
        assert not outcome.ok
        assert isinstance(outcome.error, TimeoutError)
