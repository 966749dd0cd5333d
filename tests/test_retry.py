"""Tests for the retry combinator and cancellation token."""

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from vnlocalize.engines.cancellation import CancelToken
from vnlocalize.engines.exceptions import (
    CredentialsError,
    LengthMismatchError,
    ProviderError,
    RunCancelled,
)
from vnlocalize.engines.retry import RetryPolicy, is_retryable, with_retry

FAST = RetryPolicy(max_attempts=3, base_delay=0, max_delay=0, jitter=0)


class TestRetryPolicy:
    def test_exponential_backoff_is_capped(self):
        policy = RetryPolicy(base_delay=1.0, max_delay=3.0, jitter=0)
        assert [policy.delay_for(a) for a in range(4)] == [1.0, 2.0, 3.0, 3.0]

    def test_jitter_bounds(self):
        policy = RetryPolicy(base_delay=0.5, max_delay=10.0, jitter=0.25)
        for _ in range(20):
            assert 0.5 <= policy.delay_for(0) <= 0.75

    def test_from_config(self):
        policy = RetryPolicy.from_config({"max_attempts": 0, "base_delay": "1.5"})
        assert policy.max_attempts == 1
        assert policy.base_delay == 1.5
        assert policy.max_delay == RetryPolicy.max_delay


class TestIsRetryable:
    def test_classification(self):
        assert is_retryable(ProviderError("boom", status=503))
        assert not is_retryable(ProviderError("nope", status=400, retryable=False))
        assert not is_retryable(CredentialsError("no key"))
        assert not is_retryable(LengthMismatchError("X", 2, 1))
        assert not is_retryable(ValueError("bug"))


class TestWithRetry:
    def test_succeeds_after_transient_failures(self):
        attempts = []

        async def flaky(attempt):
            attempts.append(attempt)
            if attempt < 2:
                raise ProviderError("busy", status=503)
            return "done"

        assert asyncio.run(with_retry(flaky, FAST)) == "done"
        assert attempts == [0, 1, 2]

    def test_raises_last_error_when_exhausted(self):
        async def always(attempt):
            raise ProviderError(f"fail {attempt}", status=500)

        with pytest.raises(ProviderError, match="fail 2"):
            asyncio.run(with_retry(always, FAST))

    def test_non_retryable_raises_immediately(self):
        attempts = []

        async def bad(attempt):
            attempts.append(attempt)
            raise ProviderError("forbidden", status=403, retryable=False)

        with pytest.raises(ProviderError):
            asyncio.run(with_retry(bad, FAST))
        assert attempts == [0]

    def test_on_retry_hook(self):
        seen = []

        async def flaky(attempt):
            if attempt == 0:
                raise ProviderError("busy")
            return attempt

        asyncio.run(with_retry(flaky, FAST, on_retry=lambda e, a: seen.append(a)))
        assert seen == [0]

    def test_cancel_during_backoff(self):
        policy = RetryPolicy(max_attempts=5, base_delay=30, max_delay=30, jitter=0)
        token = CancelToken()

        async def failing(attempt):
            raise ProviderError("busy")

        async def scenario():
            asyncio.get_running_loop().call_later(0.05, token.cancel)
            await with_retry(failing, policy, token)

        started = time.monotonic()
        with pytest.raises(RunCancelled):
            asyncio.run(scenario())
        assert time.monotonic() - started < 5


class TestCancelToken:
    def test_raise_if_cancelled(self):
        token = CancelToken()
        token.raise_if_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(RunCancelled):
            token.raise_if_cancelled()

    def test_sleep_returns_when_not_cancelled(self):
        asyncio.run(CancelToken().sleep(0.01))

    def test_guard_returns_result(self):
        async def work():
            await asyncio.sleep(0)
            return 42

        async def scenario():
            return await CancelToken().guard(work())

        assert asyncio.run(scenario()) == 42

    def test_cancel_from_another_thread_interrupts_guard(self):
        token = CancelToken()
        finished = []

        async def slow():
            try:
                await asyncio.sleep(30)
            finally:
                finished.append(True)

        async def scenario():
            threading.Timer(0.05, token.cancel).start()
            await token.guard(slow())

        with pytest.raises(RunCancelled):
            asyncio.run(scenario())
        assert finished == [True]
