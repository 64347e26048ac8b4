"""
Unit Tests: Retry with Exponential Backoff

Tests:
    - Delay schedule (500ms, 1s, 2s)
    - Success after transient failures
    - Exhaustion after max_retries
    - Non-retryable errors stop immediately
    - Cancellation propagates
"""

import asyncio

import pytest

from receiptflow.core.errors import ErrorCode, ReliabilityError
from receiptflow.reliability.retry import RetryPolicy, retry_with_backoff
from receiptflow.tests.helpers import RecordingSleep


class Flaky:
    """Fails ``failures`` times, then returns ``value``."""

    def __init__(self, failures: int, value: str = "ok", error: type = ConnectionError):
        self.failures = failures
        self.value = value
        self.error = error
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return self.value


class TestBackoffSchedule:
    """Tests for RetryPolicy delays."""

    def test_default_schedule(self):
        assert RetryPolicy().schedule() == [500.0, 1000.0, 2000.0]

    def test_cap_applies(self):
        assert RetryPolicy().delay_ms(10) == 30000.0

    def test_jitter_stays_within_bound(self):
        for attempt in range(4):
            delay = RetryPolicy(jitter=True).delay_ms(attempt)
            assert 0 <= delay <= 500 * 2 ** attempt


class TestRetryWithBackoff:
    """Tests for the retry loop."""

    def test_succeeds_after_transient_failures(self, recording_sleep: RecordingSleep):
        func = Flaky(failures=2)
        retries = []

        result = asyncio.run(retry_with_backoff(
            func,
            RetryPolicy(),
            on_retry=lambda attempt, error, delay: retries.append((attempt, delay)),
            sleep=recording_sleep,
        ))

        assert result.unwrap() == "ok"
        assert func.calls == 3
        assert recording_sleep.delays_ms == [500.0, 1000.0]
        assert retries == [(1, 500.0), (2, 1000.0)]

    def test_exhausts_after_max_retries(self, recording_sleep: RecordingSleep):
        func = Flaky(failures=10)

        result = asyncio.run(retry_with_backoff(func, RetryPolicy(), sleep=recording_sleep))

        assert result.is_err()
        error = result.error
        assert isinstance(error, ReliabilityError)
        assert error.code is ErrorCode.RELIABILITY_RETRY_EXHAUSTED
        assert error.context["attempts"] == 4
        assert func.calls == 4
        assert recording_sleep.delays_ms == [500.0, 1000.0, 2000.0]

    def test_no_retry_policy_makes_one_attempt(self, recording_sleep: RecordingSleep):
        func = Flaky(failures=1)

        result = asyncio.run(retry_with_backoff(func, RetryPolicy.no_retry(), sleep=recording_sleep))

        assert result.is_err()
        assert func.calls == 1
        assert recording_sleep.delays == []

    def test_non_retryable_stops_immediately(self, recording_sleep: RecordingSleep):
        func = Flaky(failures=5, error=ValueError)
        policy = RetryPolicy(non_retryable_exceptions=(ValueError,))

        result = asyncio.run(retry_with_backoff(func, policy, sleep=recording_sleep))

        assert result.is_err()
        assert func.calls == 1
        assert recording_sleep.delays == []

    def test_per_attempt_timeout_is_retried(self, recording_sleep: RecordingSleep):
        calls = []

        async def slow():
            calls.append(1)
            if len(calls) == 1:
                await asyncio.sleep(1.0)
            return "late"

        policy = RetryPolicy(request_timeout_s=0.01)
        result = asyncio.run(retry_with_backoff(slow, policy, sleep=recording_sleep))

        assert result.unwrap() == "late"
        assert len(calls) == 2

    def test_before_attempt_runs_outside_the_timeout(self, recording_sleep: RecordingSleep):
        func = Flaky(failures=1)
        waits = []

        async def before_attempt():
            waits.append(1)
            await asyncio.sleep(0.05)

        policy = RetryPolicy(request_timeout_s=0.01)
        result = asyncio.run(retry_with_backoff(
            func, policy, sleep=recording_sleep, before_attempt=before_attempt,
        ))

        assert result.unwrap() == "ok"
        assert func.calls == 2
        assert len(waits) == 2

    def test_cancellation_propagates(self):
        started = []

        async def forever():
            started.append(1)
            await asyncio.sleep(10)

        async def scenario():
            task = asyncio.create_task(retry_with_backoff(forever, RetryPolicy()))
            await asyncio.sleep(0.01)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(scenario())
        assert started == [1]
