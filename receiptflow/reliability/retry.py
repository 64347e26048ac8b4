"""
Dispatch Retry: Bounded Exponential Backoff

A batch gets one initial attempt plus ``max_retries`` retries. The wait
before retry ``k`` (0-based) is ``min(cap, base * factor^k)``:

    500ms, 1s, 2s    (defaults: base 500ms, factor 2, 3 retries)

Jitter is off by default so the schedule is deterministic. Cancellation
is never retried.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Type, TypeVar

from receiptflow.core.types import Result, Ok, Err
from receiptflow.core.errors import ReliabilityError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (attempt that failed, its error, delay in ms before the next attempt)
RetryCallback = Callable[[int, BaseException, float], None]


@dataclass(frozen=True)
class RetryPolicy:
    """How many times, and how far apart, to retry a failing call."""

    max_retries: int = 3
    base_delay_ms: int = 500
    max_delay_ms: int = 30000
    exponential_base: float = 2.0
    jitter: bool = False
    retryable_exceptions: tuple[Type[BaseException], ...] = (Exception,)
    non_retryable_exceptions: tuple[Type[BaseException], ...] = ()

    # Per-attempt budget; None lets an attempt run as long as it needs
    request_timeout_s: Optional[float] = None

    @classmethod
    def default(cls) -> RetryPolicy:
        return cls()

    @classmethod
    def no_retry(cls) -> RetryPolicy:
        return cls(max_retries=0)

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_ms(self, retry_index: int) -> float:
        """Wait before retry ``retry_index`` (0-based), jitter applied."""
        delay = min(self.max_delay_ms, self.base_delay_ms * self.exponential_base ** retry_index)
        return random.uniform(0, delay) if self.jitter else float(delay)

    def schedule(self) -> list[float]:
        """Nominal (jitter-free) waits between consecutive attempts, in ms."""
        nominal = RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
        )
        return [nominal.delay_ms(k) for k in range(self.max_retries)]


async def _attempt(func: Callable[[], Awaitable[T]], timeout_s: Optional[float]) -> T:
    if timeout_s is None:
        return await func()
    try:
        return await asyncio.wait_for(func(), timeout=timeout_s)
    except asyncio.TimeoutError:
        raise ReliabilityError.timeout("attempt", int(timeout_s * 1000)) from None


def _describe(error: BaseException) -> str:
    return str(error) or type(error).__name__


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    policy: Optional[RetryPolicy] = None,
    on_retry: Optional[RetryCallback] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    before_attempt: Optional[Callable[[], Awaitable[None]]] = None,
) -> Result[T, ReliabilityError]:
    """
    Call ``func`` until it succeeds or the policy gives up.

    Args:
        func: Zero-argument coroutine factory, invoked once per attempt
        policy: Retry policy (defaults if None)
        on_retry: Notified after each failure that will be retried
        sleep: Used for the backoff wait (injectable for tests)
        before_attempt: Awaited ahead of every attempt, outside the
            per-attempt timeout (e.g. waiting for connectivity)

    Returns:
        Ok(value) from the first successful attempt, or
        Err(RELIABILITY_RETRY_EXHAUSTED) carrying the last error as cause
    """
    policy = policy or RetryPolicy.default()
    attempt = 0

    while True:
        if before_attempt is not None:
            await before_attempt()
        attempt += 1
        try:
            value = await _attempt(func, policy.request_timeout_s)
        except policy.non_retryable_exceptions as e:
            logger.debug(f"Attempt {attempt} failed permanently: {_describe(e)}")
            return Err(ReliabilityError.retry_exhausted(attempt, _describe(e), cause=e))
        except policy.retryable_exceptions as e:
            error = e
        else:
            return Ok(value)

        if attempt >= policy.max_attempts:
            return Err(ReliabilityError.retry_exhausted(attempt, _describe(error), cause=error))

        delay = policy.delay_ms(attempt - 1)
        if on_retry is not None:
            on_retry(attempt, error, delay)
        logger.debug(f"Attempt {attempt} failed ({_describe(error)}); next in {delay:.0f}ms")
        await sleep(delay / 1000)
