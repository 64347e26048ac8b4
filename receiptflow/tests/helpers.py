"""Test helpers: fast configuration, recorded sleeps and polling."""

from __future__ import annotations

import asyncio
from typing import Callable

from receiptflow.core.config import BatchingConfig, ReceiptFlowConfig, RetryConfig


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)

    @property
    def delays_ms(self) -> list[float]:
        return [round(d * 1000, 3) for d in self.delays]


def fast_config(
    max_batch_size: int = 25,
    window_ms: int = 50,
    base_delay_ms: int = 500,
    max_retries: int = 3,
) -> ReceiptFlowConfig:
    return ReceiptFlowConfig(
        batching=BatchingConfig(max_batch_size=max_batch_size, window_ms=window_ms),
        retry=RetryConfig(base_delay_ms=base_delay_ms, max_retries=max_retries),
    )


async def wait_until(
    predicate: Callable[[], bool],
    timeout: float = 2.0,
    interval: float = 0.005,
) -> bool:
    """Poll ``predicate`` until true or timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()
