"""
Dispatcher: Sequential, Gated, Retried Delivery

Sends one Batch at a time to the acknowledgement endpoint.

Per-batch state machine:
    PENDING (gate closed) -> ELIGIBLE (attempt in flight)
        -> SUCCEEDED
        -> RETRYING (attempt < max) -> ELIGIBLE ...
        -> FAILED (retries exhausted)

Every attempt waits on the network gate first. A failed batch is
logged and skipped; it never blocks the batches behind it and never
touches dedup or optimistic state.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from receiptflow.client.protocols import AcknowledgementEndpoint
from receiptflow.core.errors import ReliabilityError
from receiptflow.core.types import Batch, DeliveryState
from receiptflow.network.gate import NetworkGate
from receiptflow.observability.logging import pipeline_context
from receiptflow.observability.metrics import MetricsCollector
from receiptflow.reliability.retry import RetryPolicy, retry_with_backoff

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryOutcome:
    """Terminal result of one batch's attempt sequence."""
    batch: Batch
    state: DeliveryState
    attempts: int
    error: Optional[ReliabilityError] = None

    @property
    def succeeded(self) -> bool:
        return self.state is DeliveryState.SUCCEEDED


OutcomeCallback = Callable[[DeliveryOutcome], None]


class Dispatcher:
    """
    Consumer of the batch channel with concurrency 1.

    Usage:
        dispatcher = Dispatcher(batches, endpoint, gate, RetryPolicy())
        task = asyncio.create_task(dispatcher.run())
    """

    __slots__ = (
        "_batches", "_endpoint", "_gate", "_policy", "_sleep",
        "_on_failed", "_current", "_state", "_outcomes",
        "_attempts", "_dispatched", "_failed", "_latency",
    )

    def __init__(
        self,
        batches: asyncio.Queue[Batch],
        endpoint: AcknowledgementEndpoint,
        gate: NetworkGate,
        policy: Optional[RetryPolicy] = None,
        metrics: Optional[MetricsCollector] = None,
        on_batch_failed: Optional[OutcomeCallback] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        history_size: int = 256,
    ) -> None:
        metrics = metrics or MetricsCollector()
        self._batches = batches
        self._endpoint = endpoint
        self._gate = gate
        self._policy = policy or RetryPolicy.default()
        self._sleep = sleep
        self._on_failed = on_batch_failed
        self._current: Optional[Batch] = None
        self._state: Optional[DeliveryState] = None
        self._outcomes: deque[DeliveryOutcome] = deque(maxlen=history_size)

        self._attempts = metrics.counter(
            "dispatch_attempts_total", help_text="mark_as_read calls made",
        )
        self._dispatched = metrics.counter(
            "batches_dispatched_total", help_text="Batches acknowledged by the server",
        )
        self._failed = metrics.counter(
            "batches_failed_total", help_text="Batches abandoned after exhausting retries",
        )
        self._latency = metrics.histogram(
            "dispatch_latency_seconds", help_text="mark_as_read round-trip time",
        )

    async def run(self) -> None:
        """Dispatch batches in formation order until cancelled."""
        while True:
            batch = await self._batches.get()
            await self.dispatch(batch)

    async def dispatch(self, batch: Batch) -> DeliveryOutcome:
        """Run one batch's attempt sequence to a terminal state."""
        self._current = batch
        self._state = DeliveryState.ELIGIBLE if self._gate.is_open else DeliveryState.PENDING
        attempts = 0

        if self._state is DeliveryState.PENDING:
            logger.info(f"Batch #{batch.sequence} pending: network gate closed")

        async def send() -> None:
            nonlocal attempts
            self._state = DeliveryState.ELIGIBLE
            attempts += 1
            self._attempts.inc()
            with self._latency.time():
                result = await self._endpoint.mark_as_read(batch.ids)
            if result.is_err():
                raise result.error

        def on_retry(attempt: int, error: BaseException, delay_ms: float) -> None:
            self._state = DeliveryState.RETRYING
            logger.warning(
                f"Batch #{batch.sequence} attempt {attempt} failed ({error}); "
                f"retrying in {delay_ms:.0f}ms"
            )

        try:
            with pipeline_context(batch_sequence=batch.sequence):
                result = await retry_with_backoff(
                    send,
                    self._policy,
                    on_retry=on_retry,
                    sleep=self._sleep,
                    before_attempt=self._gate.wait_open,
                )
        finally:
            self._current = None

        if result.is_ok():
            outcome = DeliveryOutcome(batch, DeliveryState.SUCCEEDED, attempts)
            self._dispatched.inc()
            logger.info(f"Batched: {batch.describe()}")
        else:
            outcome = DeliveryOutcome(batch, DeliveryState.FAILED, attempts, result.error)
            self._failed.inc()
            logger.error(
                "Error processing batch",
                extra={
                    "batch_sequence": batch.sequence,
                    "message_ids": batch.as_strings(),
                    "error": result.error.to_dict(),
                },
            )
            self._notify_failed(outcome)

        self._state = outcome.state
        self._outcomes.append(outcome)
        return outcome

    def _notify_failed(self, outcome: DeliveryOutcome) -> None:
        if self._on_failed is None:
            return
        try:
            self._on_failed(outcome)
        except Exception as e:
            logger.error(f"Batch failure callback error: {e}")

    @property
    def current_batch(self) -> Optional[Batch]:
        """Batch whose attempt sequence is in progress, if any."""
        return self._current

    @property
    def state(self) -> Optional[DeliveryState]:
        """State of the current (or most recent) batch."""
        return self._state

    @property
    def outcomes(self) -> list[DeliveryOutcome]:
        """Recent terminal outcomes, oldest first."""
        return list(self._outcomes)

    @property
    def pending(self) -> int:
        """Formed batches not yet picked up."""
        return self._batches.qsize()
