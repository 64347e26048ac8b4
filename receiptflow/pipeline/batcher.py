"""
Batcher: Count-or-Time Windowing

Consumes the intake queue and emits Batches onto the dispatch channel.

Window policy:
- A window opens with an empty buffer and a deadline of now + window
- It closes when the buffer reaches max_batch_size, or
- when the deadline passes with at least one id buffered
- A window that expires empty emits nothing; a new window opens
- Every close opens a fresh window with a fresh deadline

No id waits longer than one window. Ids keep their admission order.
On cancellation the open (partial) window is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from receiptflow.core.config import BatchingConfig
from receiptflow.core.types import Batch, MessageId
from receiptflow.observability.metrics import MetricsCollector
from receiptflow.pipeline.intake import IntakeQueue

logger = logging.getLogger(__name__)


class Batcher:
    """
    Windowing task between the intake queue and the dispatcher.

    Usage:
        batches: asyncio.Queue[Batch] = asyncio.Queue()
        batcher = Batcher(intake, batches, BatchingConfig())
        task = asyncio.create_task(batcher.run())
    """

    __slots__ = (
        "_intake", "_out", "_max_size", "_window_s",
        "_sequence", "_formed", "_batch_size",
    )

    def __init__(
        self,
        intake: IntakeQueue,
        out: asyncio.Queue[Batch],
        config: Optional[BatchingConfig] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        config = config or BatchingConfig()
        metrics = metrics or MetricsCollector()
        self._intake = intake
        self._out = out
        self._max_size = config.max_batch_size
        self._window_s = config.window_seconds
        self._sequence = 0
        self._formed = metrics.counter(
            "batches_formed_total", ["trigger"], help_text="Batches emitted by the windowing task",
        )
        self._batch_size = metrics.histogram(
            "batch_size", help_text="Ids per emitted batch",
            buckets=(1, 2, 5, 10, 15, 20, 25, 50, 100),
        )

    async def run(self) -> None:
        """Window forever; only cancellation stops the loop."""
        loop = asyncio.get_running_loop()
        buffer: list[MessageId] = []

        try:
            while True:
                buffer = []
                deadline = loop.time() + self._window_s

                while len(buffer) < self._max_size:
                    remaining = deadline - loop.time()
                    if remaining <= 0:
                        break
                    try:
                        message_id = await asyncio.wait_for(self._intake.get(), timeout=remaining)
                    except asyncio.TimeoutError:
                        break
                    buffer.append(message_id)

                if buffer:
                    trigger = "size" if len(buffer) >= self._max_size else "time"
                    self._emit(buffer, trigger)

        except asyncio.CancelledError:
            if buffer:
                logger.info(f"Discarding partial window of {len(buffer)} ids on shutdown")
            raise

    def _emit(self, ids: list[MessageId], trigger: str) -> None:
        self._sequence += 1
        result = Batch.of(ids, sequence=self._sequence, max_size=self._max_size)
        if result.is_err():
            # Unreachable under the window policy above
            logger.error(f"Refusing to emit batch: {result.error}")
            return

        batch = result.unwrap()
        self._formed.inc(trigger=trigger)
        self._batch_size.observe(len(batch))
        logger.info(f"Batching: {batch.describe()}")
        self._out.put_nowait(batch)

    @property
    def batches_formed(self) -> int:
        return self._sequence
