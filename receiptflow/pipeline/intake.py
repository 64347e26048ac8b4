"""
Intake Queue: Unbounded Multi-Producer, Single-Consumer Buffer

Carries admitted MessageIds from the admission step to the Batcher.

Properties:
- Producers never block (``offer`` is synchronous)
- Admission order is preserved
- No deduplication (already done upstream)
- Offers made before ``bind()`` or after ``close()`` are dropped
- Every offer lands in one lock-guarded pending deque first; the loop
  drains it into the asyncio queue. An offer on the loop thread drains
  inline, an offer from any other thread schedules a drain with
  ``call_soon_threadsafe``. Either way ids reach the consumer in the
  order they were offered.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Optional

from receiptflow.core.errors import PipelineError
from receiptflow.core.types import MessageId
from receiptflow.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class IntakeQueue:
    """
    Unbounded FIFO of admitted ids.

    Usage:
        intake = IntakeQueue()
        intake.bind()                      # inside the running loop
        intake.offer(MessageId("m-1"))     # from any thread
        mid = await intake.get()           # single consumer
    """

    __slots__ = (
        "_queue", "_loop", "_loop_thread", "_closed",
        "_pending", "_lock", "_drain_scheduled",
        "_offered", "_dropped", "_depth",
    )

    def __init__(self, metrics: Optional[MetricsCollector] = None) -> None:
        metrics = metrics or MetricsCollector()
        self._queue: Optional[asyncio.Queue[MessageId]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._loop_thread: Optional[int] = None
        self._closed = False
        self._pending: deque[MessageId] = deque()
        self._lock = threading.Lock()
        self._drain_scheduled = False
        self._offered = metrics.counter(
            "receipts_offered_total", help_text="Ids handed to the intake queue",
        )
        self._dropped = metrics.counter(
            "receipts_dropped_total", help_text="Ids dropped because the pipeline was not running",
        )
        self._depth = metrics.gauge(
            "intake_queue_depth", help_text="Ids waiting for the batcher",
        )

    def bind(self) -> None:
        """Attach the queue to the running event loop."""
        loop = asyncio.get_running_loop()
        with self._lock:
            self._loop = loop
            self._loop_thread = threading.get_ident()
            self._queue = asyncio.Queue()
            self._pending.clear()
            self._closed = False

    def close(self) -> None:
        """Stop accepting offers and discard anything still queued."""
        with self._lock:
            self._closed = True
            discarded = len(self._pending)
            self._pending.clear()
            if self._queue is not None:
                discarded += self._queue.qsize()
            self._queue = None
        if discarded:
            logger.info(f"Discarding {discarded} queued ids on close")
        self._depth.set(0)

    @property
    def is_accepting(self) -> bool:
        return self._queue is not None and not self._closed

    @property
    def depth(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def offer(self, message_id: MessageId) -> bool:
        """
        Enqueue without blocking.

        Returns False if the queue is not accepting (dropped).
        """
        on_loop = threading.get_ident() == self._loop_thread
        schedule = False

        with self._lock:
            loop = self._loop
            if self._queue is None or self._closed or loop is None:
                accepted = False
            else:
                accepted = True
                self._pending.append(message_id)
                if not on_loop and not self._drain_scheduled:
                    self._drain_scheduled = schedule = True

        if not accepted:
            self._dropped.inc()
            logger.debug(f"Dispatch not ready, dropping offer for {message_id}")
            return False

        self._offered.inc()
        if on_loop:
            self._drain()
        elif schedule:
            loop.call_soon_threadsafe(self._drain)
        return True

    def _drain(self) -> None:
        # Runs on the loop thread only, so puts never interleave
        with self._lock:
            self._drain_scheduled = False
            queue = self._queue
            ids = list(self._pending)
            self._pending.clear()
        if queue is None:
            return

        for message_id in ids:
            queue.put_nowait(message_id)
            logger.debug(f"Queued up {message_id}")
        self._depth.set(queue.qsize())

    async def get(self) -> MessageId:
        """Wait for the next id (single consumer)."""
        queue = self._queue
        if queue is None:
            raise PipelineError.not_started("read from the intake queue")
        message_id = await queue.get()
        self._depth.set(queue.qsize())
        return message_id
