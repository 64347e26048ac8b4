"""
Read-Receipt Pipeline

Wires the delivery path together and owns its lifetime:

    admit(id) -> DeduplicationGate -> IntakeQueue -> Batcher
              -> NetworkGate -> Dispatcher -> AcknowledgementEndpoint
    admit(id) -> OptimisticReadStore (synchronous, immediate)

Lifecycle:
1. Construct (admission already works: optimistic writes, offers dropped)
2. ``await start()`` binds the intake queue and spawns batcher + dispatcher
3. ``await close()`` cancels both tasks; partial windows and undispatched
   batches are dropped, optimistic state is kept

Dedup and optimistic state belong to the pipeline instance; there is
no process-wide registry.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import uuid4

from receiptflow.client.protocols import AcknowledgementEndpoint
from receiptflow.core.config import ReceiptFlowConfig
from receiptflow.core.errors import ConfigurationError, PipelineError
from receiptflow.core.types import Batch, MessageId, Result, Ok, Err, Timestamp
from receiptflow.network.gate import NetworkGate
from receiptflow.network.monitor import NetworkMonitor
from receiptflow.observability.logging import PipelineLogger, pipeline_context
from receiptflow.observability.metrics import MetricsCollector
from receiptflow.pipeline.batcher import Batcher
from receiptflow.pipeline.deduplication import DedupSet, DeduplicationGate
from receiptflow.pipeline.dispatcher import Dispatcher, OutcomeCallback
from receiptflow.pipeline.intake import IntakeQueue
from receiptflow.pipeline.optimistic import OptimisticReadStore
from receiptflow.pipeline.visibility import VisibilityTracker

logger = logging.getLogger(__name__)


@dataclass
class PipelineStats:
    """Pipeline statistics."""
    admitted: int = 0
    duplicates: int = 0
    dropped: int = 0
    batches_formed: int = 0
    batches_dispatched: int = 0
    batches_failed: int = 0
    dispatch_attempts: int = 0


class ReadReceiptPipeline:
    """
    Read-receipt delivery pipeline.

    Usage:
        async with ReadReceiptPipeline(MessagesClient(config.endpoint), config) as pipeline:
            pipeline.admit(MessageId("m-1"))
            pipeline.read_state.is_read(MessageId("m-1"))   # True immediately
    """

    __slots__ = (
        "_config", "_endpoint", "_pipeline_id", "_log", "_metrics",
        "_gate", "_monitor", "_unbind_monitor",
        "_dedup", "_store", "_intake", "_admission",
        "_batches", "_batcher", "_dispatcher", "_tasks",
        "_on_batch_failed", "_sleep", "_started", "_closed",
    )

    def __init__(
        self,
        endpoint: AcknowledgementEndpoint,
        config: Optional[ReceiptFlowConfig] = None,
        monitor: Optional[NetworkMonitor] = None,
        metrics: Optional[MetricsCollector] = None,
        on_batch_failed: Optional[OutcomeCallback] = None,
        clock: Callable[[], Timestamp] = Timestamp.now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        config = config or ReceiptFlowConfig()
        validation = config.validate()
        if validation.is_err():
            raise ConfigurationError.invalid(validation.error)

        self._config = config
        self._endpoint = endpoint
        self._pipeline_id = uuid4().hex[:12]
        self._log = PipelineLogger(logger, pipeline_id=self._pipeline_id)
        self._metrics = metrics or MetricsCollector()

        # Connectivity: the monitor (if any) is the gate's only writer
        self._gate = NetworkGate(initially_open=True)
        self._monitor = monitor
        self._unbind_monitor = monitor.bind(self._gate) if monitor is not None else None

        # Admission path
        self._dedup = DedupSet()
        self._store = OptimisticReadStore()
        self._intake = IntakeQueue(self._metrics)
        self._admission = DeduplicationGate(
            self._dedup, self._store, self._intake, clock=clock, metrics=self._metrics,
        )

        # Delivery path, created on start()
        self._batches: Optional[asyncio.Queue[Batch]] = None
        self._batcher: Optional[Batcher] = None
        self._dispatcher: Optional[Dispatcher] = None
        self._tasks: list[asyncio.Task[None]] = []
        self._on_batch_failed = on_batch_failed
        self._sleep = sleep
        self._started = False
        self._closed = False

    # -------------------------------------------------------------------------
    # Admission
    # -------------------------------------------------------------------------
    def admit(self, message_id: Union[MessageId, str]) -> bool:
        """
        Admit a message that became visible. Never fails.

        Returns True on first admission, False for a repeat.
        """
        return self._admission.admit(message_id)

    def visibility_tracker(self, has_focus: bool = True) -> VisibilityTracker:
        """Create a tracker that feeds this pipeline's ``admit``."""
        return VisibilityTracker(self.admit, is_read=self._store.is_read, has_focus=has_focus)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------
    async def start(self) -> Result[None, PipelineError]:
        """Spawn the batching and dispatch tasks on the running loop."""
        if self._closed:
            return Err(PipelineError.closed("start"))
        if self._started:
            return Err(PipelineError.already_started())

        self._intake.bind()
        self._batches = asyncio.Queue()
        self._batcher = Batcher(
            self._intake, self._batches, self._config.batching, self._metrics,
        )
        self._dispatcher = Dispatcher(
            self._batches,
            self._endpoint,
            self._gate,
            self._config.retry.to_policy(),
            metrics=self._metrics,
            on_batch_failed=self._on_batch_failed,
            sleep=self._sleep,
        )

        # Tasks copy the current context, so their records carry pipeline_id
        with pipeline_context(pipeline_id=self._pipeline_id):
            self._tasks = [
                asyncio.create_task(self._batcher.run(), name=f"receiptflow-batcher-{self._pipeline_id}"),
                asyncio.create_task(self._dispatcher.run(), name=f"receiptflow-dispatcher-{self._pipeline_id}"),
            ]
        for task in self._tasks:
            task.add_done_callback(self._on_task_done)

        self._started = True
        self._log.info(
            "Read-receipt pipeline started",
            max_batch_size=self._config.batching.max_batch_size,
            window_ms=self._config.batching.window_ms,
            gate=self._gate.state.name,
        )
        return Ok(None)

    async def close(self) -> None:
        """Cancel background work. Idempotent."""
        if self._closed:
            return
        self._closed = True

        self._intake.close()
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

        undispatched = self._batches.qsize() if self._batches is not None else 0
        if undispatched:
            self._log.info("Dropping undispatched batches on close", batches=undispatched)

        if self._unbind_monitor is not None:
            self._unbind_monitor()
            self._unbind_monitor = None

        self._log.info("Read-receipt pipeline closed", admitted=len(self._dedup))

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            crash = PipelineError.task_crashed(task.get_name(), error)
            self._log.error(
                "Pipeline task crashed",
                task=task.get_name(),
                error=crash.to_dict(),
            )

    async def __aenter__(self) -> ReadReceiptPipeline:
        result = await self.start()
        if result.is_err():
            raise result.error
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------
    @property
    def pipeline_id(self) -> str:
        return self._pipeline_id

    @property
    def read_state(self) -> OptimisticReadStore:
        return self._store

    @property
    def gate(self) -> NetworkGate:
        return self._gate

    @property
    def monitor(self) -> Optional[NetworkMonitor]:
        return self._monitor

    @property
    def dispatcher(self) -> Optional[Dispatcher]:
        return self._dispatcher

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def is_running(self) -> bool:
        return self._started and not self._closed

    @property
    def stats(self) -> PipelineStats:
        m = self._metrics
        return PipelineStats(
            admitted=int(m.counter("receipts_admitted_total").get()),
            duplicates=int(m.counter("receipts_duplicate_total").get()),
            dropped=int(m.counter("receipts_dropped_total").get()),
            batches_formed=self._batcher.batches_formed if self._batcher else 0,
            batches_dispatched=int(m.counter("batches_dispatched_total").get()),
            batches_failed=int(m.counter("batches_failed_total").get()),
            dispatch_attempts=int(m.counter("dispatch_attempts_total").get()),
        )
