"""
Deduplication Gate: At-Most-Once Admission

Every MessageId enters the pipeline at most once for the lifetime of
the pipeline instance. Admission performs, atomically with respect to
other callers:

1. Test-and-set on the DedupSet
2. Optimistic read-state write (current wall-clock time)
3. Non-blocking offer to the intake queue

Admission cannot fail. If delivery is not running the offer is dropped
but the optimistic write still happens, so the UI shows "read" either way.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Iterator, Optional, Union

from receiptflow.core.types import MessageId, Timestamp
from receiptflow.observability.metrics import MetricsCollector
from receiptflow.pipeline.intake import IntakeQueue
from receiptflow.pipeline.optimistic import OptimisticReadStore

logger = logging.getLogger(__name__)


class DedupSet:
    """
    Monotonically growing set of admitted ids.

    No eviction: ids are finite per session. Not synchronized on its
    own; the DeduplicationGate serializes access.
    """

    __slots__ = ("_seen",)

    def __init__(self) -> None:
        self._seen: set[MessageId] = set()

    def test_and_set(self, message_id: MessageId) -> bool:
        """Insert ``message_id``. Returns True only on first insertion."""
        if message_id in self._seen:
            return False
        self._seen.add(message_id)
        return True

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._seen

    def __len__(self) -> int:
        return len(self._seen)

    def __iter__(self) -> Iterator[MessageId]:
        return iter(self._seen)


class DeduplicationGate:
    """
    Entry point of the pipeline: ``admit(id) -> bool``.

    Usage:
        gate = DeduplicationGate(DedupSet(), store, intake)

        gate.admit(MessageId("m-1"))   # True
        gate.admit(MessageId("m-1"))   # False, no side effects
    """

    __slots__ = (
        "_dedup", "_store", "_intake", "_clock", "_lock",
        "_admitted", "_duplicates",
    )

    def __init__(
        self,
        dedup: DedupSet,
        store: OptimisticReadStore,
        intake: IntakeQueue,
        clock: Callable[[], Timestamp] = Timestamp.now,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        metrics = metrics or MetricsCollector()
        self._dedup = dedup
        self._store = store
        self._intake = intake
        self._clock = clock
        self._lock = threading.Lock()
        self._admitted = metrics.counter(
            "receipts_admitted_total", help_text="Distinct ids admitted",
        )
        self._duplicates = metrics.counter(
            "receipts_duplicate_total", help_text="Repeated admission attempts",
        )

    def admit(self, message_id: Union[MessageId, str]) -> bool:
        """
        Admit ``message_id`` once.

        Returns:
            True on first admission, False for a repeat (no-op)
        """
        if isinstance(message_id, str):
            message_id = MessageId(message_id)

        with self._lock:
            if not self._dedup.test_and_set(message_id):
                self._duplicates.inc()
                return False

            self._store.mark(message_id, self._clock())
            self._intake.offer(message_id)

        self._admitted.inc()
        return True

    def is_admitted(self, message_id: MessageId) -> bool:
        return message_id in self._dedup

    @property
    def admitted_count(self) -> int:
        return len(self._dedup)
