"""
In-Memory Acknowledgement Endpoint

Stand-in for the messages service, used by the demo entry point and
the test suite. Records every call and can be scripted to fail.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from receiptflow.core.types import Result, Ok, Err, MessageId
from receiptflow.core.errors import DispatchError


@dataclass(frozen=True)
class AckCall:
    """One recorded mark_as_read attempt."""
    message_ids: tuple[MessageId, ...]
    at_monotonic: float
    succeeded: bool


class InMemoryAcknowledgementEndpoint:
    """
    Records calls and acknowledged ids.

    Usage:
        endpoint = InMemoryAcknowledgementEndpoint()
        endpoint.fail_next(2)   # first two calls return Err

    ``mark_as_read`` is idempotent: acknowledging an id twice is a no-op.
    """

    __slots__ = ("_calls", "_acknowledged", "_failures_remaining", "_latency_s", "_raise")

    def __init__(self, latency_s: float = 0.0) -> None:
        self._calls: list[AckCall] = []
        self._acknowledged: dict[MessageId, float] = {}
        self._failures_remaining = 0
        self._latency_s = latency_s
        self._raise = False

    def fail_next(self, count: int, raise_exception: bool = False) -> None:
        """
        Make the next ``count`` calls fail.

        Args:
            count: Number of failing calls
            raise_exception: Raise ConnectionError instead of returning Err
        """
        self._failures_remaining = count
        self._raise = raise_exception

    def fail_always(self) -> None:
        self._failures_remaining = -1

    async def mark_as_read(
        self,
        message_ids: Sequence[MessageId],
    ) -> Result[None, DispatchError]:
        if self._latency_s:
            await asyncio.sleep(self._latency_s)

        ids = tuple(message_ids)
        now = time.monotonic()

        if self._failures_remaining != 0:
            if self._failures_remaining > 0:
                self._failures_remaining -= 1
            self._calls.append(AckCall(ids, now, succeeded=False))
            if self._raise:
                raise ConnectionError("acknowledgement endpoint unreachable")
            return Err(DispatchError.rejected("memory://mark-as-read", status_code=503))

        self._calls.append(AckCall(ids, now, succeeded=True))
        for mid in ids:
            self._acknowledged.setdefault(mid, now)
        return Ok(None)

    @property
    def calls(self) -> list[AckCall]:
        return list(self._calls)

    @property
    def successful_batches(self) -> list[tuple[MessageId, ...]]:
        return [call.message_ids for call in self._calls if call.succeeded]

    @property
    def acknowledged(self) -> frozenset[MessageId]:
        return frozenset(self._acknowledged)

    def acknowledged_at(self, message_id: MessageId) -> Optional[float]:
        return self._acknowledged.get(message_id)
