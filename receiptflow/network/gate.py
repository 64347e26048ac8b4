"""
Network Gate: Connectivity Latch for Dispatch

A binary latch that suspends dispatch while the network is
unavailable and releases suspended work in submission order
once connectivity returns.

Design:
    Batching keeps running on its own clock while the gate is closed;
    only the remote call waits. The gate never toggles itself: the
    connectivity observer (NetworkMonitor) is its only writer.

Threading:
    ``open()`` and ``close()`` may be called from any thread (platform
    connectivity hooks rarely run on the event loop). Waiters are woken
    on their own loop, through ``call_soon_threadsafe`` when the caller
    is somewhere else.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import deque
from typing import Any, Awaitable, Callable, TypeVar

from receiptflow.core.types import GateState

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_on_loop(loop: asyncio.AbstractEventLoop, callback: Callable[..., Any], *args: Any) -> None:
    """Run ``callback`` on ``loop``: inline if we are on it, else thread-safely."""
    try:
        running = asyncio.get_running_loop()
    except RuntimeError:
        running = None
    if running is loop:
        callback(*args)
    else:
        loop.call_soon_threadsafe(callback, *args)


def _wake(fut: asyncio.Future[None]) -> None:
    if not fut.done():
        fut.set_result(None)


class NetworkGate:
    """
    Single-writer, multi-reader connectivity latch.

    Usage:
        gate = NetworkGate(initially_open=False)

        # Suspends until gate.open() is called
        result = await gate.when_open(lambda: endpoint.mark_as_read(ids))

    Suspended callers are released FIFO. Each operation passed to
    ``when_open`` runs exactly once.
    """

    __slots__ = ("_state", "_waiters", "_transitions", "_lock")

    def __init__(self, initially_open: bool = True) -> None:
        self._state = GateState.OPEN if initially_open else GateState.CLOSED
        self._waiters: deque[asyncio.Future[None]] = deque()
        self._transitions = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> GateState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is GateState.OPEN

    @property
    def waiting(self) -> int:
        """Number of callers currently suspended on the gate."""
        with self._lock:
            return sum(1 for fut in self._waiters if not fut.done())

    @property
    def transitions(self) -> int:
        return self._transitions

    def open(self) -> None:
        """Open the latch and release suspended callers in order."""
        with self._lock:
            if self._state is GateState.OPEN:
                return
            self._state = GateState.OPEN
            self._transitions += 1
            waiters = list(self._waiters)
            self._waiters.clear()

        released = 0
        for fut in waiters:
            if not fut.done():
                call_on_loop(fut.get_loop(), _wake, fut)
                released += 1

        logger.info(f"Network gate OPEN (released {released} waiting dispatches)")

    def close(self) -> None:
        """Close the latch; subsequent callers suspend."""
        with self._lock:
            if self._state is GateState.CLOSED:
                return
            self._state = GateState.CLOSED
            self._transitions += 1
        logger.info("Network gate CLOSED")

    def set(self, is_open: bool) -> None:
        if is_open:
            self.open()
        else:
            self.close()

    async def wait_open(self) -> None:
        """Suspend until the latch is open. Returns immediately if it is."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._state is GateState.OPEN:
                return
            fut: asyncio.Future[None] = loop.create_future()
            self._waiters.append(fut)
        try:
            await fut
        finally:
            # Cancelled waiters must not hold a slot in the queue
            with self._lock:
                if fut in self._waiters:
                    self._waiters.remove(fut)

    async def when_open(self, op: Callable[[], Awaitable[T]]) -> T:
        """Run ``op`` once the latch is open."""
        await self.wait_open()
        return await op()

    def __repr__(self) -> str:
        return f"NetworkGate(state={self._state.name}, waiting={self.waiting})"
