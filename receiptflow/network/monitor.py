"""
Network Monitor: Connectivity Observer

Tracks the host's online/offline status and fans transitions out to
subscribers. The monitor is the only writer of NetworkGate state.

Signals:
- ``set_online()`` / ``set_offline()`` / ``update(bool)`` from the platform hook
- Repeated identical signals are ignored (no spurious transitions)
- ``on_online()`` yields once per offline -> online transition
- Signals may arrive on any thread; loop-owned waiters are woken on
  their own loop
"""

from __future__ import annotations

import asyncio
import threading
import logging
from typing import AsyncIterator, Callable, Optional

from receiptflow.network.gate import NetworkGate, call_on_loop

logger = logging.getLogger(__name__)

ConnectivityListener = Callable[[bool], None]


class NetworkMonitor:
    """
    Connectivity observer seeded from the platform's current status.

    Usage:
        monitor = NetworkMonitor(initial_online=probe_connectivity())
        monitor.bind(gate)

        # Platform hooks
        monitor.set_offline()
        monitor.set_online()
    """

    __slots__ = ("_online", "_listeners", "_online_events", "_lock")

    def __init__(self, initial_online: bool = True) -> None:
        self._online = initial_online
        self._listeners: list[ConnectivityListener] = []
        self._online_events: list[tuple[asyncio.AbstractEventLoop, asyncio.Queue[None]]] = []
        self._lock = threading.Lock()

    @property
    def is_online(self) -> bool:
        return self._online

    def set_online(self) -> None:
        self.update(True)

    def set_offline(self) -> None:
        self.update(False)

    def update(self, online: bool) -> None:
        """Apply a connectivity signal; notify listeners on change only."""
        with self._lock:
            if online == self._online:
                return
            self._online = online
            events = list(self._online_events)

        logger.info(f"Connectivity changed: {'online' if online else 'offline'}")

        for listener in list(self._listeners):
            try:
                listener(online)
            except Exception as e:
                logger.error(f"Connectivity listener error: {e}")

        if online:
            for loop, queue in events:
                call_on_loop(loop, queue.put_nowait, None)

    def subscribe(self, listener: ConnectivityListener) -> Callable[[], None]:
        """Register a transition listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def bind(self, gate: NetworkGate) -> Callable[[], None]:
        """Seed ``gate`` from the current status and drive it on transitions."""
        gate.set(self._online)
        return self.subscribe(gate.set)

    async def on_online(self, limit: Optional[int] = None) -> AsyncIterator[None]:
        """
        Yield once per offline -> online transition.

        Args:
            limit: Stop after this many transitions (None = forever)
        """
        queue: asyncio.Queue[None] = asyncio.Queue()
        entry = (asyncio.get_running_loop(), queue)
        with self._lock:
            self._online_events.append(entry)
        seen = 0
        try:
            while limit is None or seen < limit:
                await queue.get()
                seen += 1
                yield None
        finally:
            with self._lock:
                self._online_events.remove(entry)
