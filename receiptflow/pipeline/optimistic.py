"""
Optimistic Read State

Local mapping from MessageId to the time it was marked read, readable
synchronously by rendering code.

Invariants:
- Entries are only ever added, never removed or overwritten
- Only the admission step writes; everything else reads
- A failed dispatch does not roll an entry back
"""

from __future__ import annotations

import threading
from typing import Iterable, Optional

from receiptflow.core.types import Message, MessageId, Timestamp


class OptimisticReadStore:
    """
    Add-only read-status map.

    Usage:
        store.read_at(MessageId("m-1"))       # Timestamp or None
        store.annotate(messages_from_server)  # merge local read state
    """

    __slots__ = ("_entries", "_lock")

    def __init__(self) -> None:
        self._entries: dict[MessageId, Timestamp] = {}
        self._lock = threading.Lock()

    def mark(self, message_id: MessageId, at: Timestamp) -> bool:
        """
        Record ``message_id`` as read at ``at``.

        Returns False (and keeps the first timestamp) if already present.
        """
        with self._lock:
            if message_id in self._entries:
                return False
            self._entries[message_id] = at
            return True

    def read_at(self, message_id: MessageId) -> Optional[Timestamp]:
        return self._entries.get(message_id)

    def is_read(self, message_id: MessageId) -> bool:
        return message_id in self._entries

    def snapshot(self) -> dict[MessageId, Timestamp]:
        """Point-in-time copy of the read state."""
        with self._lock:
            return dict(self._entries)

    def annotate(self, messages: Iterable[Message]) -> list[Message]:
        """
        Merge local read state into server-provided messages.

        Unread messages marked locally get the local timestamp; messages
        the server already reports as read are returned unchanged.
        """
        annotated: list[Message] = []
        for message in messages:
            local = self._entries.get(message.id)
            if message.read_at is None and local is not None:
                annotated.append(Message(id=message.id, read_at=local))
            else:
                annotated.append(message)
        return annotated

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
