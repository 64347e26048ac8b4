"""
Visibility Tracker: Viewport and Focus Events -> Admissions

A headless model of the rendering layer's visibility handling. It
decides *when* to call ``admit``; it never marks anything read itself.

Rules:
- Only registered, unread messages are tracked
- A tracked message is admitted when it is fully visible while the
  host has input focus, then it stops being tracked
- Regaining focus admits every tracked message that is currently
  fully visible, in registration order
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from receiptflow.core.types import Message, MessageId

logger = logging.getLogger(__name__)


class VisibilityTracker:
    """
    Usage:
        tracker = pipeline.visibility_tracker()
        tracker.register(message)
        tracker.set_visible(message.id, True)   # admits if focused
        tracker.set_focus(False)
        tracker.set_focus(True)                  # re-evaluates visible ones
    """

    __slots__ = ("_admit", "_is_read", "_tracked", "_has_focus")

    def __init__(
        self,
        admit: Callable[[MessageId], bool],
        is_read: Optional[Callable[[MessageId], bool]] = None,
        has_focus: bool = True,
    ) -> None:
        self._admit = admit
        self._is_read = is_read or (lambda _id: False)
        # message id -> currently fully visible
        self._tracked: dict[MessageId, bool] = {}
        self._has_focus = has_focus

    @property
    def has_focus(self) -> bool:
        return self._has_focus

    def register(self, message: Message) -> bool:
        """Start tracking ``message``. Returns False if it is already read."""
        if not message.is_unread or self._is_read(message.id):
            return False
        self._tracked.setdefault(message.id, False)
        return True

    def unregister(self, message_id: MessageId) -> None:
        self._tracked.pop(message_id, None)

    def set_visible(self, message_id: MessageId, fully_visible: bool) -> bool:
        """
        Record a visibility change.

        Returns True if this change admitted the message.
        """
        if message_id not in self._tracked:
            return False

        self._tracked[message_id] = fully_visible
        if fully_visible and self._has_focus:
            return self._admit_tracked(message_id)
        return False

    def set_focus(self, has_focus: bool) -> int:
        """
        Record a focus change.

        Returns the number of messages admitted by regaining focus.
        """
        regained = has_focus and not self._has_focus
        self._has_focus = has_focus
        if not regained:
            return 0

        visible = [mid for mid, is_visible in self._tracked.items() if is_visible]
        admitted = sum(1 for mid in visible if self._admit_tracked(mid))
        if admitted:
            logger.debug(f"Focus regained: admitted {admitted} visible messages")
        return admitted

    def visible_unread(self) -> list[MessageId]:
        return [mid for mid, is_visible in self._tracked.items() if is_visible]

    def _admit_tracked(self, message_id: MessageId) -> bool:
        del self._tracked[message_id]
        if self._is_read(message_id):
            return False
        return self._admit(message_id)

    def __len__(self) -> int:
        return len(self._tracked)
