"""
Acknowledgement Endpoint Protocol

Structural interface (PEP 544) for the remote side of the pipeline:
one ``mark_as_read`` call per Batch.

Contract:
    - Idempotent: sending an id that is already read must be safe
    - Failures are returned as Err(DispatchError), not raised
    - Exceptions that do escape are treated as transient by the dispatcher
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from receiptflow.core.types import Result, MessageId
from receiptflow.core.errors import DispatchError


@runtime_checkable
class AcknowledgementEndpoint(Protocol):
    """Remote read-acknowledgement call."""

    async def mark_as_read(
        self,
        message_ids: Sequence[MessageId],
    ) -> Result[None, DispatchError]:
        """Acknowledge that ``message_ids`` were read."""
        ...
