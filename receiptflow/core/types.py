"""
Core Type Definitions for the Read-Receipt Pipeline

Implements the Result container used at every component boundary,
plus the identity and value types that flow through the pipeline.

Design Principles:
- Never use None to signal failure (use Result)
- Value types are frozen and hashable
- Identifiers are opaque: only equality and hashing matter
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Iterator,
    Literal,
    Optional,
    TypeVar,
    Union,
)

from receiptflow.core.constants import NS_PER_MS, NS_PER_S

T = TypeVar("T")
E = TypeVar("E")
U = TypeVar("U")


# =============================================================================
# RESULT: EXPLICIT SUCCESS / FAILURE
# =============================================================================
@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """A successful outcome holding ``value``."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:
        return self.value

    def map(self, fn: Callable[[T], U]) -> Ok[U]:
        return Ok(fn(self.value))


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """
    A failed outcome holding ``error``.

    ``map`` passes it through untouched, so a chain of transformations
    short-circuits on the first failure.
    """

    error: E

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> Any:
        raise RuntimeError(f"unwrap() on Err: {self.error}")

    def unwrap_or(self, default: T) -> T:
        return default

    def map(self, fn: Callable[[Any], U]) -> Err[E]:
        return self


Result = Union[Ok[T], Err[E]]


# =============================================================================
# IDENTITY TYPES
# =============================================================================
@dataclass(frozen=True, slots=True, order=True)
class MessageId:
    """
    Opaque message identifier.

    Stable for the lifetime of a message. Used as the deduplication
    key and the unit carried through the intake queue and batches.
    """

    value: str

    @classmethod
    def parse(cls, s: str) -> Result[MessageId, str]:
        """
        Parse a MessageId from its wire representation.

        Returns:
            Ok[MessageId]: Valid identifier
            Err[str]: Validation error message
        """
        if not isinstance(s, str) or not s.strip():
            return Err(f"Invalid MessageId: {s!r}")
        return Ok(cls(value=s))

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True, order=True)
class Timestamp:
    """
    Wall-clock instant, integer nanoseconds since the Unix epoch.

    Stamps optimistic read times and batch formation.
    """

    nanos: int

    @classmethod
    def now(cls) -> Timestamp:
        return cls(time.time_ns())

    @classmethod
    def from_millis(cls, millis: int) -> Timestamp:
        return cls(millis * NS_PER_MS)

    @property
    def seconds(self) -> float:
        return self.nanos / NS_PER_S

    @property
    def millis(self) -> int:
        return self.nanos // NS_PER_MS

    def to_datetime(self) -> datetime:
        """UTC-aware datetime, for display."""
        return datetime.fromtimestamp(self.seconds, tz=timezone.utc)

    def __sub__(self, other: Timestamp) -> int:
        return self.nanos - other.nanos


# =============================================================================
# BATCH
# =============================================================================
@dataclass(frozen=True, slots=True)
class Batch:
    """
    Ordered, bounded group of MessageIds dispatched in one remote call.

    Immutable once formed. Ids keep their admission order.

    Invariant: 1 <= len(ids) <= max_batch_size
    """

    ids: tuple[MessageId, ...]
    sequence: int
    formed_at: Timestamp = field(default_factory=Timestamp.now)

    @classmethod
    def of(
        cls,
        ids: Iterable[MessageId],
        sequence: int,
        max_size: int,
    ) -> Result[Batch, str]:
        """Validate and build a batch."""
        frozen = tuple(ids)
        if not frozen:
            return Err("Batch cannot be empty")
        if len(frozen) > max_size:
            return Err(f"Batch of {len(frozen)} exceeds maximum {max_size}")
        return Ok(cls(ids=frozen, sequence=sequence))

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self) -> Iterator[MessageId]:
        return iter(self.ids)

    def as_strings(self) -> list[str]:
        """Wire form of the batch ids."""
        return [mid.value for mid in self.ids]

    def describe(self) -> str:
        return ", ".join(self.as_strings())


# =============================================================================
# STATE ENUMERATIONS
# =============================================================================
class GateState(Enum):
    """Network gate latch state."""
    OPEN = auto()      # Dispatch proceeds
    CLOSED = auto()    # Dispatch suspends


class DeliveryState(Enum):
    """
    Per-batch delivery state machine.

    PENDING -> ELIGIBLE -> {SUCCEEDED | RETRYING | FAILED}
    RETRYING loops back to ELIGIBLE after the backoff delay.
    """
    PENDING = auto()
    ELIGIBLE = auto()
    RETRYING = auto()
    SUCCEEDED = auto()
    FAILED = auto()

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryState.SUCCEEDED, DeliveryState.FAILED)


# =============================================================================
# MESSAGE VIEW
# =============================================================================
@dataclass(frozen=True, slots=True)
class Message:
    """
    Minimal message record as seen by the rendering collaborator.

    ``read_at`` is None while the message is unread.
    """

    id: MessageId
    read_at: Optional[Timestamp] = None

    @property
    def is_unread(self) -> bool:
        return self.read_at is None
