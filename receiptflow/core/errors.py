"""
Error Hierarchy for the Read-Receipt Pipeline

Design Principles:
- Admission never fails; only dispatch, lifecycle and configuration errors exist
- Errors travel inside Result at component boundaries
- Carry full error context for logging

Each error type includes:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with log lines

Usage:
    result = await endpoint.mark_as_read(batch.ids)
    match result:
        case Ok(_):
            ...
        case Err(DispatchError() as error) if error.code is ErrorCode.DISPATCH_TIMEOUT:
            ...
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from receiptflow.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes grouped by subsystem:
    - 1xxx: Dispatch errors
    - 2xxx: Pipeline lifecycle errors
    - 6xxx: Reliability errors
    - 9xxx: Internal/configuration errors
    """

    # Dispatch errors (1xxx)
    DISPATCH_REQUEST_FAILED = 1001
    DISPATCH_REJECTED = 1002
    DISPATCH_TIMEOUT = 1003
    DISPATCH_INVALID_BATCH = 1004

    # Pipeline errors (2xxx)
    PIPELINE_NOT_STARTED = 2001
    PIPELINE_ALREADY_STARTED = 2002
    PIPELINE_CLOSED = 2003

    # Reliability errors (6xxx)
    RELIABILITY_RETRY_EXHAUSTED = 6001
    RELIABILITY_TIMEOUT = 6002

    # Internal errors (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass(repr=False)
class ReceiptFlowError(Exception):
    """
    Base class for all pipeline errors.

    ``cause`` is also installed as ``__cause__`` so tracebacks show the
    underlying transport or timeout error.
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)
        if self.cause is not None:
            self.__cause__ = self.cause

    def with_context(self, **kwargs: Any) -> ReceiptFlowError:
        """Copy of this error (same class and id) with extra context."""
        return replace(self, context={**self.context, **kwargs})

    def to_dict(self) -> dict[str, Any]:
        """Flat form for structured log fields."""
        data: dict[str, Any] = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "occurred_at": self.timestamp.to_datetime().isoformat(),
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data

    def __str__(self) -> str:
        return f"{self.code.name}: {self.message}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.code.name}, {self.message!r}, id={self.error_id})"


# =============================================================================
# DISPATCH ERRORS
# =============================================================================
@dataclass(repr=False)
class DispatchError(ReceiptFlowError):
    """
    Errors from the remote acknowledgement call.

    All dispatch errors are treated as transient by the default
    retry policy.
    """

    @classmethod
    def request_failed(
        cls,
        endpoint: str,
        cause: Optional[BaseException] = None,
    ) -> DispatchError:
        """Transport-level failure (connection refused, reset, DNS)."""
        return cls(
            code=ErrorCode.DISPATCH_REQUEST_FAILED,
            message=f"Request to {endpoint} failed: {cause}",
            cause=cause,
            context={"endpoint": endpoint},
        )

    @classmethod
    def rejected(
        cls,
        endpoint: str,
        status_code: int,
        body: str = "",
    ) -> DispatchError:
        """Server answered with a non-success status."""
        return cls(
            code=ErrorCode.DISPATCH_REJECTED,
            message=f"{endpoint} rejected acknowledgement with HTTP {status_code}",
            context={"endpoint": endpoint, "status_code": status_code, "body": body[:200]},
        )

    @classmethod
    def timeout(
        cls,
        endpoint: str,
        timeout_s: Optional[float],
        cause: Optional[BaseException] = None,
    ) -> DispatchError:
        return cls(
            code=ErrorCode.DISPATCH_TIMEOUT,
            message=f"Request to {endpoint} timed out after {timeout_s}s",
            cause=cause,
            context={"endpoint": endpoint, "timeout_s": timeout_s},
        )

    @classmethod
    def invalid_batch(cls, reason: str) -> DispatchError:
        return cls(
            code=ErrorCode.DISPATCH_INVALID_BATCH,
            message=f"Invalid batch: {reason}",
            context={"reason": reason},
        )


# =============================================================================
# PIPELINE LIFECYCLE ERRORS
# =============================================================================
@dataclass(repr=False)
class PipelineError(ReceiptFlowError):
    """Errors from starting or stopping the pipeline."""

    @classmethod
    def not_started(cls, operation: str) -> PipelineError:
        return cls(
            code=ErrorCode.PIPELINE_NOT_STARTED,
            message=f"Pipeline not started: cannot {operation}",
            context={"operation": operation},
        )

    @classmethod
    def already_started(cls) -> PipelineError:
        return cls(
            code=ErrorCode.PIPELINE_ALREADY_STARTED,
            message="Pipeline already started",
        )

    @classmethod
    def closed(cls, operation: str) -> PipelineError:
        return cls(
            code=ErrorCode.PIPELINE_CLOSED,
            message=f"Pipeline closed: cannot {operation}",
            context={"operation": operation},
        )

    @classmethod
    def task_crashed(cls, task_name: str, cause: BaseException) -> PipelineError:
        """A background task died with an unexpected exception."""
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Task {task_name} crashed: {cause!r}",
            cause=cause,
            context={"task": task_name},
        )


# =============================================================================
# RELIABILITY ERRORS
# =============================================================================
@dataclass(repr=False)
class ReliabilityError(ReceiptFlowError):
    """Errors from the retry subsystem."""

    @classmethod
    def retry_exhausted(
        cls,
        attempts: int,
        last_error: str,
        cause: Optional[BaseException] = None,
    ) -> ReliabilityError:
        """All retry attempts exhausted."""
        return cls(
            code=ErrorCode.RELIABILITY_RETRY_EXHAUSTED,
            message=f"Retry exhausted after {attempts} attempts: {last_error}",
            cause=cause,
            context={"attempts": attempts, "last_error": last_error},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        timeout_ms: int,
    ) -> ReliabilityError:
        """Operation timed out."""
        return cls(
            code=ErrorCode.RELIABILITY_TIMEOUT,
            message=f"Operation '{operation}' timed out after {timeout_ms}ms",
            context={"operation": operation, "timeout_ms": timeout_ms},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass(repr=False)
class ConfigurationError(ReceiptFlowError):
    """Invalid configuration detected at construction time."""

    @classmethod
    def invalid(cls, reason: str) -> ConfigurationError:
        return cls(
            code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
            message=f"Invalid configuration: {reason}",
            context={"reason": reason},
        )
