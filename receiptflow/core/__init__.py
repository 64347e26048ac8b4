"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the pipeline:
- Result container for explicit success/failure at component boundaries
- Coded error hierarchy for dispatch, lifecycle and configuration failures
- Configuration management with validation
"""

from receiptflow.core.types import (
    Result,
    Ok,
    Err,
    MessageId,
    Timestamp,
    Batch,
    Message,
    GateState,
    DeliveryState,
)
from receiptflow.core.errors import (
    ErrorCode,
    ReceiptFlowError,
    DispatchError,
    PipelineError,
    ReliabilityError,
    ConfigurationError,
)
from receiptflow.core.config import (
    ReceiptFlowConfig,
    BatchingConfig,
    RetryConfig,
    EndpointConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "MessageId",
    "Timestamp",
    "Batch",
    "Message",
    "GateState",
    "DeliveryState",
    "ErrorCode",
    "ReceiptFlowError",
    "DispatchError",
    "PipelineError",
    "ReliabilityError",
    "ConfigurationError",
    "ReceiptFlowConfig",
    "BatchingConfig",
    "RetryConfig",
    "EndpointConfig",
    "ObservabilityConfig",
]
