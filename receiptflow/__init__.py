"""
Read-Receipt Delivery Pipeline

Turns a high-frequency, deduplicated stream of "message became visible"
events into low-frequency, batched, network-aware, retried server
acknowledgements, while keeping a local optimistic read state:

- Deduplication Gate: each message id is admitted at most once
- Intake Queue: unbounded, ordered, non-blocking for producers
- Batcher: count-or-time windows (25 ids / 5 s by default)
- Network Gate: dispatch suspends while offline, resumes FIFO
- Dispatcher: one batch in flight, exponential-backoff retry
- Optimistic Read Store: local "read" status, never rolled back

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
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
from receiptflow.core.config import ReceiptFlowConfig

from receiptflow.network import NetworkGate, NetworkMonitor
from receiptflow.reliability import RetryPolicy, retry_with_backoff
from receiptflow.client import (
    AcknowledgementEndpoint,
    MessagesClient,
    InMemoryAcknowledgementEndpoint,
)
from receiptflow.pipeline import (
    ReadReceiptPipeline,
    PipelineStats,
    DeduplicationGate,
    OptimisticReadStore,
    VisibilityTracker,
    DeliveryOutcome,
)

__all__ = [
    "__version__",
    # Result
    "Result",
    "Ok",
    "Err",
    # Types
    "MessageId",
    "Timestamp",
    "Batch",
    "Message",
    "GateState",
    "DeliveryState",
    # Errors
    "ErrorCode",
    "ReceiptFlowError",
    "DispatchError",
    "PipelineError",
    "ReliabilityError",
    "ConfigurationError",
    # Config
    "ReceiptFlowConfig",
    # Network
    "NetworkGate",
    "NetworkMonitor",
    # Reliability
    "RetryPolicy",
    "retry_with_backoff",
    # Client
    "AcknowledgementEndpoint",
    "MessagesClient",
    "InMemoryAcknowledgementEndpoint",
    # Pipeline
    "ReadReceiptPipeline",
    "PipelineStats",
    "DeduplicationGate",
    "OptimisticReadStore",
    "VisibilityTracker",
    "DeliveryOutcome",
]
