"""
Pipeline module: admission, windowing, gated dispatch and optimistic state.
"""

from receiptflow.pipeline.optimistic import OptimisticReadStore
from receiptflow.pipeline.intake import IntakeQueue
from receiptflow.pipeline.deduplication import DedupSet, DeduplicationGate
from receiptflow.pipeline.batcher import Batcher
from receiptflow.pipeline.dispatcher import Dispatcher, DeliveryOutcome
from receiptflow.pipeline.visibility import VisibilityTracker
from receiptflow.pipeline.receipts import ReadReceiptPipeline, PipelineStats

__all__ = [
    "OptimisticReadStore",
    "IntakeQueue",
    "DedupSet",
    "DeduplicationGate",
    "Batcher",
    "Dispatcher",
    "DeliveryOutcome",
    "VisibilityTracker",
    "ReadReceiptPipeline",
    "PipelineStats",
]
