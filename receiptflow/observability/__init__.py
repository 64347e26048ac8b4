"""
Observability module: Metrics and structured logging.
"""

from receiptflow.observability.metrics import MetricsCollector, Counter, Gauge, Histogram
from receiptflow.observability.logging import (
    ContextFilter,
    JsonFormatter,
    PipelineLogger,
    parse_level,
    pipeline_context,
    setup_logging,
)

__all__ = [
    "MetricsCollector",
    "Counter",
    "Gauge",
    "Histogram",
    "ContextFilter",
    "JsonFormatter",
    "PipelineLogger",
    "parse_level",
    "pipeline_context",
    "setup_logging",
]
