"""
Reliability module: bounded exponential-backoff retry for dispatch.
"""

from receiptflow.reliability.retry import RetryPolicy, RetryCallback, retry_with_backoff

__all__ = [
    "RetryPolicy",
    "RetryCallback",
    "retry_with_backoff",
]
