"""
System-Wide Constants for the Read-Receipt Pipeline

All magic numbers and configuration defaults centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000

NS_PER_MS: Final[int] = 1_000_000
NS_PER_S: Final[int] = 1_000_000_000

# =============================================================================
# BATCHING WINDOW
# =============================================================================
MAX_BATCH_SIZE: Final[int] = 25
BATCH_WINDOW_MS: Final[int] = 5 * SECOND_MS

# =============================================================================
# DISPATCH RETRY
# =============================================================================
RETRY_BASE_MS: Final[int] = 500
RETRY_MAX_RETRIES: Final[int] = 3
RETRY_EXPONENTIAL_BASE: Final[float] = 2.0
RETRY_MAX_DELAY_MS: Final[int] = 30 * SECOND_MS

# =============================================================================
# ACKNOWLEDGEMENT ENDPOINT
# =============================================================================
ENDPOINT_BASE_URL: Final[str] = "http://localhost:8000"
ENDPOINT_MARK_AS_READ_PATH: Final[str] = "/messages/mark-as-read"
ENDPOINT_TIMEOUT_S: Final[float] = 10.0

# =============================================================================
# ENVIRONMENT
# =============================================================================
ENV_PREFIX: Final[str] = "RECEIPTFLOW_"
