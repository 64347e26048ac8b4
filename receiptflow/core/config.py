"""
Configuration Management for the Read-Receipt Pipeline

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after validation
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from receiptflow.core.types import Result, Ok, Err
from receiptflow.core import constants as C

if TYPE_CHECKING:
    from receiptflow.reliability.retry import RetryPolicy


@dataclass(frozen=True)
class BatchingConfig:
    """Count-or-time windowing parameters."""

    max_batch_size: int = C.MAX_BATCH_SIZE
    window_ms: int = C.BATCH_WINDOW_MS

    @property
    def window_seconds(self) -> float:
        return self.window_ms / C.SECOND_MS


@dataclass(frozen=True)
class RetryConfig:
    """
    Dispatch retry parameters.

    ``max_retries`` counts retries after the first attempt, so a batch
    is sent at most ``max_retries + 1`` times.
    """

    base_delay_ms: int = C.RETRY_BASE_MS
    max_retries: int = C.RETRY_MAX_RETRIES
    exponential_base: float = C.RETRY_EXPONENTIAL_BASE
    max_delay_ms: int = C.RETRY_MAX_DELAY_MS
    jitter: bool = False

    def to_policy(self) -> RetryPolicy:
        from receiptflow.reliability.retry import RetryPolicy

        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay_ms=self.base_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
        )


@dataclass(frozen=True)
class EndpointConfig:
    """Remote acknowledgement endpoint."""

    base_url: str = C.ENDPOINT_BASE_URL
    mark_as_read_path: str = C.ENDPOINT_MARK_AS_READ_PATH
    timeout_s: float = C.ENDPOINT_TIMEOUT_S


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging and metrics configuration."""

    log_level: str = "INFO"
    log_json: bool = True
    metrics_enabled: bool = True


@dataclass(frozen=True)
class ReceiptFlowConfig:
    """Root configuration for the read-receipt pipeline."""

    batching: BatchingConfig = field(default_factory=BatchingConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    endpoint: EndpointConfig = field(default_factory=EndpointConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> Result[ReceiptFlowConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with RECEIPTFLOW_.
        Example: RECEIPTFLOW_MAX_BATCH_SIZE, RECEIPTFLOW_ENDPOINT_URL
        """
        try:
            batching = BatchingConfig(
                max_batch_size=int(env("MAX_BATCH_SIZE", str(C.MAX_BATCH_SIZE))),
                window_ms=int(env("WINDOW_MS", str(C.BATCH_WINDOW_MS))),
            )

            retry = RetryConfig(
                base_delay_ms=int(env("RETRY_BASE_MS", str(C.RETRY_BASE_MS))),
                max_retries=int(env("MAX_RETRIES", str(C.RETRY_MAX_RETRIES))),
            )

            endpoint = EndpointConfig(
                base_url=env("ENDPOINT_URL", C.ENDPOINT_BASE_URL),
                timeout_s=float(env("ENDPOINT_TIMEOUT_S", str(C.ENDPOINT_TIMEOUT_S))),
            )

            observability = ObservabilityConfig(
                log_level=env("LOG_LEVEL", "INFO").upper(),
                log_json=env("LOG_JSON", "true").lower() in {"1", "true", "yes"},
                metrics_enabled=env("METRICS", "true").lower() in {"1", "true", "yes"},
            )

            return Ok(cls(
                batching=batching,
                retry=retry,
                endpoint=endpoint,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.batching.max_batch_size < 1:
            return Err("max_batch_size must be >= 1")
        if self.batching.window_ms <= 0:
            return Err("window_ms must be > 0")
        if self.retry.max_retries < 0:
            return Err("max_retries must be >= 0")
        if self.retry.base_delay_ms < 0:
            return Err("base_delay_ms must be >= 0")
        if self.retry.exponential_base < 1:
            return Err("exponential_base must be >= 1")
        if self.retry.max_delay_ms < self.retry.base_delay_ms:
            return Err("max_delay_ms must be >= base_delay_ms")
        if self.endpoint.timeout_s <= 0:
            return Err("endpoint timeout_s must be > 0")
        return Ok(None)


def env(name: str, default: str) -> str:
    """Read a RECEIPTFLOW_-prefixed environment variable."""
    return os.getenv(C.ENV_PREFIX + name, default)
