"""
Unit Tests: Core Types and Configuration

Tests:
    - Result container
    - MessageId parsing and equality
    - Batch bounds and ordering
    - Configuration defaults, environment loading and validation
    - Error serialization
"""

import pytest

from receiptflow.core.config import BatchingConfig, ReceiptFlowConfig, RetryConfig
from receiptflow.core.errors import DispatchError, ErrorCode, ReliabilityError
from receiptflow.core.types import (
    Batch,
    DeliveryState,
    Err,
    Message,
    MessageId,
    Ok,
    Timestamp,
)


class TestResult:
    """Tests for Ok / Err."""

    def test_ok_unwrap_and_map(self):
        result = Ok(2).map(lambda v: v * 3)
        assert result.is_ok()
        assert result.unwrap() == 6

    def test_err_unwrap_raises(self):
        result = Err("boom")
        assert result.is_err()
        assert result.unwrap_or(7) == 7
        with pytest.raises(RuntimeError):
            result.unwrap()

    def test_err_propagates_through_chain(self):
        result = Err("boom").map(lambda v: v + 1).map(str)
        assert result == Err("boom")


class TestMessageId:
    """Tests for MessageId."""

    def test_parse_valid(self):
        assert MessageId.parse("msg-1").unwrap() == MessageId("msg-1")

    @pytest.mark.parametrize("raw", ["", "   "])
    def test_parse_rejects_blank(self, raw):
        assert MessageId.parse(raw).is_err()

    def test_equality_and_hash(self):
        assert MessageId("a") == MessageId("a")
        assert len({MessageId("a"), MessageId("a"), MessageId("b")}) == 2
        assert str(MessageId("a")) == "a"


class TestBatch:
    """Tests for Batch construction."""

    def test_preserves_order(self):
        ids = [MessageId(x) for x in ("c", "a", "b")]
        batch = Batch.of(ids, sequence=1, max_size=25).unwrap()
        assert list(batch) == ids
        assert batch.as_strings() == ["c", "a", "b"]
        assert batch.describe() == "c, a, b"

    def test_rejects_empty(self):
        assert Batch.of([], sequence=1, max_size=25).is_err()

    def test_rejects_oversized(self):
        ids = [MessageId(str(i)) for i in range(26)]
        assert Batch.of(ids, sequence=1, max_size=25).is_err()

    def test_is_immutable(self):
        batch = Batch.of([MessageId("a")], sequence=1, max_size=25).unwrap()
        with pytest.raises(AttributeError):
            batch.ids = ()  # type: ignore[misc]


class TestTimestampAndMessage:
    """Tests for Timestamp and Message."""

    def test_conversions(self):
        ts = Timestamp.from_millis(1_500)
        assert ts.millis == 1_500
        assert ts.seconds == pytest.approx(1.5)
        assert ts.to_datetime().year == 1970

    def test_subtraction_in_nanos(self):
        assert Timestamp(nanos=3_000) - Timestamp(nanos=1_000) == 2_000

    def test_message_unread(self):
        assert Message(MessageId("a")).is_unread
        assert not Message(MessageId("a"), read_at=Timestamp.now()).is_unread

    def test_terminal_states(self):
        assert DeliveryState.SUCCEEDED.is_terminal
        assert DeliveryState.FAILED.is_terminal
        assert not DeliveryState.RETRYING.is_terminal


class TestConfig:
    """Tests for ReceiptFlowConfig."""

    def test_defaults_match_reference_behaviour(self):
        config = ReceiptFlowConfig()
        assert config.batching.max_batch_size == 25
        assert config.batching.window_ms == 5000
        assert config.retry.base_delay_ms == 500
        assert config.retry.max_retries == 3
        assert config.validate().is_ok()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("RECEIPTFLOW_MAX_BATCH_SIZE", "10")
        monkeypatch.setenv("RECEIPTFLOW_WINDOW_MS", "250")
        monkeypatch.setenv("RECEIPTFLOW_ENDPOINT_URL", "https://api.example.com")
        monkeypatch.setenv("RECEIPTFLOW_LOG_JSON", "false")

        config = ReceiptFlowConfig.from_env().unwrap()

        assert config.batching.max_batch_size == 10
        assert config.batching.window_ms == 250
        assert config.endpoint.base_url == "https://api.example.com"
        assert config.observability.log_json is False

    def test_from_env_rejects_garbage(self, monkeypatch):
        monkeypatch.setenv("RECEIPTFLOW_WINDOW_MS", "soon")
        assert ReceiptFlowConfig.from_env().is_err()

    @pytest.mark.parametrize(
        "config",
        [
            ReceiptFlowConfig(batching=BatchingConfig(max_batch_size=0)),
            ReceiptFlowConfig(batching=BatchingConfig(window_ms=0)),
            ReceiptFlowConfig(retry=RetryConfig(max_retries=-1)),
            ReceiptFlowConfig(retry=RetryConfig(exponential_base=0.5)),
            ReceiptFlowConfig(retry=RetryConfig(max_delay_ms=0)),
            ReceiptFlowConfig(retry=RetryConfig(base_delay_ms=500, max_delay_ms=499)),
        ],
    )
    def test_validate_rejects_invalid(self, config):
        assert config.validate().is_err()

    def test_retry_config_to_policy(self):
        policy = RetryConfig().to_policy()
        assert policy.max_attempts == 4
        assert policy.schedule() == [500.0, 1000.0, 2000.0]


class TestErrors:
    """Tests for the error hierarchy."""

    def test_dispatch_error_to_dict(self):
        error = DispatchError.rejected("/messages/mark-as-read", status_code=503, body="busy")
        data = error.to_dict()
        assert data["code"] == "DISPATCH_REJECTED"
        assert data["context"]["status_code"] == 503
        assert isinstance(error, Exception)

    def test_with_context_keeps_class(self):
        error = ReliabilityError.retry_exhausted(attempts=4, last_error="boom")
        enriched = error.with_context(batch_sequence=3)
        assert isinstance(enriched, ReliabilityError)
        assert enriched.code is ErrorCode.RELIABILITY_RETRY_EXHAUSTED
        assert enriched.context["batch_sequence"] == 3
        assert enriched.error_id == error.error_id
