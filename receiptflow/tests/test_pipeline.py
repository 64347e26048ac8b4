"""
Integration Tests: Read-Receipt Pipeline

Tests:
    - Reference scenario: A, B, C then D inside one window
    - Optimistic state is immediate and survives delivery failure
    - Offline -> online resume through the monitor
    - Lifecycle errors (double start, start after close, crashed task)
    - Visibility tracker feeding admissions
"""

import asyncio
import logging

import pytest

from receiptflow.core.config import ReceiptFlowConfig, BatchingConfig
from receiptflow.core.errors import ConfigurationError, ErrorCode
from receiptflow.core.types import Message, MessageId
from receiptflow.network.monitor import NetworkMonitor
from receiptflow.pipeline.receipts import ReadReceiptPipeline
from receiptflow.tests.helpers import RecordingSleep, fast_config, wait_until

A, B, C, D = (MessageId(x) for x in "ABCD")


class TestReferenceScenario:
    """Admission, windowing and delivery end to end."""

    def test_single_batch_for_one_window(self, endpoint):
        async def scenario():
            async with ReadReceiptPipeline(endpoint, fast_config(window_ms=100)) as pipeline:
                for mid in (A, B, C):
                    pipeline.admit(mid)
                marked_immediately = all(pipeline.read_state.is_read(m) for m in (A, B, C))

                await asyncio.sleep(0.02)
                pipeline.admit(D)
                assert not pipeline.admit(A)

                await wait_until(lambda: len(endpoint.acknowledged) == 4)
                await wait_until(lambda: pipeline.stats.batches_dispatched == 1)
                return marked_immediately, pipeline.stats

        marked_immediately, stats = asyncio.run(scenario())

        assert marked_immediately
        assert endpoint.successful_batches == [(A, B, C, D)]
        assert len(endpoint.calls) == 1
        assert stats.admitted == 4
        assert stats.duplicates == 1
        assert stats.batches_formed == 1
        assert stats.dispatch_attempts == 1

    def test_size_bound_splits_fast_stream(self, endpoint):
        names = [MessageId(f"m{i}") for i in range(7)]

        async def scenario():
            async with ReadReceiptPipeline(endpoint, fast_config(max_batch_size=3, window_ms=50)) as pipeline:
                for mid in names:
                    pipeline.admit(mid)
                await wait_until(lambda: len(endpoint.acknowledged) == 7)

        asyncio.run(scenario())

        batches = endpoint.successful_batches
        assert [len(b) for b in batches[:2]] == [3, 3]
        assert [mid for b in batches for mid in b] == names


class TestFailureHandling:
    """Delivery failures never touch local state."""

    def test_failed_batch_keeps_optimistic_state(self, endpoint):
        endpoint.fail_always()
        failed = []

        async def scenario():
            pipeline = ReadReceiptPipeline(
                endpoint,
                fast_config(window_ms=20),
                on_batch_failed=failed.append,
                sleep=RecordingSleep(),
            )
            async with pipeline:
                pipeline.admit(A)
                await wait_until(lambda: bool(failed))
                # Re-admission is still a no-op: no retry path from the UI
                readmitted = pipeline.admit(A)
                return pipeline, readmitted

        pipeline, readmitted = asyncio.run(scenario())

        assert not readmitted
        assert pipeline.read_state.is_read(A)
        assert len(endpoint.calls) == 4
        assert failed[0].batch.ids == (A,)
        assert pipeline.stats.batches_failed == 1

    def test_offline_then_online_delivers_once(self, endpoint):
        monitor = NetworkMonitor(initial_online=False)

        async def scenario():
            async with ReadReceiptPipeline(endpoint, fast_config(window_ms=20), monitor=monitor) as pipeline:
                pipeline.admit(A)
                pipeline.admit(B)
                await asyncio.sleep(0.06)
                calls_offline = len(endpoint.calls)
                suspended = pipeline.dispatcher.current_batch

                monitor.set_online()
                await wait_until(lambda: len(endpoint.acknowledged) == 2)
                return calls_offline, suspended

        calls_offline, suspended = asyncio.run(scenario())

        assert calls_offline == 0
        assert suspended is not None and suspended.ids == (A, B)
        assert endpoint.successful_batches == [(A, B)]


class TestLifecycle:
    """start / close semantics."""

    def test_admit_before_start_is_local_only(self, endpoint):
        pipeline = ReadReceiptPipeline(endpoint, fast_config())

        assert pipeline.admit(A)
        assert pipeline.read_state.is_read(A)
        assert not pipeline.is_running
        assert pipeline.stats.dropped == 1

    def test_double_start_is_rejected(self, endpoint):
        async def scenario():
            pipeline = ReadReceiptPipeline(endpoint, fast_config())
            first = await pipeline.start()
            second = await pipeline.start()
            await pipeline.close()
            return first, second

        first, second = asyncio.run(scenario())

        assert first.is_ok()
        assert second.is_err()
        assert second.error.code is ErrorCode.PIPELINE_ALREADY_STARTED

    def test_start_after_close_is_rejected(self, endpoint):
        async def scenario():
            pipeline = ReadReceiptPipeline(endpoint, fast_config())
            await pipeline.start()
            await pipeline.close()
            await pipeline.close()
            return await pipeline.start(), pipeline

        result, pipeline = asyncio.run(scenario())

        assert result.is_err()
        assert result.error.code is ErrorCode.PIPELINE_CLOSED
        assert not pipeline.is_running

    def test_close_drops_partial_window(self, endpoint):
        async def scenario():
            pipeline = ReadReceiptPipeline(endpoint, fast_config(window_ms=10_000))
            await pipeline.start()
            pipeline.admit(A)
            await asyncio.sleep(0.01)
            await pipeline.close()
            # Admission after close stays local
            return pipeline.admit(B), pipeline

        admitted, pipeline = asyncio.run(scenario())

        assert admitted
        assert endpoint.calls == []
        assert pipeline.read_state.is_read(A)
        assert pipeline.read_state.is_read(B)

    def test_invalid_config_raises(self, endpoint):
        config = ReceiptFlowConfig(batching=BatchingConfig(max_batch_size=0))
        with pytest.raises(ConfigurationError):
            ReadReceiptPipeline(endpoint, config)

    def test_crashed_task_is_logged_as_internal_error(self, caplog):
        class EndpointBug(BaseException):
            pass

        class BrokenEndpoint:
            async def mark_as_read(self, message_ids):
                raise EndpointBug("unexpected")

        def crash_records():
            return [r for r in caplog.records if r.getMessage() == "Pipeline task crashed"]

        async def scenario():
            pipeline = ReadReceiptPipeline(BrokenEndpoint(), fast_config(window_ms=20))
            await pipeline.start()
            pipeline.admit(A)
            await wait_until(lambda: bool(crash_records()))
            await pipeline.close()
            return pipeline

        with caplog.at_level(logging.ERROR, logger="receiptflow.pipeline.receipts"):
            pipeline = asyncio.run(scenario())

        [record] = crash_records()
        assert record.error["code"] == "INTERNAL_ERROR"
        assert record.task.startswith("receiptflow-dispatcher-")
        assert record.pipeline_id == pipeline.pipeline_id
        assert pipeline.read_state.is_read(A)


class TestVisibilityIntegration:
    """Visibility tracker drives admissions."""

    def test_visible_and_focused_messages_are_admitted(self, endpoint):
        pipeline = ReadReceiptPipeline(endpoint, fast_config())
        tracker = pipeline.visibility_tracker(has_focus=False)

        assert tracker.register(Message(A))
        assert tracker.register(Message(B))
        assert tracker.register(Message(C))

        assert not tracker.set_visible(A, True)
        tracker.set_visible(B, True)
        tracker.set_visible(B, False)
        assert not pipeline.read_state.is_read(A)

        assert tracker.set_focus(True) == 1
        assert pipeline.read_state.is_read(A)
        assert not pipeline.read_state.is_read(B)

        assert tracker.set_visible(C, True)
        assert pipeline.read_state.is_read(C)
        assert len(tracker) == 1

    def test_already_read_messages_are_not_tracked(self, endpoint):
        pipeline = ReadReceiptPipeline(endpoint, fast_config())
        pipeline.admit(A)
        tracker = pipeline.visibility_tracker()

        assert not tracker.register(Message(A))
        assert tracker.set_visible(A, True) is False
        assert pipeline.stats.duplicates == 0
