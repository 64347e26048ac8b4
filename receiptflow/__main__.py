#!/usr/bin/env python3
"""
Read-Receipt Pipeline Demo

Runs the reference scenario against an in-memory endpoint:
admit A, B, C at t=0 and D at t=1s, then wait for the time-bound
window to close and the batch to be acknowledged.

Usage:
    python -m receiptflow
    python -m receiptflow --window-ms 1000 --offline-for-ms 2000 --fail-first 2

    # Or with environment overrides
    RECEIPTFLOW_WINDOW_MS=2000 RECEIPTFLOW_LOG_JSON=false python -m receiptflow
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import replace

from receiptflow.client.memory import InMemoryAcknowledgementEndpoint
from receiptflow.core.config import ReceiptFlowConfig
from receiptflow.core.types import MessageId
from receiptflow.network.monitor import NetworkMonitor
from receiptflow.observability.logging import parse_level, setup_logging
from receiptflow.pipeline.receipts import ReadReceiptPipeline


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="receiptflow", description=__doc__.splitlines()[1])
    parser.add_argument("--window-ms", type=int, default=None, help="Override batch window")
    parser.add_argument("--offline-for-ms", type=int, default=0, help="Start offline for this long")
    parser.add_argument("--fail-first", type=int, default=0, help="Fail the first N acknowledgement calls")
    return parser.parse_args(argv)


async def run_demo(config: ReceiptFlowConfig, offline_for_ms: int, fail_first: int) -> int:
    endpoint = InMemoryAcknowledgementEndpoint()
    endpoint.fail_next(fail_first)

    monitor = NetworkMonitor(initial_online=offline_for_ms <= 0)
    window_s = config.batching.window_seconds

    async with ReadReceiptPipeline(endpoint, config, monitor=monitor) as pipeline:
        for name in ("A", "B", "C"):
            pipeline.admit(MessageId(name))

        await asyncio.sleep(min(1.0, window_s / 5))
        pipeline.admit(MessageId("D"))
        pipeline.admit(MessageId("A"))  # duplicate, no-op

        if offline_for_ms > 0:
            await asyncio.sleep(offline_for_ms / 1000)
            monitor.set_online()

        retry_budget_s = sum(config.retry.to_policy().schedule()) / 1000
        deadline = asyncio.get_running_loop().time() + window_s + retry_budget_s + 2.0
        while not endpoint.acknowledged and asyncio.get_running_loop().time() < deadline:
            await asyncio.sleep(0.05)
        # Let the dispatcher finish logging the outcome
        await asyncio.sleep(0.05)

        print("\nOptimistic read state:")
        for mid, ts in sorted(pipeline.read_state.snapshot().items()):
            print(f"  {mid}: {ts.to_datetime().isoformat()}")

        print("\nAcknowledgement calls:")
        for call in endpoint.calls:
            status = "ok" if call.succeeded else "failed"
            print(f"  [{status}] {', '.join(str(mid) for mid in call.message_ids)}")

        stats = pipeline.stats
        print(
            f"\nadmitted={stats.admitted} duplicates={stats.duplicates} "
            f"batches={stats.batches_formed} dispatched={stats.batches_dispatched} "
            f"failed={stats.batches_failed} attempts={stats.dispatch_attempts}"
        )

        if config.observability.metrics_enabled:
            print("\n" + pipeline.metrics.export_prometheus())

    return 0 if endpoint.acknowledged else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)

    config_result = ReceiptFlowConfig.from_env()
    if config_result.is_err():
        print(f"Configuration error: {config_result.error}")
        return 1
    config = config_result.unwrap()

    if args.window_ms is not None:
        config = replace(config, batching=replace(config.batching, window_ms=args.window_ms))

    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}")
        return 1

    setup_logging(
        parse_level(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    return asyncio.run(run_demo(config, args.offline_for_ms, args.fail_first))


if __name__ == "__main__":
    sys.exit(main())
