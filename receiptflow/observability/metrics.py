"""
Pipeline Metrics

In-process counters, gauges and histograms with Prometheus text export.

Every metric reports its state as a flat list of ``Sample`` rows, so
the exporter needs no per-type logic. Each ReadReceiptPipeline owns a
collector unless one is injected; there is no global registry.
"""

from __future__ import annotations

import threading
import time
from bisect import bisect_left
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, NamedTuple, Optional, Sequence, TypeVar

LabelKey = tuple[tuple[str, str], ...]

M = TypeVar("M", bound="Metric")


class Sample(NamedTuple):
    name: str
    labels: dict[str, str]
    value: float


class Metric:
    """Base for named metrics with a fixed label schema."""

    kind = "untyped"

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self.name = name
        self.help_text = help_text
        self.label_names = tuple(label_names)
        self._lock = threading.Lock()

    def _key(self, labels: dict[str, Any]) -> LabelKey:
        unknown = set(labels) - set(self.label_names)
        if unknown:
            raise ValueError(f"{self.name}: unknown labels {sorted(unknown)}")
        return tuple((n, str(labels.get(n, ""))) for n in self.label_names)

    def samples(self) -> list[Sample]:
        raise NotImplementedError


class Counter(Metric):
    """
    Monotonic counter.

    Usage:
        formed = Counter("batches_formed_total", ["trigger"])
        formed.inc(trigger="time")
    """

    kind = "counter"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[LabelKey, float] = {}

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        if value < 0:
            raise ValueError(f"{self.name}: counters only go up (got {value})")
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self._values.get(self._key(labels), 0.0)

    def samples(self) -> list[Sample]:
        with self._lock:
            return [Sample(self.name, dict(k), v) for k, v in self._values.items()]


class Gauge(Metric):
    """Point-in-time value, e.g. intake queue depth."""

    kind = "gauge"

    def __init__(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> None:
        super().__init__(name, label_names, help_text)
        self._values: dict[LabelKey, float] = {}

    def set(self, value: float, **labels: Any) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0.0) + value

    def dec(self, value: float = 1.0, **labels: Any) -> None:
        self.inc(-value, **labels)

    def get(self, **labels: Any) -> float:
        return self._values.get(self._key(labels), 0.0)

    def samples(self) -> list[Sample]:
        with self._lock:
            return [Sample(self.name, dict(k), v) for k, v in self._values.items()]


@dataclass
class _Series:
    counts: list[int]
    total: float = 0.0
    observations: int = 0


@dataclass(frozen=True)
class HistogramSnapshot:
    labels: dict[str, str]
    buckets: list[tuple[float, int]] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0


class Histogram(Metric):
    """
    Bucketed distribution. Buckets are reported cumulatively.

    Usage:
        latency = Histogram("dispatch_latency_seconds")
        with latency.time():
            await endpoint.mark_as_read(batch.ids)
    """

    kind = "histogram"

    DEFAULT_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> None:
        super().__init__(name, label_names, help_text)
        bounds = sorted(set(buckets or self.DEFAULT_BUCKETS))
        if bounds[-1] != float("inf"):
            bounds.append(float("inf"))
        self.buckets = tuple(bounds)
        self._series: dict[LabelKey, _Series] = {}

    def observe(self, value: float, **labels: Any) -> None:
        key = self._key(labels)
        index = bisect_left(self.buckets, value)
        with self._lock:
            series = self._series.get(key)
            if series is None:
                series = self._series[key] = _Series([0] * len(self.buckets))
            series.counts[index] += 1
            series.total += value
            series.observations += 1

    @contextmanager
    def time(self, **labels: Any) -> Iterator[None]:
        """Observe the wall-clock duration of the block, in seconds."""
        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(time.perf_counter() - started, **labels)

    def count(self, **labels: Any) -> int:
        series = self._series.get(self._key(labels))
        return series.observations if series else 0

    def collect(self) -> list[HistogramSnapshot]:
        with self._lock:
            items = [(k, list(s.counts), s.total, s.observations) for k, s in self._series.items()]

        snapshots = []
        for key, counts, total, observations in items:
            running, cumulative = 0, []
            for bound, n in zip(self.buckets, counts):
                running += n
                cumulative.append((bound, running))
            snapshots.append(HistogramSnapshot(dict(key), cumulative, total, observations))
        return snapshots

    def samples(self) -> list[Sample]:
        rows = []
        for snap in self.collect():
            for bound, n in snap.buckets:
                le = "+Inf" if bound == float("inf") else str(bound)
                rows.append(Sample(f"{self.name}_bucket", {"le": le, **snap.labels}, n))
            rows.append(Sample(f"{self.name}_sum", snap.labels, snap.sum))
            rows.append(Sample(f"{self.name}_count", snap.labels, snap.count))
        return rows


class MetricsCollector:
    """
    Get-or-create registry for one pipeline's metrics.

    Usage:
        metrics = MetricsCollector()
        metrics.counter("receipts_admitted_total").inc()
        print(metrics.export_prometheus())
    """

    def __init__(self) -> None:
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()

    def _register(self, cls: type[M], name: str, *args: Any) -> M:
        with self._lock:
            existing = self._metrics.get(name)
            if existing is None:
                existing = self._metrics[name] = cls(name, *args)
            elif not isinstance(existing, cls):
                raise TypeError(f"{name} is already registered as a {existing.kind}")
            return existing

    def counter(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Counter:
        return self._register(Counter, name, label_names, help_text)

    def gauge(self, name: str, label_names: Sequence[str] = (), help_text: str = "") -> Gauge:
        return self._register(Gauge, name, label_names, help_text)

    def histogram(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
        buckets: Optional[Sequence[float]] = None,
    ) -> Histogram:
        return self._register(Histogram, name, label_names, help_text, buckets)

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    def export_prometheus(self) -> str:
        """Render every registered metric in Prometheus text format."""
        with self._lock:
            metrics = list(self._metrics.values())

        lines: list[str] = []
        for metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for sample in metric.samples():
                lines.append(f"{sample.name}{_format_labels(sample.labels)} {sample.value}")
        return "\n".join(lines)


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in labels.items()) + "}"
