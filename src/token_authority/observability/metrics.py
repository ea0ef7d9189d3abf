"""In-process metrics for the token authority.

Counters and histograms keyed by label sets, exportable in the Prometheus
text exposition format. Every grant, session and token operation is counted
through :mod:`token_authority.observability.instrumentation`.

Example:
    >>> from token_authority.observability.metrics import get_metrics
    >>> metrics = get_metrics()
    >>> metrics.increment_counter(
    ...     "token_authority_operations_total", {"operation": "grant.redeem", "status": "success"}
    ... )
    >>> "token_authority_operations_total" in metrics.export_prometheus()
    True
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import ClassVar

LabelKey = tuple[tuple[str, str], ...]

DEFAULT_LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

OPERATIONS_TOTAL = "token_authority_operations_total"
OPERATION_DURATION = "token_authority_operation_duration_seconds"
SESSION_TRANSITIONS_TOTAL = "token_authority_session_transitions_total"
REPLAY_DETECTIONS_TOTAL = "token_authority_replay_detections_total"
CLAIM_FAILURES_TOTAL = "token_authority_claim_failures_total"


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class Counter:
    """Monotonically increasing value per label set."""

    name: str
    help_text: str
    values: dict[LabelKey, float] = field(default_factory=dict)

    def increment(self, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
        key = _label_key(labels)
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, labels: dict[str, str] | None = None) -> float:
        return self.values.get(_label_key(labels), 0.0)


@dataclass
class HistogramSeries:
    bucket_counts: list[float]
    total: float = 0.0
    count: float = 0.0


@dataclass
class Histogram:
    """Distribution of observed values with fixed upper-bound buckets."""

    name: str
    help_text: str
    buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    series: dict[LabelKey, HistogramSeries] = field(default_factory=dict)

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        current = self.series.get(key)
        if current is None:
            current = HistogramSeries(bucket_counts=[0.0] * len(self.buckets))
            self.series[key] = current
        for index, bound in enumerate(self.buckets):
            if value <= bound:
                current.bucket_counts[index] += 1.0
        current.total += value
        current.count += 1.0

    def get_count(self, labels: dict[str, str] | None = None) -> float:
        current = self.series.get(_label_key(labels))
        return current.count if current is not None else 0.0


def _format_labels(labels: LabelKey, extra: tuple[str, str] | None = None) -> str:
    pairs = list(labels)
    if extra is not None:
        pairs.append(extra)
    if not pairs:
        return ""
    rendered = []
    for key, value in pairs:
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        rendered.append(f'{key}="{escaped}"')
    return "{" + ",".join(rendered) + "}"


class MetricsCollector:
    """Thread-safe registry of counters and histograms.

    Unknown metric names are ignored by ``increment_counter`` and
    ``observe_histogram``; register them first.
    """

    DEFAULT_COUNTERS: ClassVar[dict[str, str]] = {
        OPERATIONS_TOTAL: "Grant, session and token operations by outcome",
        SESSION_TRANSITIONS_TOTAL: "Session status transitions",
        REPLAY_DETECTIONS_TOTAL: "Refresh token replays that burned a grant lineage",
        CLAIM_FAILURES_TOTAL: "Token claim validation failures by claim",
    }

    DEFAULT_HISTOGRAMS: ClassVar[dict[str, str]] = {
        OPERATION_DURATION: "Grant, session and token operation duration in seconds",
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._started_at = time.time()
        self._counters = {
            name: Counter(name=name, help_text=text) for name, text in self.DEFAULT_COUNTERS.items()
        }
        self._histograms = {
            name: Histogram(name=name, help_text=text)
            for name, text in self.DEFAULT_HISTOGRAMS.items()
        }

    def register_counter(self, name: str, help_text: str) -> None:
        with self._lock:
            self._counters.setdefault(name, Counter(name=name, help_text=help_text))

    def register_histogram(
        self, name: str, help_text: str, buckets: tuple[float, ...] = DEFAULT_LATENCY_BUCKETS
    ) -> None:
        with self._lock:
            self._histograms.setdefault(
                name, Histogram(name=name, help_text=help_text, buckets=buckets)
            )

    def increment_counter(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        with self._lock:
            counter = self._counters.get(name)
            if counter is not None:
                counter.increment(labels, value)

    def observe_histogram(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            histogram = self._histograms.get(name)
            if histogram is not None:
                histogram.observe(value, labels)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            counter = self._counters.get(name)
            return counter.get(labels) if counter is not None else 0.0

    def get_histogram_count(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            histogram = self._histograms.get(name)
            return histogram.get_count(labels) if histogram is not None else 0.0

    def export_prometheus(self) -> str:
        """Render every registered metric in Prometheus text format."""
        lines: list[str] = []
        with self._lock:
            for counter in self._counters.values():
                lines.append(f"# HELP {counter.name} {counter.help_text}")
                lines.append(f"# TYPE {counter.name} counter")
                if not counter.values:
                    lines.append(f"{counter.name} 0")
                for key, value in counter.values.items():
                    lines.append(f"{counter.name}{_format_labels(key)} {value}")

            for histogram in self._histograms.values():
                lines.append(f"# HELP {histogram.name} {histogram.help_text}")
                lines.append(f"# TYPE {histogram.name} histogram")
                for key, series in histogram.series.items():
                    for bound, bucket_count in zip(histogram.buckets, series.bucket_counts):
                        labels = _format_labels(key, ("le", str(bound)))
                        lines.append(f"{histogram.name}_bucket{labels} {bucket_count}")
                    labels = _format_labels(key, ("le", "+Inf"))
                    lines.append(f"{histogram.name}_bucket{labels} {series.count}")
                    lines.append(f"{histogram.name}_sum{_format_labels(key)} {series.total}")
                    lines.append(f"{histogram.name}_count{_format_labels(key)} {series.count}")

            uptime = time.time() - self._started_at
            lines.append("# HELP token_authority_uptime_seconds Time since the collector started")
            lines.append("# TYPE token_authority_uptime_seconds gauge")
            lines.append(f"token_authority_uptime_seconds {uptime:.3f}")
        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Drop all recorded values, keeping registrations."""
        with self._lock:
            for counter in self._counters.values():
                counter.values.clear()
            for histogram in self._histograms.values():
                histogram.series.clear()


_metrics_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Return the process-wide collector, creating it on first use."""
    global _metrics_collector
    with _collector_lock:
        if _metrics_collector is None:
            _metrics_collector = MetricsCollector()
        return _metrics_collector


def reset_metrics() -> None:
    with _collector_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset()
