"""Tests for the metrics collector and operation instrumentation."""

import pytest

from token_authority.observability import MetricsCollector, get_metrics, instrument
from token_authority.observability.metrics import (
    OPERATION_DURATION,
    OPERATIONS_TOTAL,
    REPLAY_DETECTIONS_TOTAL,
)


class TestMetricsCollector:
    """Tests for counters, histograms and Prometheus export."""

    def test_counter_by_labels(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter(OPERATIONS_TOTAL, {"operation": "a", "status": "success"})
        metrics.increment_counter(OPERATIONS_TOTAL, {"status": "success", "operation": "a"})

        assert metrics.get_counter(OPERATIONS_TOTAL, {"operation": "a", "status": "success"}) == 2
        assert metrics.get_counter(OPERATIONS_TOTAL, {"operation": "b", "status": "success"}) == 0

    def test_unknown_metric_ignored(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter("unregistered_total")

        assert metrics.get_counter("unregistered_total") == 0

    def test_register_counter(self) -> None:
        metrics = MetricsCollector()
        metrics.register_counter("custom_total", "Custom")
        metrics.increment_counter("custom_total")

        assert metrics.get_counter("custom_total") == 1

    def test_prometheus_export(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter(REPLAY_DETECTIONS_TOTAL)
        metrics.observe_histogram(OPERATION_DURATION, 0.02, {"operation": "token.refresh"})

        output = metrics.export_prometheus()

        assert "# TYPE token_authority_replay_detections_total counter" in output
        assert "token_authority_replay_detections_total 1.0" in output
        assert (
            'token_authority_operation_duration_seconds_bucket{operation="token.refresh",le="0.025"} 1.0'
            in output
        )
        assert "token_authority_uptime_seconds" in output

    def test_reset(self) -> None:
        metrics = MetricsCollector()
        metrics.increment_counter(REPLAY_DETECTIONS_TOTAL)
        metrics.reset()

        assert metrics.get_counter(REPLAY_DETECTIONS_TOTAL) == 0


class TestInstrument:
    """Tests for the instrument() context manager."""

    def test_success_counted(self) -> None:
        with instrument("grant.create", client_id="web") as payload:
            payload["grant_id"] = "g1"

        metrics = get_metrics()
        assert metrics.get_counter(
            OPERATIONS_TOTAL, {"operation": "grant.create", "status": "success"}
        ) == 1
        assert metrics.get_histogram_count(OPERATION_DURATION, {"operation": "grant.create"}) == 1

    def test_error_counted_and_reraised(self) -> None:
        with pytest.raises(RuntimeError):
            with instrument("token.refresh"):
                raise RuntimeError("boom")

        assert get_metrics().get_counter(
            OPERATIONS_TOTAL, {"operation": "token.refresh", "status": "error"}
        ) == 1
