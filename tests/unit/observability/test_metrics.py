"""Tests for Prometheus metrics."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY, generate_latest

from lodestore.observability.metrics import (
    MetricsRegistry,
    NoOpMetric,
    get_metrics,
    metrics_registry,
    record_bytes,
    track_operation,
)


def _sample(name: str, labels: dict[str, str]) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def registry():
    get_metrics()
    if isinstance(metrics_registry.operations_total, NoOpMetric):
        pytest.skip("metrics disabled by LODESTORE_ENABLE_METRICS")
    return metrics_registry


class TestNoOpMetric:
    def test_chaining(self) -> None:
        metric = NoOpMetric()
        assert metric.labels(provider="x") is metric
        metric.inc()
        metric.dec()
        metric.observe(1.0)


class TestMetrics:
    """Test metric recording through the global registry."""

    def test_track_operation_outcomes(self, registry) -> None:
        ok = {"provider": "unit", "operation": "store", "outcome": "ok"}
        error = {"provider": "unit", "operation": "store", "outcome": "error"}
        ok_before = _sample("lodestore_operations_total", ok)
        error_before = _sample("lodestore_operations_total", error)

        with track_operation("unit", "store"):
            pass
        with pytest.raises(ValueError):
            with track_operation("unit", "store"):
                raise ValueError("boom")

        assert _sample("lodestore_operations_total", ok) == ok_before + 1
        assert _sample("lodestore_operations_total", error) == error_before + 1

    def test_record_bytes(self, registry) -> None:
        labels = {"provider": "unit", "direction": "in"}
        before = _sample("lodestore_bytes_total", labels)

        record_bytes("unit", "in", 11)
        record_bytes("unit", "in", 0)

        assert _sample("lodestore_bytes_total", labels) == before + 11

    def test_exposition(self, registry) -> None:
        output = generate_latest(REGISTRY)
        assert b"lodestore_operations_total" in output
        assert b"lodestore_open_streams" in output

    def test_disabled_registry_keeps_no_op_metrics(self) -> None:
        disabled = MetricsRegistry()
        disabled.initialize(enabled=False)

        assert isinstance(disabled.operations_total, NoOpMetric)
        assert isinstance(disabled.open_streams, NoOpMetric)
        with track_operation("unit", "get"):
            pass
