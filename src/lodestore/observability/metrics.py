"""Prometheus metrics for lodestore.

Provides metrics collection for storage operations:
- Operation count and latency per provider
- Bytes written and read
- Streamed reads currently holding a database connection

Usage:
    from lodestore.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.operations_total.labels(provider="relational", operation="store", outcome="ok").inc()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from lodestore.config import settings

logger = logging.getLogger(__name__)


class NoOpMetric:
    """No-op metric for when metrics are disabled."""

    def labels(self, **kwargs: Any) -> "NoOpMetric":
        """Return self for chaining."""
        return self

    def inc(self, amount: float = 1) -> None:
        pass

    def dec(self, amount: float = 1) -> None:
        pass

    def set(self, value: float) -> None:
        pass

    def observe(self, value: float) -> None:
        pass


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    operations_total: Any = field(default_factory=NoOpMetric)
    operation_duration_seconds: Any = field(default_factory=NoOpMetric)
    bytes_total: Any = field(default_factory=NoOpMetric)
    open_streams: Any = field(default_factory=NoOpMetric)

    # Internal state
    _initialized: bool = field(default=False, repr=False)

    def initialize(self, enabled: bool | None = None) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if enabled is None:
            enabled = settings.enable_metrics
        if not enabled:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        from prometheus_client import Counter, Gauge, Histogram

        self.operations_total = Counter(
            "lodestore_operations_total",
            "Total storage operations",
            ["provider", "operation", "outcome"],
        )

        self.operation_duration_seconds = Histogram(
            "lodestore_operation_duration_seconds",
            "Storage operation latency in seconds",
            ["provider", "operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0),
        )

        self.bytes_total = Counter(
            "lodestore_bytes_total",
            "Payload bytes moved through the storage engine",
            ["provider", "direction"],
        )

        self.open_streams = Gauge(
            "lodestore_open_streams",
            "Streamed reads currently holding a backend connection",
            ["provider"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


@contextmanager
def track_operation(provider: str, operation: str) -> Iterator[None]:
    """Record count and duration of one storage operation.

    The outcome label is ``ok`` unless the block raises.
    """
    metrics = get_metrics()
    start_time = time.perf_counter()
    outcome = "error"
    try:
        yield
        outcome = "ok"
    finally:
        metrics.operations_total.labels(
            provider=provider, operation=operation, outcome=outcome
        ).inc()
        metrics.operation_duration_seconds.labels(
            provider=provider, operation=operation
        ).observe(time.perf_counter() - start_time)


def record_bytes(provider: str, direction: str, amount: int) -> None:
    """Record payload bytes written ("in") or read ("out")."""
    if amount:
        get_metrics().bytes_total.labels(provider=provider, direction=direction).inc(amount)
