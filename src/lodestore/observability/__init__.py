"""Observability module for lodestore.

Provides structured logging and metrics:
- JSON structured logging with operation / file id context
- Prometheus metrics for storage operations and open streams
"""

from lodestore.observability.logging import (
    LogContext,
    configure_logging,
    file_id_var,
    operation_var,
)
from lodestore.observability.metrics import (
    get_metrics,
    metrics_registry,
    record_bytes,
    track_operation,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "operation_var",
    "file_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "record_bytes",
    "track_operation",
]
