"""Observability: structured logging and Prometheus metrics."""

from uniclass_gateway.observability.logging import (
    StructuredLogger,
    correlation_id_scope,
    get_logger,
    setup_logging,
)
from uniclass_gateway.observability.metrics import MetricsManager, get_metrics_manager

__all__ = [
    "MetricsManager",
    "StructuredLogger",
    "correlation_id_scope",
    "get_logger",
    "get_metrics_manager",
    "setup_logging",
]
