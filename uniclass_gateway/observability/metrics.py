"""Prometheus metrics for the Uniclass Match Gateway.

Tracks request volume and latency, batch sizes, embedding chunk outcomes
and per-query match outcomes (including each sentinel kind).
"""

import time
from contextlib import contextmanager
from typing import Generator, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Default registry
DEFAULT_REGISTRY = CollectorRegistry()

# =============================================================================
# API Metrics
# =============================================================================

API_REQUESTS = Counter(
    'uniclass_api_requests_total',
    'Total number of API requests',
    ['method', 'endpoint', 'status_code'],
    registry=DEFAULT_REGISTRY,
)

API_REQUEST_DURATION = Histogram(
    'uniclass_api_request_duration_seconds',
    'API request duration',
    ['method', 'endpoint'],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60],
    registry=DEFAULT_REGISTRY,
)

# =============================================================================
# Matching Metrics
# =============================================================================

BATCH_SIZE = Histogram(
    'uniclass_batch_size',
    'Number of queries per batch request',
    buckets=[1, 5, 10, 50, 100, 200, 500, 1000, 2000],
    registry=DEFAULT_REGISTRY,
)

EMBEDDING_CHUNKS = Counter(
    'uniclass_embedding_chunks_total',
    'Embedding provider chunk calls by outcome',
    ['outcome'],
    registry=DEFAULT_REGISTRY,
)

MATCH_OUTCOMES = Counter(
    'uniclass_match_outcomes_total',
    'Per-query match outcomes',
    ['outcome'],
    registry=DEFAULT_REGISTRY,
)

STAGE_DURATION = Histogram(
    'uniclass_stage_duration_seconds',
    'Time spent in each pipeline stage',
    ['stage_name'],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30],
    registry=DEFAULT_REGISTRY,
)


class MetricsManager:
    """Manages metrics collection and reporting.

    Example:
        >>> manager = MetricsManager()
        >>> manager.record_batch(25)
        >>> with manager.time_stage("embed"):
        ...     vectors = await fetcher.fetch(texts)
    """

    def __init__(self, registry: CollectorRegistry = DEFAULT_REGISTRY):
        self.registry = registry

    def record_batch(self, size: int) -> None:
        """Record the size of an accepted batch."""
        BATCH_SIZE.observe(size)

    def record_embedding_chunk(self, outcome: str) -> None:
        """Record one embedding chunk call ("success", "failed" or "retried")."""
        EMBEDDING_CHUNKS.labels(outcome=outcome).inc()

    def record_match_outcome(self, outcome: str) -> None:
        """Record the outcome of one query."""
        MATCH_OUTCOMES.labels(outcome=outcome).inc()

    @contextmanager
    def time_stage(self, stage_name: str) -> Generator[None, None, None]:
        """Context manager to time a pipeline stage."""
        start = time.monotonic()
        try:
            yield
        finally:
            STAGE_DURATION.labels(stage_name=stage_name).observe(time.monotonic() - start)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status_code: int,
        duration: float,
    ) -> None:
        """Record an API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            status_code: HTTP status code
            duration: Request duration in seconds
        """
        API_REQUESTS.labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code),
        ).inc()

        API_REQUEST_DURATION.labels(
            method=method,
            endpoint=endpoint,
        ).observe(duration)

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus exposition format."""
        return generate_latest(self.registry)

    @property
    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST


_metrics_manager: Optional[MetricsManager] = None


def get_metrics_manager() -> MetricsManager:
    """Get or create the global metrics manager."""
    global _metrics_manager
    if _metrics_manager is None:
        _metrics_manager = MetricsManager()
    return _metrics_manager
