"""Prometheus metrics for techpress.

Provides metrics collection and exposure:
- HTTP request metrics (latency, count)
- Cache metrics (hits, misses, backend errors, latency)
- Invalidation metrics (message outcomes, keys deleted, rebuilds, publishes)

Usage:
    from techpress.observability.metrics import get_metrics

    metrics = get_metrics()
    metrics.cache_hits_total.labels(resource="blog").inc()
"""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable

from prometheus_client import REGISTRY, Counter, Gauge, Histogram
from prometheus_client import generate_latest as prometheus_generate_latest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from techpress.config import settings

if TYPE_CHECKING:
    from starlette.types import ASGIApp

logger = logging.getLogger(__name__)


@dataclass
class MetricsRegistry:
    """Registry for Prometheus metrics."""

    # HTTP metrics
    http_requests_total: Any = None
    http_request_duration_seconds: Any = None
    http_requests_in_progress: Any = None

    # Cache metrics
    cache_hits_total: Any = None
    cache_misses_total: Any = None
    cache_errors_total: Any = None
    cache_operation_duration_seconds: Any = None

    # Invalidation metrics
    invalidation_messages_total: Any = None
    invalidation_keys_deleted_total: Any = None
    invalidation_published_total: Any = None
    cache_rebuilds_total: Any = None

    # Internal state
    _initialized: bool = field(default=False, repr=False)
    _registry: Any = field(default=None, repr=False)

    def initialize(self) -> None:
        """Initialize Prometheus metrics."""
        if self._initialized:
            return

        if not settings.enable_metrics:
            logger.info("Metrics are disabled")
            self._initialized = True
            return

        self._registry = REGISTRY

        self.http_requests_total = Counter(
            "techpress_http_requests_total",
            "Total HTTP requests",
            ["method", "path", "status"],
        )

        self.http_request_duration_seconds = Histogram(
            "techpress_http_request_duration_seconds",
            "HTTP request latency in seconds",
            ["method", "path"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
        )

        self.http_requests_in_progress = Gauge(
            "techpress_http_requests_in_progress",
            "HTTP requests currently in progress",
            ["method"],
        )

        self.cache_hits_total = Counter(
            "techpress_cache_hits_total",
            "Cache-aside reads served from cache",
            ["resource"],
        )

        self.cache_misses_total = Counter(
            "techpress_cache_misses_total",
            "Cache-aside reads served from the source of truth",
            ["resource"],
        )

        self.cache_errors_total = Counter(
            "techpress_cache_errors_total",
            "Cache backend errors degraded to a miss or no-op",
            ["operation"],
        )

        self.cache_operation_duration_seconds = Histogram(
            "techpress_cache_operation_duration_seconds",
            "Cache operation latency in seconds",
            ["operation"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1),
        )

        self.invalidation_messages_total = Counter(
            "techpress_invalidation_messages_total",
            "Invalidation messages by final outcome",
            ["outcome"],
        )

        self.invalidation_keys_deleted_total = Counter(
            "techpress_invalidation_keys_deleted_total",
            "Cache keys deleted by invalidation events",
        )

        self.invalidation_published_total = Counter(
            "techpress_invalidation_published_total",
            "Invalidation events published",
            ["status"],
        )

        self.cache_rebuilds_total = Counter(
            "techpress_cache_rebuilds_total",
            "Eager cache rebuilds after invalidation",
            ["status"],
        )

        self._initialized = True
        logger.info("Prometheus metrics initialized")

    def generate_latest(self) -> bytes:
        """Generate Prometheus metrics in exposition format."""
        if not settings.enable_metrics or self._registry is None:
            return b"# Metrics disabled\n"
        return prometheus_generate_latest(self._registry)


# Global metrics registry
metrics_registry = MetricsRegistry()


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry.

    Initializes metrics on first access.
    """
    if not metrics_registry._initialized:
        metrics_registry.initialize()
    return metrics_registry


# Numeric and UUID-like path segments collapse into one label value
_ID_SEGMENT = re.compile(r"^(\d+|[0-9a-fA-F-]{32,36}|[0-9a-fA-F]{24})$")


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware for HTTP request metrics.

    Records:
    - Request count by method, path, status
    - Request duration histogram
    - Requests in progress gauge
    """

    def __init__(self, app: "ASGIApp") -> None:
        super().__init__(app)
        self.metrics = get_metrics()

    async def dispatch(self, request: Request, call_next: Callable[[Request], Any]) -> Response:
        """Record metrics for HTTP requests."""
        if request.url.path.startswith(("/health", "/metrics")):
            return await call_next(request)

        method = request.method
        path = normalize_path(request.url.path)

        if self.metrics.http_requests_in_progress:
            self.metrics.http_requests_in_progress.labels(method=method).inc()

        start_time = time.perf_counter()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration = time.perf_counter() - start_time

            if self.metrics.http_requests_total:
                self.metrics.http_requests_total.labels(
                    method=method,
                    path=path,
                    status=status_code,
                ).inc()

            if self.metrics.http_request_duration_seconds:
                self.metrics.http_request_duration_seconds.labels(
                    method=method,
                    path=path,
                ).observe(duration)

            if self.metrics.http_requests_in_progress:
                self.metrics.http_requests_in_progress.labels(method=method).dec()


def normalize_path(path: str) -> str:
    """Replace identifier segments with placeholders to bound label cardinality.

    Examples:
        /api/v1/blog/42 -> /api/v1/blog/{id}
        /api/v1/comment/17 -> /api/v1/comment/{id}
    """
    parts = path.strip("/").split("/")
    normalized = ["{id}" if _ID_SEGMENT.match(part) else part for part in parts if part]
    return "/" + "/".join(normalized) if normalized else path


def record_cache_hit(resource: str) -> None:
    """Record cache hit."""
    metrics = get_metrics()
    if metrics.cache_hits_total:
        metrics.cache_hits_total.labels(resource=resource).inc()


def record_cache_miss(resource: str) -> None:
    """Record cache miss."""
    metrics = get_metrics()
    if metrics.cache_misses_total:
        metrics.cache_misses_total.labels(resource=resource).inc()


def record_cache_error(operation: str) -> None:
    """Record a cache backend error that was degraded locally."""
    metrics = get_metrics()
    if metrics.cache_errors_total:
        metrics.cache_errors_total.labels(operation=operation).inc()


def record_cache_operation(operation: str, duration: float) -> None:
    """Record cache operation duration.

    Args:
        operation: Cache operation (get, set, delete_matching)
        duration: Operation duration in seconds
    """
    metrics = get_metrics()
    if metrics.cache_operation_duration_seconds:
        metrics.cache_operation_duration_seconds.labels(operation=operation).observe(duration)


def record_invalidation_outcome(outcome: str, keys_deleted: int = 0) -> None:
    """Record the final outcome of one invalidation message.

    Args:
        outcome: acked, ignored, requeued or dead_lettered
        keys_deleted: Number of cache keys removed while processing
    """
    metrics = get_metrics()
    if metrics.invalidation_messages_total:
        metrics.invalidation_messages_total.labels(outcome=outcome).inc()
    if keys_deleted and metrics.invalidation_keys_deleted_total:
        metrics.invalidation_keys_deleted_total.inc(keys_deleted)


def record_invalidation_published(status: str) -> None:
    """Record an invalidation publish attempt (success or failed)."""
    metrics = get_metrics()
    if metrics.invalidation_published_total:
        metrics.invalidation_published_total.labels(status=status).inc()


def record_cache_rebuild(status: str) -> None:
    """Record an eager rebuild attempt (success or error)."""
    metrics = get_metrics()
    if metrics.cache_rebuilds_total:
        metrics.cache_rebuilds_total.labels(status=status).inc()
