"""Observability module for techpress.

Provides metrics and structured logging:
- Prometheus metrics for cache and invalidation behaviour
- Request/response instrumentation
- JSON structured logging with request and message correlation IDs
"""

from techpress.observability.logging import (
    LogContext,
    configure_logging,
    message_id_var,
    request_id_var,
)
from techpress.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    metrics_registry,
)

__all__ = [
    # Logging
    "configure_logging",
    "LogContext",
    "request_id_var",
    "message_id_var",
    # Metrics
    "metrics_registry",
    "get_metrics",
    "MetricsMiddleware",
]
