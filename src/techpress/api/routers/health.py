"""Health check endpoints for techpress.

Provides Kubernetes-compatible liveness and readiness probes:
- /health/live  - Liveness probe (always returns OK if process is running)
- /health/ready - Readiness probe (checks database and cache connectivity)

The cache is optional for serving: when it is down every read falls through
to the database, so readiness reports "degraded" with 200 rather than 503.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

from fastapi import APIRouter
from fastapi.responses import ORJSONResponse

from techpress import runtime
from techpress.persistence.db import health_check as db_health_check

router = APIRouter(tags=["health"])


class HealthStatus(str, Enum):
    """Health check status."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    """Health status of a single component."""

    name: str
    status: HealthStatus
    latency_ms: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            result["message"] = self.message
        return result


async def check_database() -> ComponentHealth:
    """Check database connectivity."""
    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(db_health_check(), timeout=5.0)
        message = None if healthy else "Database check failed"
    except TimeoutError:
        healthy, message = False, "Database check timed out"
    return ComponentHealth(
        name="database",
        status=HealthStatus.HEALTHY if healthy else HealthStatus.UNHEALTHY,
        latency_ms=(time.monotonic() - start) * 1000,
        message=message,
    )


async def check_cache() -> ComponentHealth:
    """Check Redis connectivity. A down cache only degrades the service."""
    start = time.monotonic()
    try:
        healthy = await asyncio.wait_for(runtime.get_cache().health_check(), timeout=5.0)
        message = None if healthy else "Redis unavailable, serving from database"
    except TimeoutError:
        healthy, message = False, "Redis check timed out"
    return ComponentHealth(
        name="redis",
        status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
        latency_ms=(time.monotonic() - start) * 1000,
        message=message,
    )


@router.get("/health/live")
async def live() -> dict[str, str]:
    """Liveness probe.

    Returns OK if the process is running. Used by Kubernetes
    to determine if the container should be restarted.
    """
    return {"status": "ok"}


@router.get("/health/ready")
async def ready() -> ORJSONResponse:
    """Readiness probe.

    Returns 200 when the database is reachable (cache healthy or degraded),
    503 when the database is not.
    """
    components = await asyncio.gather(check_database(), check_cache())

    if any(c.status == HealthStatus.UNHEALTHY for c in components):
        overall_status = HealthStatus.UNHEALTHY
    elif any(c.status == HealthStatus.DEGRADED for c in components):
        overall_status = HealthStatus.DEGRADED
    else:
        overall_status = HealthStatus.HEALTHY

    return ORJSONResponse(
        content={
            "status": overall_status.value,
            "components": [c.to_dict() for c in components],
        },
        status_code=503 if overall_status == HealthStatus.UNHEALTHY else 200,
    )
