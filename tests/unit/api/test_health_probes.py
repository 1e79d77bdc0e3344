"""Tests for health and metrics endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from techpress.api.app import create_app
from techpress.api.routers import health
from techpress.cache.redis import RedisCache


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app())


def test_live(client: TestClient) -> None:
    """Liveness never depends on backends."""
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_ready_healthy(
    client: TestClient, cache: RedisCache, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def db_ok() -> bool:
        return True

    monkeypatch.setattr(health, "db_health_check", db_ok)
    monkeypatch.setattr(health.runtime, "get_cache", lambda: cache)

    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_ready_degraded_when_cache_down(
    client: TestClient, cache: RedisCache, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A down cache degrades the service but keeps it in rotation."""
    async def db_ok() -> bool:
        return True

    cache.connection.client.fail = True  # type: ignore[union-attr]
    monkeypatch.setattr(health, "db_health_check", db_ok)
    monkeypatch.setattr(health.runtime, "get_cache", lambda: cache)

    response = client.get("/health/ready")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "degraded"
    redis = next(c for c in body["components"] if c["name"] == "redis")
    assert redis["status"] == "degraded"


def test_ready_unhealthy_when_database_down(
    client: TestClient, cache: RedisCache, monkeypatch: pytest.MonkeyPatch
) -> None:
    async def db_down() -> bool:
        return False

    monkeypatch.setattr(health, "db_health_check", db_down)
    monkeypatch.setattr(health.runtime, "get_cache", lambda: cache)

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["status"] == "unhealthy"


def test_metrics_endpoint(client: TestClient) -> None:
    client.get("/health/live")
    response = client.get("/metrics")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
