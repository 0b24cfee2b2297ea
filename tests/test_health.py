"""Tests for health endpoints."""

import pytest

from txdedup import health


@pytest.mark.asyncio
async def test_health_endpoint(client):
    """Test liveness check returns ok status."""
    response = await client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"


@pytest.mark.asyncio
async def test_health_ready_healthy(client, monkeypatch):
    """Test readiness check returns 200 when the database answers."""

    async def version():
        return "PostgreSQL 16.2 on x86_64-pc-linux-gnu"

    monkeypatch.setattr(health, "_database_version", version)

    response = await client.get("/health/ready")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["services"]["postgresql"]["status"] == "healthy"


@pytest.mark.asyncio
async def test_health_ready_degraded(client, monkeypatch):
    """Test readiness check returns 503 when the database is down."""

    async def version():
        raise ConnectionRefusedError("connection refused")

    monkeypatch.setattr(health, "_database_version", version)

    response = await client.get("/health/ready")

    assert response.status_code == 503
    data = response.json()
    assert data["status"] == "degraded"
    assert "connection refused" in data["services"]["postgresql"]["error"]


@pytest.mark.asyncio
async def test_root(client):
    response = await client.get("/")
    assert response.status_code == 200
