"""Health endpoint tests."""

import pytest

from conftest import RecordingTransport


@pytest.mark.asyncio
async def test_health_returns_ok(client):
    """Health endpoint should return server status and version."""
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["server"] == "ok"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_reports_gauges(app, client):
    app.state.broker.register(1, RecordingTransport())
    app.state.broker.register(2, RecordingTransport())

    data = (await client.get("/api/health")).json()
    assert data["realtime_connections"] == 2
    # The health request itself is a tracked key
    assert data["rate_limit_keys"] >= 1


@pytest.mark.asyncio
async def test_health_needs_no_auth(client):
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.headers["X-RateLimit-Limit"] == "60"
