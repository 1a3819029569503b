"""Tests for middleware — request IDs and the app-wide rate limit.

Learn: The limiter hangs off app.state with a FakeClock, so windows are
exhausted and reset without sleeping. Tests that need a tiny anonymous
budget patch settings before building their own app, since the
middleware reads its config once in create_app().
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from conftest import auth_headers
from stablehand.config import settings
from stablehand.main import create_app
from stablehand.ratelimit import RateLimiter


def _client_for(app):
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture()
async def tight_client(monkeypatch, clock):
    """Anonymous budget of 2 requests per minute."""
    monkeypatch.setattr(settings, "rate_limit_max_requests", 2)
    monkeypatch.setattr(settings, "rate_limit_window_ms", 60_000)
    app = create_app()
    app.state.rate_limiter = RateLimiter(clock=clock)
    async with _client_for(app) as ac:
        yield ac


# ═══════════════════════════════════════════════════════════
# Request ID
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_request_id_generated(client):
    """Each request gets a unique X-Request-ID header."""
    r1 = await client.get("/api/health")
    r2 = await client.get("/api/health")
    assert "X-Request-ID" in r1.headers
    assert "X-Request-ID" in r2.headers
    assert r1.headers["X-Request-ID"] != r2.headers["X-Request-ID"]


@pytest.mark.asyncio
async def test_request_id_propagated(client):
    """Incoming X-Request-ID is propagated through the response."""
    custom_id = "test-trace-12345"
    r = await client.get("/api/health", headers={"X-Request-ID": custom_id})
    assert r.headers["X-Request-ID"] == custom_id


@pytest.mark.asyncio
async def test_request_id_on_rejected_requests(client):
    r = await client.get("/api/realtime/stats")
    assert r.status_code == 401
    assert "X-Request-ID" in r.headers


# ═══════════════════════════════════════════════════════════
# Rate limit middleware
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_anonymous_budget_exhausted(tight_client):
    r1 = await tight_client.get("/api/realtime/stats")
    r2 = await tight_client.get("/api/realtime/stats")
    r3 = await tight_client.get("/api/realtime/stats")

    # Counted even though auth rejects them
    assert [r.status_code for r in (r1, r2, r3)] == [401, 401, 429]
    assert r1.headers["X-RateLimit-Remaining"] == "1"
    assert r2.headers["X-RateLimit-Remaining"] == "0"

    assert r3.headers["Retry-After"] == "60"
    assert r3.headers["X-RateLimit-Limit"] == "2"
    assert r3.headers["X-RateLimit-Reset"].endswith("Z")
    assert r3.json()["detail"] == "Rate limit exceeded. Try again in 60 seconds."


@pytest.mark.asyncio
async def test_anonymous_budget_resets_after_window(tight_client, clock):
    for _ in range(3):
        await tight_client.get("/api/realtime/stats")

    clock.advance(60_000)
    r = await tight_client.get("/api/realtime/stats")
    assert r.status_code == 401
    assert r.headers["X-RateLimit-Remaining"] == "1"


@pytest.mark.asyncio
async def test_authenticated_users_have_own_budget(tight_client):
    """Exhausting the anonymous budget doesn't touch a logged-in user."""
    for _ in range(3):
        await tight_client.get("/api/realtime/stats")

    r = await tight_client.get("/api/realtime/history/horses", headers=auth_headers(1))
    assert r.status_code == 200
    assert r.headers["X-RateLimit-Limit"] == "1000"
    assert r.headers["X-RateLimit-Remaining"] == "999"


@pytest.mark.asyncio
async def test_invalid_token_counts_as_anonymous(tight_client):
    bad = {"Authorization": "Bearer garbage"}
    await tight_client.get("/api/realtime/stats", headers=bad)
    await tight_client.get("/api/realtime/stats", headers=bad)
    r = await tight_client.get("/api/realtime/stats", headers=bad)
    assert r.status_code == 429


@pytest.mark.asyncio
async def test_health_uses_its_own_budget(tight_client):
    for _ in range(3):
        await tight_client.get("/api/realtime/stats")

    r = await tight_client.get("/api/health")
    assert r.status_code == 200
    assert r.headers["X-RateLimit-Limit"] == "60"


@pytest.mark.asyncio
async def test_rate_limit_can_be_disabled(monkeypatch):
    monkeypatch.setattr(settings, "rate_limit_enabled", False)
    app = create_app()
    async with _client_for(app) as ac:
        r = await ac.get("/api/health")
    assert r.status_code == 200
    assert "X-RateLimit-Remaining" not in r.headers
    assert len(app.state.rate_limiter) == 0


# ═══════════════════════════════════════════════════════════
# Per-route budget (RateLimit dependency)
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_route_budget_denies_with_429(app, client):
    limiter = app.state.rate_limiter
    # Burn the admin broadcast budget for user 99
    for _ in range(500):
        limiter.check("user:99:broadcast", 15 * 60 * 1000, 500)

    r = await client.post(
        "/api/admin/broadcast",
        json={"event": "admin:announcement", "payload": {}},
        headers=auth_headers(99, role="admin"),
    )
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "900"
    assert r.headers["X-RateLimit-Limit"] == "500"
    assert r.json()["detail"] == "Rate limit exceeded. Try again in 900 seconds."
    assert app.state.broker.get_history("global") == []


@pytest.mark.asyncio
async def test_route_budget_is_per_user(app, client):
    limiter = app.state.rate_limiter
    for _ in range(500):
        limiter.check("user:99:broadcast", 15 * 60 * 1000, 500)

    r = await client.post(
        "/api/admin/broadcast",
        json={"event": "admin:announcement", "payload": {}},
        headers=auth_headers(100, role="admin"),
    )
    assert r.status_code == 201
    assert r.headers["X-RateLimit-Remaining"] == "499"


@pytest.mark.asyncio
async def test_legacy_events_path_is_rate_limited(tight_client):
    """The /events alias opens the same stream, so it shares the gate."""
    responses = [await tight_client.get("/events") for _ in range(3)]

    assert [r.status_code for r in responses] == [401, 401, 429]
    assert responses[0].headers["X-RateLimit-Remaining"] == "1"
    assert responses[2].headers["Retry-After"] == "60"


@pytest.mark.asyncio
async def test_paths_outside_gate_are_not_counted(tight_client):
    for _ in range(3):
        r = await tight_client.get("/openapi.json")
        assert r.status_code == 200
        assert "X-RateLimit-Remaining" not in r.headers
