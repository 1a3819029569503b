"""Test fixtures — a fresh app, broker and limiter per test.

Learn: All state is in memory and hangs off app.state, so isolation is
just "build a new app". Time-sensitive limiter tests swap in a FakeClock
so windows can be advanced without sleeping.

The transport used for broker unit tests (RecordingTransport) records
frames in a list and can be told to fail, which is how we simulate a
browser that went away mid-write.
"""

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from stablehand.auth.jwt import create_access_token
from stablehand.main import create_app
from stablehand.ratelimit import RateLimiter
from stablehand.realtime.broker import RealtimeBroker
from stablehand.realtime.sse import parse_stream
from stablehand.realtime.transport import TransportError


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class RecordingTransport:
    """Transport that keeps every frame; optionally fails on write."""

    def __init__(self, fail: bool = False):
        self.frames: list[str] = []
        self.fail = fail
        self.close_calls = 0

    def write(self, frame: str) -> None:
        if self.fail:
            raise TransportError("broken pipe")
        self.frames.append(frame)

    def close(self) -> None:
        self.close_calls += 1

    def events(self) -> list[tuple]:
        """Parsed (event_name, data) pairs, heartbeats excluded."""
        return list(parse_stream(frames_to_lines(self.frames)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events()]


def frames_to_lines(frames) -> list[str]:
    return "".join(frames).split("\n")


def auth_headers(user_id: int, role: str = "user") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role=role)}"}


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def limiter(clock):
    return RateLimiter(clock=clock)


@pytest.fixture()
def broker():
    return RealtimeBroker(history_size=50, max_pending_frames=16)


@pytest.fixture()
def app(clock):
    """App with a fake-clock limiter so window tests are deterministic."""
    application = create_app()
    application.state.rate_limiter = RateLimiter(clock=clock)
    return application


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def open_stream(client, broker, headers, params=None):
    """Start a GET on the SSE endpoint in the background.

    Learn: httpx's ASGITransport returns only once the whole body has been
    produced, so an SSE request runs as a task until the test closes the
    connection on the broker side. Returns (task, connection_id).
    """
    before = set(broker.connection_ids)
    task = asyncio.create_task(
        client.get("/api/realtime/events", headers=headers, params=params)
    )
    for _ in range(200):
        new = set(broker.connection_ids) - before
        if new:
            return task, new.pop()
        if task.done():
            break
        await asyncio.sleep(0.005)
    response = await task
    raise AssertionError(f"stream did not open: {response.status_code} {response.text}")


def stream_events(body: str) -> list[tuple]:
    return list(parse_stream(body.split("\n")))
