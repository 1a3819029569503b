"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance with its own broker and rate limiter on app.state. Lifespan
starts the two background loops (SSE heartbeat, rate-limit sweep) and
stops them at shutdown.

The state is built in create_app(), not in the lifespan, so test clients
that never run the lifespan still get a working broker and limiter.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from stablehand import __version__
from stablehand.api import api_router
from stablehand.api.realtime import stream_events
from stablehand.config import settings
from stablehand.ratelimit import RateLimitConfig, RateLimiter
from stablehand.realtime.broker import RealtimeBroker

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown.
    """
    logger.info(
        "stablehand.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    broker: RealtimeBroker = app.state.broker
    limiter: RateLimiter = app.state.rate_limiter
    heartbeat_task = asyncio.create_task(broker.run_heartbeat_loop())
    cleanup_task = asyncio.create_task(limiter.run_cleanup_loop())

    yield

    logger.info("stablehand.shutdown")

    broker.stop()
    limiter.stop()
    for task in (heartbeat_task, cleanup_task):
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    # Ends every open SSE response
    broker.close_all()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="Stablehand Realtime",
        description="Live event stream and rate limiting for the horse-management dashboard",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.broker = RealtimeBroker(
        history_size=settings.realtime_history_size,
        max_pending_frames=settings.realtime_max_pending_frames,
        heartbeat_interval=settings.realtime_heartbeat_seconds,
    )
    app.state.rate_limiter = RateLimiter(
        cleanup_interval=settings.rate_limit_cleanup_seconds,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → RateLimit → CORS → handler

    from stablehand.middleware.rate_limit import RateLimitMiddleware
    from stablehand.middleware.request_id import RequestIdMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    if settings.rate_limit_enabled:
        app.add_middleware(
            RateLimitMiddleware,
            anonymous=RateLimitConfig(
                window_ms=settings.rate_limit_window_ms,
                max_requests=settings.rate_limit_max_requests,
            ),
        )
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    # Older dashboard builds open the stream at /events
    app.add_api_route("/events", stream_events, methods=["GET"], include_in_schema=False)

    return app


# Default app instance (used by uvicorn: stablehand.main:app)
app = create_app()
