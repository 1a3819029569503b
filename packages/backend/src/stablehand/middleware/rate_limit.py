"""Rate limiting middleware — in-memory fixed window for /api/*.

Learn: This is the coarse, app-wide gate for /api/* and the legacy /events
stream path. It picks a budget per caller:

- /api/health            → "health" preset (monitors poll a lot)
- valid bearer token     → "authenticated" preset, key user:<id>:api
- anonymous              → configured window/max, key anon:<ip>:api

Finer budgets (uploads, AI, admin) are applied per route with the
RateLimit dependency, which runs after this and owns the response headers
when present.

An invalid token is not rejected here; the caller is treated as anonymous
and the route's auth dependency answers 401.
"""

from typing import Optional

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from stablehand.auth.dependencies import bearer_token, identity_from_token
from stablehand.auth.jwt import TokenError
from stablehand.ratelimit import (
    RATE_LIMITS,
    RateLimitConfig,
    rate_limit_headers,
    rate_limit_key,
)

logger = structlog.get_logger()


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Fixed-window rate limiting per user (or per IP when anonymous)."""

    def __init__(
        self,
        app,
        anonymous: RateLimitConfig = RATE_LIMITS["public"],
        authenticated: RateLimitConfig = RATE_LIMITS["authenticated"],
        health: RateLimitConfig = RATE_LIMITS["health"],
        prefixes: tuple[str, ...] = ("/api", "/events"),
        health_path: str = "/api/health",
    ):
        super().__init__(app)
        self.anonymous = anonymous
        self.authenticated = authenticated
        self.health = health
        self.prefixes = prefixes
        self.health_path = health_path

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if not path.startswith(self.prefixes):
            return await call_next(request)

        limiter = request.app.state.rate_limiter
        user_id = _user_id(request)
        client_ip = request.client.host if request.client else "unknown"

        if path == self.health_path:
            config, action = self.health, "health"
        elif user_id is not None:
            config, action = self.authenticated, "api"
        else:
            config, action = self.anonymous, "api"

        key = rate_limit_key(user_id, action, client=None if user_id is not None else client_ip)
        result = limiter.hit(key, config)
        headers = rate_limit_headers(result, config.max_requests)

        if not result.allowed:
            retry_after = result.retry_after_seconds(limiter.clock())
            logger.info("ratelimit.denied", key=key, retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={"detail": f"Rate limit exceeded. Try again in {retry_after} seconds."},
                headers={"Retry-After": str(retry_after), **headers},
            )

        response = await call_next(request)
        for name, value in headers.items():
            response.headers.setdefault(name, value)
        return response


def _user_id(request: Request) -> Optional[int]:
    raw = bearer_token(request.headers.get("Authorization")) or request.query_params.get("token")
    if not raw:
        return None
    try:
        return identity_from_token(raw).user_id
    except TokenError:
        return None
