"""Shared route dependencies — broker/limiter lookup and per-route budgets.

Learn: The broker and limiter are built once in create_app() and hung on
app.state. Routes get them through Depends() instead of importing a
module-level global, which keeps tests free to build a fresh app (and
fresh state) per test.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, Response

from stablehand.auth.dependencies import CurrentIdentity, get_current_user_optional
from stablehand.ratelimit import (
    RATE_LIMITS,
    RateLimiter,
    RateLimitExceededError,
    enforce,
    rate_limit_headers,
    rate_limit_key,
)
from stablehand.realtime.broker import RealtimeBroker


def get_broker(request: Request) -> RealtimeBroker:
    return request.app.state.broker


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


class RateLimit:
    """Per-route budget on top of the app-wide middleware.

    Usage:
        @router.post("/documents", dependencies=[Depends(RateLimit("file_upload", "upload"))])
    """

    def __init__(self, preset: str, action: str):
        self.config = RATE_LIMITS[preset]
        self.action = action

    async def __call__(
        self,
        request: Request,
        response: Response,
        identity: Optional[CurrentIdentity] = Depends(get_current_user_optional),
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> None:
        if identity:
            key = rate_limit_key(identity.user_id, self.action)
        else:
            client_ip = request.client.host if request.client else "unknown"
            key = rate_limit_key(None, self.action, client=client_ip)

        try:
            result = enforce(limiter, key, self.config)
        except RateLimitExceededError as e:
            raise HTTPException(
                status_code=429,
                detail=str(e),
                headers={
                    "Retry-After": str(e.retry_after),
                    **rate_limit_headers(e.result, self.config.max_requests),
                },
            )
        response.headers.update(rate_limit_headers(result, self.config.max_requests))
