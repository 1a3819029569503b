"""In-memory fixed-window rate limiting.

Usage:
    from stablehand.ratelimit import RATE_LIMITS, rate_limit_key

    limiter = request.app.state.rate_limiter
    result = limiter.hit(rate_limit_key(user.user_id, "upload"), RATE_LIMITS["file_upload"])
    if not result.allowed:
        ...  # 429 with Retry-After

Learn: The store is a plain dict in this process. It does not survive a
restart and is not shared between instances. That is deliberate scope:
run one worker, or accept that each worker enforces its own budget.
"""

from stablehand.ratelimit.limiter import (
    RateLimitConfig,
    RateLimitEntry,
    RateLimiter,
    RateLimitExceededError,
    RateLimitResult,
    enforce,
    rate_limit_headers,
    rate_limit_key,
)
from stablehand.ratelimit.presets import RATE_LIMITS

__all__ = [
    "RATE_LIMITS",
    "RateLimitConfig",
    "RateLimitEntry",
    "RateLimitExceededError",
    "RateLimitResult",
    "RateLimiter",
    "enforce",
    "rate_limit_headers",
    "rate_limit_key",
]
