"""Named rate-limit budgets.

Picking the preset is the caller's job; the limiter only counts.
"""

from stablehand.ratelimit.limiter import RateLimitConfig

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS

RATE_LIMITS: dict[str, RateLimitConfig] = {
    # Anonymous / public endpoints
    "public": RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=100),
    # Logged-in dashboard traffic
    "authenticated": RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=1000),
    # Document and image uploads
    "file_upload": RateLimitConfig(window_ms=HOUR_MS, max_requests=50),
    # Admin panel
    "admin": RateLimitConfig(window_ms=15 * MINUTE_MS, max_requests=500),
    # AI chat / care insights (each call costs money)
    "ai": RateLimitConfig(window_ms=HOUR_MS, max_requests=20),
    # Health checks from monitors
    "health": RateLimitConfig(window_ms=MINUTE_MS, max_requests=60),
}
