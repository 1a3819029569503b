"""Health check endpoint.

Learn: There are no external dependencies to probe (no database, no
Redis), so health is just "the process answers" plus a few gauges that
make a stuck broker visible to monitoring.
"""

from fastapi import APIRouter, Depends

from stablehand import __version__
from stablehand.api.deps import get_broker, get_rate_limiter
from stablehand.ratelimit import RateLimiter
from stablehand.realtime.broker import RealtimeBroker

router = APIRouter()


@router.get("/health")
async def health_check(
    broker: RealtimeBroker = Depends(get_broker),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Check server health."""
    return {
        "status": "healthy",
        "server": "ok",
        "version": __version__,
        "realtime_connections": broker.connection_count,
        "rate_limit_keys": len(limiter),
    }
