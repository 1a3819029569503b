"""Fixed-window rate limiter.

Learn: Each key gets a counter and a reset time. The first request opens
a window of `window_ms`; requests inside it increment the counter until
`max_requests` is reached, after which they are denied without touching
the counter. Once the reset time has passed the entry is simply replaced
by a fresh window.

    key = "user:42:upload"
    t=0      → allowed, remaining 2      (window until t=1000)
    t=10     → allowed, remaining 1
    t=20     → allowed, remaining 0
    t=30     → denied,  retry in 1s
    t=1000   → allowed, remaining 2      (new window)

Expired entries are never read again, but they still occupy memory, so a
background sweep deletes them every few minutes.

Everything here is synchronous and runs on the event loop thread, so
check() and cleanup() cannot interleave.
"""

import asyncio
import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

logger = structlog.get_logger()


def _epoch_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True)
class RateLimitConfig:
    """A (window, budget) pair."""

    window_ms: int
    max_requests: int


@dataclass
class RateLimitEntry:
    """Consumption of one key in its current window."""

    count: int
    reset_at: int  # epoch ms


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request may proceed.
        remaining: Requests left in the current window.
        reset_at: Epoch milliseconds when the window resets.
    """

    allowed: bool
    remaining: int
    reset_at: int

    def retry_after_seconds(self, now_ms: Optional[int] = None) -> int:
        """Whole seconds until the window resets (at least 1)."""
        now_ms = _epoch_ms() if now_ms is None else now_ms
        return max(1, math.ceil((self.reset_at - now_ms) / 1000))


class RateLimitExceededError(Exception):
    """Raised by enforce() when a request is over budget."""

    def __init__(self, result: RateLimitResult, retry_after: int):
        self.result = result
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded. Try again in {retry_after} seconds.")


class RateLimiter:
    """Per-key fixed-window counters held in process memory."""

    def __init__(
        self,
        clock: Callable[[], int] = _epoch_ms,
        cleanup_interval: float = 300.0,
    ):
        self.clock = clock
        self.cleanup_interval = cleanup_interval
        self._entries: dict[str, RateLimitEntry] = {}
        self._running = False

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def check(self, key: str, window_ms: int, max_requests: int) -> RateLimitResult:
        """Count one request against `key` and report whether it is allowed."""
        now = self.clock()
        entry = self._entries.get(key)

        # No entry, or the window already ended: start fresh
        if entry is None or entry.reset_at <= now:
            entry = RateLimitEntry(count=1, reset_at=now + window_ms)
            self._entries[key] = entry
            return RateLimitResult(
                allowed=True,
                remaining=max_requests - 1,
                reset_at=entry.reset_at,
            )

        # Over budget — denied requests don't consume anything
        if entry.count >= max_requests:
            return RateLimitResult(allowed=False, remaining=0, reset_at=entry.reset_at)

        entry.count += 1
        return RateLimitResult(
            allowed=True,
            remaining=max_requests - entry.count,
            reset_at=entry.reset_at,
        )

    def hit(self, key: str, config: RateLimitConfig) -> RateLimitResult:
        return self.check(key, config.window_ms, config.max_requests)

    def cleanup(self) -> int:
        """Delete entries whose window has ended. Returns how many."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.reset_at <= now]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("ratelimit.swept", removed=len(expired), active=len(self._entries))
        return len(expired)

    async def run_cleanup_loop(self) -> None:
        """Background loop — sweep every interval until stop()."""
        self._running = True
        logger.info("ratelimit.cleanup_started", interval=self.cleanup_interval)

        while self._running:
            await asyncio.sleep(self.cleanup_interval)
            try:
                self.cleanup()
            except Exception:
                logger.exception("ratelimit.cleanup_error")

    def stop(self) -> None:
        """Signal the cleanup loop to stop."""
        self._running = False
        logger.info("ratelimit.cleanup_stopping")

    def stats(self) -> dict:
        return {"tracked_keys": len(self._entries)}


def rate_limit_key(
    user_id: Optional[int],
    action: str,
    client: Optional[str] = None,
) -> str:
    """Key that separates subjects and actions.

    user:<id>:<action> for signed-in users; anon:<action> otherwise, or
    anon:<client>:<action> when the caller passes a client address.
    """
    if user_id is not None:
        return f"user:{user_id}:{action}"
    if client:
        return f"anon:{client}:{action}"
    return f"anon:{action}"


def rate_limit_headers(result: RateLimitResult, limit: Optional[int] = None) -> dict[str, str]:
    """Informational response headers for a check result."""
    reset = datetime.fromtimestamp(result.reset_at / 1000, tz=timezone.utc)
    headers = {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": reset.isoformat().replace("+00:00", "Z"),
    }
    if limit is not None:
        headers["X-RateLimit-Limit"] = str(limit)
    return headers


def enforce(limiter: RateLimiter, key: str, config: RateLimitConfig) -> RateLimitResult:
    """Check `key` and raise RateLimitExceededError if it is over budget."""
    result = limiter.hit(key, config)
    if not result.allowed:
        retry_after = result.retry_after_seconds(limiter.clock())
        logger.info("ratelimit.denied", key=key, retry_after=retry_after)
        raise RateLimitExceededError(result, retry_after)
    return result
