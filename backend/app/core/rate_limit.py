"""
Per-owner rate limiting for expensive operations (AI summary generation).

Built on the ``limits`` package, the same engine slowapi uses for the
per-address limits in main.py. The storage backend comes from
RATE_LIMIT_STORAGE_URI: ``memory://`` keeps counters inside this process and
is only correct for a single-instance deployment; use ``redis://...`` to
share counters between instances.
"""
from dataclasses import dataclass
from datetime import datetime, timezone

from limits import RateLimitItemPerSecond
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter

from app.core.config import settings


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: datetime

    @property
    def retry_after(self) -> int:
        delta = (self.reset_at - datetime.now(timezone.utc)).total_seconds()
        return max(1, int(delta + 0.999))


class RateLimiter:
    def __init__(self, storage_uri: str = "memory://"):
        self.storage = storage_from_string(storage_uri)
        self.strategy = MovingWindowRateLimiter(self.storage)

    def check_and_consume(self, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        """Record one request for ``key`` unless ``limit`` were already made in the sliding window."""
        item = RateLimitItemPerSecond(limit, window_seconds)
        allowed = self.strategy.hit(item, key)
        stats = self.strategy.get_window_stats(item, key)
        return RateLimitResult(
            allowed=allowed,
            remaining=stats.remaining,
            reset_at=datetime.fromtimestamp(stats.reset_time, tz=timezone.utc),
        )

    def reset(self):
        self.storage.reset()


rate_limiter = RateLimiter(settings.RATE_LIMIT_STORAGE_URI)
