"""
Fixed-window rate limiting keyed by client address.

Each FixedWindowRateLimiter owns an independent key space. A window starts on
the first request from a key and lasts window_seconds; requests past the
configured maximum inside a window are rejected. Expired windows are removed
by a periodic sweep so memory stays bounded by the number of active clients.

This limiter trusts the raw peer address: it does no proxy header handling,
so clients behind one NAT share a window and spoofed addresses get fresh ones.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 300


@dataclass
class RateLimitWindow:
    """Request count for one key and the moment its window ends."""

    count: int
    reset_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.reset_at < now


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    limit: int
    reset_at: datetime

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    def retry_after_seconds(self, now: datetime) -> int:
        return max(0, int((self.reset_at - now).total_seconds()) + 1)


class FixedWindowRateLimiter:
    """
    Fixed-window request counter.

    Args:
        name: Limiter name used in logs ("api", "auth", ...)
        window_seconds: Length of each window
        max_requests: Requests allowed per window; request max_requests + 1 is rejected
        message: Rejection message returned to the client
        now_provider: Clock override for tests
    """

    def __init__(
        self,
        name: str,
        window_seconds: int,
        max_requests: int,
        message: str,
        now_provider: Callable[[], datetime] | None = None,
    ):
        if window_seconds < 1 or max_requests < 1:
            raise ValueError("window_seconds and max_requests must be at least 1")
        self.name = name
        self.window = timedelta(seconds=window_seconds)
        self.max_requests = max_requests
        self.message = message
        self._windows: dict[str, RateLimitWindow] = {}
        self._now_provider = now_provider or (lambda: datetime.now(UTC))

    def now(self) -> datetime:
        return self._now_provider()

    def hit(self, key: str) -> RateLimitDecision:
        """
        Count one request from key and decide whether it is allowed.

        A missing or expired window is replaced by a new one with count 1.
        """
        now = self._now_provider()
        window = self._windows.get(key)

        if window is None or window.is_expired(now):
            window = RateLimitWindow(count=1, reset_at=now + self.window)
            self._windows[key] = window
            return RateLimitDecision(allowed=True, count=1, limit=self.max_requests, reset_at=window.reset_at)

        window.count += 1
        allowed = window.count <= self.max_requests
        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                limiter=self.name,
                rate_limit_key=key,
                count=window.count,
                max_requests=self.max_requests,
            )
        return RateLimitDecision(allowed=allowed, count=window.count, limit=self.max_requests, reset_at=window.reset_at)

    def is_allowed(self, key: str) -> bool:
        return self.hit(key).allowed

    def get_window(self, key: str) -> RateLimitWindow | None:
        return self._windows.get(key)

    def sweep(self) -> int:
        """Delete expired windows; returns how many were removed."""
        now = self._now_provider()
        expired = [key for key, window in self._windows.items() if window.is_expired(now)]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug("Swept expired rate limit windows", limiter=self.name, removed=len(expired))
        return len(expired)

    def reset(self, key: str | None = None) -> None:
        """Forget one key, or every key when key is None."""
        if key is None:
            self._windows.clear()
        else:
            self._windows.pop(key, None)

    def __len__(self) -> int:
        return len(self._windows)


class RateLimiterRegistry:
    """
    The named limiters guarding the HTTP API, plus their shared sweep task.

    Instances are independent: exhausting "message" leaves "api" untouched.
    """

    def __init__(
        self,
        settings: dict[str, tuple[int, int, str]],
        *,
        enabled: bool = True,
        sweep_interval_seconds: int = DEFAULT_SWEEP_INTERVAL_SECONDS,
        now_provider: Callable[[], datetime] | None = None,
    ):
        self.enabled = enabled
        self.sweep_interval_seconds = sweep_interval_seconds
        self._limiters = {
            name: FixedWindowRateLimiter(name, window_seconds, max_requests, message, now_provider=now_provider)
            for name, (window_seconds, max_requests, message) in settings.items()
        }
        self._sweep_task: asyncio.Task | None = None
        logger.info(
            "Rate limiters initialized",
            limiters={name: (lim.window.total_seconds(), lim.max_requests) for name, lim in self._limiters.items()},
            enabled=enabled,
        )

    def get(self, name: str) -> FixedWindowRateLimiter:
        try:
            return self._limiters[name]
        except KeyError:
            raise KeyError(f"Unknown rate limiter: {name}") from None

    def __contains__(self, name: str) -> bool:
        return name in self._limiters

    def names(self) -> list[str]:
        return list(self._limiters)

    def sweep_all(self) -> int:
        return sum(limiter.sweep() for limiter in self._limiters.values())

    def reset_all(self) -> None:
        for limiter in self._limiters.values():
            limiter.reset()

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = self.sweep_all()
            if removed:
                logger.info("Rate limit sweep completed", removed=removed)

    def start_sweeper(self) -> asyncio.Task:
        """Start the background sweep on the running loop (idempotent)."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="rate-limit-sweeper")
            logger.debug("Rate limit sweeper started", interval_seconds=self.sweep_interval_seconds)
        return self._sweep_task

    async def stop_sweeper(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Rate limit sweeper stopped")
