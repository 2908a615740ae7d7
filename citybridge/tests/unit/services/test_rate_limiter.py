"""Tests for fixed-window rate limiting."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from citybridge.config.models import RateLimitConfig
from citybridge.services.rate_limiter import FixedWindowRateLimiter, RateLimiterRegistry


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def limiter(clock) -> FixedWindowRateLimiter:
    return FixedWindowRateLimiter("auth", window_seconds=900, max_requests=5, message="Too many", now_provider=clock)


class TestFixedWindowRateLimiter:
    def test_sixth_request_in_window_rejected(self, limiter):
        decisions = [limiter.hit("10.0.0.1") for _ in range(6)]

        assert [d.allowed for d in decisions] == [True] * 5 + [False]
        assert decisions[4].remaining == 0
        assert decisions[5].count == 6

    def test_keys_counted_separately(self, limiter):
        for _ in range(5):
            limiter.hit("10.0.0.1")

        assert limiter.is_allowed("10.0.0.1") is False
        assert limiter.is_allowed("10.0.0.2") is True

    def test_window_restarts_after_expiry(self, limiter, clock):
        for _ in range(6):
            limiter.hit("k")

        clock.advance(900)
        assert limiter.is_allowed("k") is False

        clock.advance(1)
        decision = limiter.hit("k")
        assert decision.allowed is True
        assert decision.count == 1

    def test_retry_after_counts_down_to_window_end(self, limiter, clock):
        decision = limiter.hit("k")

        assert decision.retry_after_seconds(clock()) == 901
        clock.advance(600)
        assert decision.retry_after_seconds(clock()) == 301

    def test_sweep_removes_only_expired_windows(self, limiter, clock):
        limiter.hit("old")
        clock.advance(500)
        limiter.hit("new")
        clock.advance(401)

        assert limiter.sweep() == 1
        assert limiter.get_window("old") is None
        assert limiter.get_window("new") is not None
        assert len(limiter) == 1

    def test_reset(self, limiter):
        limiter.hit("a")
        limiter.hit("b")

        limiter.reset("a")
        assert len(limiter) == 1
        limiter.reset()
        assert len(limiter) == 0

    @pytest.mark.parametrize("window_seconds,max_requests", [(0, 5), (60, 0)])
    def test_rejects_non_positive_settings(self, window_seconds, max_requests):
        with pytest.raises(ValueError):
            FixedWindowRateLimiter("x", window_seconds, max_requests, "msg")


class TestRateLimiterRegistry:
    def test_builds_named_limiters_from_config(self):
        registry = RateLimiterRegistry(RateLimitConfig().limiter_settings())

        assert sorted(registry.names()) == ["api", "auth", "message", "post", "upload"]
        assert registry.get("auth").max_requests == 5
        assert registry.get("message").message == "Too many messages sent"
        assert "api" in registry

    def test_unknown_limiter(self):
        registry = RateLimiterRegistry({})

        with pytest.raises(KeyError):
            registry.get("missing")

    def test_limiters_are_independent(self, clock):
        registry = RateLimiterRegistry({"a": (60, 1, "a"), "b": (60, 1, "b")}, now_provider=clock)

        registry.get("a").hit("k")
        assert registry.get("a").is_allowed("k") is False
        assert registry.get("b").is_allowed("k") is True

    def test_sweep_all(self, clock):
        registry = RateLimiterRegistry({"a": (60, 1, "a"), "b": (120, 1, "b")}, now_provider=clock)
        registry.get("a").hit("k")
        registry.get("b").hit("k")
        clock.advance(61)

        assert registry.sweep_all() == 1

    @pytest.mark.asyncio
    async def test_sweeper_start_and_stop(self):
        registry = RateLimiterRegistry({"a": (60, 1, "a")}, sweep_interval_seconds=3600)

        task = registry.start_sweeper()
        assert registry.start_sweeper() is task
        await registry.stop_sweeper()

        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_sweeper_runs_periodically(self, clock):
        registry = RateLimiterRegistry({"a": (60, 1, "a")}, sweep_interval_seconds=1, now_provider=clock)
        registry.get("a").hit("k")
        clock.advance(61)
        registry.sweep_interval_seconds = 0

        registry.start_sweeper()
        await asyncio.sleep(0.01)
        await registry.stop_sweeper()

        assert len(registry.get("a")) == 0
