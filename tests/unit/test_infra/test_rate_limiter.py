"""Tests for the Redis-backed sliding-window rate limiter."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from edu_gateway.core.exceptions import RateLimitError
from edu_gateway.infra.ratelimit import (
    RateLimitPolicy,
    RateLimitProtectionStatus,
    RateLimitStateTracker,
    SlidingWindowRateLimiter,
    check_rate_limit,
)


@pytest.fixture
def limiter(fake_redis, clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(fake_redis, clock=clock)


class TestSlidingWindow:
    async def test_sixth_call_in_window_is_rejected(self, limiter, clock) -> None:
        remaining = []
        for _ in range(5):
            allowed, meta = await limiter.check_limit("ip:10.0.0.1", limit=5, window=60.0)
            assert allowed
            remaining.append(meta["remaining"])
            clock.advance(1)

        allowed, meta = await limiter.check_limit("ip:10.0.0.1", limit=5, window=60.0)

        assert remaining == [4, 3, 2, 1, 0]
        assert not allowed
        assert meta["remaining"] == 0
        assert meta["retry_after"] > 0

    async def test_retry_after_counts_from_oldest_request(self, limiter, clock) -> None:
        await limiter.check_limit("ip:a", limit=2, window=60.0)
        clock.advance(20)
        await limiter.check_limit("ip:a", limit=2, window=60.0)
        clock.advance(10)

        allowed, meta = await limiter.check_limit("ip:a", limit=2, window=60.0)

        assert not allowed
        assert meta["retry_after"] == 30
        assert meta["reset_after"] == 30

    async def test_window_slides(self, limiter, clock) -> None:
        for _ in range(3):
            await limiter.check_limit("ip:a", limit=3, window=10.0)
        assert not (await limiter.check_limit("ip:a", limit=3, window=10.0))[0]

        clock.advance(10.5)

        allowed, meta = await limiter.check_limit("ip:a", limit=3, window=10.0)
        assert allowed
        assert meta["remaining"] == 2

    async def test_rejected_requests_are_not_counted(self, limiter, fake_redis, clock) -> None:
        await limiter.check_limit("ip:a", limit=1, window=10.0)
        for _ in range(3):
            await limiter.check_limit("ip:a", limit=1, window=10.0)

        assert len(fake_redis.zsets["rate_limit:ip:a"]) == 1

    async def test_same_millisecond_requests_get_distinct_members(
        self, limiter, fake_redis
    ) -> None:
        for _ in range(3):
            await limiter.check_limit("user:1", limit=10, window=60.0)

        assert len(fake_redis.zsets["rate_limit:user:1"]) == 3
        assert fake_redis.expiry_ms["rate_limit:user:1"] == 60_000

    async def test_identities_are_independent(self, limiter) -> None:
        await limiter.check_limit("ip:a", limit=1, window=60.0)

        allowed, _ = await limiter.check_limit("ip:b", limit=1, window=60.0)
        assert allowed

    async def test_metadata_shape(self, limiter, clock) -> None:
        _, meta = await limiter.check_limit("ip:a", limit=100, window=60.0)

        assert meta["limit"] == 100
        assert meta["remaining"] == 99
        assert meta["policy"] == "100;w=60"
        assert meta["reset"] == int(clock.now) + 60
        assert meta["retry_after"] == 0


class TestPeekAndRecord:
    async def test_peek_does_not_count(self, limiter, fake_redis) -> None:
        for _ in range(3):
            allowed, _ = await limiter.peek("auth:a@b.c:1.2.3.4", limit=1, window=60.0)
            assert allowed

        assert not fake_redis.zsets["rate_limit:auth:a@b.c:1.2.3.4"]

    async def test_record_counts_towards_peek(self, limiter) -> None:
        assert await limiter.record("auth:x:ip", window=60.0) == 1
        assert await limiter.record("auth:x:ip", window=60.0) == 2

        allowed, meta = await limiter.peek("auth:x:ip", limit=2, window=60.0)
        assert not allowed
        assert meta["retry_after"] > 0


class TestManagement:
    async def test_get_limit_info_and_reset(self, limiter) -> None:
        await limiter.check_limit("ip:a", limit=5, window=60.0)
        await limiter.check_limit("ip:a", limit=5, window=60.0)

        info = await limiter.get_limit_info("ip:a", limit=5, window=60.0)
        assert info["current"] == 2
        assert info["remaining"] == 3

        assert await limiter.reset_limit("ip:a") is True
        info = await limiter.get_limit_info("ip:a", limit=5, window=60.0)
        assert info["current"] == 0


class TestFailOpen:
    async def test_redis_error_allows_request_and_degrades_tracker(self) -> None:
        redis = AsyncMock()
        redis.eval.side_effect = RedisConnectionError("Connection refused")
        tracker = RateLimitStateTracker(failure_threshold=2)
        limiter = SlidingWindowRateLimiter(redis, tracker=tracker)

        for _ in range(2):
            allowed, meta = await limiter.check_limit("ip:a", limit=1, window=60.0)
            assert allowed
            assert meta["limit"] == 1

        assert tracker.status == RateLimitProtectionStatus.DEGRADED

    async def test_record_failure_returns_none(self) -> None:
        redis = AsyncMock()
        redis.eval.side_effect = RedisConnectionError("timeout")
        limiter = SlidingWindowRateLimiter(redis)

        assert await limiter.record("auth:x:ip", window=60.0) is None

    async def test_recovery_restores_active(self, fake_redis) -> None:
        tracker = RateLimitStateTracker(failure_threshold=1)
        tracker.record_failure("Connection refused")
        limiter = SlidingWindowRateLimiter(fake_redis, tracker=tracker)

        await limiter.check_limit("ip:a", limit=1, window=60.0)

        assert tracker.status == RateLimitProtectionStatus.ACTIVE


class TestCheckRateLimit:
    async def test_raises_rate_limit_error(self, limiter) -> None:
        policy = RateLimitPolicy(name="strict", limit=1, window=60.0, message="Slow down")
        await check_rate_limit(limiter, policy, "user:42")

        with pytest.raises(RateLimitError) as exc_info:
            await check_rate_limit(limiter, policy, "user:42")

        exc = exc_info.value
        assert exc.status_code == 429
        assert exc.detail == "Slow down"
        assert exc.retry_after_seconds > 0
        assert exc.extra["policy"] == "strict"

    async def test_returns_metadata_when_allowed(self, limiter) -> None:
        policy = RateLimitPolicy(name="api", limit=10, window=60.0)
        meta = await check_rate_limit(limiter, policy, "ip:a")
        assert meta["remaining"] == 9
