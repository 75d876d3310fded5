"""Redis-backed sliding-window rate limiter.

Each key owns a sorted set ``rate_limit:<key>`` (for instance
``rate_limit:ip:10.0.0.1:api``) whose members are one per counted
request, scored by epoch milliseconds. Every operation runs as a single
Lua script so concurrent instances cannot race between counting and
inserting.
"""

from __future__ import annotations

import logging
import math
import time
import uuid
from typing import TYPE_CHECKING, Any

from redis.exceptions import RedisError

from edu_gateway.core.exceptions import RateLimitError
from edu_gateway.infra.metrics.tracking import track_rate_limit_check, track_rate_limit_hit

if TYPE_CHECKING:
    from collections.abc import Callable

    from redis.asyncio import Redis

    from edu_gateway.infra.ratelimit.policies import RateLimitPolicy
    from edu_gateway.infra.ratelimit.tracker import RateLimitStateTracker

logger = logging.getLogger(__name__)

# Prune, count, and either reject or insert.
# Returns {allowed, count_before_insert, reset_at_ms}.
ACQUIRE_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])
local member = ARGV[4]

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. (now - window))
local count = redis.call('ZCARD', key)

if count >= limit then
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    local reset_at = now + window
    if oldest[2] then
        reset_at = tonumber(oldest[2]) + window
    end
    return {0, count, reset_at}
end

redis.call('ZADD', key, now, member)
redis.call('PEXPIRE', key, window)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
return {1, count, tonumber(oldest[2]) + window}
"""

# Prune and count without inserting.
PEEK_SCRIPT = """
local key = KEYS[1]
local limit = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local now = tonumber(ARGV[3])

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. (now - window))
local count = redis.call('ZCARD', key)
local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
local reset_at = now + window
if oldest[2] then
    reset_at = tonumber(oldest[2]) + window
end
if count >= limit then
    return {0, count, reset_at}
end
return {1, count, reset_at}
"""

# Prune and insert unconditionally. Returns the new count.
RECORD_SCRIPT = """
local key = KEYS[1]
local window = tonumber(ARGV[1])
local now = tonumber(ARGV[2])
local member = ARGV[3]

redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. (now - window))
redis.call('ZADD', key, now, member)
redis.call('PEXPIRE', key, window)
return redis.call('ZCARD', key)
"""


class SlidingWindowRateLimiter:
    """Distributed sliding-window rate limiter.

    For a request keyed ``k``: drop timestamps older than ``now - window``,
    count what is left, reject if the count already reached ``limit``,
    otherwise record ``now`` and allow.

    Redis failures never block traffic: the request is allowed, the error is
    logged, and the optional tracker reports protection as degraded.

    Attributes:
        redis: Redis client instance.
        key_prefix: Prefix for Redis keys.
        tracker: Optional protection status tracker.

    Example:
            limiter = SlidingWindowRateLimiter(redis_client)
        allowed, meta = await limiter.check_limit("ip:10.0.0.1", limit=100, window=60)
        if not allowed:
            print(f"Retry after {meta['retry_after']} seconds")
    """

    def __init__(
        self,
        redis: Redis,
        key_prefix: str = "rate_limit",
        tracker: RateLimitStateTracker | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize rate limiter.

        Args:
            redis: Redis client instance.
            key_prefix: Prefix for Redis keys (default: "rate_limit").
            tracker: Protection tracker fed with Redis successes and failures.
            clock: Wall-clock source in epoch seconds.
        """
        self.redis = redis
        self.key_prefix = key_prefix
        self.tracker = tracker
        self._clock = clock

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}:{key}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    @staticmethod
    def _member(now_ms: int) -> str:
        return f"{now_ms}-{uuid.uuid4().hex}"

    @staticmethod
    def _metadata(
        *,
        limit: int,
        window: float,
        remaining: int,
        now_ms: int,
        reset_at_ms: int,
        allowed: bool,
    ) -> dict[str, Any]:
        reset_after = max(0, math.ceil((reset_at_ms - now_ms) / 1000))
        return {
            "limit": limit,
            "remaining": max(0, remaining),
            "reset": math.ceil(reset_at_ms / 1000),
            "reset_after": reset_after,
            "retry_after": 0 if allowed else reset_after,
            "policy": f"{limit};w={math.ceil(window)}",
        }

    def _fail_open(
        self,
        exc: RedisError,
        *,
        key: str,
        limit: int,
        window: float,
        now_ms: int,
    ) -> tuple[bool, dict[str, Any]]:
        logger.error(
            "Rate limit check failed, allowing request",
            extra={"key": key, "error": str(exc)},
            exc_info=True,
        )
        if self.tracker is not None:
            self.tracker.record_failure(str(exc))
        return True, self._metadata(
            limit=limit,
            window=window,
            remaining=limit - 1,
            now_ms=now_ms,
            reset_at_ms=now_ms + int(window * 1000),
            allowed=True,
        )

    def _record_success(self) -> None:
        if self.tracker is not None:
            self.tracker.record_success()

    async def check_limit(
        self,
        key: str,
        limit: int,
        window: float,
        endpoint: str = "unknown",
    ) -> tuple[bool, dict[str, Any]]:
        """Count this request against ``key`` if the window has room.

        Args:
            key: Identity such as ``ip:10.0.0.1`` or ``user:42``.
            limit: Requests allowed per window.
            window: Window length in seconds.
            endpoint: Policy or endpoint label for metrics.

        Returns:
            Tuple of (is_allowed, metadata) where metadata contains:
                - limit: The budget
                - remaining: Requests left after this one (0 when rejected)
                - reset: Epoch seconds when the oldest counted request leaves the window
                - reset_after: Seconds until ``reset``
                - retry_after: Seconds to wait before retrying (0 when allowed)
                - policy: ``RateLimit-Policy`` value
        """
        now_ms = self._now_ms()
        window_ms = int(window * 1000)

        try:
            result = await self.redis.eval(
                ACQUIRE_SCRIPT,
                1,
                self._make_key(key),
                limit,
                window_ms,
                now_ms,
                self._member(now_ms),
            )
        except RedisError as exc:
            return self._fail_open(exc, key=key, limit=limit, window=window, now_ms=now_ms)

        self._record_success()
        allowed = bool(int(result[0]))
        count = int(result[1])
        reset_at_ms = int(result[2])

        track_rate_limit_check(endpoint, allowed)
        if not allowed:
            track_rate_limit_hit(endpoint, limit_type=key.split(":", 1)[0])
            logger.warning(
                "Rate limit exceeded",
                extra={"key": key, "limit": limit, "window": window, "count": count},
            )

        return allowed, self._metadata(
            limit=limit,
            window=window,
            remaining=limit - count - 1 if allowed else 0,
            now_ms=now_ms,
            reset_at_ms=reset_at_ms,
            allowed=allowed,
        )

    async def peek(
        self,
        key: str,
        limit: int,
        window: float,
        endpoint: str = "unknown",
    ) -> tuple[bool, dict[str, Any]]:
        """Check the window without counting this request.

        ``remaining`` assumes the request will be counted afterwards via
        :meth:`record`. Used when only failed requests should count.
        """
        now_ms = self._now_ms()
        window_ms = int(window * 1000)

        try:
            result = await self.redis.eval(
                PEEK_SCRIPT,
                1,
                self._make_key(key),
                limit,
                window_ms,
                now_ms,
            )
        except RedisError as exc:
            return self._fail_open(exc, key=key, limit=limit, window=window, now_ms=now_ms)

        self._record_success()
        allowed = bool(int(result[0]))
        count = int(result[1])

        track_rate_limit_check(endpoint, allowed)
        if not allowed:
            track_rate_limit_hit(endpoint, limit_type=key.split(":", 1)[0])
            logger.warning(
                "Rate limit exceeded",
                extra={"key": key, "limit": limit, "window": window, "count": count},
            )

        return allowed, self._metadata(
            limit=limit,
            window=window,
            remaining=limit - count - 1 if allowed else 0,
            now_ms=now_ms,
            reset_at_ms=int(result[2]),
            allowed=allowed,
        )

    async def record(self, key: str, window: float) -> int | None:
        """Count one request against ``key`` unconditionally.

        Returns:
            The number of requests now in the window, or None if Redis failed.
        """
        now_ms = self._now_ms()
        try:
            count = await self.redis.eval(
                RECORD_SCRIPT,
                1,
                self._make_key(key),
                int(window * 1000),
                now_ms,
                self._member(now_ms),
            )
        except RedisError as exc:
            logger.error(
                "Failed to record rate limited request",
                extra={"key": key, "error": str(exc)},
                exc_info=True,
            )
            if self.tracker is not None:
                self.tracker.record_failure(str(exc))
            return None

        self._record_success()
        return int(count)

    async def reset_limit(self, key: str) -> bool:
        """Forget every request counted for ``key``.

        Example:
                    await limiter.reset_limit("auth:ada@example.com:10.0.0.1:auth")
        """
        try:
            await self.redis.delete(self._make_key(key))
        except RedisError:
            logger.error("Failed to reset rate limit", extra={"key": key}, exc_info=True)
            return False
        logger.info("Rate limit reset", extra={"key": key})
        return True

    async def get_limit_info(self, key: str, limit: int, window: float) -> dict[str, Any]:
        """Current usage for ``key`` without consuming anything.

        Returns:
            ``{limit, remaining, reset, current}``.
        """
        now_ms = self._now_ms()
        window_ms = int(window * 1000)
        try:
            result = await self.redis.eval(
                PEEK_SCRIPT,
                1,
                self._make_key(key),
                limit,
                window_ms,
                now_ms,
            )
        except RedisError as exc:
            logger.error(
                "Failed to get rate limit info",
                extra={"key": key, "error": str(exc)},
                exc_info=True,
            )
            return {
                "limit": limit,
                "remaining": limit,
                "reset": math.ceil((now_ms + window_ms) / 1000),
                "current": 0,
            }

        current = int(result[1])
        return {
            "limit": limit,
            "remaining": max(0, limit - current),
            "reset": math.ceil(int(result[2]) / 1000),
            "current": current,
        }


async def check_rate_limit(
    limiter: SlidingWindowRateLimiter,
    policy: RateLimitPolicy,
    identity: str,
) -> dict[str, Any]:
    """Count a request under ``policy`` and raise if the budget is spent.

    Returns:
        The limiter metadata for response headers.

    Raises:
        RateLimitError: If the limit is exceeded.

    Example:
            meta = await check_rate_limit(limiter, policies["strict"], "user:42")
    """
    allowed, metadata = await limiter.check_limit(
        identity,
        policy.limit,
        policy.window,
        endpoint=policy.name,
    )
    if not allowed:
        raise RateLimitError(
            detail=policy.message,
            retry_after_seconds=metadata["retry_after"],
            extra={
                "limit": metadata["limit"],
                "remaining": 0,
                "reset": metadata["reset"],
                "policy": policy.name,
            },
        )
    return metadata
