"""Redis connection holder for the shared rate-limit store."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, cast

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from edu_gateway.core.settings.redis import RedisSettings

logger = logging.getLogger(__name__)


class RedisConnection:
    """Owns a Redis connection pool and client.

    The client is usable even when the initial ping failed: commands are
    retried on a fresh connection each time, and callers such as the rate
    limiter fail open on ``RedisError``.

    Example:
            connection = RedisConnection(get_redis_settings())
        await connection.connect()
        limiter = SlidingWindowRateLimiter(connection.client)
        ...
        await connection.disconnect()
    """

    def __init__(self, settings: RedisSettings) -> None:
        self.settings = settings
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None

    async def connect(self) -> bool:
        """Create the pool and ping the server.

        Returns:
            True if the server answered the ping.

        Raises:
            RedisError: If the ping fails and ``startup_require_cache`` is set.
        """
        logger.info(
            "Connecting to Redis",
            extra={
                "host": self.settings.host,
                "port": self.settings.port,
                "db": self.settings.db,
                "max_connections": self.settings.max_connections,
            },
        )
        self._pool = ConnectionPool.from_url(
            self.settings.url,
            **self.settings.connection_pool_kwargs(),
        )
        self._client = Redis(connection_pool=self._pool)

        if await self.health_check():
            logger.info("Redis connection established")
            return True
        if self.settings.startup_require_cache:
            msg = f"Redis unavailable at {self.settings.host}:{self.settings.port}"
            raise RedisError(msg)
        logger.warning(
            "Redis unavailable at startup, rate limiting will fail open",
            extra={"host": self.settings.host, "port": self.settings.port},
        )
        return False

    async def disconnect(self) -> None:
        """Close the client and its pool."""
        if self._client is not None:
            await cast("Any", self._client).aclose()
            self._client = None
        if self._pool is not None:
            await cast("Any", self._pool).aclose()
            self._pool = None
        logger.info("Redis connection closed")

    @property
    def client(self) -> Redis:
        """The Redis client.

        Raises:
            RuntimeError: If connect() has not been called.
        """
        if self._client is None:
            msg = "Redis client not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    async def health_check(self) -> bool:
        """Return True when the server answers PING."""
        try:
            await cast("Awaitable[bool]", self.client.ping())
        except RedisError as exc:
            logger.warning("Redis health check failed", extra={"error": str(exc)})
            return False
        return True
