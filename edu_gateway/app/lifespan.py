"""Application lifespan: builds and tears down the resilient communication layer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from redis.exceptions import RedisError

from edu_gateway.core.settings import (
    get_aggregation_settings,
    get_circuit_breaker_settings,
    get_rate_limit_settings,
    get_redis_settings,
    get_service_settings,
)
from edu_gateway.features.aggregation.service import DataAggregator
from edu_gateway.infra.cache.redis import RedisConnection
from edu_gateway.infra.external.registry import ServiceClientRegistry
from edu_gateway.infra.logging import setup_logging
from edu_gateway.infra.logging.config import shutdown as shutdown_logging
from edu_gateway.infra.ratelimit.limiter import SlidingWindowRateLimiter
from edu_gateway.infra.ratelimit.tracker import RateLimitStateTracker

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


async def _sweep_caches(
    registry: ServiceClientRegistry,
    aggregator: DataAggregator,
    interval: float,
) -> None:
    """Remove expired cache entries every ``interval`` seconds until cancelled."""
    while True:
        await asyncio.sleep(interval)
        removed = registry.cleanup_caches() + aggregator.cleanup()
        if removed:
            logger.debug("Cache sweep completed", extra={"removed": removed})


async def _startup_rate_limiter(app: FastAPI) -> RedisConnection | None:
    """Connect Redis and create the limiter; protection is DISABLED when turned off."""
    settings = get_rate_limit_settings()
    tracker = RateLimitStateTracker(failure_threshold=settings.failure_threshold)
    app.state.rate_limit_tracker = tracker
    app.state.rate_limiter = None

    if not settings.enabled:
        tracker.mark_disabled()
        return None

    redis_settings = get_redis_settings()
    connection = RedisConnection(redis_settings)
    try:
        if not await connection.connect():
            tracker.record_failure("Redis unavailable at startup")
    except RedisError:
        logger.exception(
            "Redis required but unavailable, failing startup",
            extra={"startup_require_cache": True},
        )
        await connection.disconnect()
        raise

    app.state.rate_limiter = SlidingWindowRateLimiter(
        connection.client,
        key_prefix=redis_settings.get_prefixed_key("rate_limit"),
        tracker=tracker,
    )
    logger.info(
        "Rate limiter initialized",
        extra={"failure_threshold": settings.failure_threshold},
    )
    return connection


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    Startup, in order: logging, Redis and the rate limiter, service clients,
    the aggregator, and the periodic cache sweep. Everything lands on
    ``app.state``; shutdown releases it in reverse.

    Args:
        app: FastAPI application instance.

    Yields:
        None during application runtime.
    """
    setup_logging()

    services = get_service_settings()
    redis_connection = await _startup_rate_limiter(app)

    registry = ServiceClientRegistry.from_settings(services, get_circuit_breaker_settings())
    aggregator = DataAggregator.from_registry(registry, get_aggregation_settings())
    app.state.service_registry = registry
    app.state.aggregator = aggregator
    logger.info(
        "Service clients initialized",
        extra={"services": sorted(client.service_name for client in registry.clients)},
    )

    sweep_task: asyncio.Task[None] | None = None
    if services.cache_sweep_interval > 0:
        sweep_task = asyncio.create_task(
            _sweep_caches(registry, aggregator, services.cache_sweep_interval),
            name="cache-sweep",
        )

    try:
        yield
    finally:
        if sweep_task is not None:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task
        await registry.aclose()
        if redis_connection is not None:
            await redis_connection.disconnect()
        logger.info("Application shutdown complete")
        shutdown_logging()
