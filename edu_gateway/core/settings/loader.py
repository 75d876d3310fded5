"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the
process.

Usage:
    from edu_gateway.core.settings import get_service_settings

    settings = get_service_settings()

Testing:
    Clear the cache to force a reload after patching the environment:
    get_service_settings.cache_clear()

    Or construct the model directly:
    settings = ServiceSettings(course_url="http://course.test")
"""

from __future__ import annotations

from functools import lru_cache

from .aggregation import AggregationSettings
from .logs import LoggingSettings
from .ratelimit import RateLimitSettings
from .redis import RedisSettings
from .resilience import CircuitBreakerSettings
from .services import ServiceSettings


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings."""
    return LoggingSettings()


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    """Get cached Redis settings."""
    return RedisSettings()


@lru_cache(maxsize=1)
def get_service_settings() -> ServiceSettings:
    """Get cached sibling-service settings."""
    return ServiceSettings()


@lru_cache(maxsize=1)
def get_circuit_breaker_settings() -> CircuitBreakerSettings:
    """Get cached circuit breaker settings."""
    return CircuitBreakerSettings()


@lru_cache(maxsize=1)
def get_rate_limit_settings() -> RateLimitSettings:
    """Get cached rate limit settings."""
    return RateLimitSettings()


@lru_cache(maxsize=1)
def get_aggregation_settings() -> AggregationSettings:
    """Get cached aggregation settings."""
    return AggregationSettings()


def clear_all_settings_caches() -> None:
    """Drop every cached settings instance (tests and reloads)."""
    for loader in (
        get_logging_settings,
        get_redis_settings,
        get_service_settings,
        get_circuit_breaker_settings,
        get_rate_limit_settings,
        get_aggregation_settings,
    ):
        loader.cache_clear()
