"""Pydantic Settings v2 configuration, one frozen model per domain.

Import settings via the cached loaders:
    from edu_gateway.core.settings import get_service_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .aggregation import AggregationSettings
from .loader import (
    clear_all_settings_caches,
    get_aggregation_settings,
    get_circuit_breaker_settings,
    get_logging_settings,
    get_rate_limit_settings,
    get_redis_settings,
    get_service_settings,
)
from .logs import LoggingSettings
from .ratelimit import RateLimitSettings
from .redis import RedisSettings
from .resilience import CircuitBreakerSettings
from .services import PLATFORM_SERVICES, ServiceSettings

__all__ = [
    "PLATFORM_SERVICES",
    "AggregationSettings",
    "CircuitBreakerSettings",
    "LoggingSettings",
    "RateLimitSettings",
    "RedisSettings",
    "ServiceSettings",
    "clear_all_settings_caches",
    "get_aggregation_settings",
    "get_circuit_breaker_settings",
    "get_logging_settings",
    "get_rate_limit_settings",
    "get_redis_settings",
    "get_service_settings",
]
