"""FastAPI dependencies for route handlers.

The gateway's long-lived objects are created by the lifespan and kept on
``app.state``; these dependencies hand them to routes.

Usage:
    from edu_gateway.core.dependencies import AggregatorDep

    @router.get("/dashboard/{user_id}")
    async def dashboard(user_id: str, aggregator: AggregatorDep):
        return await aggregator.get_dashboard_data(user_id)
"""

from __future__ import annotations

from .ratelimit import RateLimiterDep, get_rate_limiter, rate_limit
from .services import (
    AggregatorDep,
    ServiceRegistryDep,
    get_aggregator,
    get_service_registry,
)

__all__ = [
    "AggregatorDep",
    "RateLimiterDep",
    "ServiceRegistryDep",
    "get_aggregator",
    "get_rate_limiter",
    "get_service_registry",
    "rate_limit",
]
