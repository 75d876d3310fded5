"""Tests for application startup and shutdown."""

from __future__ import annotations

from edu_gateway.app.lifespan import lifespan
from edu_gateway.app.main import create_app
from edu_gateway.features.aggregation import DataAggregator
from edu_gateway.infra.ratelimit import RateLimitProtectionStatus


async def test_lifespan_with_rate_limiting_disabled() -> None:
    app = create_app()

    async with lifespan(app):
        registry = app.state.service_registry
        assert app.state.rate_limiter is None
        assert app.state.rate_limit_tracker.status == RateLimitProtectionStatus.DISABLED
        assert isinstance(app.state.aggregator, DataAggregator)
        assert "course-service" in registry
        assert registry.get("auth-service").cache is None

    assert len(registry) == 0


async def test_lifespan_can_run_twice() -> None:
    app = create_app()

    async with lifespan(app):
        pass
    async with lifespan(app):
        assert len(app.state.service_registry) == 7
