"""Tests for the service client registry."""

from __future__ import annotations

import pytest

from edu_gateway.core.settings import CircuitBreakerSettings, ServiceSettings
from edu_gateway.infra.external import ServiceClientOptions, ServiceClientRegistry


async def test_create_is_memoized_by_name_and_base_url() -> None:
    registry = ServiceClientRegistry()
    first = registry.create("course-service", ServiceClientOptions(base_url="http://c:1"))
    again = registry.create(
        "course-service", ServiceClientOptions(base_url="http://c:1", cache=True)
    )
    other = registry.create("course-service", ServiceClientOptions(base_url="http://c:2"))

    assert again is first
    assert other is not first
    assert registry.get("course-service") is other
    assert len(registry) == 2
    await registry.aclose()


def test_get_unknown_service_raises() -> None:
    registry = ServiceClientRegistry()
    with pytest.raises(KeyError, match="news-service"):
        registry.get("news-service")


async def test_from_settings_builds_platform_clients() -> None:
    services = ServiceSettings(course_url="http://courses:4000", cache_ttls={"news": 120})
    breakers = CircuitBreakerSettings(failure_threshold=7, timeout=2.0)

    registry = ServiceClientRegistry.from_settings(services, breakers)

    assert "course-service" in registry
    assert len(registry) == 7
    courses = registry.get("course-service")
    assert courses.base_url == "http://courses:4000"
    assert courses.cache is not None
    assert courses.cache.default_ttl == 600.0
    assert courses.breaker is not None
    assert courses.breaker.failure_threshold == 7
    assert courses.breaker.timeout == 2.0

    assert registry.get("news-service").cache.default_ttl == 120.0  # type: ignore[union-attr]
    assert registry.get("auth-service").cache is None
    await registry.aclose()
    assert len(registry) == 0


async def test_breakers_can_be_disabled() -> None:
    registry = ServiceClientRegistry.from_settings(
        ServiceSettings(), CircuitBreakerSettings(enabled=False)
    )
    assert all(client.breaker is None for client in registry.clients)
    assert set(registry.breaker_stats().values()) == {None}
    await registry.aclose()


async def test_invalidate_and_cleanup_span_clients(platform) -> None:
    platform.route("users", "GET", "/users/1", {"id": "1"})
    platform.route("courses", "GET", "/courses/1", {"id": "1"})
    registry = ServiceClientRegistry(transport=platform.transport)
    users = registry.create("user-service", ServiceClientOptions(base_url="http://users", cache=True))
    courses = registry.create(
        "course-service", ServiceClientOptions(base_url="http://courses", cache=True)
    )
    await users.get("/users/1")
    await courses.get("/courses/1")

    assert registry.cleanup_caches() == 0
    assert registry.invalidate() == 2
    await registry.aclose()
