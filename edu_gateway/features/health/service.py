"""Builds the resilience health report from app state."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Annotated

from fastapi import Depends, Request

from edu_gateway.features.health.schemas import (
    CircuitBreakerStats,
    HealthStatus,
    ProtectionDetail,
    ResilienceHealthResponse,
    ServiceResilience,
)
from edu_gateway.infra.ratelimit.status import RateLimitProtectionStatus
from edu_gateway.infra.resilience.circuit_breaker import CircuitState

if TYPE_CHECKING:
    from edu_gateway.infra.external.registry import ServiceClientRegistry
    from edu_gateway.infra.external.service_client import ServiceClient
    from edu_gateway.infra.ratelimit.tracker import RateLimitStateTracker

_SEVERITY = {HealthStatus.HEALTHY: 0, HealthStatus.DEGRADED: 1, HealthStatus.UNHEALTHY: 2}

_BREAKER_STATUS = {
    CircuitState.CLOSED: HealthStatus.HEALTHY,
    CircuitState.HALF_OPEN: HealthStatus.DEGRADED,
    CircuitState.OPEN: HealthStatus.DEGRADED,
}

_PROTECTION = {
    RateLimitProtectionStatus.ACTIVE: (HealthStatus.HEALTHY, "Rate limiting protection active"),
    RateLimitProtectionStatus.DEGRADED: (
        HealthStatus.DEGRADED,
        "Rate limit store unavailable, requests are allowed without limits",
    ),
    RateLimitProtectionStatus.DISABLED: (
        HealthStatus.HEALTHY,
        "Rate limiting disabled by configuration",
    ),
}


class ResilienceHealthService:
    """Reports breaker state per service and rate limit protection status."""

    def __init__(
        self,
        registry: ServiceClientRegistry | None,
        tracker: RateLimitStateTracker | None,
    ) -> None:
        self.registry = registry
        self.tracker = tracker

    @staticmethod
    def _service_report(client: ServiceClient) -> ServiceResilience:
        breaker = None
        status = HealthStatus.HEALTHY
        if client.breaker is not None:
            stats = client.breaker.get_stats()
            breaker = CircuitBreakerStats(**stats)
            status = _BREAKER_STATUS[CircuitState(stats["state"])]
        return ServiceResilience(
            service=client.service_name,
            status=status,
            circuit_breaker=breaker,
            cache_size=client.cache.size() if client.cache is not None else None,
        )

    def _rate_limiter_report(self) -> ProtectionDetail:
        if self.tracker is None:
            return ProtectionDetail(
                status=HealthStatus.DEGRADED,
                message="Rate limiter not initialized",
            )
        state = self.tracker.get_state()
        status, message = _PROTECTION[state.status]
        return ProtectionDetail(
            status=status,
            message=message,
            metadata={"protection_status": state.status.value, **state.to_dict()},
        )

    def report(self) -> ResilienceHealthResponse:
        services = {}
        if self.registry is not None:
            services = {
                client.service_name: self._service_report(client)
                for client in self.registry.clients
            }
        protections = {"rate_limiter": self._rate_limiter_report()}

        statuses = [s.status for s in services.values()] + [
            p.status for p in protections.values()
        ]
        overall = max(statuses, key=_SEVERITY.__getitem__, default=HealthStatus.HEALTHY)

        return ResilienceHealthResponse(
            status=overall,
            timestamp=datetime.now(UTC),
            services=services,
            protections=protections,
        )


def get_resilience_health_service(request: Request) -> ResilienceHealthService:
    state = request.app.state
    return ResilienceHealthService(
        registry=getattr(state, "service_registry", None),
        tracker=getattr(state, "rate_limit_tracker", None),
    )


ResilienceHealthServiceDep = Annotated[
    ResilienceHealthService, Depends(get_resilience_health_service)
]
