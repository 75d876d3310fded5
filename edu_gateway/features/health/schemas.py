"""Schemas for the resilience health endpoint."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class CircuitBreakerStats(BaseModel):
    """Snapshot of one service client's circuit breaker."""

    name: str = Field(description="Circuit name (the service name)")
    state: str = Field(description="closed, open or half_open")
    failures: int = Field(description="Consecutive failures counted in the current state")
    successes: int = Field(description="Successful probes while half-open")
    last_failure_time: datetime | None = Field(
        default=None, description="When the last failure was recorded"
    )


class ServiceResilience(BaseModel):
    """Resilience view of one sibling service."""

    service: str
    status: HealthStatus
    circuit_breaker: CircuitBreakerStats | None = Field(
        default=None, description="None when the client has no breaker"
    )
    cache_size: int | None = Field(
        default=None, description="Cached GET responses; None when caching is off"
    )


class ProtectionDetail(BaseModel):
    """Detail for a single protection mechanism."""

    status: HealthStatus = Field(description="Protection status")
    message: str = Field(description="Status message")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional details")


class ResilienceHealthResponse(BaseModel):
    """Circuit breaker and rate limiting state across the gateway.

    Example:
        ```json
        {
            "status": "degraded",
            "timestamp": "2026-01-01T00:00:00Z",
            "services": {
                "course-service": {
                    "service": "course-service",
                    "status": "degraded",
                    "circuit_breaker": {"name": "course-service", "state": "open", ...}
                }
            },
            "protections": {
                "rate_limiter": {"status": "healthy", "message": "Rate limiting protection active"}
            }
        }
        ```
    """

    status: HealthStatus = Field(description="Worst status across services and protections")
    timestamp: datetime
    services: dict[str, ServiceResilience] = Field(default_factory=dict)
    protections: dict[str, ProtectionDetail] = Field(default_factory=dict)
