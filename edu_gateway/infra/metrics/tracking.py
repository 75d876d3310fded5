"""Helper functions for recording resilience metrics."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from edu_gateway.infra.metrics import prometheus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator


# ============================================================================
# Rate Limiting Tracking
# ============================================================================


def track_rate_limit_check(policy: str, allowed: bool) -> None:
    """Track a rate limit check.

    Example:
            track_rate_limit_check("api", allowed=True)
    """
    prometheus.rate_limit_checks_total.labels(
        policy=policy,
        result="allowed" if allowed else "denied",
    ).inc()


def track_rate_limit_hit(policy: str, limit_type: str = "ip") -> None:
    """Track a request rejected by the rate limiter.

    Args:
        policy: Policy name (api, strict, auth).
        limit_type: Key scope (ip, user, auth).
    """
    prometheus.rate_limit_hits_total.labels(policy=policy, limit_type=limit_type).inc()


def update_rate_limiter_protection_status(status: str) -> None:
    """Update rate limiter protection status gauge ('active', 'degraded', 'disabled')."""
    status_map = {"active": 1.0, "degraded": 0.5, "disabled": 0.0}
    prometheus.rate_limiter_protection_status.set(status_map.get(status, 0.0))


def track_rate_limiter_state_transition(from_state: str, to_state: str) -> None:
    prometheus.rate_limiter_state_transitions_total.labels(
        from_state=from_state,
        to_state=to_state,
    ).inc()


def track_rate_limiter_redis_error(error_type: str) -> None:
    """Track a Redis error during a rate limit check.

    Args:
        error_type: 'timeout', 'connection' or 'other'.
    """
    prometheus.rate_limiter_redis_errors_total.labels(error_type=error_type).inc()


# ============================================================================
# Circuit Breaker Tracking
# ============================================================================


def update_circuit_breaker_state(circuit_name: str, state: str) -> None:
    """Update circuit breaker state gauge.

    Example:
            update_circuit_breaker_state("course-service", "open")
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    prometheus.circuit_breaker_state.labels(circuit_name=circuit_name).set(
        state_map.get(state, 0)
    )


def track_circuit_breaker_failure(circuit_name: str) -> None:
    prometheus.circuit_breaker_failures_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_success(circuit_name: str) -> None:
    prometheus.circuit_breaker_successes_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_state_change(circuit_name: str, from_state: str, to_state: str) -> None:
    """Track a circuit breaker state change and refresh the state gauge."""
    prometheus.circuit_breaker_state_changes_total.labels(
        circuit_name=circuit_name,
        from_state=from_state,
        to_state=to_state,
    ).inc()
    update_circuit_breaker_state(circuit_name, to_state)


def track_circuit_breaker_rejected(circuit_name: str) -> None:
    prometheus.circuit_breaker_rejected_total.labels(circuit_name=circuit_name).inc()


# ============================================================================
# Service Client Tracking
# ============================================================================


@asynccontextmanager
async def track_external_service_call(service_name: str, method: str) -> AsyncIterator[None]:
    """Context manager to time an outbound call and count its outcome.

    Example:
            async with track_external_service_call("course-service", "GET"):
            response = await client.get("/courses/c1")
    """
    start_time = time.perf_counter()
    status = "success"
    try:
        yield
    except Exception as exc:
        status = "error"
        prometheus.external_service_errors_total.labels(
            service_name=service_name,
            error_type=type(exc).__name__,
        ).inc()
        raise
    finally:
        prometheus.external_service_calls_total.labels(
            service_name=service_name,
            method=method,
            status=status,
        ).inc()
        prometheus.external_service_duration_seconds.labels(
            service_name=service_name,
            method=method,
        ).observe(time.perf_counter() - start_time)


def track_cache_lookup(cache_name: str, hit: bool) -> None:
    """Count a cache hit or miss for the named cache."""
    if hit:
        prometheus.cache_hits_total.labels(cache_name=cache_name).inc()
    else:
        prometheus.cache_misses_total.labels(cache_name=cache_name).inc()


# ============================================================================
# Aggregation Tracking
# ============================================================================


def track_aggregation(view: str, result: str) -> None:
    """Count a composite view request ('hit', 'built' or 'failed')."""
    prometheus.aggregation_requests_total.labels(view=view, result=result).inc()
