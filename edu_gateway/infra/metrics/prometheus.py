"""Prometheus collectors for the resilience layer.

All collectors live in a private registry; exposing it is left to the host
process.
"""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

REGISTRY = CollectorRegistry()

# 1ms to 10s
DEFAULT_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
)

# ──────────────────────────────────────────────────────────────
# Rate limiting
# ──────────────────────────────────────────────────────────────

rate_limit_checks_total = Counter(
    "rate_limit_checks_total",
    "Total rate limit checks by policy and result (allowed/denied)",
    ["policy", "result"],
    registry=REGISTRY,
)

rate_limit_hits_total = Counter(
    "rate_limit_hits_total",
    "Requests rejected with 429, by policy and key type (ip, user, auth)",
    ["policy", "limit_type"],
    registry=REGISTRY,
)

rate_limiter_protection_status = Gauge(
    "rate_limiter_protection_status",
    "Rate limiter protection status (1=active, 0.5=degraded, 0=disabled)",
    registry=REGISTRY,
)

rate_limiter_state_transitions_total = Counter(
    "rate_limiter_state_transitions_total",
    "Rate limiter protection state transitions",
    ["from_state", "to_state"],
    registry=REGISTRY,
)

rate_limiter_redis_errors_total = Counter(
    "rate_limiter_redis_errors_total",
    "Redis errors during rate limit checks (request was allowed)",
    ["error_type"],
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Circuit breakers
# ──────────────────────────────────────────────────────────────

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_failures_total = Counter(
    "circuit_breaker_failures_total",
    "Failures recorded by a circuit breaker",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_successes_total = Counter(
    "circuit_breaker_successes_total",
    "Successes recorded by a circuit breaker",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_state_changes_total = Counter(
    "circuit_breaker_state_changes_total",
    "Circuit breaker state transitions",
    ["circuit_name", "from_state", "to_state"],
    registry=REGISTRY,
)

circuit_breaker_rejected_total = Counter(
    "circuit_breaker_rejected_total",
    "Calls rejected without execution because the circuit was open",
    ["circuit_name"],
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Service clients
# ──────────────────────────────────────────────────────────────

external_service_calls_total = Counter(
    "external_service_calls_total",
    "Outbound calls to sibling services by result (success/error)",
    ["service_name", "method", "status"],
    registry=REGISTRY,
)

external_service_duration_seconds = Histogram(
    "external_service_duration_seconds",
    "Outbound call duration in seconds",
    ["service_name", "method"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

external_service_errors_total = Counter(
    "external_service_errors_total",
    "Outbound call errors by exception type",
    ["service_name", "error_type"],
    registry=REGISTRY,
)

cache_hits_total = Counter(
    "cache_hits_total",
    "In-memory cache hits",
    ["cache_name"],
    registry=REGISTRY,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "In-memory cache misses",
    ["cache_name"],
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Aggregation
# ──────────────────────────────────────────────────────────────

aggregation_requests_total = Counter(
    "aggregation_requests_total",
    "Composite view builds by view and result (hit/built/failed)",
    ["view", "result"],
    registry=REGISTRY,
)
