"""Resilience patterns for calls to sibling services.

Example:
    >>> from edu_gateway.infra.resilience import CircuitBreaker, CircuitOpenError
    >>>
    >>> breaker = CircuitBreaker(name="news-service", failure_threshold=5, recovery_timeout=30.0)
    >>> try:
    ...     articles = await breaker.call(fetch_recent_articles)
    ... except CircuitOpenError:
    ...     articles = []
"""

from __future__ import annotations

from edu_gateway.infra.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
)

__all__ = [
    "CircuitBreaker",
    "CircuitOpenError",
    "CircuitState",
]
