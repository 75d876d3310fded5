"""Prometheus metrics for circuit breakers, rate limiting and service calls."""

from edu_gateway.infra.metrics.prometheus import REGISTRY

__all__ = ["REGISTRY"]
