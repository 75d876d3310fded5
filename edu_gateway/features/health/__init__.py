"""Resilience health reporting."""

from __future__ import annotations

from edu_gateway.features.health.router import router
from edu_gateway.features.health.service import ResilienceHealthService

__all__ = ["ResilienceHealthService", "router"]
