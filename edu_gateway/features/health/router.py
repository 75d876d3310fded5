"""Health endpoints for the gateway's resilience layer."""

from __future__ import annotations

from fastapi import APIRouter

from edu_gateway.features.health.schemas import ResilienceHealthResponse

# Runtime import so FastAPI can resolve the Annotated Depends metadata
from edu_gateway.features.health.service import ResilienceHealthServiceDep  # noqa: TC001

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/resilience",
    response_model=ResilienceHealthResponse,
    summary="Circuit breaker and rate limiting status",
)
async def resilience_health(service: ResilienceHealthServiceDep) -> ResilienceHealthResponse:
    """Breaker state per sibling service and rate limit protection status.

    Always answers 200; the ``status`` field carries the verdict.
    """
    return service.report()
