"""Rate limiting dependencies for FastAPI routes."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Annotated, Any

from fastapi import Depends, Request

from edu_gateway.app.middleware.rate_limit import user_or_ip_key
from edu_gateway.core.exceptions import ExternalServiceError
from edu_gateway.core.settings import get_rate_limit_settings
from edu_gateway.infra.ratelimit.limiter import SlidingWindowRateLimiter, check_rate_limit
from edu_gateway.infra.ratelimit.policies import RateLimitPolicy

logger = logging.getLogger(__name__)


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    """Shared sliding-window limiter created at startup.

    Example:
            @router.post("/users/{user_id}/password")
        async def change_password(limiter: RateLimiterDep):
            await check_rate_limit(limiter, policies["strict"], "user:42")
    """
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise ExternalServiceError(detail="Rate limiter is not initialized")
    return limiter


RateLimiterDep = Annotated[SlidingWindowRateLimiter, Depends(get_rate_limiter)]


def _default_identity(request: Request) -> str:
    """``user:<id>`` or ``ip:<addr>``, honoring ``RATE_LIMIT_TRUST_FORWARDED_FOR``."""
    return user_or_ip_key(
        request,
        trust_forwarded_for=get_rate_limit_settings().trust_forwarded_for,
    )


def rate_limit(
    policy: RateLimitPolicy,
    key_func: Callable[[Request], str] | None = None,
) -> Any:
    """Per-route rate limit on top of the middleware policies.

    Each route gets its own window: the identity is suffixed with the path.

    Args:
        policy: Budget to enforce.
        key_func: Maps a request to its identity. Defaults to
            ``user:<id>`` or ``ip:<addr>``.

    Returns:
        A ``Depends`` marker that raises ``RateLimitError`` when exceeded and
        stores the limiter metadata on ``request.state.rate_limit``.

    Example:
            @router.get("/statistics/overview")
        async def overview(
            _: Annotated[None, rate_limit(RateLimitPolicy("overview", limit=5, window=60))],
        ):
            ...
    """

    async def _rate_limit_dependency(request: Request, limiter: RateLimiterDep) -> None:
        identity = (key_func or _default_identity)(request)
        metadata = await check_rate_limit(limiter, policy, f"{identity}:{request.url.path}")
        request.state.rate_limit = metadata

    return Depends(_rate_limit_dependency)
