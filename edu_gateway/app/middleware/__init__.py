"""Middleware configuration for the gateway application.

Order, outermost first:
- Request ID: binds ``request_id`` to the logging context
- Rate limiting (auth): failed login/register attempts per email and address
- Rate limiting (strict): sensitive operations
- Rate limiting (api): every non-exempt path

Starlette runs the last added middleware first, so they are added in reverse.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import TYPE_CHECKING

from edu_gateway.app.middleware.rate_limit import (
    RateLimitMiddleware,
    auth_attempt_key,
    client_ip,
    rate_limit_headers,
    user_or_ip_key,
)
from edu_gateway.app.middleware.request_id import RequestIDMiddleware
from edu_gateway.infra.ratelimit.policies import policies_from_settings

if TYPE_CHECKING:
    from fastapi import FastAPI

    from edu_gateway.core.settings import RateLimitSettings

logger = logging.getLogger(__name__)

__all__ = [
    "RateLimitMiddleware",
    "RequestIDMiddleware",
    "auth_attempt_key",
    "client_ip",
    "configure_middleware",
    "rate_limit_headers",
    "user_or_ip_key",
]


def configure_middleware(app: FastAPI, rate_limit_settings: RateLimitSettings) -> None:
    """Install the middleware stack on ``app``.

    When rate limiting is disabled the limiters are still installed but pass
    every request through.
    """
    policies = policies_from_settings(rate_limit_settings)
    common = {
        "exempt_paths": rate_limit_settings.exempt_paths,
        "enabled": rate_limit_settings.enabled,
        "standard_headers": rate_limit_settings.standard_headers,
        "legacy_headers": rate_limit_settings.legacy_headers,
    }

    trusted = rate_limit_settings.trust_forwarded_for
    user_key = partial(user_or_ip_key, trust_forwarded_for=trusted)

    app.add_middleware(
        RateLimitMiddleware,
        policy=policies["api"],
        key_func=user_key,
        **common,
    )
    app.add_middleware(
        RateLimitMiddleware,
        policy=policies["strict"],
        path_prefixes=rate_limit_settings.strict_paths,
        key_func=user_key,
        **common,
    )
    app.add_middleware(
        RateLimitMiddleware,
        policy=policies["auth"],
        path_prefixes=rate_limit_settings.auth_paths,
        key_func=partial(auth_attempt_key, trust_forwarded_for=trusted),
        **common,
    )
    app.add_middleware(RequestIDMiddleware)

    logger.info(
        "Middleware configured",
        extra={
            "rate_limiting_enabled": rate_limit_settings.enabled,
            "policies": sorted(policies),
        },
    )
