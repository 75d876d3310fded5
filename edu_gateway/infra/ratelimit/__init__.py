"""Rate limiting infrastructure."""

from __future__ import annotations

from edu_gateway.infra.ratelimit.limiter import SlidingWindowRateLimiter, check_rate_limit
from edu_gateway.infra.ratelimit.policies import (
    RateLimitPolicy,
    auth_identity,
    ip_identity,
    policies_from_settings,
    user_or_ip_identity,
)
from edu_gateway.infra.ratelimit.status import (
    RateLimitProtectionState,
    RateLimitProtectionStatus,
)
from edu_gateway.infra.ratelimit.tracker import RateLimitStateTracker

__all__ = [
    "RateLimitPolicy",
    "RateLimitProtectionState",
    "RateLimitProtectionStatus",
    "RateLimitStateTracker",
    "SlidingWindowRateLimiter",
    "auth_identity",
    "check_rate_limit",
    "ip_identity",
    "policies_from_settings",
    "user_or_ip_identity",
]
