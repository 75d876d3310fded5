"""Named rate limit policies and the identities they are keyed on."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from edu_gateway.core.settings.ratelimit import RateLimitSettings

DEFAULT_MESSAGE = "Too many requests, please try again later."


@dataclass(frozen=True, slots=True)
class RateLimitPolicy:
    """One sliding-window budget.

    Attributes:
        name: Policy name, also used as a metrics label.
        limit: Requests allowed per window.
        window: Window length in seconds.
        skip_successful_requests: Count only attempts that end with status >= 400.
        message: Detail returned with the 429 response.
    """

    name: str
    limit: int
    window: float
    skip_successful_requests: bool = False
    message: str = DEFAULT_MESSAGE

    def __post_init__(self) -> None:
        if self.limit < 1:
            msg = "limit must be at least 1"
            raise ValueError(msg)
        if self.window <= 0:
            msg = "window must be positive"
            raise ValueError(msg)

    def scoped_key(self, identity: str) -> str:
        """``<identity>:<policy>``, so each policy counts in its own window."""
        return f"{identity}:{self.name}"


def policies_from_settings(settings: RateLimitSettings) -> dict[str, RateLimitPolicy]:
    """Build the ``api``, ``strict`` and ``auth`` policies."""
    return {
        "api": RateLimitPolicy(
            name="api",
            limit=settings.api_max_requests,
            window=settings.api_window_seconds,
        ),
        "strict": RateLimitPolicy(
            name="strict",
            limit=settings.strict_max_requests,
            window=settings.strict_window_seconds,
            message="Too many requests for this operation, please try again later.",
        ),
        "auth": RateLimitPolicy(
            name="auth",
            limit=settings.auth_max_requests,
            window=settings.auth_window_seconds,
            skip_successful_requests=settings.auth_skip_successful_requests,
            message="Too many authentication attempts, please try again later.",
        ),
    }


def ip_identity(client_ip: str) -> str:
    return f"ip:{client_ip}"


def user_or_ip_identity(user_id: str | None, client_ip: str) -> str:
    """``user:<id>`` for authenticated callers, ``ip:<addr>`` otherwise."""
    if user_id:
        return f"user:{user_id}"
    return ip_identity(client_ip)


def auth_identity(email: str | None, client_ip: str) -> str:
    """``auth:<email>:<ip>``; the email is lower-cased and may be empty."""
    normalized = (email or "").strip().lower()
    return f"auth:{normalized}:{client_ip}"


__all__ = [
    "DEFAULT_MESSAGE",
    "RateLimitPolicy",
    "auth_identity",
    "ip_identity",
    "policies_from_settings",
    "user_or_ip_identity",
]
