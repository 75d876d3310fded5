"""Rate limiting settings."""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric, split_csv


class RateLimitSettings(BaseSettings):
    """Sliding-window rate limiting for inbound requests.

    Environment variables use RATE_LIMIT_ prefix.
    Example: RATE_LIMIT_API_MAX_REQUESTS=200, RATE_LIMIT_AUTH_PATHS=/api/auth/login,/api/auth/register
    """

    enabled: bool = Field(
        default=True,
        description="Enforce rate limits (False marks protection as disabled)",
    )

    standard_headers: bool = Field(
        default=True,
        description="Emit RateLimit-Limit/Remaining/Reset/Policy headers",
    )

    legacy_headers: bool = Field(
        default=True,
        description="Emit X-RateLimit-Limit/Remaining/Reset headers",
    )

    trust_forwarded_for: bool = Field(
        default=True,
        description="Take the client address from the first X-Forwarded-For hop",
    )

    # ──────────────────────────────────────────────────────────────
    # Policies
    # ──────────────────────────────────────────────────────────────

    api_window_seconds: float = Field(default=60.0, gt=0, description="General API window")
    api_max_requests: int = Field(default=100, ge=1, description="General API budget per window")

    strict_window_seconds: float = Field(default=60.0, gt=0, description="Sensitive-op window")
    strict_max_requests: int = Field(default=10, ge=1, description="Sensitive-op budget per window")

    auth_window_seconds: float = Field(default=900.0, gt=0, description="Login attempt window")
    auth_max_requests: int = Field(default=5, ge=1, description="Failed logins allowed per window")
    auth_skip_successful_requests: bool = Field(
        default=True,
        description="Only count failed (status >= 400) authentication attempts",
    )

    # ──────────────────────────────────────────────────────────────
    # Routing
    # ──────────────────────────────────────────────────────────────

    auth_paths: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/api/auth/login", "/api/auth/register"],
        description="Path prefixes protected by the auth policy",
    )

    strict_paths: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/api/auth/reset-password", "/api/users/password"],
        description="Path prefixes protected by the strict policy",
    )

    exempt_paths: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["/health", "/docs", "/redoc", "/openapi.json"],
        description="Path prefixes never rate limited",
    )

    # ──────────────────────────────────────────────────────────────
    # Protection status tracking
    # ──────────────────────────────────────────────────────────────

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive Redis failures before protection is reported DEGRADED",
    )

    @field_validator("auth_paths", "strict_paths", "exempt_paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Any) -> Any:
        return split_csv(value)

    @field_validator(
        "api_window_seconds",
        "api_max_requests",
        "strict_window_seconds",
        "strict_max_requests",
        "auth_window_seconds",
        "auth_max_requests",
        "failure_threshold",
        mode="before",
    )
    @classmethod
    def _normalize_numbers(cls, value: Any) -> Any:
        return sanitize_inline_numeric(value)

    model_config = SettingsConfigDict(
        env_prefix="RATE_LIMIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
