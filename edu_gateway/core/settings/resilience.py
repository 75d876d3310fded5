"""Circuit breaker settings for outbound service calls."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric


class CircuitBreakerSettings(BaseSettings):
    """Circuit breaker defaults applied to every service client.

    Environment variables use CIRCUIT_BREAKER_ prefix.
    Example: CIRCUIT_BREAKER_FAILURE_THRESHOLD=5
    """

    enabled: bool = Field(
        default=True,
        description="Wrap every service client in a circuit breaker",
    )

    failure_threshold: int = Field(
        default=5,
        ge=1,
        le=1000,
        description="Consecutive failures before the circuit opens",
    )

    success_threshold: int | None = Field(
        default=None,
        ge=1,
        le=1000,
        description="Half-open successes needed to close (defaults to failure_threshold)",
    )

    timeout: float | None = Field(
        default=3.0,
        gt=0,
        le=120.0,
        description="Per-call operation timeout in seconds (None disables)",
    )

    recovery_timeout: float = Field(
        default=30.0,
        gt=0,
        le=3600.0,
        description="Seconds the circuit stays open before allowing a trial call",
    )

    @field_validator(
        "failure_threshold", "success_threshold", "timeout", "recovery_timeout", mode="before"
    )
    @classmethod
    def _normalize_numbers(cls, value: Any) -> Any:
        return sanitize_inline_numeric(value)

    def breaker_kwargs(self) -> dict[str, Any]:
        """Return kwargs for ``CircuitBreaker(name=..., **kwargs)``."""
        return {
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "recovery_timeout": self.recovery_timeout,
            "timeout": self.timeout,
        }

    model_config = SettingsConfigDict(
        env_prefix="CIRCUIT_BREAKER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
