"""Sibling service endpoints and client-side caching settings."""

from __future__ import annotations

from typing import Any

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric

PLATFORM_SERVICES: tuple[str, ...] = (
    "user",
    "course",
    "auth",
    "enrollment",
    "news",
    "planning",
    "statistics",
)


def _default_cache_ttls() -> dict[str, float | None]:
    return {
        "user": 300.0,
        "course": 600.0,
        "auth": None,
        "enrollment": 180.0,
        "news": 600.0,
        "planning": 300.0,
        "statistics": 600.0,
    }


class ServiceSettings(BaseSettings):
    """Settings for outbound calls to the other platform services.

    Environment variables use SERVICE_ prefix.
    Example: SERVICE_COURSE_URL=http://course-service:3004

    ``cache_ttls`` maps a short service name to the GET cache TTL in seconds.
    ``null`` disables caching for that service (auth is never cached).
    Example: SERVICE_CACHE_TTLS='{"news": 120}'
    """

    # ──────────────────────────────────────────────────────────────
    # Identity of the calling service
    # ──────────────────────────────────────────────────────────────

    name: str = Field(
        default="edu-gateway",
        description="Sent to siblings as X-Service-Name",
    )

    version: str = Field(
        default="1.0.0",
        description="Sent to siblings as X-Service-Version",
    )

    host: str = Field(default="0.0.0.0", min_length=1, description="Server bind host")

    port: int = Field(default=8000, ge=1, le=65535, description="Server port")

    request_timeout: float = Field(
        default=5.0,
        gt=0,
        le=120.0,
        description="httpx transport timeout per request, in seconds",
    )

    # ──────────────────────────────────────────────────────────────
    # Base URLs
    # ──────────────────────────────────────────────────────────────

    user_url: str = Field(default="http://localhost:3002")
    course_url: str = Field(default="http://localhost:3004")
    auth_url: str = Field(default="http://localhost:3001")
    enrollment_url: str = Field(default="http://localhost:3007")
    news_url: str = Field(default="http://localhost:3003")
    planning_url: str = Field(default="http://localhost:3005")
    statistics_url: str = Field(default="http://localhost:3006")

    # ──────────────────────────────────────────────────────────────
    # Client caches
    # ──────────────────────────────────────────────────────────────

    cache_ttls: dict[str, float | None] = Field(
        default_factory=_default_cache_ttls,
        description="Per-service GET cache TTL in seconds; null disables caching",
    )

    cache_max_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum cached responses per client",
    )

    cache_sweep_interval: float = Field(
        default=60.0,
        ge=0,
        description="Seconds between expired-entry sweeps (0 disables the sweep task)",
    )

    @field_validator("cache_ttls", mode="after")
    @classmethod
    def _merge_default_ttls(cls, value: dict[str, float | None]) -> dict[str, float | None]:
        """Overrides only replace the services they name."""
        merged = _default_cache_ttls()
        merged.update(value)
        merged["auth"] = None
        return merged

    @field_validator(
        "port", "request_timeout", "cache_max_size", "cache_sweep_interval", mode="before"
    )
    @classmethod
    def _normalize_numbers(cls, value: Any) -> Any:
        return sanitize_inline_numeric(value)

    @computed_field
    @property
    def base_urls(self) -> dict[str, str]:
        """Short service name to base URL."""
        return {name: getattr(self, f"{name}_url") for name in PLATFORM_SERVICES}

    @staticmethod
    def service_name_for(short_name: str) -> str:
        """Map ``course`` to the logical service name ``course-service``."""
        return f"{short_name}-service"

    def cache_ttl_for(self, short_name: str) -> float | None:
        """GET cache TTL for a service, or None when responses are not cached."""
        return self.cache_ttls.get(short_name)

    model_config = SettingsConfigDict(
        env_prefix="SERVICE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        populate_by_name=True,
        extra="ignore",
        env_ignore_empty=True,
    )
