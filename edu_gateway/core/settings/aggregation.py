"""Cross-service aggregation cache settings."""

from __future__ import annotations

from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ._sanitizers import sanitize_inline_numeric


class AggregationSettings(BaseSettings):
    """Settings for the composite-view aggregator.

    Environment variables use AGGREGATION_ prefix.
    Example: AGGREGATION_STATISTICS_TTL=120
    """

    cache_ttl: float = Field(
        default=60.0,
        ge=0,
        description="TTL in seconds for cached composite views",
    )

    cache_max_size: int = Field(
        default=5000,
        ge=1,
        description="Maximum composite views kept in memory",
    )

    statistics_ttl: float = Field(
        default=300.0,
        ge=0,
        description="TTL in seconds for the platform statistics overview",
    )

    @field_validator("cache_ttl", "cache_max_size", "statistics_ttl", mode="before")
    @classmethod
    def _normalize_numbers(cls, value: Any) -> Any:
        return sanitize_inline_numeric(value)

    model_config = SettingsConfigDict(
        env_prefix="AGGREGATION_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
        env_ignore_empty=True,
    )
