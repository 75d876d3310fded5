"""Rate limit protection status types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class RateLimitProtectionStatus(StrEnum):
    """Status of rate limiting protection.

    Values:
        ACTIVE: Redis answers, limits are enforced
        DEGRADED: Redis is failing, requests are let through (fail open)
        DISABLED: Rate limiting is turned off by configuration
    """

    ACTIVE = "active"
    DEGRADED = "degraded"
    DISABLED = "disabled"


@dataclass
class RateLimitProtectionState:
    """Snapshot of rate limit protection health."""

    status: RateLimitProtectionStatus
    since: datetime = field(default_factory=lambda: datetime.now(UTC))
    consecutive_failures: int = 0
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "since": self.since.isoformat(),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


__all__ = [
    "RateLimitProtectionState",
    "RateLimitProtectionStatus",
]
