"""Tracks whether rate limiting is actually being enforced.

The limiter fails open when Redis is unreachable; this tracker turns those
silent passes into an observable DEGRADED status (logs and a gauge).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import UTC, datetime

from edu_gateway.infra.metrics.tracking import (
    track_rate_limiter_redis_error,
    track_rate_limiter_state_transition,
    update_rate_limiter_protection_status,
)
from edu_gateway.infra.ratelimit.status import (
    RateLimitProtectionState,
    RateLimitProtectionStatus,
)

logger = logging.getLogger(__name__)


def classify_redis_error(error: str) -> str:
    """Bucket an error message into 'timeout', 'connection' or 'other'."""
    error_lower = error.lower()
    if "timeout" in error_lower or "timed out" in error_lower:
        return "timeout"
    if "connect" in error_lower or "refused" in error_lower:
        return "connection"
    return "other"


class RateLimitStateTracker:
    """Thread-safe tracker for rate limit protection status.

    Example:
        >>> tracker = RateLimitStateTracker(failure_threshold=3)
        >>> tracker.record_failure("Connection refused")
        >>> tracker.get_state().status
        <RateLimitProtectionStatus.ACTIVE: 'active'>
    """

    def __init__(self, failure_threshold: int = 3) -> None:
        """Initialize the state tracker.

        Args:
            failure_threshold: Consecutive failures before ACTIVE becomes DEGRADED.
        """
        self._failure_threshold = failure_threshold
        self._lock = threading.Lock()
        self._state = RateLimitProtectionState(status=RateLimitProtectionStatus.ACTIVE)
        update_rate_limiter_protection_status(self._state.status.value)

    @property
    def status(self) -> RateLimitProtectionStatus:
        return self._state.status

    def get_state(self) -> RateLimitProtectionState:
        """Return a copy of the current protection state."""
        with self._lock:
            return replace(self._state)

    def record_success(self) -> None:
        """Record a Redis round trip that worked; DEGRADED recovers to ACTIVE."""
        with self._lock:
            self._state.consecutive_failures = 0
            self._state.last_error = None
            if self._state.status == RateLimitProtectionStatus.DEGRADED:
                self._transition(RateLimitProtectionStatus.ACTIVE)

    def record_failure(self, error: str) -> None:
        """Record a failed Redis round trip."""
        with self._lock:
            self._state.consecutive_failures += 1
            self._state.last_error = error
            if (
                self._state.status == RateLimitProtectionStatus.ACTIVE
                and self._state.consecutive_failures >= self._failure_threshold
            ):
                self._transition(RateLimitProtectionStatus.DEGRADED)
        track_rate_limiter_redis_error(classify_redis_error(error))

    def mark_disabled(self) -> None:
        """Mark rate limiting as disabled by configuration."""
        with self._lock:
            if self._state.status != RateLimitProtectionStatus.DISABLED:
                self._transition(RateLimitProtectionStatus.DISABLED)

    def _transition(self, to_status: RateLimitProtectionStatus) -> None:
        """Caller holds the lock."""
        from_status = self._state.status
        self._state.status = to_status
        self._state.since = datetime.now(UTC)

        track_rate_limiter_state_transition(from_status.value, to_status.value)
        update_rate_limiter_protection_status(to_status.value)

        log_extra = {
            "from_status": from_status.value,
            "to_status": to_status.value,
            "consecutive_failures": self._state.consecutive_failures,
            "last_error": self._state.last_error,
        }
        if to_status == RateLimitProtectionStatus.DEGRADED:
            logger.warning("Rate limit protection degraded, failing open", extra=log_extra)
        elif to_status == RateLimitProtectionStatus.ACTIVE:
            logger.info("Rate limit protection restored to active", extra=log_extra)
        else:
            logger.info("Rate limit protection disabled by configuration", extra=log_extra)


__all__ = [
    "RateLimitStateTracker",
    "classify_redis_error",
]
