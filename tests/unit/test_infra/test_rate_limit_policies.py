"""Tests for rate limit policies, identities and protection tracking."""

from __future__ import annotations

import pytest

from edu_gateway.core.settings import RateLimitSettings
from edu_gateway.infra.ratelimit import (
    RateLimitPolicy,
    RateLimitProtectionStatus,
    RateLimitStateTracker,
    auth_identity,
    policies_from_settings,
    user_or_ip_identity,
)
from edu_gateway.infra.ratelimit.tracker import classify_redis_error


def test_default_policy_table() -> None:
    policies = policies_from_settings(RateLimitSettings())

    assert (policies["auth"].limit, policies["auth"].window) == (5, 900.0)
    assert policies["auth"].skip_successful_requests is True
    assert (policies["api"].limit, policies["api"].window) == (100, 60.0)
    assert policies["api"].skip_successful_requests is False
    assert (policies["strict"].limit, policies["strict"].window) == (10, 60.0)


def test_policy_validation() -> None:
    with pytest.raises(ValueError, match="limit"):
        RateLimitPolicy(name="bad", limit=0, window=60)
    with pytest.raises(ValueError, match="window"):
        RateLimitPolicy(name="bad", limit=1, window=0)


def test_scoped_key_separates_policies() -> None:
    api = RateLimitPolicy(name="api", limit=100, window=60)
    strict = RateLimitPolicy(name="strict", limit=10, window=60)

    assert api.scoped_key("ip:10.0.0.1") == "ip:10.0.0.1:api"
    assert strict.scoped_key("ip:10.0.0.1") != api.scoped_key("ip:10.0.0.1")


def test_identities() -> None:
    assert user_or_ip_identity("42", "10.0.0.1") == "user:42"
    assert user_or_ip_identity(None, "10.0.0.1") == "ip:10.0.0.1"
    assert auth_identity(" Ada@Example.com ", "10.0.0.1") == "auth:ada@example.com:10.0.0.1"
    assert auth_identity(None, "10.0.0.1") == "auth::10.0.0.1"


class TestTracker:
    def test_degrades_after_threshold(self) -> None:
        tracker = RateLimitStateTracker(failure_threshold=3)
        tracker.record_failure("Connection refused")
        tracker.record_failure("Connection refused")
        assert tracker.status == RateLimitProtectionStatus.ACTIVE

        tracker.record_failure("Connection refused")
        state = tracker.get_state()
        assert state.status == RateLimitProtectionStatus.DEGRADED
        assert state.consecutive_failures == 3
        assert state.last_error == "Connection refused"

    def test_success_recovers(self) -> None:
        tracker = RateLimitStateTracker(failure_threshold=1)
        tracker.record_failure("boom")
        tracker.record_success()

        assert tracker.status == RateLimitProtectionStatus.ACTIVE
        assert tracker.get_state().consecutive_failures == 0

    def test_disabled_is_sticky(self) -> None:
        tracker = RateLimitStateTracker()
        tracker.mark_disabled()
        tracker.record_success()

        assert tracker.status == RateLimitProtectionStatus.DISABLED
        assert tracker.get_state().to_dict()["status"] == "disabled"


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Timeout reading from socket", "timeout"),
        ("Error 111 connecting to localhost:6379. Connection refused.", "connection"),
        ("WRONGTYPE Operation", "other"),
    ],
)
def test_classify_redis_error(message: str, expected: str) -> None:
    assert classify_redis_error(message) == expected
