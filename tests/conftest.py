"""Pytest configuration and shared fixtures.

Organization:
    - Environment: settings that keep tests off real infrastructure
    - Redis: an in-memory sorted-set double understanding the limiter scripts
    - Sibling services: an httpx MockTransport routing by host and path
"""

from __future__ import annotations

import json
import os
from collections.abc import Iterator
from typing import Any

import httpx
import pytest

from edu_gateway.core.settings import clear_all_settings_caches
from edu_gateway.infra.ratelimit.limiter import ACQUIRE_SCRIPT, PEEK_SCRIPT, RECORD_SCRIPT

# Ensure tests run without external infrastructure
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SERVICE_CACHE_SWEEP_INTERVAL", "0")
os.environ.setdefault("LOG_CONSOLE_ENABLED", "false")


@pytest.fixture(autouse=True)
def _fresh_settings() -> Iterator[None]:
    """Each test sees settings built from the current environment."""
    clear_all_settings_caches()
    yield
    clear_all_settings_caches()


# ============================================================================
# Redis
# ============================================================================


class SortedSetRedis:
    """In-memory stand-in for the Redis calls the rate limiter makes.

    ``eval`` runs the Python equivalent of each limiter script. Expiry set by
    PEXPIRE is recorded but not enforced; pruning by score does the work.
    """

    def __init__(self) -> None:
        self.zsets: dict[str, dict[str, int]] = {}
        self.expiry_ms: dict[str, int] = {}
        self.eval_calls = 0

    def _prune(self, key: str, window: int, now: int) -> dict[str, int]:
        members = self.zsets.setdefault(key, {})
        for member, score in list(members.items()):
            if score < now - window:
                del members[member]
        return members

    @staticmethod
    def _reset_at(members: dict[str, int], window: int, now: int) -> int:
        return min(members.values()) + window if members else now + window

    async def eval(self, script: str, numkeys: int, key: str, *args: Any) -> Any:
        self.eval_calls += 1
        if script == ACQUIRE_SCRIPT:
            limit, window, now, member = int(args[0]), int(args[1]), int(args[2]), args[3]
            members = self._prune(key, window, now)
            count = len(members)
            if count >= limit:
                return [0, count, self._reset_at(members, window, now)]
            members[member] = now
            self.expiry_ms[key] = window
            return [1, count, self._reset_at(members, window, now)]
        if script == PEEK_SCRIPT:
            limit, window, now = int(args[0]), int(args[1]), int(args[2])
            members = self._prune(key, window, now)
            count = len(members)
            return [0 if count >= limit else 1, count, self._reset_at(members, window, now)]
        if script == RECORD_SCRIPT:
            window, now, member = int(args[0]), int(args[1]), args[2]
            members = self._prune(key, window, now)
            members[member] = now
            self.expiry_ms[key] = window
            return len(members)
        msg = "unknown script"
        raise AssertionError(msg)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.zsets.pop(key, None) is not None:
                removed += 1
        return removed


@pytest.fixture
def fake_redis() -> SortedSetRedis:
    return SortedSetRedis()


class ManualClock:
    """Wall clock in epoch seconds that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


# ============================================================================
# Sibling services
# ============================================================================


class FakePlatform:
    """Routes ``(host, METHOD path)`` to canned JSON and records every request.

    Example:
        platform.route("users", "GET", "/users/u1", {"id": "u1"})
        platform.route("courses", "GET", "/courses/c1", status=503, body={"error": {...}})
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str, str], tuple[int, Any]] = {}
        self.requests: list[httpx.Request] = []

    def route(
        self,
        host: str,
        method: str,
        path: str,
        body: Any = None,
        *,
        status: int = 200,
        envelope: bool = True,
    ) -> None:
        payload = {"success": status < 400, "data": body} if envelope and status < 400 else body
        self.routes[(host, method, path)] = (status, payload)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = (request.url.host, request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(
                404,
                json={"error": {"message": f"No route {request.url.path}", "statusCode": 404}},
            )
        status, payload = self.routes[key]
        if payload is None:
            return httpx.Response(status)
        return httpx.Response(status, content=json.dumps(payload).encode(), headers={
            "content-type": "application/json",
        })

    def calls(self, host: str | None = None, path: str | None = None) -> int:
        return sum(
            1
            for request in self.requests
            if (host is None or request.url.host == host)
            and (path is None or request.url.path == path)
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()

