"""Tests for RateLimitMiddleware behavior."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

from edu_gateway.app.middleware import (
    RateLimitMiddleware,
    auth_attempt_key,
    rate_limit_headers,
)
from edu_gateway.infra.ratelimit import RateLimitPolicy, SlidingWindowRateLimiter


def build_app(limiter: Any, **middleware_kwargs: Any) -> FastAPI:
    app = FastAPI()

    @app.get("/api/ping")
    async def ping():
        return {"status": "ok"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/auth/login")
    async def login(request: Request):
        payload = await request.json()
        if payload.get("password") != "secret":
            return JSONResponse({"error": {"message": "Invalid credentials"}}, status_code=401)
        return {"token": "t"}

    app.add_middleware(RateLimitMiddleware, limiter=limiter, **middleware_kwargs)
    return app


@pytest.fixture
def limiter(fake_redis, clock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(fake_redis, clock=clock)


@pytest.fixture
async def client(limiter) -> AsyncGenerator[AsyncClient]:
    app = build_app(
        limiter,
        policy=RateLimitPolicy(name="api", limit=2, window=60),
        exempt_paths=["/health"],
        legacy_headers=True,
    )
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


class TestHeaders:
    async def test_standard_and_legacy_headers(self, client: AsyncClient, clock) -> None:
        response = await client.get("/api/ping")

        assert response.status_code == 200
        assert response.headers["RateLimit-Limit"] == "2"
        assert response.headers["RateLimit-Remaining"] == "1"
        assert response.headers["RateLimit-Reset"] == "60"
        assert response.headers["RateLimit-Policy"] == "2;w=60"
        assert response.headers["X-RateLimit-Limit"] == "2"
        assert response.headers["X-RateLimit-Reset"] == str(int(clock.now) + 60)

    def test_header_flags(self) -> None:
        metadata = {"limit": 5, "remaining": 4, "reset": 100, "reset_after": 10, "policy": "5;w=60"}

        assert set(rate_limit_headers(metadata, standard=False, legacy=True)) == {
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
            "X-RateLimit-Reset",
        }
        assert rate_limit_headers(metadata, standard=False, legacy=False) == {}


class TestRejection:
    async def test_third_request_gets_problem_json(self, client: AsyncClient) -> None:
        await client.get("/api/ping")
        await client.get("/api/ping")

        response = await client.get("/api/ping")

        assert response.status_code == 429
        assert response.headers["content-type"] == "application/problem+json"
        assert response.headers["Retry-After"] == "60"
        assert response.headers["RateLimit-Remaining"] == "0"
        body = response.json()
        assert body["status"] == 429
        assert body["type"] == "rate-limit-exceeded"
        assert body["policy"] == "api"
        assert body["retry_after"] == 60

    async def test_exempt_paths_are_never_limited(self, client: AsyncClient) -> None:
        for _ in range(5):
            response = await client.get("/health")
            assert response.status_code == 200
            assert "RateLimit-Limit" not in response.headers


class TestScoping:
    async def test_path_prefixes_limit_only_matching_paths(self, limiter) -> None:
        app = build_app(
            limiter,
            policy=RateLimitPolicy(name="strict", limit=1, window=60),
            path_prefixes=["/api/auth"],
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(3):
                assert (await client.get("/api/ping")).status_code == 200

    async def test_disabled_passes_through(self, limiter) -> None:
        app = build_app(
            limiter,
            policy=RateLimitPolicy(name="api", limit=1, window=60),
            enabled=False,
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(3):
                response = await client.get("/api/ping")
                assert response.status_code == 200
                assert "RateLimit-Limit" not in response.headers

    async def test_user_identity_from_state(self, limiter, fake_redis) -> None:
        app = build_app(limiter, policy=RateLimitPolicy(name="api", limit=5, window=60))

        @app.middleware("http")
        async def authenticate(request: Request, call_next):
            request.state.user_id = "42"
            return await call_next(request)

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/api/ping")

        assert "rate_limit:user:42:api" in fake_redis.zsets

    async def test_forwarded_for_first_hop_is_the_identity(self, limiter, fake_redis) -> None:
        app = build_app(limiter, policy=RateLimitPolicy(name="api", limit=5, window=60))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/api/ping", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        assert "rate_limit:ip:203.0.113.7:api" in fake_redis.zsets


class TestSkipSuccessfulRequests:
    @pytest.fixture
    async def auth_client(self, limiter) -> AsyncGenerator[AsyncClient]:
        app = build_app(
            limiter,
            policy=RateLimitPolicy(
                name="auth",
                limit=2,
                window=900,
                skip_successful_requests=True,
            ),
            path_prefixes=["/api/auth/login"],
            key_func=auth_attempt_key,
        )
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client

    async def test_only_failed_attempts_count(self, auth_client: AsyncClient, fake_redis) -> None:
        for _ in range(3):
            response = await auth_client.post(
                "/api/auth/login", json={"email": "Ada@Example.com", "password": "secret"}
            )
            assert response.status_code == 200

        key = "rate_limit:auth:ada@example.com:127.0.0.1:auth"
        assert not fake_redis.zsets.get(key)

        for _ in range(2):
            response = await auth_client.post(
                "/api/auth/login", json={"email": "ada@example.com", "password": "nope"}
            )
            assert response.status_code == 401
        assert len(fake_redis.zsets[key]) == 2

        response = await auth_client.post(
            "/api/auth/login", json={"email": "ada@example.com", "password": "secret"}
        )
        assert response.status_code == 429
        assert response.json()["policy"] == "auth"

    async def test_other_emails_are_independent(self, auth_client: AsyncClient) -> None:
        for _ in range(2):
            await auth_client.post("/api/auth/login", json={"email": "a@x.io", "password": "bad"})

        response = await auth_client.post(
            "/api/auth/login", json={"email": "b@x.io", "password": "secret"}
        )
        assert response.status_code == 200

    async def test_body_is_replayed_to_the_route(self, auth_client: AsyncClient) -> None:
        response = await auth_client.post(
            "/api/auth/login", json={"email": "a@x.io", "password": "secret"}
        )
        assert response.json() == {"token": "t"}


class TestFailOpen:
    async def test_redis_failure_allows_requests(self) -> None:
        redis = AsyncMock()
        redis.eval.side_effect = RedisConnectionError("Connection refused")
        app = build_app(
            SlidingWindowRateLimiter(redis),
            policy=RateLimitPolicy(name="api", limit=1, window=60),
        )

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(3):
                assert (await client.get("/api/ping")).status_code == 200

    async def test_missing_limiter_passes_through(self) -> None:
        app = build_app(None, policy=RateLimitPolicy(name="api", limit=1, window=60))

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            for _ in range(2):
                assert (await client.get("/api/ping")).status_code == 200

    async def test_limiter_from_app_state(self, limiter) -> None:
        app = build_app(None, policy=RateLimitPolicy(name="api", limit=1, window=60))
        app.state.rate_limiter = limiter

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            await client.get("/api/ping")
            assert (await client.get("/api/ping")).status_code == 429
