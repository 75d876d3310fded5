"""Tests for the full middleware stack installed by configure_middleware."""

from __future__ import annotations

from collections.abc import AsyncGenerator

import pytest
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from httpx import ASGITransport, AsyncClient

from edu_gateway.app.middleware import configure_middleware
from edu_gateway.core.settings import RateLimitSettings
from edu_gateway.infra.ratelimit import SlidingWindowRateLimiter


@pytest.fixture
async def client(fake_redis, clock) -> AsyncGenerator[AsyncClient]:
    app = FastAPI()

    @app.get("/api/courses")
    async def courses():
        return []

    @app.post("/api/users/password")
    async def change_password():
        return {"changed": True}

    @app.post("/api/auth/login")
    async def login():
        return JSONResponse({"error": {"message": "Invalid credentials"}}, status_code=401)

    configure_middleware(app, RateLimitSettings(enabled=True))
    app.state.rate_limiter = SlidingWindowRateLimiter(fake_redis, clock=clock)

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def test_api_traffic_does_not_consume_strict_budget(client: AsyncClient) -> None:
    for _ in range(10):
        assert (await client.get("/api/courses")).status_code == 200

    response = await client.post("/api/users/password")

    assert response.status_code == 200
    assert response.headers["RateLimit-Limit"] == "10"
    assert response.headers["RateLimit-Remaining"] == "9"


async def test_each_policy_keeps_its_own_window(client: AsyncClient, fake_redis) -> None:
    await client.get("/api/courses")
    await client.post("/api/users/password")

    assert len(fake_redis.zsets["rate_limit:ip:127.0.0.1:api"]) == 2
    assert len(fake_redis.zsets["rate_limit:ip:127.0.0.1:strict"]) == 1
    assert "rate_limit:ip:127.0.0.1" not in fake_redis.zsets


async def test_strict_policy_rejects_after_its_own_budget(client: AsyncClient) -> None:
    for _ in range(10):
        assert (await client.post("/api/users/password")).status_code == 200

    response = await client.post("/api/users/password")

    assert response.status_code == 429
    assert response.json()["policy"] == "strict"
    assert (await client.get("/api/courses")).status_code == 200


async def test_failed_logins_count_only_against_auth(client: AsyncClient, fake_redis) -> None:
    for _ in range(5):
        response = await client.post("/api/auth/login", json={"email": "ada@example.com"})
        assert response.status_code == 401

    response = await client.post("/api/auth/login", json={"email": "ada@example.com"})

    assert response.status_code == 429
    assert response.json()["policy"] == "auth"
    assert len(fake_redis.zsets["rate_limit:auth:ada@example.com:127.0.0.1:auth"]) == 5
    assert "rate_limit:ip:127.0.0.1:strict" not in fake_redis.zsets
