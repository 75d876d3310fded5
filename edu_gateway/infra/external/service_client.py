"""HTTP client for calls to one sibling service.

Composes an ``httpx.AsyncClient`` with an optional response cache for GETs
and an optional circuit breaker around every request.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Self

import httpx

from edu_gateway.core.exceptions import ServiceClientError
from edu_gateway.infra.cache.memory import MISSING, MemoryCache
from edu_gateway.infra.logging.context import get_log_context
from edu_gateway.infra.metrics.tracking import track_external_service_call
from edu_gateway.infra.resilience.circuit_breaker import CircuitBreaker

if TYPE_CHECKING:
    from collections.abc import Mapping

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
REQUEST_START_HEADER = "X-Request-Start"


@dataclass(frozen=True, slots=True)
class ServiceClientOptions:
    """How to reach and protect one remote service.

    Attributes:
        base_url: Root URL of the remote service.
        timeout: Transport timeout in seconds.
        cache: Cache GET responses in memory.
        cache_ttl: GET cache TTL in seconds.
        cache_max_size: Maximum cached GET responses.
        circuit_breaker: Guard requests with a circuit breaker.
        failure_threshold: Breaker failures before opening.
        success_threshold: Breaker half-open successes before closing.
        recovery_timeout: Seconds the breaker stays open.
        breaker_timeout: Per-call time limit enforced by the breaker.
        caller_name: Sent as ``X-Service-Name``.
        caller_version: Sent as ``X-Service-Version``.
    """

    base_url: str
    timeout: float = 5.0
    cache: bool = False
    cache_ttl: float = 60.0
    cache_max_size: int = 1000
    circuit_breaker: bool = False
    failure_threshold: int = 5
    success_threshold: int | None = None
    recovery_timeout: float = 30.0
    breaker_timeout: float | None = 3.0
    caller_name: str = "unknown"
    caller_version: str = "1.0.0"


def build_cache_key(path: str, params: Mapping[str, Any] | None = None) -> str:
    """``GET:<path>:<params as JSON with sorted keys>``.

    Example:
            build_cache_key("/articles/recent", {"limit": 5})
        'GET:/articles/recent:{"limit": 5}'
    """
    return f"GET:{path}:{json.dumps(dict(params or {}), sort_keys=True, default=str)}"


def unwrap_envelope(body: Any) -> Any:
    """Return ``body["data"]`` for ``{"success": ..., "data": ...}`` envelopes."""
    if isinstance(body, dict) and "success" in body and "data" in body:
        return body["data"]
    return body


def _error_message(exc: httpx.HTTPStatusError) -> str:
    """Prefer ``error.message`` from the remote error envelope."""
    try:
        body = exc.response.json()
    except ValueError:
        return str(exc)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return str(exc)


class ServiceClient:
    """Resilient client for one remote service.

    Every request carries ``X-Request-ID`` (the current request's id when
    one is in the logging context) and ``X-Request-Start``. Non-2xx answers
    raise :class:`ServiceClientError`; transport failures, timeouts and
    open-circuit rejections propagate unchanged.

    Example:
            client = ServiceClient(
            "course-service",
            ServiceClientOptions(base_url="http://localhost:3004", cache=True, cache_ttl=600),
        )
        course = await client.get("/courses/c1")
        await client.close()
    """

    def __init__(
        self,
        service_name: str,
        options: ServiceClientOptions,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize service client.

        Args:
            service_name: Logical name of the remote service (``course-service``).
            options: Connection, cache and breaker options.
            transport: Optional httpx transport (tests pass ``httpx.MockTransport``).
        """
        self.service_name = service_name
        self.options = options
        self.cache: MemoryCache | None = (
            MemoryCache(
                default_ttl=options.cache_ttl,
                max_size=options.cache_max_size,
                name=service_name,
            )
            if options.cache
            else None
        )
        self.breaker: CircuitBreaker | None = (
            CircuitBreaker(
                name=service_name,
                failure_threshold=options.failure_threshold,
                success_threshold=options.success_threshold,
                recovery_timeout=options.recovery_timeout,
                timeout=options.breaker_timeout,
            )
            if options.circuit_breaker
            else None
        )
        self._client = httpx.AsyncClient(
            base_url=options.base_url,
            timeout=httpx.Timeout(options.timeout),
            headers={
                "X-Service-Name": options.caller_name,
                "X-Service-Version": options.caller_version,
            },
            limits=httpx.Limits(
                max_keepalive_connections=20,
                max_connections=100,
            ),
            event_hooks={
                "request": [self._stamp_request],
                "response": [self._log_response],
            },
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self.options.base_url

    async def _stamp_request(self, request: httpx.Request) -> None:
        if REQUEST_ID_HEADER not in request.headers:
            request_id = get_log_context().get("request_id") or str(uuid.uuid4())
            request.headers[REQUEST_ID_HEADER] = str(request_id)
        request.headers[REQUEST_START_HEADER] = str(int(time.time() * 1000))

    async def _log_response(self, response: httpx.Response) -> None:
        request = response.request
        started = request.headers.get(REQUEST_START_HEADER)
        duration_ms = int(time.time() * 1000) - int(started) if started else None
        extra = {
            "upstream": self.service_name,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "request_id": request.headers.get(REQUEST_ID_HEADER),
        }
        if response.is_error:
            logger.error(f"{self.service_name} request failed", extra=extra)
        else:
            logger.debug(f"{self.service_name} request completed", extra=extra)

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json_body: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        async def execute() -> httpx.Response:
            async with track_external_service_call(self.service_name, method):
                response = await self._client.request(
                    method,
                    path,
                    params=params,
                    json=json_body,
                    headers=headers,
                )
                response.raise_for_status()
                return response

        try:
            if self.breaker is not None:
                response = await self.breaker.call(execute)
            else:
                response = await execute()
        except httpx.HTTPStatusError as exc:
            raise ServiceClientError(
                self.service_name,
                exc.response.status_code,
                _error_message(exc),
            ) from exc
        except httpx.TransportError as exc:
            logger.error(
                f"{self.service_name} request failed",
                extra={
                    "upstream": self.service_name,
                    "method": method,
                    "path": path,
                    "error": str(exc) or type(exc).__name__,
                },
            )
            raise

        return self._decode(response)

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            body = response.json()
        except ValueError:
            return response.text
        return unwrap_envelope(body)

    async def get(
        self,
        path: str,
        params: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        """GET ``path``, answering from the cache when possible.

        Only successful responses are cached; errors are never cached.
        """
        cache_key = build_cache_key(path, params)
        if self.cache is not None:
            cached = self.cache.get(cache_key, MISSING)
            if cached is not MISSING:
                return cached

        result = await self._send("GET", path, params=params, headers=headers)

        if self.cache is not None:
            self.cache.set(cache_key, result)
        return result

    async def post(
        self,
        path: str,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return await self._send("POST", path, json_body=json, headers=headers)

    async def put(
        self,
        path: str,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return await self._send("PUT", path, json_body=json, headers=headers)

    async def delete(
        self,
        path: str,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        return await self._send("DELETE", path, headers=headers)

    def invalidate_cache(self, pattern: str | None = None) -> int:
        """Drop cached GET responses matching ``pattern``, or all of them.

        Returns:
            Number of entries removed.
        """
        if self.cache is None:
            return 0
        if pattern is None:
            removed = self.cache.size()
            self.cache.clear()
            return removed
        return self.cache.delete_pattern(pattern)

    async def close(self) -> None:
        """Close the HTTP client and release connections."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()
