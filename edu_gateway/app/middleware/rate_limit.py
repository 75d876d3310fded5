"""Policy-scoped sliding-window rate limiting middleware."""

from __future__ import annotations

import inspect
import json
import logging
from typing import TYPE_CHECKING
from urllib.parse import parse_qs

from starlette.datastructures import MutableHeaders
from starlette.requests import Request

from edu_gateway.app.exception_handlers import problem_response
from edu_gateway.core.exceptions import RateLimitError
from edu_gateway.infra.ratelimit.policies import auth_identity, user_or_ip_identity

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence
    from typing import Any

    from starlette.types import ASGIApp, Message, Receive, Scope, Send

    from edu_gateway.infra.ratelimit.limiter import SlidingWindowRateLimiter
    from edu_gateway.infra.ratelimit.policies import RateLimitPolicy

    KeyFunc = Callable[[Request], str | Awaitable[str]]

logger = logging.getLogger(__name__)


def client_ip(request: Request, *, trust_forwarded_for: bool = True) -> str:
    """Client address, from the first ``X-Forwarded-For`` hop when trusted."""
    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def user_or_ip_key(request: Request, *, trust_forwarded_for: bool = True) -> str:
    """``user:<id>`` when an upstream layer set ``request.state.user_id``."""
    return user_or_ip_identity(
        getattr(request.state, "user_id", None),
        client_ip(request, trust_forwarded_for=trust_forwarded_for),
    )


async def auth_attempt_key(request: Request, *, trust_forwarded_for: bool = True) -> str:
    """``auth:<email>:<ip>`` with the email read from a JSON or urlencoded body."""
    email: Any = None
    content_type = request.headers.get("content-type", "")
    body = await request.body()
    try:
        if content_type.startswith("application/json"):
            payload = json.loads(body or b"{}")
            if isinstance(payload, dict):
                email = payload.get("email")
        elif content_type.startswith("application/x-www-form-urlencoded"):
            email = parse_qs(body.decode()).get("email", [None])[0]
    except (ValueError, UnicodeDecodeError):
        email = None
    return auth_identity(
        email if isinstance(email, str) else None,
        client_ip(request, trust_forwarded_for=trust_forwarded_for),
    )


def rate_limit_headers(
    metadata: dict[str, Any],
    *,
    standard: bool = True,
    legacy: bool = False,
) -> dict[str, str]:
    """Response headers for limiter metadata.

    Standard headers report the reset as seconds from now; legacy headers as
    epoch seconds.
    """
    headers: dict[str, str] = {}
    if standard:
        headers["RateLimit-Limit"] = str(metadata["limit"])
        headers["RateLimit-Remaining"] = str(metadata["remaining"])
        headers["RateLimit-Reset"] = str(metadata["reset_after"])
        headers["RateLimit-Policy"] = str(metadata["policy"])
    if legacy:
        headers["X-RateLimit-Limit"] = str(metadata["limit"])
        headers["X-RateLimit-Remaining"] = str(metadata["remaining"])
        headers["X-RateLimit-Reset"] = str(metadata["reset"])
    return headers


def _replaying_receive(buffered: list[Message], receive: Receive) -> Receive:
    async def replay() -> Message:
        if buffered:
            return buffered.pop(0)
        return await receive()

    return replay


class RateLimitMiddleware:
    """Pure ASGI middleware enforcing one rate limit policy on a set of paths.

    With ``policy.skip_successful_requests`` the window is only checked before
    the request; the attempt is counted once the response status is known to
    be ``>= 400``. Redis failures let requests through (see the limiter).

    The limiter is taken from ``app.state.rate_limiter`` when not passed,
    so the middleware can be registered before the lifespan creates it.

    Example:
            app.add_middleware(
            RateLimitMiddleware,
            policy=policies["auth"],
            path_prefixes=["/api/auth/login"],
            key_func=auth_attempt_key,
        )
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        policy: RateLimitPolicy,
        limiter: SlidingWindowRateLimiter | None = None,
        path_prefixes: Sequence[str] | None = None,
        exempt_paths: Sequence[str] = (),
        key_func: KeyFunc | None = None,
        enabled: bool = True,
        standard_headers: bool = True,
        legacy_headers: bool = False,
    ) -> None:
        """Initialize rate limit middleware.

        Args:
            app: The ASGI application.
            policy: Budget and window to enforce.
            limiter: Limiter instance; resolved from app state when omitted.
            path_prefixes: Only paths starting with one of these are limited.
                None limits every path.
            exempt_paths: Path prefixes never limited.
            key_func: Maps a request to its identity; may be async.
                Defaults to ``user:<id>`` or ``ip:<addr>``.
            enabled: Pass every request through when False.
            standard_headers: Emit ``RateLimit-*`` headers.
            legacy_headers: Emit ``X-RateLimit-*`` headers.
        """
        self.app = app
        self.policy = policy
        self.limiter = limiter
        self.path_prefixes = tuple(path_prefixes) if path_prefixes is not None else None
        self.exempt_paths = tuple(exempt_paths)
        self.key_func = key_func or user_or_ip_key
        self.enabled = enabled
        self.standard_headers = standard_headers
        self.legacy_headers = legacy_headers

    def applies_to(self, path: str) -> bool:
        if path.startswith(self.exempt_paths):
            return False
        if self.path_prefixes is None:
            return True
        return path.startswith(self.path_prefixes)

    def _resolve_limiter(self, scope: Scope) -> SlidingWindowRateLimiter | None:
        if self.limiter is not None:
            return self.limiter
        app = scope.get("app")
        return getattr(getattr(app, "state", None), "rate_limiter", None)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        path = scope.get("path", "")
        if not self.enabled or not self.applies_to(path):
            await self.app(scope, receive, send)
            return

        limiter = self._resolve_limiter(scope)
        if limiter is None:
            logger.debug("No rate limiter configured", extra={"policy": self.policy.name})
            await self.app(scope, receive, send)
            return

        buffered: list[Message] = []

        async def recording_receive() -> Message:
            message = await receive()
            buffered.append(message)
            return message

        request = Request(scope, recording_receive)
        identity = self.key_func(request)
        if inspect.isawaitable(identity):
            identity = await identity
        downstream_receive = _replaying_receive(buffered, receive) if buffered else receive

        policy = self.policy
        key = policy.scoped_key(identity)
        if policy.skip_successful_requests:
            allowed, metadata = await limiter.peek(
                key, policy.limit, policy.window, endpoint=policy.name
            )
        else:
            allowed, metadata = await limiter.check_limit(
                key, policy.limit, policy.window, endpoint=policy.name
            )

        headers = rate_limit_headers(
            metadata,
            standard=self.standard_headers,
            legacy=self.legacy_headers,
        )

        if not allowed:
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "path": path,
                    "method": scope.get("method", ""),
                    "policy": policy.name,
                    "key": key,
                    "limit": metadata["limit"],
                },
            )
            exc = RateLimitError(
                detail=policy.message,
                retry_after_seconds=metadata["retry_after"],
                extra={"policy": policy.name, "limit": metadata["limit"]},
            )
            response = problem_response(
                exc,
                instance=path,
                request_id=scope.get("state", {}).get("request_id"),
                headers=headers,
            )
            await response(scope, downstream_receive, send)
            return

        async def send_with_headers(message: Message) -> None:
            if message["type"] == "http.response.start":
                response_headers = MutableHeaders(scope=message)
                for name, value in headers.items():
                    response_headers[name] = value
                if policy.skip_successful_requests and message["status"] >= 400:
                    await limiter.record(key, policy.window)
            await send(message)

        await self.app(scope, downstream_receive, send_with_headers)
