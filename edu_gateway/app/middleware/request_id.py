"""Request ID middleware.

The id is taken from ``X-Request-ID`` or generated, bound to the logging
context for the duration of the request, and forwarded to sibling services
by the service clients.
"""

from __future__ import annotations

import re
import uuid
from typing import TYPE_CHECKING

from starlette.datastructures import MutableHeaders

from edu_gateway.infra.logging.context import clear_log_context, set_log_context

if TYPE_CHECKING:
    from starlette.types import ASGIApp, Message, Receive, Scope, Send

REQUEST_ID_HEADER = "x-request-id"

# Incoming ids end up in logs and in headers sent to sibling services
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def generate_request_id() -> str:
    return str(uuid.uuid4())


class RequestIDMiddleware:
    """Attach a request id to every HTTP request and response.

    A well-formed incoming ``X-Request-ID`` (up to 128 characters of
    ``[A-Za-z0-9._:-]``) is reused so a call chain keeps one id across
    services; anything else is replaced with a fresh UUID.

    Usage:
        app = FastAPI()
        app.add_middleware(RequestIDMiddleware)

        @app.get("/")
        async def root(request: Request):
            return {"request_id": request.state.request_id}
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    @staticmethod
    def _incoming(scope: Scope) -> str | None:
        for name, raw in scope.get("headers", []):
            if name == b"x-request-id":
                value = raw.decode("latin-1").strip()
                return value if _VALID_REQUEST_ID.match(value) else None
        return None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = self._incoming(scope) or generate_request_id()
        scope.setdefault("state", {})["request_id"] = request_id
        set_log_context(request_id=request_id)

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)[REQUEST_ID_HEADER] = request_id
            await send(message)

        try:
            await self.app(scope, receive, send_with_request_id)
        finally:
            clear_log_context()
