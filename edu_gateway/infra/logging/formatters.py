"""JSONL formatter with trace correlation and rate-limit identity masking."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any

from opentelemetry import trace

# Attributes every LogRecord carries; anything else came from extra= or the context filter
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

# extra= fields that may hold a rate limit identity such as auth:<email>:<ip>
IDENTITY_FIELDS = frozenset({"key", "identity"})


def mask_email(email: str) -> str:
    """``ada@example.com`` -> ``a***@example.com``."""
    local, sep, domain = email.partition("@")
    if not sep:
        return "***"
    return f"{local[:1]}***@{domain}"


def mask_identity(value: Any) -> Any:
    """Mask the email inside ``auth:<email>:<ip>`` identities; other values pass through."""
    if not isinstance(value, str) or not value.startswith("auth:"):
        return value
    email, sep, rest = value[len("auth:") :].partition(":")
    if not sep:
        return value
    return f"auth:{mask_email(email) if email else ''}:{rest}"


class JSONFormatter(logging.Formatter):
    """One JSON object per line, timestamps in UTC.

    Output carries the ``fmt_keys`` attributes, the ``static`` fields, the
    active OpenTelemetry ``trace_id``/``span_id``, and every ``extra=`` or
    log-context field. Rate limit identities are masked.

    Example output:
        ```json
        {"level": "WARNING", "logger": "edu_gateway.app.middleware.rate_limit", "message": "Rate limit exceeded", "policy": "auth", "key": "auth:a***@example.com:10.0.0.1", "request_id": "abc-123", "timestamp": "2026-01-01T00:00:00.123Z"}
        ```
    """

    def __init__(
        self,
        fmt_keys: dict[str, str] | None = None,
        static: dict[str, Any] | None = None,
    ) -> None:
        """Initialize JSON formatter.

        Args:
            fmt_keys: Output key to LogRecord attribute.
            static: Fields added to every record (e.g. ``{"service": "edu-gateway"}``).
        """
        super().__init__()
        self.fmt_keys = fmt_keys or {"level": "levelname", "logger": "name", "message": "message"}
        self.static = static or {}

    def format(self, record: logging.LogRecord) -> str:
        record.message = record.getMessage()
        data: dict[str, Any] = {
            key: getattr(record, attr, None) for key, attr in self.fmt_keys.items()
        }
        data["timestamp"] = (
            datetime.fromtimestamp(record.created, tz=UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            data["trace_id"] = format(span_context.trace_id, "032x")
            data["span_id"] = format(span_context.span_id, "016x")

        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            data["stack_trace"] = record.stack_info

        data.update(self.static)
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in data:
                continue
            data[key] = mask_identity(value) if key in IDENTITY_FIELDS else value

        return json.dumps(data, ensure_ascii=False, default=str)
