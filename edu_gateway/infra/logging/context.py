"""Request-scoped logging context.

Values set here are injected into every log record emitted from the same
async task by ``ContextInjectingFilter``. The request id stored here is also
what outbound service calls forward as ``X-Request-ID``.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add key-value pairs to the logging context of the current task.

    Example:
        ```python
        set_log_context(request_id="abc-123", path="/api/users")
        logger.info("Processing request")  # record carries request_id and path
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current task."""
    _log_context.set({})


class ContextInjectingFilter(logging.Filter):
    """Logging filter that copies the contextvars log context onto each record.

    Attached to the root logger so every propagating logger benefits.
    Existing record attributes (including ``extra=`` fields) win over context.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
