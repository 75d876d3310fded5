"""Logging infrastructure.

Structured JSONL logging with request-scoped context:

    import logging
    from edu_gateway.infra.logging import set_log_context

    logger = logging.getLogger(__name__)

    set_log_context(request_id="abc-123")
    logger.info("Fetching dashboard", extra={"user_id": "u1"})
"""

from edu_gateway.infra.logging.config import configure_logging, setup_logging, shutdown
from edu_gateway.infra.logging.context import (
    ContextInjectingFilter,
    clear_log_context,
    get_log_context,
    set_log_context,
)
from edu_gateway.infra.logging.formatters import JSONFormatter, mask_identity

__all__ = [
    "ContextInjectingFilter",
    "JSONFormatter",
    "clear_log_context",
    "configure_logging",
    "get_log_context",
    "mask_identity",
    "set_log_context",
    "setup_logging",
    "shutdown",
]
