"""Global exception handlers rendering RFC 7807 problem details."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from edu_gateway.core.exceptions import AppException, RateLimitError
from edu_gateway.core.schemas.problem_details import (
    PROBLEM_JSON,
    FieldError,
    ProblemDetails,
    ValidationProblemDetails,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)


def _get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def problem_response(
    exc: AppException,
    *,
    instance: str | None = None,
    request_id: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Render an application exception as ``application/problem+json``.

    ``Retry-After`` is added for rate limit errors.

    Args:
        exc: The exception to render.
        instance: Fallback ``instance`` when the exception carries none.
        request_id: Request correlation id added as an extension member.
        headers: Extra response headers.

    Returns:
        JSONResponse with the exception's status code.
    """
    problem = ProblemDetails(
        type=exc.type,
        title=exc.title,
        status=exc.status_code,
        detail=exc.detail,
        instance=exc.instance or instance,
    )
    content: dict[str, Any] = problem.model_dump(exclude_none=True)
    content.update(exc.extra)
    if request_id:
        content["request_id"] = request_id

    response_headers = dict(headers or {})
    if isinstance(exc, RateLimitError):
        response_headers["Retry-After"] = str(exc.retry_after_seconds)

    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=response_headers or None,
        media_type=PROBLEM_JSON,
    )


async def app_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle application exceptions raised by routes and dependencies."""
    if not isinstance(exc, AppException):
        return await generic_exception_handler(request, exc)

    request_id = _get_request_id(request)
    logger.warning(
        "Application exception occurred",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": exc.type,
            "status_code": exc.status_code,
            "detail": exc.detail,
        },
    )
    return problem_response(exc, instance=request.url.path, request_id=request_id)


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle FastAPI request validation errors with field-level details."""
    if not isinstance(exc, RequestValidationError):
        return await generic_exception_handler(request, exc)

    request_id = _get_request_id(request)
    errors = [
        FieldError(
            field=".".join(str(loc) for loc in error["loc"]),
            message=error["msg"],
            type=error["type"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]

    logger.warning(
        "Request validation failed",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "error_count": len(errors),
        },
    )

    problem = ValidationProblemDetails(
        type="validation-error",
        title="Validation Error",
        status=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=f"Request validation failed for {len(errors)} field(s)",
        instance=request.url.path,
        errors=errors,
    )
    content = problem.model_dump(mode="json", exclude_none=True)
    if request_id:
        content["request_id"] = request_id

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=content,
        media_type=PROBLEM_JSON,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected exceptions; internals are not exposed."""
    request_id = _get_request_id(request)
    logger.error(
        "Unexpected exception occurred",
        extra={
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
            "exception_type": type(exc).__name__,
        },
        exc_info=exc,
    )

    problem = ProblemDetails(
        type="internal-error",
        title="Internal Server Error",
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="An unexpected error occurred while processing your request",
        instance=request.url.path,
    )
    content = problem.model_dump(exclude_none=True)
    if request_id:
        content["request_id"] = request_id

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        media_type=PROBLEM_JSON,
    )


def configure_exception_handlers(app: FastAPI) -> None:
    """Register the problem-details handlers on ``app``."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
