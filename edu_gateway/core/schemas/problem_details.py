"""RFC 7807 Problem Details schema for error responses."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

PROBLEM_JSON = "application/problem+json"


class ProblemDetails(BaseModel):
    """RFC 7807 Problem Details for HTTP APIs.

    Extension members (``request_id``, ``retry_after``, upstream context) are
    accepted and serialized next to the standard ones.

    See: https://datatracker.ietf.org/doc/html/rfc7807

    Example:
            ProblemDetails(
            type="aggregation-failed",
            title="Bad Gateway",
            status=502,
            detail="Failed to fetch dashboard data",
            instance="/api/dashboard/u1",
        ).model_dump(exclude_none=True)
    """

    type: str = Field(
        default="about:blank",
        min_length=1,
        max_length=200,
        description="URI reference identifying the problem type",
    )
    title: str = Field(
        min_length=1, max_length=200, description="Short, human-readable summary of the problem"
    )
    status: int = Field(ge=100, le=599, description="HTTP status code")
    detail: str | None = Field(
        default=None,
        max_length=2000,
        description="Human-readable explanation specific to this occurrence",
    )
    instance: str | None = Field(
        default=None,
        max_length=500,
        description="URI reference identifying the specific occurrence",
    )

    model_config = ConfigDict(
        extra="allow",
        str_strip_whitespace=True,
        json_schema_extra={
            "example": {
                "type": "rate-limit-exceeded",
                "title": "Too Many Requests",
                "status": 429,
                "detail": "Too many requests, please try again later.",
                "instance": "/api/courses",
                "retry_after": 42,
            }
        },
    )


class FieldError(BaseModel):
    """One failed field of a request validation."""

    field: str
    message: str
    type: str
    value: Any = None


class ValidationProblemDetails(ProblemDetails):
    """Problem details carrying per-field validation errors."""

    errors: list[FieldError] = Field(default_factory=list)
