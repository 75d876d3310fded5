"""Custom exception classes for the gateway layer."""

from __future__ import annotations

from typing import Any


class AppException(Exception):
    """Base application exception.

    All custom exceptions should inherit from this class.
    Follows RFC 7807 Problem Details for HTTP APIs.

    Attributes:
        status_code: HTTP status code for the error.
        detail: Human-readable error message.
        type: Error type identifier (used in RFC 7807 problem details).
        title: Short, human-readable summary of the problem type.
        instance: URI reference that identifies the specific occurrence of the problem.
        extra: Additional context-specific information about the error.

    Example:
            raise AppException(
            status_code=502,
            detail="Upstream returned garbage",
            type="bad-upstream",
            extra={"service": "course-service"}
        )
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        type: str = "about:blank",
        title: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize application exception.

        Args:
            status_code: HTTP status code.
            detail: Human-readable error message.
            type: Error type identifier.
            title: Short summary of the problem type.
            instance: URI reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        self.status_code = status_code
        self.detail = detail
        self.type = type
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.extra = extra or {}
        super().__init__(detail)

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title for HTTP status code.

        Args:
            status_code: HTTP status code.

        Returns:
            Human-readable title for the status code.
        """
        titles = {
            400: "Bad Request",
            401: "Unauthorized",
            403: "Forbidden",
            404: "Not Found",
            409: "Conflict",
            422: "Unprocessable Entity",
            429: "Too Many Requests",
            500: "Internal Server Error",
            502: "Bad Gateway",
            503: "Service Unavailable",
            504: "Gateway Timeout",
        }
        return titles.get(status_code, "Error")


class ServiceClientError(AppException):
    """Raised when a sibling service answered with a non-2xx status.

    The upstream status is preserved on ``status_code`` when it is a real
    HTTP error status so callers can branch on 404 vs 503. Anything else is
    reported as 502.

    Example:
            try:
            user = await users.get("/users/abc")
        except ServiceClientError as exc:
            if exc.status_code == 404:
                ...
    """

    def __init__(
        self,
        service: str,
        status_code: int,
        message: str,
        instance: str | None = None,
    ) -> None:
        """Initialize service client error.

        Args:
            service: Logical name of the remote service.
            status_code: HTTP status returned by the remote service.
            message: Error message, preferably from the remote error envelope.
            instance: URI reference identifying this specific occurrence.
        """
        self.service = service
        self.message = message
        self.upstream_status = status_code
        super().__init__(
            status_code=status_code if 400 <= status_code < 600 else 502,
            detail=f"{service} error ({status_code}): {message}",
            type="service-client-error",
            instance=instance,
            extra={"service": service, "upstream_status": status_code},
        )


class ExternalServiceError(AppException):
    """Raised when a dependency is known to be unavailable.

    Used by the circuit breaker to fail fast without touching the network.

    Example:
            raise ExternalServiceError(
            detail="Circuit breaker is OPEN for course-service",
            service="course-service",
        )
    """

    def __init__(
        self,
        detail: str,
        service: str | None = None,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize external service error.

        Args:
            detail: Human-readable error message.
            service: Name of the unavailable dependency.
            instance: URI reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        self.service = service
        payload = {"service": service} if service else {}
        payload.update(extra or {})
        super().__init__(
            status_code=503,
            detail=detail,
            type="external-service-unavailable",
            title="Service Unavailable",
            instance=instance,
            extra=payload,
        )


class AggregationError(AppException):
    """Raised when any dependent fetch of a composite view fails.

    Aggregation is all-or-nothing: no partial result accompanies this error.
    The failing sub-call is available as ``__cause__``.
    """

    def __init__(
        self,
        detail: str,
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize aggregation error.

        Args:
            detail: Human-readable error message.
            instance: URI reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        super().__init__(
            status_code=502,
            detail=detail,
            type="aggregation-failed",
            title="Bad Gateway",
            instance=instance,
            extra=extra,
        )


class RateLimitError(AppException):
    """Exception raised when rate limit is exceeded.

    Example:
            raise RateLimitError(
            detail="Too many requests",
            retry_after_seconds=42,
            extra={"limit": 100, "remaining": 0}
        )
    """

    def __init__(
        self,
        detail: str,
        retry_after_seconds: int,
        type: str = "rate-limit-exceeded",
        instance: str | None = None,
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Initialize rate limit exception.

        Args:
            detail: Human-readable error message.
            retry_after_seconds: Seconds until the caller may retry.
            type: Error type identifier.
            instance: URI reference identifying this specific occurrence.
            extra: Additional context about the error.
        """
        self.retry_after_seconds = retry_after_seconds
        payload = dict(extra or {})
        payload.setdefault("retry_after", retry_after_seconds)
        super().__init__(
            status_code=429,
            detail=detail,
            type=type,
            title="Too Many Requests",
            instance=instance,
            extra=payload,
        )
