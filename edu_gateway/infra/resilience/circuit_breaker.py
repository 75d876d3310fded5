"""Circuit breaker for calls to sibling services.

States:
    - CLOSED: Normal operation, calls pass through
    - OPEN: Failure threshold reached, calls fail immediately
    - HALF_OPEN: Recovery trial, calls pass through and are counted

Transitions:
    CLOSED -> OPEN: ``failure_threshold`` consecutive failures
    OPEN -> HALF_OPEN: first call after ``recovery_timeout`` has elapsed
    HALF_OPEN -> CLOSED: ``success_threshold`` successes
    HALF_OPEN -> OPEN: any failure

Example:
    >>> breaker = CircuitBreaker(
    ...     name="course-service",
    ...     failure_threshold=5,
    ...     recovery_timeout=30.0,
    ...     timeout=3.0,
    ... )
    >>>
    >>> @breaker.protected
    ... async def fetch_course(course_id: str):
    ...     return await client.get(f"/courses/{course_id}")
    >>>
    >>> try:
    ...     course = await fetch_course("c1")
    ... except CircuitOpenError:
    ...     ...  # fail fast, the service is known to be down
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ParamSpec, Self, TypeVar

from edu_gateway.core.exceptions import ExternalServiceError
from edu_gateway.infra.metrics.tracking import (
    track_circuit_breaker_failure,
    track_circuit_breaker_rejected,
    track_circuit_breaker_state_change,
    track_circuit_breaker_success,
    update_circuit_breaker_state,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(StrEnum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(ExternalServiceError):
    """Raised without executing the call while the circuit is open."""

    def __init__(self, name: str, last_failure_time: datetime | None = None) -> None:
        self.circuit_name = name
        self.last_failure_time = last_failure_time
        super().__init__(
            detail=f"Circuit breaker is OPEN for {name}",
            service=name,
            extra={
                "last_failure_time": (
                    last_failure_time.isoformat() if last_failure_time else None
                ),
            },
        )


class CircuitBreaker:
    """Three-state circuit breaker guarding one remote service.

    Attributes:
        name: Identifier, usually the remote service name.
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Half-open successes that close it again.
        recovery_timeout: Seconds since the last failure before a trial call.
        timeout: Per-call time limit in seconds, or None.
        expected_exception: Exception type(s) counted as failures.
        total_failures: Failures recorded since creation.
        total_successes: Successes recorded since creation.
        total_rejections: Calls rejected while open.
    """

    def __init__(
        self,
        *,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        success_threshold: int | None = None,
        timeout: float | None = None,
        expected_exception: type[Exception] | tuple[type[Exception], ...] = Exception,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Unique identifier for this circuit breaker instance.
            failure_threshold: Consecutive failures before opening. Must be > 0.
            recovery_timeout: Seconds to stay OPEN before allowing a trial call.
                Must be > 0.
            success_threshold: Successes in HALF_OPEN needed to close. Defaults
                to ``failure_threshold``.
            timeout: Seconds each protected call may take. Exceeding it raises
                TimeoutError and counts as a failure. None disables the limit.
            expected_exception: Exception type(s) that count as failures.
                Others propagate without touching the state.

        Raises:
            ValueError: If any threshold or timeout value is invalid.
        """
        if failure_threshold <= 0:
            msg = "failure_threshold must be greater than 0"
            raise ValueError(msg)
        if recovery_timeout <= 0:
            msg = "recovery_timeout must be greater than 0"
            raise ValueError(msg)
        if success_threshold is not None and success_threshold <= 0:
            msg = "success_threshold must be greater than 0"
            raise ValueError(msg)
        if timeout is not None and timeout <= 0:
            msg = "timeout must be greater than 0"
            raise ValueError(msg)

        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold or failure_threshold
        self.timeout = timeout
        self.expected_exception = expected_exception

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time: datetime | None = None
        self._lock = asyncio.Lock()

        self.total_failures = 0
        self.total_successes = 0
        self.total_rejections = 0

        update_circuit_breaker_state(self.name, self._state.value)

        logger.debug(
            "Circuit breaker initialized",
            extra={
                "circuit_breaker": name,
                "failure_threshold": failure_threshold,
                "success_threshold": self.success_threshold,
                "recovery_timeout": recovery_timeout,
                "timeout": timeout,
            },
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_time(self) -> datetime | None:
        return self._last_failure_time

    async def call(self, func: Callable[P, Awaitable[T]], *args: P.args, **kwargs: P.kwargs) -> T:
        """Execute ``func`` with circuit breaker protection.

        Raises:
            CircuitOpenError: If the circuit is open; ``func`` is not called.
            TimeoutError: If ``timeout`` is set and the call exceeded it.
            Exception: Whatever ``func`` raised, after the failure is recorded.
        """
        await self._before_call()

        try:
            if self.timeout is None:
                result = await func(*args, **kwargs)
            else:
                result = await asyncio.wait_for(func(*args, **kwargs), timeout=self.timeout)
        except TimeoutError as exc:
            await self._on_failure(exc)
            if self.timeout is not None and not str(exc):
                msg = f"{self.name} call timed out after {self.timeout}s"
                raise TimeoutError(msg) from exc
            raise
        except Exception as exc:
            if isinstance(exc, self.expected_exception):
                await self._on_failure(exc)
            else:
                logger.debug(
                    "Circuit breaker ignored unexpected exception",
                    extra={
                        "circuit_breaker": self.name,
                        "exception_type": type(exc).__name__,
                    },
                )
            raise

        await self._on_success()
        return result

    async def _before_call(self) -> None:
        """Move OPEN to HALF_OPEN when due, otherwise reject while OPEN."""
        async with self._lock:
            self._check_state()

            if self.is_open:
                self.total_rejections += 1
                track_circuit_breaker_rejected(self.name)
                logger.warning(
                    "Circuit breaker rejected call",
                    extra={
                        "circuit_breaker": self.name,
                        "state": self._state.value,
                        "total_rejections": self.total_rejections,
                    },
                )
                raise CircuitOpenError(self.name, self._last_failure_time)

    def _check_state(self) -> None:
        """Transition OPEN to HALF_OPEN once ``recovery_timeout`` has strictly elapsed.

        Must be called while holding the lock.
        """
        if self.is_open and self._last_failure_time is not None:
            elapsed = datetime.now(UTC) - self._last_failure_time
            if elapsed > timedelta(seconds=self.recovery_timeout):
                self._transition_to(CircuitState.HALF_OPEN)

    async def _on_success(self) -> None:
        async with self._lock:
            self.total_successes += 1
            track_circuit_breaker_success(self.name)
            self._failure_count = 0

            if self.is_half_open:
                self._success_count += 1
                logger.info(
                    "Circuit breaker success in HALF_OPEN",
                    extra={
                        "circuit_breaker": self.name,
                        "success_count": self._success_count,
                        "success_threshold": self.success_threshold,
                    },
                )
                if self._success_count >= self.success_threshold:
                    self._transition_to(CircuitState.CLOSED)

    async def _on_failure(self, exception: BaseException) -> None:
        async with self._lock:
            self.total_failures += 1
            self._failure_count += 1
            self._last_failure_time = datetime.now(UTC)
            track_circuit_breaker_failure(self.name)

            logger.warning(
                "Circuit breaker recorded failure",
                extra={
                    "circuit_breaker": self.name,
                    "state": self._state.value,
                    "failure_count": self._failure_count,
                    "failure_threshold": self.failure_threshold,
                    "exception_type": type(exception).__name__,
                    "exception_message": str(exception),
                },
            )

            if self.is_half_open or (
                self.is_closed and self._failure_count >= self.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        """Apply a state change and its counter resets. Caller holds the lock."""
        old_state = self._state
        self._state = new_state
        self._success_count = 0

        if new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._last_failure_time = None

        track_circuit_breaker_state_change(self.name, old_state.value, new_state.value)

        log = logger.error if new_state == CircuitState.OPEN else logger.info
        log(
            f"Circuit breaker {new_state.value}",
            extra={
                "circuit_breaker": self.name,
                "old_state": old_state.value,
                "new_state": new_state.value,
                "failure_count": self._failure_count,
                "recovery_timeout": self.recovery_timeout,
            },
        )

    def protected(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        """Decorator form of :meth:`call`.

        Example:
            >>> @breaker.protected
            ... async def list_news(limit: int):
            ...     return await news.get("/articles/recent", params={"limit": limit})
        """

        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            return await self.call(func, *args, **kwargs)

        wrapper.__name__ = func.__name__
        wrapper.__doc__ = func.__doc__
        wrapper.__module__ = func.__module__
        wrapper.__qualname__ = func.__qualname__
        wrapper.__annotations__ = func.__annotations__

        return wrapper

    def __call__(self, func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        return self.protected(func)

    async def __aenter__(self) -> Self:
        """Enter the protected block, rejecting it while the circuit is open.

        ``timeout`` is not applied to ``async with`` blocks.
        """
        await self._before_call()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,  # noqa: ANN401
    ) -> None:
        if exc_type is None:
            await self._on_success()
        elif exc_val is not None and isinstance(exc_val, self.expected_exception):
            await self._on_failure(exc_val)

    def get_stats(self) -> dict[str, Any]:
        """Read-only snapshot of the breaker.

        Returns:
            ``{name, state, failures, successes, last_failure_time}`` where
            ``last_failure_time`` is an ISO 8601 string or None.
        """
        return {
            "name": self.name,
            "state": self._state.value,
            "failures": self._failure_count,
            "successes": self._success_count,
            "last_failure_time": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
        }

    def get_metrics(self) -> dict[str, Any]:
        """``get_stats()`` plus thresholds and lifetime totals."""
        total_calls = self.total_failures + self.total_successes
        return {
            **self.get_stats(),
            "failure_threshold": self.failure_threshold,
            "success_threshold": self.success_threshold,
            "recovery_timeout": self.recovery_timeout,
            "timeout": self.timeout,
            "total_failures": self.total_failures,
            "total_successes": self.total_successes,
            "total_rejections": self.total_rejections,
            "failure_rate": self.total_failures / total_calls if total_calls else 0.0,
        }

    async def reset(self) -> None:
        """Force the circuit CLOSED and clear all counters."""
        async with self._lock:
            if not self.is_closed:
                self._transition_to(CircuitState.CLOSED)
            self._failure_count = 0
            self._success_count = 0
            self._last_failure_time = None
            self.total_failures = 0
            self.total_successes = 0
            self.total_rejections = 0
            logger.info("Circuit breaker manually reset", extra={"circuit_breaker": self.name})
