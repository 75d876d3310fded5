"""Cross-service composite views.

Each view fans out to several service clients concurrently, merges the
answers, and caches the composite. Aggregation is all-or-nothing: if any
branch fails, the whole call raises :class:`AggregationError` and nothing is
cached.
"""

from __future__ import annotations

import asyncio
import logging
import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from edu_gateway.core.exceptions import AggregationError
from edu_gateway.infra.cache.memory import MISSING, MemoryCache
from edu_gateway.infra.metrics.tracking import track_aggregation

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

    from edu_gateway.core.settings.aggregation import AggregationSettings
    from edu_gateway.infra.external.registry import ServiceClientRegistry
    from edu_gateway.infra.external.service_client import ServiceClient

logger = logging.getLogger(__name__)

USER_BASE_FIELDS = frozenset({"id", "email", "role", "profile"})
USER_RELATIONS = ("enrollments", "courses", "statistics", "recentActivity")

COURSE_BASE_FIELDS = frozenset({"id", "title", "description", "teacherId"})
COURSE_RELATIONS = ("instructor", "enrollments", "statistics")

DASHBOARD_NEWS_LIMIT = 5
DASHBOARD_EVENTS_LIMIT = 5
RECENT_ACTIVITY_LIMIT = 10


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def average_progress(progress: Iterable[dict[str, Any] | None]) -> int:
    """Mean of ``percentage`` across progress records, rounded half up (0 if none)."""
    records = list(progress)
    if not records:
        return 0
    total = sum((record or {}).get("percentage") or 0 for record in records)
    return round_half_up(total / len(records))


def promotion_id(promotion: dict[str, Any]) -> Any:
    return promotion.get("_id", promotion.get("id"))


class DataAggregator:
    """Answers composite queries by composing service clients.

    Example:
            aggregator = DataAggregator.from_registry(registry, get_aggregation_settings())
        dashboard = await aggregator.get_dashboard_data("u1")
        aggregator.invalidate_user_cache("u1")
    """

    def __init__(
        self,
        *,
        users: ServiceClient,
        courses: ServiceClient,
        enrollments: ServiceClient,
        news: ServiceClient,
        planning: ServiceClient,
        cache_ttl: float = 60.0,
        cache_max_size: int = 5000,
        statistics_ttl: float = 300.0,
    ) -> None:
        self.users = users
        self.courses = courses
        self.enrollments = enrollments
        self.news = news
        self.planning = planning
        self.statistics_ttl = statistics_ttl
        self.cache = MemoryCache(
            default_ttl=cache_ttl,
            max_size=cache_max_size,
            name="aggregator",
        )

    @classmethod
    def from_registry(
        cls,
        registry: ServiceClientRegistry,
        settings: AggregationSettings | None = None,
    ) -> DataAggregator:
        """Wire the aggregator to the registry's platform clients."""
        options: dict[str, Any] = {}
        if settings is not None:
            options = {
                "cache_ttl": settings.cache_ttl,
                "cache_max_size": settings.cache_max_size,
                "statistics_ttl": settings.statistics_ttl,
            }
        return cls(
            users=registry.get("user-service"),
            courses=registry.get("course-service"),
            enrollments=registry.get("enrollment-service"),
            news=registry.get("news-service"),
            planning=registry.get("planning-service"),
            **options,
        )

    async def _build(
        self,
        view: str,
        build: Callable[[], Awaitable[Any]],
        failure_message: str,
        *,
        subject: str | None = None,
    ) -> Any:
        """Run ``build`` and turn any failure into AggregationError."""
        try:
            result = await build()
        except Exception as exc:
            track_aggregation(view, "failed")
            logger.exception(
                failure_message,
                extra={"view": view, "subject": subject, "error_type": type(exc).__name__},
            )
            raise AggregationError(
                failure_message,
                extra={"view": view, "subject": subject},
            ) from exc
        track_aggregation(view, "built")
        return result

    async def _cached(
        self,
        view: str,
        cache_key: str,
        build: Callable[[], Awaitable[Any]],
        failure_message: str,
        *,
        ttl: float | None = None,
        subject: str | None = None,
    ) -> Any:
        cached = self.cache.get(cache_key, MISSING)
        if cached is not MISSING:
            track_aggregation(view, "hit")
            return cached

        result = await self._build(view, build, failure_message, subject=subject)
        self.cache.set(cache_key, result, ttl)
        return result

    # ──────────────────────────────────────────────────────────────
    # Composite views
    # ──────────────────────────────────────────────────────────────

    async def get_user_with_enrollments(self, user_id: str) -> dict[str, Any]:
        """User with each enrollment's ``course`` resolved.

        Cached under ``user:<id>:enrollments``.
        """

        async def build() -> dict[str, Any]:
            user, enrollments = await asyncio.gather(
                self.users.get(f"/users/{user_id}"),
                self.enrollments.get(f"/enrollments/user/{user_id}"),
            )
            enrollments = enrollments or []
            courses = await asyncio.gather(
                *(self.courses.get(f"/courses/{item['courseId']}") for item in enrollments)
            )
            return {
                **user,
                "enrollments": [
                    {**item, "course": course}
                    for item, course in zip(enrollments, courses, strict=True)
                ],
            }

        return await self._cached(
            "user_with_enrollments",
            f"user:{user_id}:enrollments",
            build,
            "Failed to fetch user with enrollments",
            subject=user_id,
        )

    async def get_course_with_enrollments(self, course_id: str) -> dict[str, Any]:
        """Course with each enrollment's ``user`` resolved.

        Cached under ``course:<id>:enrollments``.
        """

        async def build() -> dict[str, Any]:
            course, enrollments = await asyncio.gather(
                self.courses.get(f"/courses/{course_id}"),
                self.enrollments.get(f"/enrollments/course/{course_id}"),
            )
            enrollments = enrollments or []
            users = await asyncio.gather(
                *(self.users.get(f"/users/{item['userId']}") for item in enrollments)
            )
            return {
                **course,
                "enrollments": [
                    {**item, "user": user}
                    for item, user in zip(enrollments, users, strict=True)
                ],
            }

        return await self._cached(
            "course_with_enrollments",
            f"course:{course_id}:enrollments",
            build,
            "Failed to fetch course with enrollments",
            subject=course_id,
        )

    async def get_course_with_instructor(self, course_id: str) -> dict[str, Any]:
        """Course with its ``instructor`` (the ``teacherId`` user) resolved."""

        async def build() -> dict[str, Any]:
            course = await self.courses.get(f"/courses/{course_id}")
            instructor = await self.users.get(f"/users/{course['teacherId']}")
            return {**course, "instructor": instructor}

        return await self._cached(
            "course_with_instructor",
            f"course:{course_id}:instructor",
            build,
            "Failed to fetch course with instructor",
            subject=course_id,
        )

    async def get_dashboard_data(self, user_id: str) -> dict[str, Any]:
        """Everything the learner dashboard shows, in two waves of calls.

        Returns:
            ``{user, activePromotions, recentNews, upcomingEvents, summary}``
            where each active promotion carries its ``course`` and ``progress``.
        """

        async def build() -> dict[str, Any]:
            user, promotions, recent_news, upcoming_events = await asyncio.gather(
                self.users.get(f"/users/{user_id}"),
                self.planning.get(f"/promotions/user/{user_id}"),
                self.news.get("/articles/recent", params={"limit": DASHBOARD_NEWS_LIMIT}),
                self.planning.get(
                    "/events/upcoming",
                    params={"userId": user_id, "limit": DASHBOARD_EVENTS_LIMIT},
                ),
            )
            promotions = promotions or []

            progress, courses = await asyncio.gather(
                asyncio.gather(
                    *(
                        self.planning.get(f"/promotions/progress/{promotion_id(p)}")
                        for p in promotions
                    )
                ),
                asyncio.gather(*(self.courses.get(f"/courses/{p['courseId']}") for p in promotions)),
            )

            return {
                "user": user,
                "activePromotions": [
                    {**promotion, "course": course, "progress": item}
                    for promotion, course, item in zip(promotions, courses, progress, strict=True)
                ],
                "recentNews": recent_news,
                "upcomingEvents": upcoming_events,
                "summary": {
                    "totalCourses": len(promotions),
                    "completedCourses": sum(
                        1 for p in promotions if p.get("status") == "completed"
                    ),
                    "averageProgress": average_progress(progress),
                    "totalTimeSpent": sum((item or {}).get("timeSpent") or 0 for item in progress),
                },
            }

        return await self._cached(
            "dashboard",
            f"dashboard:{user_id}",
            build,
            "Failed to fetch dashboard data",
            subject=user_id,
        )

    async def get_statistics_overview(self) -> dict[str, Any]:
        """Platform-wide statistics from four sources, cached for ``statistics_ttl``."""

        async def build() -> dict[str, Any]:
            users, courses, enrollments, activity = await asyncio.gather(
                self.users.get("/users/stats"),
                self.courses.get("/courses/stats"),
                self.planning.get("/promotions/stats"),
                self.planning.get("/activity/stats"),
            )
            return {
                "users": users,
                "courses": courses,
                "enrollments": enrollments,
                "activity": activity,
                "timestamp": datetime.now(UTC).isoformat(),
            }

        return await self._cached(
            "statistics_overview",
            "statistics:overview",
            build,
            "Failed to fetch statistics overview",
            ttl=self.statistics_ttl,
        )

    # ──────────────────────────────────────────────────────────────
    # Field selection
    # ──────────────────────────────────────────────────────────────

    async def get_user(self, user_id: str, fields: Iterable[str] = ()) -> dict[str, Any]:
        """User with only the requested relations resolved.

        Relations: ``enrollments`` (planning promotions), ``courses`` (teachers
        only), ``statistics`` and ``recentActivity``. Base fields are always
        present; unknown field names are ignored. Not cached here; the
        underlying client caches still apply.
        """
        requested = [f for f in USER_RELATIONS if f in set(fields) - USER_BASE_FIELDS]

        async def build() -> dict[str, Any]:
            user = await self.users.get(f"/users/{user_id}")
            loaders: dict[str, Awaitable[Any]] = {}
            if "enrollments" in requested:
                loaders["enrollments"] = self.planning.get(f"/promotions/user/{user_id}")
            if "courses" in requested and user.get("role") == "teacher":
                loaders["courses"] = self.courses.get(f"/courses/teacher/{user_id}")
            if "statistics" in requested:
                loaders["statistics"] = self.planning.get(f"/users/{user_id}/statistics")
            if "recentActivity" in requested:
                loaders["recentActivity"] = self.planning.get(
                    f"/users/{user_id}/activity/recent",
                    params={"limit": RECENT_ACTIVITY_LIMIT},
                )
            return {**user, **await self._resolve(loaders)}

        return await self._build("user_fields", build, "Failed to fetch user", subject=user_id)

    async def get_course(self, course_id: str, fields: Iterable[str] = ()) -> dict[str, Any]:
        """Course with only the requested relations resolved.

        Relations: ``instructor``, ``enrollments`` (planning promotions) and
        ``statistics``.
        """
        requested = [f for f in COURSE_RELATIONS if f in set(fields) - COURSE_BASE_FIELDS]

        async def build() -> dict[str, Any]:
            course = await self.courses.get(f"/courses/{course_id}")
            loaders: dict[str, Awaitable[Any]] = {}
            if "instructor" in requested:
                loaders["instructor"] = self.users.get(f"/users/{course['teacherId']}")
            if "enrollments" in requested:
                loaders["enrollments"] = self.planning.get(f"/promotions/course/{course_id}")
            if "statistics" in requested:
                loaders["statistics"] = self.planning.get(f"/courses/{course_id}/statistics")
            return {**course, **await self._resolve(loaders)}

        return await self._build(
            "course_fields", build, "Failed to fetch course", subject=course_id
        )

    @staticmethod
    async def _resolve(loaders: dict[str, Awaitable[Any]]) -> dict[str, Any]:
        values = await asyncio.gather(*loaders.values())
        return dict(zip(loaders.keys(), values, strict=True))

    # ──────────────────────────────────────────────────────────────
    # Cache management
    # ──────────────────────────────────────────────────────────────

    def invalidate_user_cache(self, user_id: str) -> int:
        """Drop the user's composites, dashboard, and user-scoped client entries."""
        removed = self.cache.delete_pattern(f"user:{user_id}:*")
        removed += self.cache.delete_pattern(f"dashboard:{user_id}")
        self.users.invalidate_cache(f"GET:/users/{user_id}:*")
        self.enrollments.invalidate_cache(f"GET:/enrollments/user/{user_id}:*")
        self.planning.invalidate_cache(f"GET:/promotions/user/{user_id}:*")
        logger.debug("User cache invalidated", extra={"user_id": user_id, "removed": removed})
        return removed

    def invalidate_course_cache(self, course_id: str) -> int:
        """Drop the course's composites and its cached course entity."""
        removed = self.cache.delete_pattern(f"course:{course_id}:*")
        self.courses.invalidate_cache(f"GET:/courses/{course_id}:*")
        logger.debug("Course cache invalidated", extra={"course_id": course_id, "removed": removed})
        return removed

    def invalidate_statistics_cache(self) -> int:
        return self.cache.delete_pattern("statistics:*")

    def clear_all_cache(self) -> None:
        self.cache.clear()

    def cleanup(self) -> int:
        """Sweep expired composites."""
        return self.cache.cleanup()
