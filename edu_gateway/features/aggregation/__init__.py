"""Composite views assembled from several platform services."""

from __future__ import annotations

from edu_gateway.features.aggregation.service import (
    COURSE_RELATIONS,
    USER_RELATIONS,
    DataAggregator,
    average_progress,
)

__all__ = [
    "COURSE_RELATIONS",
    "USER_RELATIONS",
    "DataAggregator",
    "average_progress",
]
