"""Dependencies exposing the service client registry and the aggregator."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from edu_gateway.core.exceptions import ExternalServiceError
from edu_gateway.features.aggregation.service import DataAggregator
from edu_gateway.infra.external.registry import ServiceClientRegistry


def get_service_registry(request: Request) -> ServiceClientRegistry:
    """Registry of sibling service clients created at startup.

    Raises:
        ExternalServiceError: If the application has not finished starting.
    """
    registry = getattr(request.app.state, "service_registry", None)
    if registry is None:
        raise ExternalServiceError(detail="Service clients are not initialized")
    return registry


def get_aggregator(request: Request) -> DataAggregator:
    """Composite view aggregator created at startup."""
    aggregator = getattr(request.app.state, "aggregator", None)
    if aggregator is None:
        raise ExternalServiceError(detail="Data aggregator is not initialized")
    return aggregator


ServiceRegistryDep = Annotated[ServiceClientRegistry, Depends(get_service_registry)]
AggregatorDep = Annotated[DataAggregator, Depends(get_aggregator)]
