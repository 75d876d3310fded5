"""Clients for the other platform services."""

from edu_gateway.infra.external.registry import ServiceClientRegistry
from edu_gateway.infra.external.service_client import (
    ServiceClient,
    ServiceClientOptions,
    build_cache_key,
    unwrap_envelope,
)

__all__ = [
    "ServiceClient",
    "ServiceClientOptions",
    "ServiceClientRegistry",
    "build_cache_key",
    "unwrap_envelope",
]
