"""Registry of service clients owned by the application."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from edu_gateway.infra.external.service_client import ServiceClient, ServiceClientOptions

if TYPE_CHECKING:
    import httpx

    from edu_gateway.core.settings.resilience import CircuitBreakerSettings
    from edu_gateway.core.settings.services import ServiceSettings

logger = logging.getLogger(__name__)


class ServiceClientRegistry:
    """Creates and memoizes one :class:`ServiceClient` per (name, base URL).

    Example:
            registry = ServiceClientRegistry.from_settings(
            get_service_settings(), get_circuit_breaker_settings()
        )
        courses = registry.get("course-service")
        ...
        await registry.aclose()
    """

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        """Initialize an empty registry.

        Args:
            transport: httpx transport handed to every client it creates.
        """
        self._transport = transport
        self._clients: dict[tuple[str, str], ServiceClient] = {}
        self._by_name: dict[str, ServiceClient] = {}

    def create(self, service_name: str, options: ServiceClientOptions) -> ServiceClient:
        """Return the client for ``(service_name, options.base_url)``, creating it once.

        A second call with the same name and base URL returns the existing
        client even if the other options differ.
        """
        key = (service_name, options.base_url)
        client = self._clients.get(key)
        if client is None:
            client = ServiceClient(service_name, options, transport=self._transport)
            self._clients[key] = client
            logger.debug(
                "Service client created",
                extra={
                    "upstream": service_name,
                    "base_url": options.base_url,
                    "cache": options.cache,
                    "circuit_breaker": options.circuit_breaker,
                },
            )
        self._by_name[service_name] = client
        return client

    def get(self, service_name: str) -> ServiceClient:
        """Return the most recently created client named ``service_name``.

        Raises:
            KeyError: If no such client was created.
        """
        try:
            return self._by_name[service_name]
        except KeyError:
            msg = f"No service client registered for {service_name!r}"
            raise KeyError(msg) from None

    def __contains__(self, service_name: object) -> bool:
        return service_name in self._by_name

    def __len__(self) -> int:
        return len(self._clients)

    @property
    def clients(self) -> list[ServiceClient]:
        return list(self._clients.values())

    @classmethod
    def from_settings(
        cls,
        services: ServiceSettings,
        breakers: CircuitBreakerSettings,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ServiceClientRegistry:
        """Build the platform clients (user, course, auth, enrollment, news, planning, statistics).

        Each gets a circuit breaker when breakers are enabled and a GET cache
        unless its TTL is None (auth).
        """
        registry = cls(transport=transport)
        for short_name, base_url in services.base_urls.items():
            ttl = services.cache_ttl_for(short_name)
            registry.create(
                services.service_name_for(short_name),
                ServiceClientOptions(
                    base_url=base_url,
                    timeout=services.request_timeout,
                    cache=ttl is not None,
                    cache_ttl=ttl if ttl is not None else 0.0,
                    cache_max_size=services.cache_max_size,
                    circuit_breaker=breakers.enabled,
                    failure_threshold=breakers.failure_threshold,
                    success_threshold=breakers.success_threshold,
                    recovery_timeout=breakers.recovery_timeout,
                    breaker_timeout=breakers.timeout,
                    caller_name=services.name,
                    caller_version=services.version,
                ),
            )
        return registry

    def cleanup_caches(self) -> int:
        """Sweep expired entries from every client cache; return how many were removed."""
        removed = sum(client.cache.cleanup() for client in self._clients.values() if client.cache)
        if removed:
            logger.debug("Expired service client cache entries removed", extra={"removed": removed})
        return removed

    def invalidate(self, pattern: str | None = None) -> int:
        """Apply ``invalidate_cache(pattern)`` to every client."""
        return sum(client.invalidate_cache(pattern) for client in self._clients.values())

    def breaker_stats(self) -> dict[str, dict[str, Any] | None]:
        """Breaker snapshot per service name (None for clients without a breaker)."""
        return {
            client.service_name: client.breaker.get_stats() if client.breaker else None
            for client in self._clients.values()
        }

    async def aclose(self) -> None:
        """Close every client and forget them."""
        await asyncio.gather(*(client.close() for client in self._clients.values()))
        self._clients.clear()
        self._by_name.clear()
