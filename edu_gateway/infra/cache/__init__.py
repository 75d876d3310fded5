"""Caching infrastructure: the in-process TTL cache and the Redis connection."""

from __future__ import annotations

from edu_gateway.infra.cache.memory import MISSING, CacheEntry, MemoryCache, glob_to_regex
from edu_gateway.infra.cache.redis import RedisConnection

__all__ = [
    "MISSING",
    "CacheEntry",
    "MemoryCache",
    "RedisConnection",
    "glob_to_regex",
]
