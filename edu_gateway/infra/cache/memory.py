"""Bounded in-process TTL cache.

Entries expire lazily: ``get`` ignores expired entries without removing them
and ``cleanup`` sweeps them. When the cache is full, inserting a new key
evicts the oldest *inserted* entry (FIFO), regardless of how recently it was
read.
"""

from __future__ import annotations

import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Final

from edu_gateway.infra.metrics.tracking import track_cache_lookup


class _Missing:
    __slots__ = ()

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Final[Any] = _Missing()
"""Sentinel for ``get(key, MISSING)`` when a cached ``None`` must be told apart from a miss."""


@dataclass(slots=True)
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a glob where ``*`` matches any run of characters (including none).

    Every other character, regex metacharacters included, matches literally.
    """
    return re.compile(".*".join(re.escape(part) for part in pattern.split("*")), re.DOTALL)


class MemoryCache:
    """Bounded TTL cache keyed by string.

    Args:
        default_ttl: TTL in seconds used when ``set`` is called without one.
        max_size: Maximum number of stored entries (expired ones included until swept).
        name: Label used for hit/miss metrics.

    Example:
            cache = MemoryCache(default_ttl=60, max_size=1000, name="course-service")
        cache.set("GET:/courses/c1:{}", {"id": "c1"})
        cache.get("GET:/courses/c1:{}")  # {"id": "c1"}
    """

    def __init__(
        self,
        default_ttl: float = 60.0,
        max_size: int = 1000,
        *,
        name: str = "memory",
    ) -> None:
        if max_size < 1:
            msg = "max_size must be at least 1"
            raise ValueError(msg)
        if default_ttl < 0:
            msg = "default_ttl must not be negative"
            raise ValueError(msg)
        self.default_ttl = default_ttl
        self.max_size = max_size
        self.name = name
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    @staticmethod
    def _now() -> float:
        return time.monotonic()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the cached value, or ``default`` if absent or expired."""
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._now()):
            self._misses += 1
            track_cache_lookup(self.name, hit=False)
            return default
        self._hits += 1
        track_cache_lookup(self.name, hit=True)
        return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds (``0`` expires at once).

        Replacing a key counts as a fresh insertion for eviction order.
        """
        effective_ttl = self.default_ttl if ttl is None else ttl
        if effective_ttl < 0:
            msg = "ttl must not be negative"
            raise ValueError(msg)

        if key in self._entries:
            del self._entries[key]
        elif len(self._entries) >= self.max_size:
            self._entries.popitem(last=False)
            self._evictions += 1

        now = self._now()
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            inserted_at=now,
            expires_at=now + effective_ttl,
        )

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if an entry (expired or not) was removed."""
        return self._entries.pop(key, None) is not None

    def delete_pattern(self, pattern: str) -> int:
        """Remove every key matching the ``*`` glob ``pattern``; return the count."""
        regex = glob_to_regex(pattern)
        doomed = [key for key in self._entries if regex.fullmatch(key)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def cleanup(self) -> int:
        """Remove expired entries only; return how many were removed."""
        now = self._now()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        return len(self._entries)

    def stats(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self._hits,
            "misses": self._misses,
            "evictions": self._evictions,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key) if isinstance(key, str) else None
        return entry is not None and not entry.is_expired(self._now())
