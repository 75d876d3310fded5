"""Tests for the bounded TTL memory cache."""

from __future__ import annotations

import pytest

from edu_gateway.infra.cache.memory import MISSING, MemoryCache, glob_to_regex


class FakeTime:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def cache(fake_time: FakeTime) -> MemoryCache:
    cache = MemoryCache(default_ttl=60.0, max_size=3, name="test")
    cache._now = fake_time  # type: ignore[method-assign]
    return cache


class TestTTL:
    def test_value_readable_until_ttl_elapses(self, cache: MemoryCache, fake_time: FakeTime) -> None:
        cache.set("k", "v", ttl=0.1)
        assert cache.get("k") == "v"

        fake_time.now += 0.15
        assert cache.get("k") is None
        assert cache.get("k", MISSING) is MISSING

    def test_default_ttl_applies_without_override(
        self, cache: MemoryCache, fake_time: FakeTime
    ) -> None:
        cache.set("k", "v")
        fake_time.now += 59.9
        assert cache.get("k") == "v"
        fake_time.now += 0.2
        assert "k" not in cache

    def test_zero_ttl_is_unreadable_immediately(self, cache: MemoryCache) -> None:
        cache.set("k", "v", ttl=0)
        assert cache.get("k", MISSING) is MISSING

    def test_expired_entries_stay_until_cleanup(
        self, cache: MemoryCache, fake_time: FakeTime
    ) -> None:
        cache.set("old", 1, ttl=1)
        cache.set("fresh", 2, ttl=100)
        fake_time.now += 5

        assert cache.size() == 2
        assert cache.cleanup() == 1
        assert cache.size() == 1
        assert cache.get("fresh") == 2

    def test_negative_ttl_rejected(self, cache: MemoryCache) -> None:
        with pytest.raises(ValueError, match="ttl must not be negative"):
            cache.set("k", "v", ttl=-1)


class TestCapacity:
    def test_oldest_inserted_entry_is_evicted(self, cache: MemoryCache) -> None:
        for i in range(1, 5):
            cache.set(f"k{i}", i)

        assert cache.size() == 3
        assert cache.get("k1", MISSING) is MISSING
        assert cache.get("k4") == 4

    def test_eviction_ignores_reads(self, cache: MemoryCache) -> None:
        cache.set("k1", 1)
        cache.set("k2", 2)
        cache.set("k3", 3)
        cache.get("k1")

        cache.set("k4", 4)

        assert "k1" not in cache
        assert "k2" in cache

    def test_replacing_key_does_not_evict(self, cache: MemoryCache) -> None:
        cache.set("k1", 1)
        cache.set("k2", 2)
        cache.set("k3", 3)
        cache.set("k1", 10)

        assert cache.size() == 3
        assert cache.get("k1") == 10
        cache.set("k4", 4)
        assert "k2" not in cache
        assert "k1" in cache

    def test_stats_count_evictions(self, cache: MemoryCache) -> None:
        for i in range(5):
            cache.set(f"k{i}", i)
        cache.get("k4")
        cache.get("k0")

        stats = cache.stats()
        assert stats["evictions"] == 2
        assert stats["hits"] == 1
        assert stats["misses"] == 1


class TestValues:
    @pytest.mark.parametrize("value", [None, 0, False, "", [], {}])
    def test_falsy_values_are_hits(self, cache: MemoryCache, value: object) -> None:
        cache.set("k", value)
        assert cache.get("k", MISSING) == value
        assert cache.get("k", MISSING) is not MISSING

    def test_long_keys_are_not_truncated(self, cache: MemoryCache) -> None:
        long_key = "x" * 10_000
        cache.set(long_key, "v")
        assert cache.get(long_key) == "v"
        assert cache.get(long_key[:-1], MISSING) is MISSING


class TestDeletion:
    def test_delete_reports_existence(self, cache: MemoryCache) -> None:
        cache.set("k", "v")
        assert cache.delete("k") is True
        assert cache.delete("k") is False

    def test_delete_pattern(self, cache: MemoryCache) -> None:
        cache.set("user:1", 1)
        cache.set("user:2", 2)
        cache.set("course:1", 3)

        assert cache.delete_pattern("user:*") == 2
        assert cache.get("course:1") == 3

    def test_delete_pattern_with_several_wildcards(self) -> None:
        cache = MemoryCache(max_size=10)
        cache.set("api:v1:users:1", 1)
        cache.set("api:v1:courses:1", 2)
        cache.set("api:v2:users:1", 3)

        assert cache.delete_pattern("api:*:users:*") == 2
        assert cache.get("api:v1:courses:1") == 2

    def test_clear(self, cache: MemoryCache) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear()
        assert len(cache) == 0


class TestGlob:
    def test_regex_metacharacters_match_literally(self) -> None:
        regex = glob_to_regex('GET:/articles/recent:{"limit": 5}')
        assert regex.fullmatch('GET:/articles/recent:{"limit": 5}')
        assert not regex.fullmatch('GET:/articles/recent:{"limit": 50}')

    def test_star_matches_empty_run(self) -> None:
        assert glob_to_regex("dashboard:*").fullmatch("dashboard:")


def test_invalid_configuration() -> None:
    with pytest.raises(ValueError, match="max_size"):
        MemoryCache(max_size=0)
    with pytest.raises(ValueError, match="default_ttl"):
        MemoryCache(default_ttl=-1)
