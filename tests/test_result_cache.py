"""
Tests for the TTL result cache.

A controllable clock is injected so expiry is tested without sleeping.
"""
import threading

import pytest

from geoquery.errors import CacheError
from geoquery.services.result_cache import ResultCache, make_cache_key


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return ResultCache(clock=clock)


class TestCacheKeys:

    def test_key_ignores_param_order(self):
        first = make_cache_key("search_places", {"query": "cafe", "location": {"lat": 1, "lon": 2}})
        second = make_cache_key("search_places", {"location": {"lon": 2, "lat": 1}, "query": "cafe"})
        assert first == second

    def test_key_includes_operation(self):
        params = {"lat": 1, "lon": 2}
        assert make_cache_key("get_weather", params) != make_cache_key("search_events", params)
        assert make_cache_key("get_weather", params).startswith("get_weather:")

    def test_key_distinguishes_values(self):
        assert make_cache_key("get_weather", {"lat": 1}) != make_cache_key("get_weather", {"lat": 2})

    def test_missing_params_equal_empty_params(self):
        assert make_cache_key("get_ip_location") == make_cache_key("get_ip_location", {})


class TestGetSet:

    def test_hit_before_expiry(self, cache, clock):
        cache.set("k", {"v": 1}, ttl_ms=1000)
        clock.advance(999)
        assert cache.get("k") == {"v": 1}

    def test_miss_at_expiry_removes_entry(self, cache, clock):
        cache.set("k", {"v": 1}, ttl_ms=1000)
        clock.advance(1000)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_unknown_key(self, cache):
        assert cache.get("missing") is None

    def test_overwrite_resets_ttl(self, cache, clock):
        cache.set("k", "old", ttl_ms=1000)
        clock.advance(900)
        cache.set("k", "new", ttl_ms=1000)
        clock.advance(900)
        assert cache.get("k") == "new"

    @pytest.mark.parametrize("ttl", [0, -5])
    def test_non_positive_ttl_rejected(self, cache, ttl):
        with pytest.raises(CacheError):
            cache.set("k", "v", ttl_ms=ttl)

    def test_delete(self, cache):
        cache.set("k", "v", ttl_ms=1000)
        assert cache.delete("k") is True
        assert cache.delete("k") is False


class TestMaintenance:

    def test_clear_returns_count(self, cache):
        cache.set("a", 1, ttl_ms=1000)
        cache.set("b", 2, ttl_ms=1000)
        assert cache.clear() == 2
        assert len(cache) == 0

    def test_sweep_removes_only_expired(self, cache, clock):
        cache.set("short", 1, ttl_ms=100)
        cache.set("long", 2, ttl_ms=10_000)
        clock.advance(500)

        assert cache.sweep() == 1
        assert cache.get("long") == 2
        assert len(cache) == 1

    def test_stats(self, cache, clock):
        cache.set("a", 1, ttl_ms=1000)
        clock.advance(250)

        stats = cache.stats()
        assert stats["size"] == 1
        assert stats["entries"] == [{"key": "a", "age_ms": 250, "ttl_ms": 1000}]


def test_concurrent_writers_keep_one_entry_per_key():
    cache = ResultCache()

    def writer(n):
        for i in range(200):
            cache.set(f"key-{i % 10}", n, ttl_ms=60_000)
            cache.get(f"key-{(i + 1) % 10}")

    threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(cache) == 10
    assert cache.stats()["size"] == 10
