"""Tests for the in-process TTL cache."""

import pytest

from agent_pulse.api.cache import TTLCache


class TestTTLCache:
    """Tests for TTLCache expiry and eviction."""

    def test_fresh_hit(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now = 9.9
        assert cache.get("a") == 1

    def test_expired_is_miss_but_stale_readable(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now = 10.0

        assert cache.get("a") is None
        assert cache.get_stale("a") == 1
        assert "a" in cache

    def test_missing_key(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        assert cache.get("nope") is None
        assert cache.get_stale("nope") is None

    def test_lru_eviction(self, clock):
        cache = TTLCache(ttl_seconds=10, max_entries=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert "b" not in cache
        assert len(cache) == 2
        assert cache.get("a") == 1

    def test_overwrite_refreshes_timestamp(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        clock.now = 8
        cache.set("a", 2)
        clock.now = 15

        assert cache.get("a") == 2

    def test_clear(self, clock):
        cache = TTLCache(ttl_seconds=10, clock=clock)
        cache.set("a", 1)
        cache.clear()
        assert len(cache) == 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=10, max_entries=0)
