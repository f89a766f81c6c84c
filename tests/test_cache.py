"""TTL cache tests"""

from power_pricing.cache import TTLCache


def test_fresh_and_stale_reads(clock):
    cache = TTLCache("test", ttl_seconds=10, clock=clock)
    cache.put("a", 1)

    assert cache.get("a") == 1
    clock.advance(10)
    assert cache.get("a") is None
    assert cache.get_stale("a") == 1


def test_per_entry_ttl(clock):
    cache = TTLCache("test", ttl_seconds=10, clock=clock)
    cache.put("short", 1, ttl_seconds=1)
    cache.put("long", 2)
    clock.advance(5)

    assert cache.get("short") is None
    assert cache.get("long") == 2


def test_eviction_drops_earliest_inserted(clock):
    cache = TTLCache("test", ttl_seconds=10, max_items=2, clock=clock)
    cache.put("a", 1)
    clock.advance(1)
    cache.put("b", 2)
    clock.advance(1)
    cache.put("a", 3)
    clock.advance(1)
    cache.put("c", 4)

    assert "b" not in cache
    assert cache.get("a") == 3
    assert cache.get("c") == 4


def test_cleanup_and_stats(clock):
    cache = TTLCache("test", ttl_seconds=10, clock=clock)
    cache.put("a", 1)
    clock.advance(5)
    cache.put("b", 2)
    clock.advance(6)

    assert cache.get_stats() == {"totalEntries": 2, "freshEntries": 1, "staleEntries": 1, "hitRate": 0.0}
    assert cache.cleanup_expired() == 1
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0
