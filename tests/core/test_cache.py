from __future__ import annotations

from sheetsync.core.cache import Cache, get_default_cache
from sheetsync.core.metrics import metrics_registry


class _Clock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_get_returns_value_and_counts_hits() -> None:
    cache = Cache(sweep_interval=None)
    cache.set("extent:s1:Sheet1", 42)

    assert cache.get("extent:s1:Sheet1") == 42
    assert cache.get("missing") is None
    assert metrics_registry.counter("cache.hits") == 1
    assert metrics_registry.counter("cache.misses") == 1


def test_expiry_is_fixed_from_insertion_and_reads_do_not_extend_it() -> None:
    clock = _Clock()
    cache = Cache(default_ttl=10, sweep_interval=None, clock=clock)
    cache.set("k", "v")

    clock.now += 9
    assert cache.get("k") == "v"
    clock.now += 2
    assert cache.get("k") is None


def test_caller_ttl_overrides_entry_ttl() -> None:
    clock = _Clock()
    cache = Cache(default_ttl=3600, sweep_interval=None, clock=clock)
    cache.set("schema:reservations", {"id"})

    clock.now += 301
    assert cache.get("schema:reservations", ttl=300) is None


def test_overflow_evicts_entry_with_fewest_hits() -> None:
    cache = Cache(max_entries=2, sweep_interval=None)
    cache.set("old-popular", 1)
    cache.set("new-unused", 2)
    cache.get("old-popular")
    cache.get("old-popular")

    cache.set("newest", 3)

    assert cache.get("old-popular") == 1
    assert cache.get("new-unused") is None
    assert cache.get("newest") == 3


def test_eviction_tie_removes_first_inserted() -> None:
    cache = Cache(max_entries=2, sweep_interval=None)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.set("c", 3)

    assert cache.get("a") is None
    assert cache.get("b") == 2


def test_overwrite_existing_key_does_not_evict() -> None:
    cache = Cache(max_entries=2, sweep_interval=None)
    cache.set("a", 1)
    cache.set("b", 2)

    cache.set("a", 10)

    assert cache.get("a") == 10
    assert cache.get("b") == 2


def test_sweep_removes_expired_entries_regardless_of_hits() -> None:
    clock = _Clock()
    cache = Cache(default_ttl=10, sweep_interval=None, clock=clock)
    cache.set("hot", 1)
    cache.set("fresh", 2, ttl=100)
    for _ in range(5):
        cache.get("hot")

    clock.now += 11

    assert cache.sweep() == 1
    assert cache.stats()["size"] == 1


def test_delete_pattern_and_clear() -> None:
    cache = Cache(sweep_interval=None)
    cache.set("schema:a", 1)
    cache.set("schema:b", 2)
    cache.set("extent:s:a", 3)

    removed = cache.delete_pattern(r"^schema:")

    assert removed == 2
    assert cache.get("extent:s:a") == 3
    cache.clear()
    assert cache.stats() == {"size": 0, "hit_rate": 0.0}


def test_stats_reports_mean_hits_per_entry() -> None:
    cache = Cache(sweep_interval=None)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.set("c", 3)
    cache.get("a")
    cache.get("a")
    cache.get("b")

    assert cache.stats() == {"size": 3, "hit_rate": 1.0}


def test_set_starts_background_sweeper_and_close_stops_it() -> None:
    cache = Cache(sweep_interval=3600)
    cache.set("a", 1)

    sweeper = cache._sweeper
    assert sweeper is not None and sweeper.daemon

    cache.close()
    assert not sweeper.is_alive()


def test_default_cache_is_a_singleton() -> None:
    assert get_default_cache() is get_default_cache()
