"""Process-wide TTL cache with least-hits eviction.

Entries expire a fixed time after insertion (reads never extend them). When
the cache is full, the entry with the fewest recorded hits is evicted, so an
old but popular entry outlives a new one nobody reads. A daemon thread sweeps
expired entries on a fixed interval regardless of hit counts.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable

from sheetsync.core.metrics import metrics_registry

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 2 * 60 * 60
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_SWEEP_INTERVAL_SECONDS = 30 * 60


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: float
    ttl: float
    hit_count: int = 0


class Cache:
    def __init__(
        self,
        *,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        sweep_interval: float | None = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._sweeper: threading.Thread | None = None

    def get(self, key: str, ttl: float | None = None, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                metrics_registry.increment("cache.misses")
                return default
            effective_ttl = entry.ttl if ttl is None else ttl
            if self._clock() - entry.inserted_at > effective_ttl:
                del self._entries[key]
                metrics_registry.increment("cache.misses")
                return default
            entry.hit_count += 1
            metrics_registry.increment("cache.hits")
            return entry.value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        with self._lock:
            if key not in self._entries and len(self._entries) >= self._max_entries:
                self._evict_least_used()
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                inserted_at=self._clock(),
                ttl=self._default_ttl if ttl is None else ttl,
            )
        self._ensure_sweeper()

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def delete_pattern(self, pattern: str) -> int:
        regex = re.compile(pattern)
        with self._lock:
            doomed = [key for key in self._entries if regex.search(key)]
            for key in doomed:
                del self._entries[key]
        logger.info("Cache pattern invalidation removed %s entries (%s)", len(doomed), pattern)
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Cache cleared")

    def sweep(self) -> int:
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if now - entry.inserted_at > entry.ttl]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info("Cache sweep removed %s expired entries", len(expired))
        return len(expired)

    def stats(self) -> dict[str, float]:
        with self._lock:
            size = len(self._entries)
            total_hits = sum(entry.hit_count for entry in self._entries.values())
        hit_rate = total_hits / size if size else 0.0
        return {"size": size, "hit_rate": round(hit_rate, 2)}

    def close(self) -> None:
        self._stop.set()
        sweeper = self._sweeper
        if sweeper is not None and sweeper.is_alive():
            sweeper.join(timeout=1.0)
        self._sweeper = None

    def _evict_least_used(self) -> None:
        # min() keeps the first-inserted entry on ties.
        victim = min(self._entries.values(), key=lambda entry: entry.hit_count)
        del self._entries[victim.key]
        logger.debug("Cache evicted %s (hits=%s)", victim.key, victim.hit_count)

    def _ensure_sweeper(self) -> None:
        if self._sweep_interval is None or self._stop.is_set():
            return
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        with self._lock:
            if self._sweeper is not None and self._sweeper.is_alive():
                return
            self._sweeper = threading.Thread(target=self._sweep_loop, name="sheetsync-cache-sweeper", daemon=True)
            self._sweeper.start()

    def _sweep_loop(self) -> None:
        interval = self._sweep_interval or DEFAULT_SWEEP_INTERVAL_SECONDS
        while not self._stop.wait(interval):
            try:
                self.sweep()
            except Exception:  # pragma: no cover - the sweeper must outlive bad entries
                logger.exception("Cache sweep failed")


_default_cache: Cache | None = None
_default_cache_lock = threading.Lock()


def get_default_cache(**options: Any) -> Cache:
    """Process-wide cache, created on first use; ``options`` only apply to that first call."""
    global _default_cache
    if _default_cache is None:
        with _default_cache_lock:
            if _default_cache is None:
                _default_cache = Cache(**options)
    return _default_cache
