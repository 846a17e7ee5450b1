from __future__ import annotations

import asyncio
from time import sleep

from sheetsync.core import metrics


def test_increment_counter() -> None:
    registry = metrics.MetricsRegistry()

    registry.increment("upsert.batches")
    registry.increment("upsert.batches", 2)

    assert registry.counter("upsert.batches") == 3


def test_record_timing_snapshot() -> None:
    registry = metrics.MetricsRegistry()

    registry.record_timing("sync.total", 10)
    registry.record_timing("sync.total", 30)

    snapshot = registry.snapshot()
    assert snapshot["timings_ms"]["sync.total"] == {"count": 2, "last": 30, "avg": 20, "max": 30}


def test_decorator_measures_sync_function() -> None:
    original_registry = metrics.metrics_registry
    metrics.metrics_registry = metrics.MetricsRegistry()

    @metrics.measure_time("latency.decorated")
    def _operation() -> str:
        sleep(0.01)
        return "ok"

    try:
        result = _operation()
        measured = metrics.metrics_registry.snapshot()["timings_ms"]["latency.decorated"]["last"]
    finally:
        metrics.metrics_registry = original_registry

    assert result == "ok"
    assert measured > 0


def test_decorator_measures_coroutine() -> None:
    @metrics.measure_time("latency.async_decorated")
    async def _operation() -> int:
        await asyncio.sleep(0)
        return 7

    assert asyncio.run(_operation()) == 7
    assert metrics.metrics_registry.snapshot()["timings_ms"]["latency.async_decorated"]["count"] == 1
