from __future__ import annotations

import inspect
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable


class MetricsRegistry:
    def __init__(self) -> None:
        self._lock = Lock()
        self._counters: dict[str, int] = {}
        self._timings: dict[str, list[float]] = {}

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def increment(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def record_timing(self, name: str, milliseconds: float) -> None:
        with self._lock:
            bucket = self._timings.setdefault(name, [])
            bucket.append(milliseconds)

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._timings.clear()

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            counters = dict(self._counters)
            timings = {name: list(values) for name, values in self._timings.items()}
        return {
            "counters": counters,
            "timings_ms": {
                name: {
                    "count": len(values),
                    "last": values[-1] if values else 0.0,
                    "avg": (sum(values) / len(values)) if values else 0.0,
                    "max": max(values) if values else 0.0,
                }
                for name, values in timings.items()
            },
        }


metrics_registry = MetricsRegistry()


def measure_time(metric_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                started = perf_counter()
                try:
                    return await func(*args, **kwargs)
                finally:
                    metrics_registry.record_timing(metric_name, (perf_counter() - started) * 1000)

            return async_wrapper

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                metrics_registry.record_timing(metric_name, (perf_counter() - started) * 1000)

        return wrapper

    return decorator
