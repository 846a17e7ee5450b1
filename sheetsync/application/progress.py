from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque

from sheetsync.core.observability import log_event
from sheetsync.domain.models import ProgressEvent
from sheetsync.domain.ports import ProgressSink

logger = logging.getLogger(__name__)

_LEVELS = {
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

DEFAULT_EVENT_HISTORY = 500


class ProgressReporter:
    """Fire-and-forget fan-out of lifecycle events to a caller sink.

    A sink that raises is logged and ignored. A sink returning an awaitable is
    scheduled on the running loop and never awaited by the pipeline.

    ``events`` keeps the most recent ``history`` events of the run for
    inspection; the sink sees every one.
    """

    def __init__(self, sink: ProgressSink | None = None, *, history: int = DEFAULT_EVENT_HISTORY) -> None:
        self._sink = sink
        self._pending: set[asyncio.Task] = set()
        self.events: deque[ProgressEvent] = deque(maxlen=history)

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)
        log_event(logger, f"sync_{event.type}", event.to_dict(), level=_LEVELS.get(event.type, logging.INFO))
        if self._sink is None:
            return
        try:
            result = self._sink(event)
        except Exception:
            logger.exception("Progress sink raised on %s event", event.type)
            return
        if inspect.isawaitable(result):
            self._schedule(result)

    def start(self, message: str, total: int | None = None) -> None:
        self.emit(ProgressEvent(type="start", message=message, total=total))

    def info(self, message: str) -> None:
        self.emit(ProgressEvent(type="info", message=message))

    def warn(self, message: str) -> None:
        self.emit(ProgressEvent(type="warn", message=message))

    def error(self, message: str) -> None:
        self.emit(ProgressEvent(type="error", message=message))

    def progress(self, *, total: int, processed: int, applied: int, errors: int, message: str | None = None) -> None:
        self.emit(
            ProgressEvent(
                type="progress",
                message=message,
                total=total,
                processed=processed,
                inserted=0,
                updated=applied,
                errors=errors,
            )
        )

    def complete(self, message: str, *, total: int, applied: int, errors: int) -> None:
        self.emit(
            ProgressEvent(
                type="complete",
                message=message,
                total=total,
                processed=total,
                inserted=0,
                updated=applied,
                errors=errors,
            )
        )

    def _schedule(self, awaitable) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning("Async progress sink called without a running event loop; event dropped")
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return
        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)
        task.add_done_callback(self._on_sink_done)

    def _on_sink_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Async progress sink failed: %s", exc)
