from __future__ import annotations

from contextlib import AbstractContextManager
from contextvars import ContextVar, Token
from datetime import datetime, timezone
import logging
import uuid
from typing import Any

_CORRELATION_ID: ContextVar[str | None] = ContextVar("correlation_id", default=None)
_JOB_ID: ContextVar[str | None] = ContextVar("job_id", default=None)
ESCAPED_JOB_ATTRIBUTE = "sheetsync_job_id"


def generate_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str | None:
    return _CORRELATION_ID.get()


def get_job_id() -> str | None:
    return _JOB_ID.get()


def job_of(exc: BaseException) -> str | None:
    """The active job, or the job an exception escaped from."""
    return get_job_id() or getattr(exc, ESCAPED_JOB_ATTRIBUTE, None)


def set_correlation_id(correlation_id: str | None) -> Token[str | None]:
    return _CORRELATION_ID.set(correlation_id)


def reset_correlation_id(token: Token[str | None]) -> None:
    _CORRELATION_ID.reset(token)


class OperationContext(AbstractContextManager["OperationContext"]):
    """Binds a correlation id (and optionally a job label) for one sync run.

    Context variables are copied into tasks created with ``asyncio``, so every
    chunk read and batch upsert spawned inside the block logs the same id.
    """

    def __init__(self, operation_name: str, *, job_id: str | None = None) -> None:
        self.operation_name = operation_name
        self.job_id = job_id
        self.correlation_id = generate_correlation_id()
        self._correlation_token: Token[str | None] | None = None
        self._job_token: Token[str | None] | None = None

    def __enter__(self) -> "OperationContext":
        self._correlation_token = set_correlation_id(self.correlation_id)
        self._job_token = _JOB_ID.set(self.job_id)
        return self

    def __exit__(self, exc_type: object, exc: object, exc_tb: object) -> None:
        # The job binding is gone once the exception leaves the block; keep it on the exception.
        if isinstance(exc, BaseException) and self.job_id and not hasattr(exc, ESCAPED_JOB_ATTRIBUTE):
            setattr(exc, ESCAPED_JOB_ATTRIBUTE, self.job_id)
        if self._job_token is not None:
            _JOB_ID.reset(self._job_token)
        if self._correlation_token is not None:
            reset_correlation_id(self._correlation_token)
        return None


def log_event(
    logger: logging.Logger,
    event_name: str,
    payload: dict[str, Any],
    correlation_id: str | None = None,
    *,
    level: int = logging.INFO,
) -> dict[str, Any]:
    resolved_correlation_id = correlation_id or get_correlation_id()
    event = {
        "event": event_name,
        "correlation_id": resolved_correlation_id,
        "job_id": get_job_id(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "payload": payload,
    }
    logger.log(
        level,
        event_name,
        extra={
            "correlation_id": resolved_correlation_id,
            "extra": event,
        },
    )
    return event
