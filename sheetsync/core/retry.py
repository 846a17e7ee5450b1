"""Exponential backoff shared by every remote call site.

Callers supply a classifier that maps an exception to a :class:`RetryDecision`;
the backoff math (no jitter, doubling, capped) lives only here.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


class RetryDecision(enum.Enum):
    FAIL_FAST = "fail_fast"
    RETRY = "retry"
    RETRY_ONCE = "retry_once"


ErrorClassifier = Callable[[BaseException], RetryDecision]


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    if attempt < 1:
        raise ValueError("attempt must be >= 1")
    return min(max_delay, base_delay * (2 ** (attempt - 1)))


def allowed_attempts(decision: RetryDecision, max_retries: int) -> int:
    if decision is RetryDecision.FAIL_FAST:
        return 1
    if decision is RetryDecision.RETRY_ONCE:
        return min(2, max_retries + 1)
    return max_retries + 1


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    classify: ErrorClassifier,
    *,
    max_retries: int,
    base_delay: float,
    max_delay: float,
    operation_name: str = "operation",
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` until it succeeds or its error class runs out of attempts.

    The last exception is re-raised unchanged once retries are exhausted.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as exc:
            decision = classify(exc)
            limit = allowed_attempts(decision, max_retries)
            if attempt >= limit:
                if decision is not RetryDecision.FAIL_FAST:
                    logger.error(
                        "%s failed after %s attempts: %s",
                        operation_name,
                        attempt,
                        exc,
                    )
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "%s failed (%s). attempt=%s/%s backoff=%.3fs",
                operation_name,
                type(exc).__name__,
                attempt,
                limit,
                delay,
            )
            await sleep(delay)
