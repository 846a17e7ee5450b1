"""Concurrent batched upserts with a mini-batch fallback.

Batches are built in input order and run under a semaphore, so they may finish
out of order; each batch touches a disjoint set of rows and the datastore
resolves conflicts per key, which makes completion order irrelevant.

Per batch state machine::

    PENDING -> SENT -> APPLIED
                    -> AUTH_DENIED -> MINI_BATCH_RETRY -> APPLIED | PARTIALLY_APPLIED | FAILED
                    -> FAILED
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Sequence

from sheetsync.application.progress import ProgressReporter
from sheetsync.application.schema_introspector import SchemaIntrospector
from sheetsync.core.metrics import measure_time, metrics_registry
from sheetsync.core.retry import RetryDecision, with_retry
from sheetsync.domain.datastore_errors import DatastoreTransientError, PolicyDeniedError
from sheetsync.domain.models import BatchOutcome, BatchResult, BatchState, TransformedRow
from sheetsync.domain.ports import DatastorePort
from sheetsync.domain.table_policies import TableSyncPolicy, policy_for

logger = logging.getLogger(__name__)

MINI_BATCH_PAUSE_SECONDS = 0.005


def batch_size_for(row_count: int) -> int:
    if row_count > 50_000:
        return 1000
    if row_count > 20_000:
        return 800
    if row_count > 10_000:
        return 500
    if row_count > 5_000:
        return 400
    return 200


def concurrency_for(row_count: int) -> int:
    return 5 if row_count > 5_000 else 3


def mini_batch_size_for(batch_len: int) -> int:
    return 25 if batch_len > 100 else 10


def split_batches(rows: Sequence[TransformedRow], size: int) -> list[list[TransformedRow]]:
    return [list(rows[start : start + size]) for start in range(0, len(rows), size)]


def classify_datastore_error(exc: BaseException) -> RetryDecision:
    if isinstance(exc, DatastoreTransientError):
        return RetryDecision.RETRY
    return RetryDecision.FAIL_FAST


class BulkUpsertEngine:
    def __init__(
        self,
        datastore: DatastorePort,
        introspector: SchemaIntrospector,
        *,
        policy_lookup: Callable[[str], TableSyncPolicy] = policy_for,
        max_retries: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        mini_batch_pause: float = MINI_BATCH_PAUSE_SECONDS,
        batch_size: int | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        self._datastore = datastore
        self._introspector = introspector
        self._policy_lookup = policy_lookup
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._mini_batch_pause = mini_batch_pause
        self._batch_size = batch_size
        self._sleep = sleep
        self._id_factory = id_factory
        self._clock = clock

    @measure_time("upsert.apply")
    async def apply(
        self,
        rows: Sequence[TransformedRow],
        target_table: str,
        conflict_key: str,
        *,
        progress: ProgressReporter | None = None,
    ) -> BatchResult:
        if not rows:
            return BatchResult()
        reporter = progress or ProgressReporter()
        try:
            prepared = await self._prepare(rows, target_table)
        except Exception as exc:
            logger.exception("Could not prepare %s rows for %s", len(rows), target_table)
            message = f"{target_table}: preparation failed: {exc}"
            reporter.error(message)
            return BatchResult(errors=len(rows), error_messages=(message,))

        size = self._batch_size or batch_size_for(len(prepared))
        batches = split_batches(prepared, size)
        semaphore = asyncio.Semaphore(concurrency_for(len(prepared)))
        counters = {"processed": 0, "applied": 0, "errors": 0}
        messages: list[str] = []
        logger.info("Upserting %s rows into %s in %s batches of %s", len(prepared), target_table, len(batches), size)

        async def run(index: int, batch: list[TransformedRow]) -> BatchOutcome:
            async with semaphore:
                outcome = await self._run_batch(index, batch, target_table, conflict_key, messages, reporter)
            counters["processed"] += outcome.size
            counters["applied"] += outcome.applied
            counters["errors"] += outcome.errors
            reporter.progress(
                total=len(prepared),
                processed=counters["processed"],
                applied=counters["applied"],
                errors=counters["errors"],
                message=f"batch {index + 1}/{len(batches)} {outcome.state.value}",
            )
            return outcome

        outcomes = await asyncio.gather(*(run(index, batch) for index, batch in enumerate(batches)))
        metrics_registry.increment("upsert.batches", len(batches))
        return BatchResult(
            applied=sum(outcome.applied for outcome in outcomes),
            errors=sum(outcome.errors for outcome in outcomes),
            error_messages=tuple(messages),
            batches_attempted=len(outcomes),
            outcomes=tuple(outcomes),
        )

    async def _prepare(self, rows: Sequence[TransformedRow], table: str) -> list[TransformedRow]:
        policy = self._policy_lookup(table)
        stamp_updated_at = await self._introspector.has_column(table, "updated_at")
        now_iso = self._clock().isoformat()
        prepared: list[TransformedRow] = []
        for row in rows:
            item = dict(row)
            if policy.generate_ids and not item.get("id"):
                item["id"] = self._id_factory()
            if stamp_updated_at:
                item["updated_at"] = now_iso
            prepared.append(item)
        return prepared

    async def _run_batch(
        self,
        index: int,
        batch: list[TransformedRow],
        table: str,
        conflict_key: str,
        messages: list[str],
        reporter: ProgressReporter,
    ) -> BatchOutcome:
        outcome = BatchOutcome(index=index, size=len(batch))
        outcome.state = BatchState.SENT
        try:
            await self._send(table, batch, conflict_key)
        except PolicyDeniedError as exc:
            outcome.state = BatchState.AUTH_DENIED
            logger.warning("Batch %s on %s denied by policy (%s); retrying in mini-batches", index, table, exc)
            outcome.state = BatchState.MINI_BATCH_RETRY
            applied, errors = await self._apply_mini_batches(index, batch, table, conflict_key, messages, reporter)
            outcome.applied = applied
            outcome.errors = errors
            if errors == 0:
                outcome.state = BatchState.APPLIED
            elif applied > 0:
                outcome.state = BatchState.PARTIALLY_APPLIED
            else:
                outcome.state = BatchState.FAILED
            return outcome
        except Exception as exc:
            message = f"{table} batch {index + 1}: {exc}"
            logger.error("Batch %s on %s failed: %s", index, table, exc)
            messages.append(message)
            reporter.error(message)
            outcome.state = BatchState.FAILED
            outcome.errors = len(batch)
            return outcome
        outcome.state = BatchState.APPLIED
        outcome.applied = len(batch)
        return outcome

    async def _apply_mini_batches(
        self,
        index: int,
        batch: list[TransformedRow],
        table: str,
        conflict_key: str,
        messages: list[str],
        reporter: ProgressReporter,
    ) -> tuple[int, int]:
        applied = 0
        errors = 0
        for position, mini_batch in enumerate(split_batches(batch, mini_batch_size_for(len(batch)))):
            if position:
                await self._sleep(self._mini_batch_pause)
            metrics_registry.increment("upsert.mini_batches")
            try:
                await self._send(table, mini_batch, conflict_key)
            except Exception as exc:
                errors += len(mini_batch)
                message = f"{table} batch {index + 1} mini-batch {position + 1}: {exc}"
                logger.error(message)
                messages.append(message)
                reporter.error(message)
                continue
            applied += len(mini_batch)
        return applied, errors

    async def _send(self, table: str, rows: list[TransformedRow], conflict_key: str) -> None:
        await with_retry(
            lambda: self._datastore.upsert(table, rows, conflict_key),
            classify_datastore_error,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
            operation_name=f"upsert {table} ({len(rows)} rows)",
            sleep=self._sleep,
        )
