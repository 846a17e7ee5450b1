from __future__ import annotations

import logging
import time
from typing import Callable

from sheetsync.application.bulk_upsert import BulkUpsertEngine
from sheetsync.application.data_transformer import DataTransformer
from sheetsync.application.progress import ProgressReporter
from sheetsync.application.range_reader import RangeReader
from sheetsync.application.validator import Validator
from sheetsync.core.metrics import metrics_registry
from sheetsync.core.observability import OperationContext, log_event
from sheetsync.core.operational_logging import log_operational_error
from sheetsync.domain.models import SyncJob, SyncSummary
from sheetsync.domain.ports import ProgressSink
from sheetsync.domain.sheets_errors import SourceUnavailableError
from sheetsync.domain.table_policies import TableSyncPolicy, policy_for

logger = logging.getLogger(__name__)

MAX_REPORTED_INVALID_ROWS = 5


class SyncOrchestrator:
    """Runs one job end to end: read, transform, validate, upsert, summarize.

    Only a source that cannot be read at all produces a failed summary before
    any write; everything downstream degrades into counters and warnings.
    ``run`` always returns a :class:`SyncSummary`.
    """

    def __init__(
        self,
        reader: RangeReader,
        transformer: DataTransformer,
        validator: Validator,
        upsert_engine: BulkUpsertEngine,
        *,
        policy_lookup: Callable[[str], TableSyncPolicy] = policy_for,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self._reader = reader
        self._transformer = transformer
        self._validator = validator
        self._upsert_engine = upsert_engine
        self._policy_lookup = policy_lookup
        self._clock = clock

    async def run(self, job: SyncJob, sink: ProgressSink | None = None) -> SyncSummary:
        job_label = job.label
        with OperationContext("sync", job_id=job_label) as context:
            reporter = ProgressReporter(sink)
            started = self._clock()
            try:
                summary = await self._run_stages(job, reporter, started, context.correlation_id)
            except Exception as exc:
                log_operational_error("Sync aborted by an unexpected error", exc=exc, extra={"job": job_label})
                message = f"Unexpected error: {exc}"
                reporter.error(message)
                summary = SyncSummary(
                    success=False,
                    error_messages=(message,),
                    duration_ms=self._elapsed_ms(started),
                    correlation_id=context.correlation_id,
                )
            metrics_registry.record_timing("sync.total", summary.duration_ms)
            metrics_registry.increment("sync.runs")
            if not summary.success:
                metrics_registry.increment("sync.failed_runs")
            log_event(logger, "sync_finished", summary.to_dict(), context.correlation_id)
            return summary

    async def _run_stages(
        self,
        job: SyncJob,
        reporter: ProgressReporter,
        started: float,
        correlation_id: str,
    ) -> SyncSummary:
        policy = self._policy_lookup(job.target_table)
        reporter.start(f"Syncing {job.sheet_name} into {job.target_table}")

        reporter.info(f"Reading sheet {job.sheet_name}")
        stage_started = self._clock()
        try:
            raw_rows = await self._reader.read_all(job.source_id, job.sheet_name)
        except SourceUnavailableError as exc:
            message = str(exc)
            logger.error("Source unavailable for %s: %s", job.sheet_name, message)
            reporter.error(message)
            reporter.complete("Sync failed: source unavailable", total=0, applied=0, errors=0)
            return SyncSummary(
                success=False,
                error_messages=(message,),
                duration_ms=self._elapsed_ms(started),
                correlation_id=correlation_id,
            )
        self._record_stage("read", stage_started)

        if not raw_rows:
            message = f"No data found in sheet {job.sheet_name}"
            reporter.warn(message)
            reporter.complete(message, total=0, applied=0, errors=0)
            return SyncSummary(
                success=True,
                warnings=(message,),
                duration_ms=self._elapsed_ms(started),
                correlation_id=correlation_id,
            )

        reporter.info(f"Transforming {len(raw_rows)} rows")
        stage_started = self._clock()
        transformed = self._transformer.transform_all(raw_rows, job.column_mapping, job.target_table)
        self._record_stage("transform", stage_started)
        warnings = list(transformed.warnings)

        reporter.info("Validating rows")
        stage_started = self._clock()
        rule = job.validation_rule if job.validation_rule is not None else policy.validation_rule
        outcome = await self._validator.validate(transformed.rows, rule)
        self._record_stage("validate", stage_started)
        warnings.extend(outcome.warnings)
        if outcome.invalid:
            warnings.append(f"{len(outcome.invalid)} rows failed validation")
            for item in outcome.invalid[:MAX_REPORTED_INVALID_ROWS]:
                warnings.append("; ".join(item.reasons))
            reporter.warn(f"{len(outcome.invalid)} rows excluded by validation")

        conflict_key = job.conflict_key
        if conflict_key == "id" and policy.natural_key != "id":
            conflict_key = policy.natural_key
        reporter.info(f"Upserting {len(outcome.valid)} rows")
        stage_started = self._clock()
        result = await self._upsert_engine.apply(outcome.valid, job.target_table, conflict_key, progress=reporter)
        self._record_stage("upsert", stage_started)

        for message in warnings:
            reporter.warn(message)
        reporter.complete(
            f"Sync finished: applied={result.applied} errors={result.errors}",
            total=len(outcome.valid),
            applied=result.applied,
            errors=result.errors,
        )
        return SyncSummary(
            success=result.errors == 0,
            total_rows=len(raw_rows),
            applied=result.applied,
            errors=result.errors,
            warnings=tuple(warnings),
            invalid_rows=len(outcome.invalid),
            error_messages=result.error_messages,
            duration_ms=self._elapsed_ms(started),
            correlation_id=correlation_id,
        )

    def _record_stage(self, stage: str, stage_started: float) -> None:
        metrics_registry.record_timing(f"sync.stage.{stage}", self._elapsed_ms(stage_started))

    def _elapsed_ms(self, started: float) -> float:
        return round((self._clock() - started) * 1000, 3)
