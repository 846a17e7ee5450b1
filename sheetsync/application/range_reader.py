"""Chunked, retrying reader for one spreadsheet sheet.

The header row plus a small first chunk is read up front so that structural
failures (missing sheet, no permission) surface after a single call. The rest
of the sheet is split into fixed-size row ranges fetched with bounded
parallelism. Results are placed by range position, never by completion order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from sheetsync.core.cache import Cache
from sheetsync.core.metrics import measure_time, metrics_registry
from sheetsync.core.retry import RetryDecision, with_retry
from sheetsync.domain.models import RawRow, SheetExtent
from sheetsync.domain.ports import SpreadsheetSourcePort
from sheetsync.domain.sheets_errors import SourceTransientError, SourceUnavailableError

logger = logging.getLogger(__name__)

MIN_COLUMNS = 26
MAX_COLUMNS = 702
DEFAULT_EXTENT = SheetExtent(row_count=1000, column_count=MIN_COLUMNS)


def classify_source_error(exc: BaseException) -> RetryDecision:
    if isinstance(exc, SourceUnavailableError):
        return RetryDecision.FAIL_FAST
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError, SourceTransientError)):
        return RetryDecision.RETRY
    return RetryDecision.RETRY_ONCE


def clamp_columns(column_count: int) -> int:
    return max(MIN_COLUMNS, min(MAX_COLUMNS, column_count))


def chunk_timeout(rows: int, *, base: float, per_row: float, maximum: float) -> float:
    return min(maximum, base + rows * per_row)


def plan_chunks(first_data_row: int, last_row: int, chunk_size: int) -> list[tuple[int, int]]:
    """Splits the 1-based inclusive row range into ``chunk_size`` slices."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    return [
        (start, min(start + chunk_size - 1, last_row))
        for start in range(first_data_row, last_row + 1, chunk_size)
    ]


def zip_rows(headers: list[str], rows: list[list[str]]) -> list[RawRow]:
    zipped: list[RawRow] = []
    for row in rows:
        if not any(str(cell).strip() for cell in row):
            continue
        record: RawRow = {}
        for index, header in enumerate(headers):
            if not header:
                continue
            record[header] = str(row[index]) if index < len(row) else ""
        zipped.append(record)
    return zipped


class RangeReader:
    def __init__(
        self,
        source: SpreadsheetSourcePort,
        cache: Cache,
        *,
        initial_chunk_rows: int = 200,
        chunk_size: int = 1000,
        read_concurrency: int = 2,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 16.0,
        chunk_timeout_base: float = 10.0,
        chunk_timeout_per_row: float = 0.02,
        chunk_timeout_max: float = 60.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._source = source
        self._cache = cache
        self._initial_chunk_rows = initial_chunk_rows
        self._chunk_size = chunk_size
        self._read_concurrency = max(1, read_concurrency)
        self._max_retries = max_retries
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._timeout_base = chunk_timeout_base
        self._timeout_per_row = chunk_timeout_per_row
        self._timeout_max = chunk_timeout_max
        self._sleep = sleep

    @measure_time("sheets.read_all")
    async def read_all(self, source_id: str, sheet_name: str) -> list[RawRow]:
        extent = await self.resolve_extent(source_id, sheet_name)
        first_end = 1 + self._initial_chunk_rows
        try:
            first_chunk = await self._fetch(source_id, sheet_name, 1, first_end, extent.column_count)
        except SourceUnavailableError:
            raise
        except Exception as exc:
            raise SourceUnavailableError(
                f"Could not read the first rows of '{sheet_name}' after retries: {exc}"
            ) from exc
        if not first_chunk:
            logger.info("Sheet %s is empty", sheet_name)
            return []

        headers = [str(cell).strip() for cell in first_chunk[0]]
        chunks: list[list[list[str]]] = [first_chunk[1:]]
        # The API leaves out trailing blank rows, so a short first chunk does not mark the end of the data.
        if extent.row_count > first_end:
            plan = plan_chunks(first_end + 1, extent.row_count, self._chunk_size)
            logger.info("Reading %s in %s more chunks (rows %s-%s)", sheet_name, len(plan), first_end + 1, extent.row_count)
            chunks.extend(await self._fetch_chunks(source_id, sheet_name, plan, extent.column_count))

        rows: list[RawRow] = []
        for chunk in chunks:
            rows.extend(zip_rows(headers, chunk))
        logger.info("Read %s rows from %s", len(rows), sheet_name)
        return rows

    async def resolve_extent(self, source_id: str, sheet_name: str) -> SheetExtent:
        cache_key = f"extent:{source_id}:{sheet_name}"
        cached = self._cache.get(cache_key)
        if isinstance(cached, SheetExtent):
            return cached
        try:
            extent = await self._source.get_extent(source_id, sheet_name)
        except Exception as exc:
            logger.warning("Could not resolve extent of %s, using default %s: %s", sheet_name, DEFAULT_EXTENT, exc)
            return DEFAULT_EXTENT
        resolved = SheetExtent(row_count=extent.row_count, column_count=clamp_columns(extent.column_count))
        self._cache.set(cache_key, resolved)
        return resolved

    async def _fetch_chunks(
        self,
        source_id: str,
        sheet_name: str,
        plan: list[tuple[int, int]],
        column_count: int,
    ) -> list[list[list[str]]]:
        semaphore = asyncio.Semaphore(self._read_concurrency)

        async def fetch_one(start_row: int, end_row: int) -> list[list[str]]:
            async with semaphore:
                try:
                    return await self._fetch(source_id, sheet_name, start_row, end_row, column_count)
                except SourceUnavailableError:
                    raise
                except Exception as exc:
                    metrics_registry.increment("sheets.chunks_skipped")
                    logger.error("Skipping rows %s-%s of %s after retries: %s", start_row, end_row, sheet_name, exc)
                    return []

        return list(await asyncio.gather(*(fetch_one(start, end) for start, end in plan)))

    async def _fetch(
        self,
        source_id: str,
        sheet_name: str,
        start_row: int,
        end_row: int,
        column_count: int,
    ) -> list[list[str]]:
        timeout = chunk_timeout(
            end_row - start_row + 1,
            base=self._timeout_base,
            per_row=self._timeout_per_row,
            maximum=self._timeout_max,
        )

        async def attempt() -> list[list[str]]:
            return await asyncio.wait_for(
                self._source.read_rows(source_id, sheet_name, start_row, end_row, column_count),
                timeout=timeout,
            )

        return await with_retry(
            attempt,
            classify_source_error,
            max_retries=self._max_retries,
            base_delay=self._base_delay,
            max_delay=self._max_delay,
            operation_name=f"read {sheet_name}!{start_row}:{end_row}",
            sleep=self._sleep,
        )
