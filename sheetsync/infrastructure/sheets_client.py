from __future__ import annotations

import asyncio
import json
import logging
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

import gspread
import requests
from google.auth.exceptions import GoogleAuthError

from sheetsync.core.cache import Cache
from sheetsync.core.metrics import metrics_registry
from sheetsync.core.observability import get_correlation_id
from sheetsync.core.operational_logging import log_operational_error
from sheetsync.domain.models import SheetExtent, SheetInfo
from sheetsync.domain.ports import SpreadsheetSourcePort
from sheetsync.domain.sheets_errors import AuthorizationDeniedError, SourceCredentialsError
from sheetsync.infrastructure.sheets_errors import INVALID_CREDENTIALS_MESSAGE, map_gspread_exception
from sheetsync.infrastructure.sheets_ranges import build_range, extract_values

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MAPPED_EXCEPTIONS = (
    gspread.exceptions.GSpreadException,
    requests.exceptions.RequestException,
    GoogleAuthError,
    FileNotFoundError,
    json.JSONDecodeError,
    OSError,
)


class SheetsClient(SpreadsheetSourcePort):
    """gspread-backed spreadsheet source.

    gspread is blocking, so every call runs in a worker thread. This client does
    not retry: retry and timeout policy belong to the reader driving it.
    """

    def __init__(
        self,
        credentials_path: Path,
        *,
        cache: Cache | None = None,
        client_factory: Callable[..., Any] = gspread.service_account,
    ) -> None:
        self._credentials_path = credentials_path
        self._cache = cache
        self._client_factory = client_factory
        self._client: Any | None = None
        self._spreadsheets: dict[str, gspread.Spreadsheet] = {}
        self._lock = threading.Lock()
        self._read_calls_count = 0

    async def list_sheets(self, source_id: str, prefix: str | None = None) -> list[SheetInfo]:
        cache_key = f"sheets:{source_id}"
        sheets = self._cache.get(cache_key) if self._cache is not None else None
        if sheets is None:
            sheets = await self._call(
                f"spreadsheet.worksheets({source_id})",
                lambda: self._list_sheets_sync(source_id),
                source_id=source_id,
            )
            if self._cache is not None:
                self._cache.set(cache_key, sheets)
        if prefix:
            return [sheet for sheet in sheets if sheet.title.startswith(prefix)]
        return list(sheets)

    async def get_extent(self, source_id: str, sheet_name: str) -> SheetExtent:
        def fetch() -> SheetExtent:
            worksheet = self._open(source_id).worksheet(sheet_name)
            self._count_read()
            return SheetExtent(row_count=int(worksheet.row_count), column_count=int(worksheet.col_count))

        return await self._call(f"spreadsheet.worksheet({sheet_name})", fetch, source_id=source_id, sheet_name=sheet_name)

    async def read_rows(
        self,
        source_id: str,
        sheet_name: str,
        start_row: int,
        end_row: int,
        column_count: int,
    ) -> list[list[str]]:
        range_name = build_range(sheet_name, start_row, end_row, column_count)

        def fetch() -> list[list[str]]:
            payload = self._open(source_id).values_get(range_name)
            self._count_read()
            return extract_values(payload)

        logger.debug("values_get %s", range_name)
        return await self._call(f"values_get({range_name})", fetch, source_id=source_id, sheet_name=sheet_name)

    def get_read_calls_count(self) -> int:
        return self._read_calls_count

    def _list_sheets_sync(self, source_id: str) -> list[SheetInfo]:
        worksheets = self._open(source_id).worksheets()
        self._count_read()
        return [
            SheetInfo(title=worksheet.title, row_count=int(worksheet.row_count), column_count=int(worksheet.col_count))
            for worksheet in worksheets
        ]

    def _open(self, source_id: str) -> gspread.Spreadsheet:
        with self._lock:
            spreadsheet = self._spreadsheets.get(source_id)
            if spreadsheet is not None:
                return spreadsheet
            if self._client is None:
                logger.info("Connecting to Google Sheets with service account credentials")
                try:
                    self._client = self._client_factory(filename=str(self._credentials_path))
                except ValueError as exc:
                    if isinstance(exc, json.JSONDecodeError):
                        raise
                    raise SourceCredentialsError(INVALID_CREDENTIALS_MESSAGE) from exc
            spreadsheet = self._client.open_by_key(source_id)
            self._count_read()
            self._spreadsheets[source_id] = spreadsheet
            return spreadsheet

    def _count_read(self) -> None:
        self._read_calls_count += 1
        metrics_registry.increment("sheets.read_calls")

    async def _call(
        self,
        operation_name: str,
        operation: Callable[[], T],
        *,
        source_id: str,
        sheet_name: str | None = None,
    ) -> T:
        try:
            return await asyncio.to_thread(operation)
        except _MAPPED_EXCEPTIONS as exc:
            mapped_error = map_gspread_exception(exc)
            if mapped_error is exc:
                raise
            if isinstance(mapped_error, AuthorizationDeniedError):
                self._log_permission_error(mapped_error, source_id=source_id, sheet_name=sheet_name)
            logger.warning("%s failed: %s", operation_name, mapped_error)
            raise mapped_error from exc

    @staticmethod
    def _log_permission_error(
        error: AuthorizationDeniedError,
        *,
        source_id: str | None = None,
        sheet_name: str | None = None,
    ) -> None:
        log_operational_error(
            "Sync failed: insufficient permissions on Google Sheets",
            exc=error,
            extra={
                "correlation_id": get_correlation_id(),
                "operation": "sheets_permission_check",
                "spreadsheet_id": source_id,
                "worksheet": sheet_name,
            },
        )
