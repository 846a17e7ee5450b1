from __future__ import annotations

from typing import Any, Callable, Iterable, Protocol, Sequence

from sheetsync.domain.models import ProgressEvent, SheetExtent, SheetInfo, TransformedRow


class SpreadsheetSourcePort(Protocol):
    async def list_sheets(self, source_id: str, prefix: str | None = None) -> list[SheetInfo]:
        ...

    async def get_extent(self, source_id: str, sheet_name: str) -> SheetExtent:
        ...

    async def read_rows(
        self,
        source_id: str,
        sheet_name: str,
        start_row: int,
        end_row: int,
        column_count: int,
    ) -> list[list[str]]:
        ...


class DatastorePort(Protocol):
    async def sample_rows(self, table: str, limit: int = 1) -> list[dict[str, Any]]:
        ...

    async def list_columns(self, table: str) -> list[str]:
        ...

    async def existing_keys(self, table: str, column: str, values: Iterable[str]) -> set[str]:
        ...

    async def upsert(self, table: str, rows: Sequence[TransformedRow], conflict_key: str) -> int:
        ...


ProgressSink = Callable[[ProgressEvent], object]
