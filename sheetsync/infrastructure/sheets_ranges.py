from __future__ import annotations

from typing import Any


def column_letter(index: int) -> str:
    """1-based column index to A1 letters (1 -> A, 27 -> AA, 702 -> ZZ)."""
    if index < 1:
        raise ValueError("column index must be >= 1")
    letters = ""
    while index:
        index, remainder = divmod(index - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def quote_sheet_title(title: str) -> str:
    return "'" + title.replace("'", "''") + "'"


def build_range(sheet_name: str, start_row: int, end_row: int, column_count: int) -> str:
    if start_row < 1 or end_row < start_row:
        raise ValueError(f"invalid row range {start_row}:{end_row}")
    return f"{quote_sheet_title(sheet_name)}!A{start_row}:{column_letter(column_count)}{end_row}"


def extract_values(payload: Any) -> list[list[str]]:
    values = payload.get("values", []) if isinstance(payload, dict) else []
    if not isinstance(values, list):
        return []
    return [["" if cell is None else str(cell) for cell in row] for row in values if isinstance(row, list)]
