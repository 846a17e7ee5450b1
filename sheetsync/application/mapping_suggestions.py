from __future__ import annotations

from typing import Iterable

MIN_CONTAINMENT_LENGTH = 3

HEADER_ALIASES = {
    "예약번호": "id",
    "고객명": "name",
    "이메일": "email",
    "전화번호": "phone",
    "성인수": "adults",
    "아동수": "child",
    "유아수": "infant",
    "총인원": "total_people",
    "투어날짜": "tour_date",
    "투어시간": "tour_time",
    "상품ID": "product_id",
    "투어ID": "tour_id",
    "픽업호텔": "pickup_hotel",
    "픽업시간": "pickup_time",
    "채널": "channel_id",
    "상태": "status",
    "비고": "notes",
    "개인투어": "is_private_tour",
    "가이드": "tour_guide_id",
    "어시스턴트": "assistant_id",
}


def suggest_column_mapping(sheet_columns: Iterable[str], table_columns: Iterable[str]) -> dict[str, str]:
    """Proposes a sheet column -> table column mapping.

    Each sheet column is matched by exact name (case-insensitive), then through
    the known header aliases, then by containment in either direction.
    A table column is suggested at most once.
    """
    columns = [column for column in table_columns if column]
    by_lower = {column.lower(): column for column in columns}
    taken: set[str] = set()
    suggestions: dict[str, str] = {}
    for sheet_column in sheet_columns:
        header = sheet_column.strip()
        if not header:
            continue
        match = _match(header, columns, by_lower, taken)
        if match is not None:
            suggestions[sheet_column] = match
            taken.add(match)
    return suggestions


def _match(header: str, columns: list[str], by_lower: dict[str, str], taken: set[str]) -> str | None:
    lowered = header.lower()
    exact = by_lower.get(lowered)
    if exact is not None and exact not in taken:
        return exact
    alias = HEADER_ALIASES.get(header)
    if alias is not None and alias in by_lower.values() and alias not in taken:
        return alias
    for column in columns:
        candidate = column.lower()
        if column in taken or min(len(candidate), len(lowered)) < MIN_CONTAINMENT_LENGTH:
            continue
        if lowered in candidate or candidate in lowered:
            return column
    return None
