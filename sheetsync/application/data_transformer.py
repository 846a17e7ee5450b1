from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping

from sheetsync.application.coercion_rules import (
    is_blank,
    normalize_identifier,
    parse_boolean,
    parse_date,
    parse_json_object,
    parse_number,
    parse_string_array,
)
from sheetsync.domain.models import RawRow, TransformedRow, TransformOutcome
from sheetsync.domain.table_policies import TableSyncPolicy, policy_for

logger = logging.getLogger(__name__)


class DataTransformer:
    """Maps spreadsheet rows onto destination fields and coerces their values.

    Coercion never rejects a row: unparsable numbers become 0, unparsable JSON
    becomes ``{}`` and unparsable dates are kept verbatim with a warning.
    Blank source cells are left out of the result so an update never
    overwrites a populated destination value with nothing.
    """

    def __init__(self, policy_lookup: Callable[[str], TableSyncPolicy] = policy_for) -> None:
        self._policy_lookup = policy_lookup

    def transform(
        self,
        raw_row: RawRow,
        column_mapping: Mapping[str, str],
        target_table: str,
        warnings: list[str] | None = None,
    ) -> TransformedRow:
        policy = self._policy_lookup(target_table)
        sink = warnings if warnings is not None else []
        row = _apply_mapping(raw_row, column_mapping)
        _apply_aliases(row, policy)
        _coerce_numbers(row, policy)
        _coerce_booleans(row, policy)
        _coerce_dates(row, policy, sink)
        _coerce_arrays(row, policy)
        _coerce_json(row, policy)
        _normalize_identifiers(row, policy)
        _apply_allow_list(row, policy, sink)
        return row

    def transform_all(
        self,
        rows: Iterable[RawRow],
        column_mapping: Mapping[str, str],
        target_table: str,
    ) -> TransformOutcome:
        warnings: list[str] = []
        transformed = [self.transform(row, column_mapping, target_table, warnings) for row in rows]
        logger.info("Transformed %s rows for %s (%s warnings)", len(transformed), target_table, len(warnings))
        return TransformOutcome(rows=transformed, warnings=_dedupe(warnings))


def _apply_mapping(raw_row: RawRow, column_mapping: Mapping[str, str]) -> TransformedRow:
    row: TransformedRow = {}
    for source_column, destination_field in column_mapping.items():
        value = raw_row.get(source_column)
        if is_blank(value):
            continue
        row[destination_field] = value
    return row


def _apply_aliases(row: TransformedRow, policy: TableSyncPolicy) -> None:
    for alias, canonical in policy.field_aliases.items():
        if alias in row and canonical not in row:
            row[canonical] = row.pop(alias)


def _coerce_numbers(row: TransformedRow, policy: TableSyncPolicy) -> None:
    for name in policy.numeric_fields & row.keys():
        row[name] = parse_number(row[name])


def _coerce_booleans(row: TransformedRow, policy: TableSyncPolicy) -> None:
    for name in policy.boolean_fields & row.keys():
        row[name] = parse_boolean(row[name])


def _coerce_dates(row: TransformedRow, policy: TableSyncPolicy, warnings: list[str]) -> None:
    for name in policy.date_fields & row.keys():
        parsed = parse_date(row[name])
        if parsed is None:
            message = f"Invalid date format for {name}: {row[name]!r}"
            logger.warning(message)
            warnings.append(message)
            continue
        row[name] = parsed


def _coerce_arrays(row: TransformedRow, policy: TableSyncPolicy) -> None:
    for name in policy.array_fields & row.keys():
        if row[name] is not None:
            row[name] = parse_string_array(row[name])


def _coerce_json(row: TransformedRow, policy: TableSyncPolicy) -> None:
    for name in policy.json_fields & row.keys():
        if row[name] is not None:
            row[name] = parse_json_object(row[name])


def _normalize_identifiers(row: TransformedRow, policy: TableSyncPolicy) -> None:
    for name in policy.text_id_fields & row.keys():
        if name in policy.reference_fields:
            row[name] = normalize_identifier(row[name])
        elif row[name] is not None:
            row[name] = str(row[name]).strip()


def _apply_allow_list(row: TransformedRow, policy: TableSyncPolicy, warnings: list[str]) -> None:
    if policy.allowed_fields is None:
        return
    removed = sorted(set(row) - policy.allowed_fields)
    if not removed:
        return
    for name in removed:
        del row[name]
    message = f"Dropped fields not in {policy.table} schema: {', '.join(removed)}"
    logger.info(message)
    warnings.append(message)


def _dedupe(messages: list[str]) -> list[str]:
    return list(dict.fromkeys(messages))
