from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Iterable

from sheetsync.domain.models import (
    ForeignKeyRule,
    InvalidRow,
    TransformedRow,
    ValidationOutcome,
    ValidationRule,
    Value,
)
from sheetsync.domain.ports import DatastorePort

logger = logging.getLogger(__name__)

MAX_REPORTED_MISSING_IDS = 10


def _is_empty(value: Value) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def missing_required_fields(row: TransformedRow, required: Iterable[str]) -> list[str]:
    return [name for name in required if _is_empty(row.get(name))]


def _reference_value(row: TransformedRow, field: str) -> str | None:
    value = row.get(field)
    if _is_empty(value):
        return None
    return str(value)


class Validator:
    def __init__(self, datastore: DatastorePort) -> None:
        self._datastore = datastore

    async def validate(
        self,
        rows: list[TransformedRow],
        rule: ValidationRule | None,
    ) -> ValidationOutcome:
        """Partitions ``rows`` into valid and invalid.

        Required fields are enforced as given, including ``id``: a row without
        one would get a fresh synthetic id on every run. Foreign keys are
        checked with one existence query per referenced table, for rows that
        passed the required check.
        """
        if rule is None:
            return ValidationOutcome(valid=list(rows))

        passed: list[TransformedRow] = []
        invalid: list[InvalidRow] = []
        for row in rows:
            missing = missing_required_fields(row, rule.required_fields)
            if missing:
                invalid.append(InvalidRow(row=row, reasons=tuple(f"missing required field: {name}" for name in missing)))
            else:
                passed.append(row)

        if not rule.foreign_keys or not passed:
            self._log_outcome(len(passed), invalid)
            return ValidationOutcome(valid=passed, invalid=invalid)

        known, warnings = await self._resolve_references(passed, rule.foreign_keys)
        valid: list[TransformedRow] = []
        for row in passed:
            reasons = []
            for fk in rule.foreign_keys:
                value = _reference_value(row, fk.field)
                existing = known.get(_target(fk))
                if value is None or existing is None:
                    continue
                if value not in existing:
                    reasons.append(f"unknown {fk.field} reference: {value}")
            if reasons:
                invalid.append(InvalidRow(row=row, reasons=tuple(reasons)))
            else:
                valid.append(row)
        self._log_outcome(len(valid), invalid)
        return ValidationOutcome(valid=valid, invalid=invalid, warnings=warnings)

    async def _resolve_references(
        self,
        rows: list[TransformedRow],
        foreign_keys: tuple[ForeignKeyRule, ...],
    ) -> tuple[dict[tuple[str, str], set[str] | None], list[str]]:
        wanted: dict[tuple[str, str], set[str]] = defaultdict(set)
        for fk in foreign_keys:
            for row in rows:
                value = _reference_value(row, fk.field)
                if value is not None:
                    wanted[_target(fk)].add(value)

        targets = [target for target, values in wanted.items() if values]
        results = await asyncio.gather(
            *(self._datastore.existing_keys(table, column, sorted(wanted[(table, column)])) for table, column in targets),
            return_exceptions=True,
        )

        known: dict[tuple[str, str], set[str] | None] = {}
        warnings: list[str] = []
        for (table, column), result in zip(targets, results):
            if isinstance(result, BaseException):
                # Unverifiable references pass; the upsert's own constraints still apply.
                logger.warning("Existence check on %s.%s failed: %s", table, column, result)
                warnings.append(f"Could not verify references to {table}: {result}")
                known[(table, column)] = None
                continue
            existing = {str(value) for value in result}
            known[(table, column)] = existing
            missing = sorted(wanted[(table, column)] - existing)
            if missing:
                shown = ", ".join(missing[:MAX_REPORTED_MISSING_IDS])
                suffix = f" (+{len(missing) - MAX_REPORTED_MISSING_IDS} more)" if len(missing) > MAX_REPORTED_MISSING_IDS else ""
                warnings.append(f"{len(missing)} unknown {table} ids: {shown}{suffix}")
        return known, warnings

    @staticmethod
    def _log_outcome(valid_count: int, invalid: list[InvalidRow]) -> None:
        logger.info("Validation finished: valid=%s invalid=%s", valid_count, len(invalid))
        for item in invalid[:5]:
            logger.debug("Invalid row %s: %s", item.row.get("id"), "; ".join(item.reasons))


def _target(fk: ForeignKeyRule) -> tuple[str, str]:
    return (fk.referenced_table, fk.referenced_column)
