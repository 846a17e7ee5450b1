from __future__ import annotations

import enum
from dataclasses import asdict, dataclass, field
from typing import Any, Literal, Mapping, Union

RawRow = dict[str, str]
Value = Union[str, float, bool, list[str], dict[str, Any], list[Any], None]
TransformedRow = dict[str, Value]

ProgressEventType = Literal["start", "progress", "info", "warn", "error", "complete"]


@dataclass(frozen=True)
class ForeignKeyRule:
    field: str
    referenced_table: str
    referenced_column: str = "id"


@dataclass(frozen=True)
class ValidationRule:
    required_fields: tuple[str, ...] = ()
    foreign_keys: tuple[ForeignKeyRule, ...] = ()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ValidationRule":
        required = payload.get("required_fields", payload.get("requiredFields", ())) or ()
        raw_keys = payload.get("foreign_keys", payload.get("foreignKeys", ())) or ()
        foreign_keys = tuple(
            ForeignKeyRule(
                field=str(item["field"]),
                referenced_table=str(item.get("referenced_table", item.get("referencedTable", ""))),
                referenced_column=str(item.get("referenced_column", item.get("referencedColumn", "id"))),
            )
            for item in raw_keys
        )
        return cls(required_fields=tuple(str(name) for name in required), foreign_keys=foreign_keys)


@dataclass(frozen=True)
class SyncJob:
    source_id: str
    sheet_name: str
    target_table: str
    column_mapping: Mapping[str, str]
    conflict_key: str = "id"
    validation_rule: ValidationRule | None = None

    @property
    def label(self) -> str:
        return f"{self.source_id}/{self.sheet_name}->{self.target_table}"

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SyncJob":
        """Builds a job from a JSON payload, accepting camelCase or snake_case keys."""

        def pick(snake: str, camel: str, default: Any = None) -> Any:
            if snake in payload:
                return payload[snake]
            return payload.get(camel, default)

        missing = [
            name
            for name, camel in (
                ("source_id", "sourceId"),
                ("sheet_name", "sheetName"),
                ("target_table", "targetTable"),
            )
            if not str(pick(name, camel, "") or "").strip()
        ]
        if missing:
            raise ValueError(f"Job is missing required keys: {', '.join(missing)}")
        mapping = pick("column_mapping", "columnMapping", {}) or {}
        if not isinstance(mapping, Mapping):
            raise ValueError("column_mapping must be an object of source column -> field")
        rule_payload = pick("validation_rule", "validationRule")
        return cls(
            source_id=str(pick("source_id", "sourceId")).strip(),
            sheet_name=str(pick("sheet_name", "sheetName")).strip(),
            target_table=str(pick("target_table", "targetTable")).strip(),
            column_mapping={str(source): str(dest) for source, dest in mapping.items()},
            conflict_key=str(pick("conflict_key", "conflictKey", "id") or "id"),
            validation_rule=ValidationRule.from_dict(rule_payload) if isinstance(rule_payload, Mapping) else None,
        )


@dataclass(frozen=True)
class InvalidRow:
    row: TransformedRow
    reasons: tuple[str, ...]


@dataclass(frozen=True)
class ValidationOutcome:
    valid: list[TransformedRow] = field(default_factory=list)
    invalid: list[InvalidRow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class TransformOutcome:
    rows: list[TransformedRow] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


class BatchState(enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    APPLIED = "applied"
    AUTH_DENIED = "auth_denied"
    MINI_BATCH_RETRY = "mini_batch_retry"
    PARTIALLY_APPLIED = "partially_applied"
    FAILED = "failed"


@dataclass
class BatchOutcome:
    index: int
    size: int
    state: BatchState = BatchState.PENDING
    applied: int = 0
    errors: int = 0


@dataclass(frozen=True)
class BatchResult:
    # Upserts do not report whether a row was inserted or updated, so both land in ``applied``.
    applied: int = 0
    errors: int = 0
    error_messages: tuple[str, ...] = ()
    batches_attempted: int = 0
    outcomes: tuple[BatchOutcome, ...] = ()

    def merge(self, other: "BatchResult") -> "BatchResult":
        return BatchResult(
            applied=self.applied + other.applied,
            errors=self.errors + other.errors,
            error_messages=self.error_messages + other.error_messages,
            batches_attempted=self.batches_attempted + other.batches_attempted,
            outcomes=self.outcomes + other.outcomes,
        )


@dataclass(frozen=True)
class SheetExtent:
    row_count: int
    column_count: int


@dataclass(frozen=True)
class SheetInfo:
    title: str
    row_count: int
    column_count: int


@dataclass(frozen=True)
class ProgressEvent:
    type: ProgressEventType
    message: str | None = None
    total: int | None = None
    processed: int | None = None
    inserted: int | None = None
    updated: int | None = None
    errors: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass(frozen=True)
class SyncSummary:
    success: bool
    total_rows: int = 0
    applied: int = 0
    errors: int = 0
    warnings: tuple[str, ...] = ()
    invalid_rows: int = 0
    error_messages: tuple[str, ...] = ()
    duration_ms: float = 0.0
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["warnings"] = list(self.warnings)
        payload["error_messages"] = list(self.error_messages)
        return payload


@dataclass(frozen=True)
class SourceConfig:
    credentials_path: str
    database_path: str = ""
