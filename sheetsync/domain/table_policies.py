"""Per-table synchronization rules.

Adding a destination table is a data change here: a new :class:`TableSyncPolicy`
entry in ``_POLICIES``. Tables without an entry get the default policy, which
coerces the shared field sets, generates ids and does no validation.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sheetsync.domain.models import ForeignKeyRule, ValidationRule

NUMERIC_FIELDS = frozenset(
    {
        "adults",
        "child",
        "infant",
        "total_people",
        "price",
        "rooms",
        "unit_price",
        "total_price",
        "base_price",
        "commission_amount",
        "commission_percent",
    }
)
BOOLEAN_FIELDS = frozenset({"is_private_tour", "is_active"})
DEFAULT_DATE_FIELDS = frozenset({"tour_date"})
ARRAY_FIELDS = frozenset({"reservation_ids", "reservations_ids", "languages"})
JSON_FIELDS = frozenset({"selected_options", "selected_option_prices"})
TEXT_ID_FIELDS = frozenset({"id", "product_id", "customer_id", "tour_id"})
REFERENCE_FIELDS = frozenset({"product_id", "customer_id", "tour_id"})
FIELD_ALIASES = {"reservations_ids": "reservation_ids"}

_TOUR_EXPENSE_FIELDS = frozenset(
    {
        "id",
        "tour_id",
        "product_id",
        "submit_on",
        "paid_to",
        "paid_for",
        "amount",
        "payment_method",
        "note",
        "tour_date",
        "submitted_by",
        "image_url",
        "file_path",
        "audited_by",
        "checked_by",
        "checked_on",
        "status",
        "created_at",
        "updated_at",
    }
)


@dataclass(frozen=True)
class TableSyncPolicy:
    table: str
    validation_rule: ValidationRule | None = None
    allowed_fields: frozenset[str] | None = None
    date_fields: frozenset[str] = DEFAULT_DATE_FIELDS
    generate_ids: bool = True
    natural_key: str = "id"
    numeric_fields: frozenset[str] = NUMERIC_FIELDS
    boolean_fields: frozenset[str] = BOOLEAN_FIELDS
    array_fields: frozenset[str] = ARRAY_FIELDS
    json_fields: frozenset[str] = JSON_FIELDS
    text_id_fields: frozenset[str] = TEXT_ID_FIELDS
    reference_fields: frozenset[str] = REFERENCE_FIELDS
    field_aliases: dict[str, str] = field(default_factory=lambda: dict(FIELD_ALIASES))


_POLICIES: dict[str, TableSyncPolicy] = {
    "reservations": TableSyncPolicy(table="reservations", validation_rule=ValidationRule()),
    "tour_expenses": TableSyncPolicy(
        table="tour_expenses",
        validation_rule=ValidationRule(
            required_fields=("id",),
            foreign_keys=(
                ForeignKeyRule(field="tour_id", referenced_table="tours"),
                ForeignKeyRule(field="product_id", referenced_table="products"),
            ),
        ),
        allowed_fields=_TOUR_EXPENSE_FIELDS,
    ),
    "team": TableSyncPolicy(
        table="team",
        validation_rule=ValidationRule(required_fields=("email",)),
        generate_ids=False,
        natural_key="email",
    ),
    "reservation_pricing": TableSyncPolicy(
        table="reservation_pricing",
        validation_rule=ValidationRule(required_fields=("id", "reservation_id")),
    ),
    "reservation_expenses": TableSyncPolicy(
        table="reservation_expenses",
        validation_rule=ValidationRule(required_fields=("id",)),
    ),
    "company_expenses": TableSyncPolicy(
        table="company_expenses",
        validation_rule=ValidationRule(required_fields=("id",)),
    ),
    "tour_hotel_bookings": TableSyncPolicy(
        table="tour_hotel_bookings",
        date_fields=frozenset({"event_date", "check_in_date", "check_out_date"}),
    ),
}


def policy_for(table: str) -> TableSyncPolicy:
    policy = _POLICIES.get(table)
    if policy is not None:
        return policy
    return TableSyncPolicy(table=table)


def known_tables() -> list[str]:
    return sorted(_POLICIES)
