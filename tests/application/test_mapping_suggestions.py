from __future__ import annotations

from sheetsync.application.mapping_suggestions import suggest_column_mapping


def test_exact_matches_ignore_case() -> None:
    assert suggest_column_mapping(["ID", "Email"], ["id", "email", "name"]) == {"ID": "id", "Email": "email"}


def test_korean_headers_use_aliases() -> None:
    mapping = suggest_column_mapping(["예약번호", "고객명", "상품ID", "투어날짜"], ["id", "name", "product_id", "tour_date"])

    assert mapping == {"예약번호": "id", "고객명": "name", "상품ID": "product_id", "투어날짜": "tour_date"}


def test_containment_is_the_last_resort() -> None:
    assert suggest_column_mapping(["Customer Email Address"], ["email"]) == {"Customer Email Address": "email"}


def test_short_names_do_not_match_by_containment() -> None:
    assert suggest_column_mapping(["paid"], ["id"]) == {}


def test_each_table_column_is_used_once() -> None:
    mapping = suggest_column_mapping(["email", "backup email"], ["email"])

    assert mapping == {"email": "email"}


def test_blank_headers_and_unknown_columns_are_left_out() -> None:
    assert suggest_column_mapping(["", "mystery"], ["id", "name"]) == {}
