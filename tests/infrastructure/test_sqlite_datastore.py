from __future__ import annotations

import asyncio
import json
import sqlite3

import pytest

from sheetsync.domain.datastore_errors import MalformedInputError, PolicyDeniedError
from sheetsync.infrastructure.sqlite_datastore import SqliteDatastore, build_upsert_sql, quote_identifier


def _row(connection: sqlite3.Connection, table: str, key: str, value: str) -> dict:
    found = connection.execute(f"SELECT * FROM {table} WHERE {key} = ?", (value,)).fetchone()
    return dict(found) if found is not None else {}


def test_build_upsert_sql_updates_only_given_columns() -> None:
    sql = build_upsert_sql("reservations", ["id", "name"], "id")

    assert sql == (
        'INSERT INTO "reservations" ("id", "name") VALUES (?, ?) '
        'ON CONFLICT("id") DO UPDATE SET "name" = excluded."name"'
    )
    assert build_upsert_sql("tours", ["id"], "id").endswith("DO NOTHING")


def test_quote_identifier_rejects_injection() -> None:
    with pytest.raises(MalformedInputError):
        quote_identifier('reservations"; DROP TABLE tours; --')


def test_upsert_inserts_then_updates_without_clearing_absent_columns(connection) -> None:
    datastore = SqliteDatastore(connection)

    asyncio.run(datastore.upsert("reservations", [{"id": "R1", "name": "Ann", "email": "ann@example.com"}], "id"))
    applied = asyncio.run(datastore.upsert("reservations", [{"id": "R1", "name": "Annie"}], "id"))

    assert applied == 1
    assert _row(connection, "reservations", "id", "R1")["email"] == "ann@example.com"
    assert _row(connection, "reservations", "id", "R1")["name"] == "Annie"
    assert connection.execute("SELECT COUNT(*) FROM reservations").fetchone()[0] == 1


def test_upsert_serializes_lists_dicts_and_booleans(connection) -> None:
    datastore = SqliteDatastore(connection)
    row = {"id": "R1", "reservation_ids": ["A", "B"], "selected_options": {"pickup": True}, "is_private_tour": True}

    asyncio.run(datastore.upsert("reservations", [row], "id"))

    stored = _row(connection, "reservations", "id", "R1")
    assert json.loads(stored["reservation_ids"]) == ["A", "B"]
    assert json.loads(stored["selected_options"]) == {"pickup": True}
    assert stored["is_private_tour"] == 1


def test_upsert_on_natural_key(connection) -> None:
    datastore = SqliteDatastore(connection)

    asyncio.run(datastore.upsert("team", [{"email": "a@example.com", "name_ko": "김"}], "email"))
    asyncio.run(datastore.upsert("team", [{"email": "a@example.com", "is_active": False}], "email"))

    assert _row(connection, "team", "email", "a@example.com") == {"email": "a@example.com", "name_ko": "김", "is_active": 0}


def test_upsert_requires_conflict_key(connection) -> None:
    with pytest.raises(MalformedInputError):
        asyncio.run(SqliteDatastore(connection).upsert("reservations", [{"name": "no key"}], "id"))


def test_unknown_column_is_malformed_and_rolled_back(connection) -> None:
    rows = [{"id": "R1", "name": "ok"}, {"id": "R2", "nope": "x"}]

    with pytest.raises(MalformedInputError):
        asyncio.run(SqliteDatastore(connection).upsert("reservations", rows, "id"))

    assert connection.execute("SELECT COUNT(*) FROM reservations").fetchone()[0] == 0


def test_authorizer_denial_is_a_policy_error(connection) -> None:
    def deny_reservation_inserts(action, arg1, arg2, db_name, source):
        if action == sqlite3.SQLITE_INSERT and arg1 == "reservations":
            return sqlite3.SQLITE_DENY
        return sqlite3.SQLITE_OK

    connection.set_authorizer(deny_reservation_inserts)

    with pytest.raises(PolicyDeniedError):
        asyncio.run(SqliteDatastore(connection).upsert("reservations", [{"id": "R1"}], "id"))


def test_existing_keys_returns_only_known_values(connection) -> None:
    connection.executemany("INSERT INTO tours (id, name) VALUES (?, ?)", [("T1", "City"), ("T2", "Coast")])
    connection.commit()

    found = asyncio.run(SqliteDatastore(connection).existing_keys("tours", "id", ["T1", "T3", "T1"]))

    assert found == {"T1"}


def test_existing_keys_chunks_large_lookups(connection) -> None:
    connection.executemany("INSERT INTO tours (id) VALUES (?)", [(f"T{index}",) for index in range(1200)])
    connection.commit()

    found = asyncio.run(SqliteDatastore(connection).existing_keys("tours", "id", [f"T{index}" for index in range(1300)]))

    assert len(found) == 1200


def test_sample_rows_and_list_columns(connection) -> None:
    datastore = SqliteDatastore(connection)

    assert asyncio.run(datastore.sample_rows("tours")) == []
    assert asyncio.run(datastore.list_columns("tours")) == ["id", "name"]

    connection.execute("INSERT INTO tours (id, name) VALUES ('T1', 'City')")
    connection.commit()
    assert asyncio.run(datastore.sample_rows("tours")) == [{"id": "T1", "name": "City"}]
