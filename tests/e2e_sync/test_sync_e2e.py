from __future__ import annotations

import asyncio
import json

from sheetsync.bootstrap.container import build_container
from sheetsync.bootstrap.settings import SyncSettings
from sheetsync.domain.models import SyncJob
from sheetsync.infrastructure.sqlite_datastore import SqliteDatastore
from tests.e2e_sync.fakes import FakeSource

HEADER = ["예약번호", "고객명", "성인수", "투어날짜", "개인투어", "ids", "notes"]
MAPPING = {
    "예약번호": "id",
    "고객명": "name",
    "성인수": "adults",
    "투어날짜": "tour_date",
    "개인투어": "is_private_tour",
    "ids": "reservation_ids",
}


def _sheet(row_count: int) -> list[list[str]]:
    grid = [list(HEADER)]
    for index in range(1, row_count + 1):
        grid.append(
            [f"R{index:04d}", f"Guest {index}", str(index % 4 + 1), "03/15/2024", "TRUE" if index % 2 else "", "A, B", "x"]
        )
    return grid


def _container(source, connection, cache):
    return build_container(
        SyncSettings(initial_chunk_rows=50, chunk_size=100),
        None,
        cache=cache,
        source=source,
        datastore=SqliteDatastore(connection),
    )


def test_sync_is_idempotent_on_a_real_database(connection, cache) -> None:
    source = FakeSource({"Reservations": _sheet(320)})
    container = _container(source, connection, cache)
    job = SyncJob(source_id="src", sheet_name="Reservations", target_table="reservations", column_mapping=MAPPING)

    first = asyncio.run(container.orchestrator.run(job))
    second = asyncio.run(container.orchestrator.run(job))

    assert first.success and second.success
    assert (first.total_rows, first.applied) == (320, 320)
    assert (second.total_rows, second.applied) == (320, 320)
    assert connection.execute("SELECT COUNT(*) FROM reservations").fetchone()[0] == 320

    stored = dict(connection.execute("SELECT * FROM reservations WHERE id = 'R0001'").fetchone())
    assert stored["name"] == "Guest 1"
    assert stored["adults"] == 2.0
    assert stored["tour_date"] == "2024-03-15"
    assert stored["is_private_tour"] == 1
    assert json.loads(stored["reservation_ids"]) == ["A", "B"]
    assert stored["updated_at"]


def test_blank_cells_keep_stored_values(connection, cache) -> None:
    connection.execute(
        "INSERT INTO reservations (id, name, email) VALUES ('R0001', 'Old name', 'kept@example.com')"
    )
    connection.commit()
    source = FakeSource({"Reservations": [["예약번호", "고객명", "이메일"], ["R0001", "New name", ""]]})
    job = SyncJob(
        source_id="src",
        sheet_name="Reservations",
        target_table="reservations",
        column_mapping={"예약번호": "id", "고객명": "name", "이메일": "email"},
    )

    summary = asyncio.run(_container(source, connection, cache).orchestrator.run(job))

    stored = dict(connection.execute("SELECT name, email FROM reservations WHERE id = 'R0001'").fetchone())
    assert summary.applied == 1
    assert stored == {"name": "New name", "email": "kept@example.com"}


def test_foreign_keys_checked_against_the_database(connection, cache) -> None:
    connection.executemany("INSERT INTO tours (id) VALUES (?)", [("T1",), ("T2",)])
    connection.commit()
    grid = [["id", "tour", "amount"]] + [[f"E{index}", f"T{index % 3 + 1}", "10"] for index in range(30)]
    job = SyncJob(
        source_id="src",
        sheet_name="Expenses",
        target_table="tour_expenses",
        column_mapping={"id": "id", "tour": "tour_id", "amount": "amount"},
    )

    summary = asyncio.run(_container(FakeSource({"Expenses": grid}), connection, cache).orchestrator.run(job))

    assert summary.invalid_rows == 10
    assert summary.applied == 20
    assert "1 unknown tours ids: T3" in summary.warnings
    assert connection.execute("SELECT COUNT(*) FROM tour_expenses").fetchone()[0] == 20


def test_expense_rows_without_ids_are_rejected_on_every_run(connection, cache) -> None:
    connection.execute("INSERT INTO tours (id) VALUES ('T1')")
    connection.commit()
    grid = [["tour", "amount"], ["T1", "10"], ["T1", "20"]]
    job = SyncJob(
        source_id="src",
        sheet_name="Expenses",
        target_table="tour_expenses",
        column_mapping={"tour": "tour_id", "amount": "amount"},
    )
    container = _container(FakeSource({"Expenses": grid}), connection, cache)

    first = asyncio.run(container.orchestrator.run(job))
    second = asyncio.run(container.orchestrator.run(job))

    assert (first.invalid_rows, first.applied) == (2, 0)
    assert (second.invalid_rows, second.applied) == (2, 0)
    assert "missing required field: id" in second.warnings
    assert connection.execute("SELECT COUNT(*) FROM tour_expenses").fetchone()[0] == 0
