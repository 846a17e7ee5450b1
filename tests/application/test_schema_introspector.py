from __future__ import annotations

import asyncio

from sheetsync.application.schema_introspector import SchemaIntrospector
from tests.e2e_sync.fakes import FakeDatastore


class CatalogDatastore(FakeDatastore):
    def __init__(self, catalog: list[str], *, fail: bool = False) -> None:
        super().__init__()
        self.catalog = catalog
        self.fail = fail

    async def sample_rows(self, table, limit=1):
        if self.fail:
            raise RuntimeError("unreachable")
        return await super().sample_rows(table, limit)

    async def list_columns(self, table):
        return list(self.catalog)


def test_columns_come_from_a_sample_row_and_are_cached(cache) -> None:
    datastore = FakeDatastore(columns={"reservations": ["id", "updated_at"]})
    introspector = SchemaIntrospector(datastore, cache)

    assert asyncio.run(introspector.columns_of("reservations")) == {"id", "updated_at"}
    assert asyncio.run(introspector.has_column("reservations", "updated_at")) is True
    assert datastore.sample_calls == 1


def test_empty_table_falls_back_to_catalog(cache) -> None:
    introspector = SchemaIntrospector(CatalogDatastore(["id", "name"]), cache)

    assert asyncio.run(introspector.columns_of("tours")) == {"id", "name"}


def test_failures_and_empty_results_are_not_cached(cache) -> None:
    datastore = CatalogDatastore([], fail=True)
    introspector = SchemaIntrospector(datastore, cache)

    assert asyncio.run(introspector.columns_of("tours")) == set()
    datastore.fail = False
    datastore.catalog = ["id"]
    assert asyncio.run(introspector.columns_of("tours")) == {"id"}


def test_invalidate_drops_cached_schema(cache) -> None:
    datastore = FakeDatastore(columns={"reservations": ["id"], "team": ["email"]})
    introspector = SchemaIntrospector(datastore, cache)
    asyncio.run(introspector.columns_of("reservations"))
    asyncio.run(introspector.columns_of("team"))

    assert introspector.invalidate("reservations") == 1
    assert introspector.invalidate() == 1
    asyncio.run(introspector.columns_of("team"))
    assert datastore.sample_calls == 3
