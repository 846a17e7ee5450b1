from __future__ import annotations

import asyncio
import json
import logging
import re
import sqlite3
import threading
from typing import Any, Callable, Iterable, Sequence, TypeVar

from sheetsync.domain.datastore_errors import MalformedInputError
from sheetsync.domain.models import TransformedRow
from sheetsync.domain.ports import DatastorePort
from sheetsync.infrastructure.db import transaction
from sheetsync.infrastructure.sqlite_error_classifier import classify_sqlite_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
EXISTENCE_CHUNK_SIZE = 500


def quote_identifier(name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise MalformedInputError(f"Invalid identifier: {name!r}")
    return f'"{name}"'


def to_sql_value(value: Any) -> Any:
    if isinstance(value, (list, dict)):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, bool):
        return int(value)
    return value


def build_upsert_sql(table: str, columns: Sequence[str], conflict_key: str) -> str:
    """``INSERT ... ON CONFLICT DO UPDATE`` touching only the given columns.

    Columns absent from a row are not in ``columns`` and keep their stored value.
    """
    quoted_columns = [quote_identifier(column) for column in columns]
    placeholders = ", ".join("?" for _ in columns)
    key = quote_identifier(conflict_key)
    updates = [f"{quoted} = excluded.{quoted}" for column, quoted in zip(columns, quoted_columns) if column != conflict_key]
    conflict_clause = f"DO UPDATE SET {', '.join(updates)}" if updates else "DO NOTHING"
    return (
        f"INSERT INTO {quote_identifier(table)} ({', '.join(quoted_columns)}) "
        f"VALUES ({placeholders}) ON CONFLICT({key}) {conflict_clause}"
    )


def group_by_shape(rows: Iterable[TransformedRow]) -> dict[tuple[str, ...], list[TransformedRow]]:
    groups: dict[tuple[str, ...], list[TransformedRow]] = {}
    for row in rows:
        groups.setdefault(tuple(sorted(row)), []).append(row)
    return groups


class SqliteDatastore(DatastorePort):
    """Relational datastore over one sqlite connection shared by worker threads."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self._lock = threading.Lock()

    async def sample_rows(self, table: str, limit: int = 1) -> list[dict[str, Any]]:
        sql = f"SELECT * FROM {quote_identifier(table)} LIMIT ?"

        def run() -> list[dict[str, Any]]:
            cursor = self._connection.execute(sql, (int(limit),))
            names = [description[0] for description in cursor.description or ()]
            return [dict(zip(names, tuple(row))) for row in cursor.fetchall()]

        return await self._run(run)

    async def list_columns(self, table: str) -> list[str]:
        sql = f"PRAGMA table_info({quote_identifier(table)})"

        def run() -> list[str]:
            return [str(row[1]) for row in self._connection.execute(sql).fetchall()]

        return await self._run(run)

    async def existing_keys(self, table: str, column: str, values: Iterable[str]) -> set[str]:
        wanted = list(dict.fromkeys(str(value) for value in values))
        if not wanted:
            return set()
        quoted_table = quote_identifier(table)
        quoted_column = quote_identifier(column)

        def run() -> set[str]:
            found: set[str] = set()
            for start in range(0, len(wanted), EXISTENCE_CHUNK_SIZE):
                chunk = wanted[start : start + EXISTENCE_CHUNK_SIZE]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = self._connection.execute(
                    f"SELECT {quoted_column} FROM {quoted_table} WHERE {quoted_column} IN ({placeholders})",
                    chunk,
                )
                found.update(str(row[0]) for row in cursor.fetchall())
            return found

        return await self._run(run)

    async def upsert(self, table: str, rows: Sequence[TransformedRow], conflict_key: str) -> int:
        if not rows:
            return 0
        statements = []
        for columns, group in group_by_shape(rows).items():
            if conflict_key not in columns:
                raise MalformedInputError(f"Rows for {table} are missing the conflict key {conflict_key!r}")
            sql = build_upsert_sql(table, columns, conflict_key)
            statements.append((sql, [tuple(to_sql_value(row[column]) for column in columns) for row in group]))

        def run() -> int:
            with transaction(self._connection):
                for sql, parameters in statements:
                    self._connection.executemany(sql, parameters)
            return len(rows)

        applied = await self._run(run)
        logger.debug("Upserted %s rows into %s", applied, table)
        return applied

    async def _run(self, operation: Callable[[], T]) -> T:
        def guarded() -> T:
            with self._lock:
                return operation()

        try:
            return await asyncio.to_thread(guarded)
        except (sqlite3.Error, sqlite3.Warning) as exc:
            raise classify_sqlite_error(exc) from exc
