from __future__ import annotations

import sqlite3

import pytest

from sheetsync.application.bulk_upsert import classify_datastore_error
from sheetsync.core.retry import RetryDecision
from sheetsync.domain.datastore_errors import (
    ConstraintViolationError,
    DatastoreError,
    DatastoreTransientError,
    MalformedInputError,
    PolicyDeniedError,
)
from sheetsync.infrastructure.sqlite_error_classifier import classify_sqlite_error, is_locked_error


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (sqlite3.IntegrityError("UNIQUE constraint failed: team.email"), ConstraintViolationError),
        (sqlite3.DatabaseError("not authorized"), PolicyDeniedError),
        (sqlite3.OperationalError("database is locked"), DatastoreTransientError),
        (sqlite3.OperationalError("database table is busy"), DatastoreTransientError),
        (sqlite3.OperationalError("no such table: tourz"), MalformedInputError),
        (sqlite3.OperationalError("table reservations has no column named nope"), MalformedInputError),
        (sqlite3.ProgrammingError("Incorrect number of bindings supplied."), MalformedInputError),
    ],
)
def test_classify_sqlite_error(error, expected) -> None:
    assert type(classify_sqlite_error(error)) is expected


def test_unrecognized_errors_stay_generic() -> None:
    mapped = classify_sqlite_error(sqlite3.OperationalError("disk I/O error"))

    assert type(mapped) is DatastoreError
    assert str(mapped) == "disk I/O error"


def test_only_transient_errors_are_retried() -> None:
    assert classify_datastore_error(DatastoreTransientError("database is locked")) is RetryDecision.RETRY
    assert classify_datastore_error(PolicyDeniedError("not authorized")) is RetryDecision.FAIL_FAST
    assert classify_datastore_error(MalformedInputError("no such column")) is RetryDecision.FAIL_FAST


def test_is_locked_error_only_matches_operational_errors() -> None:
    assert is_locked_error(sqlite3.OperationalError("database is locked"))
    assert not is_locked_error(RuntimeError("locked"))
