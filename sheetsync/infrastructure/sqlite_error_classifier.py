from __future__ import annotations

import sqlite3

from sheetsync.domain.datastore_errors import (
    ConstraintViolationError,
    DatastoreError,
    DatastoreTransientError,
    MalformedInputError,
    PolicyDeniedError,
)

_MALFORMED_TOKENS = (
    "no such table",
    "no such column",
    "has no column",
    "syntax error",
    "does not match any primary key or unique constraint",
    "datatype mismatch",
)


def is_locked_error(error: Exception) -> bool:
    if not isinstance(error, sqlite3.OperationalError):
        return False
    text = str(error).lower()
    return "locked" in text or "busy" in text


def classify_sqlite_error(error: Exception) -> DatastoreError:
    text = str(error)
    lowered = text.lower()
    if isinstance(error, sqlite3.IntegrityError):
        return ConstraintViolationError(text)
    if isinstance(error, (sqlite3.DatabaseError, sqlite3.Warning)) and "not authorized" in lowered:
        return PolicyDeniedError(text)
    if is_locked_error(error):
        return DatastoreTransientError(text)
    if any(token in lowered for token in _MALFORMED_TOKENS):
        return MalformedInputError(text)
    if isinstance(error, (sqlite3.InterfaceError, sqlite3.ProgrammingError)):
        return MalformedInputError(text)
    return DatastoreError(text)
