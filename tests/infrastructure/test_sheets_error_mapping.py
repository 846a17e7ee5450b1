from __future__ import annotations

import json

import gspread
import pytest
import requests
from google.auth.exceptions import DefaultCredentialsError

from sheetsync.application.range_reader import classify_source_error
from sheetsync.core.retry import RetryDecision
from sheetsync.domain.sheets_errors import (
    AuthorizationDeniedError,
    MalformedRangeError,
    SourceApiDisabledError,
    SourceCredentialsError,
    SourceError,
    SourceNotFoundError,
    SourceRateLimitError,
    SourceTransientError,
)
from sheetsync.infrastructure.sheets_errors import classify_api_error, map_gspread_exception


def _response(status_code: int, text: str):
    return type("_Response", (), {"status_code": status_code, "text": text})()


@pytest.mark.parametrize(
    ("status_code", "text", "expected"),
    [
        (429, "[429] Quota exceeded for 'Read requests per minute per user'. RESOURCE_EXHAUSTED", SourceRateLimitError),
        (503, "The service is currently unavailable.", SourceTransientError),
        (403, "Google Sheets API has not been used in project 123 before or it is disabled.", SourceApiDisabledError),
        (404, "Requested entity was not found.", SourceNotFoundError),
        (403, '{"error": {"code": 403, "status": "PERMISSION_DENIED"}}', AuthorizationDeniedError),
        (400, "Unable to parse range: 'Sheet 1'!A1:Z201", MalformedRangeError),
    ],
)
def test_api_errors_are_classified(status_code, text, expected) -> None:
    mapped = map_gspread_exception(gspread.exceptions.APIError(_response(status_code, text)))

    assert type(mapped) is expected


def test_unknown_api_error_stays_a_generic_source_error() -> None:
    mapped = classify_api_error("something odd", 418)

    assert type(mapped) is SourceError
    assert classify_source_error(mapped) is RetryDecision.RETRY_ONCE


def test_structural_errors_fail_fast_and_transient_errors_retry() -> None:
    assert classify_source_error(classify_api_error("", 404)) is RetryDecision.FAIL_FAST
    assert classify_source_error(classify_api_error("", 403)) is RetryDecision.FAIL_FAST
    assert classify_source_error(classify_api_error("", 429)) is RetryDecision.RETRY
    assert classify_source_error(classify_api_error("", 502)) is RetryDecision.RETRY


def test_missing_worksheet_maps_to_not_found() -> None:
    assert isinstance(map_gspread_exception(gspread.exceptions.WorksheetNotFound("Sheet9")), SourceNotFoundError)


@pytest.mark.parametrize(
    "error",
    [requests.exceptions.ReadTimeout("read timed out"), requests.exceptions.ConnectionError("reset"), TimeoutError()],
)
def test_network_failures_are_transient(error) -> None:
    assert isinstance(map_gspread_exception(error), SourceTransientError)


def test_credential_problems_are_reported_plainly() -> None:
    missing = map_gspread_exception(FileNotFoundError(2, "No such file", "/secrets/creds.json"))
    broken = map_gspread_exception(json.JSONDecodeError("Expecting value", "", 0))
    default = map_gspread_exception(DefaultCredentialsError("no creds"))

    assert isinstance(missing, SourceCredentialsError)
    assert str(missing) == "Credentials file not found at /secrets/creds.json."
    assert isinstance(broken, SourceCredentialsError)
    assert isinstance(default, SourceCredentialsError)


def test_source_errors_pass_through() -> None:
    original = SourceNotFoundError("already mapped")

    assert map_gspread_exception(original) is original
