from __future__ import annotations

import json

import gspread
import requests
from google.auth.exceptions import DefaultCredentialsError, TransportError

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

RATE_LIMIT_MESSAGE = "Google Sheets quota reached. Wait a minute and retry."
NOT_FOUND_MESSAGE = "The spreadsheet id is not valid or the sheet does not exist. Check the id and the sheet name."
PERMISSION_MESSAGE = "The spreadsheet is not shared with the service account. Share it (Viewer is enough) and retry."
API_DISABLED_MESSAGE = "The Google Sheets API is not enabled in the Google Cloud project of the service account."
MALFORMED_RANGE_MESSAGE = "The requested range could not be parsed. Check the sheet name for typos or stray quotes."
INVALID_CREDENTIALS_MESSAGE = "The credentials file is not valid. Check its content."

_TRANSIENT_STATUS_CODES = {500, 502, 503, 504}


def extract_response_status_code(ex: Exception) -> int | None:
    response = getattr(ex, "response", None)
    return getattr(response, "status_code", None)


def _extract_api_error_text(ex: gspread.exceptions.APIError) -> str:
    response = getattr(ex, "response", None)
    if response is not None:
        text = getattr(response, "text", "")
        if text:
            return text
    return str(ex)


def normalize_error_text(text: str) -> str:
    return text.strip().lower()


def _credentials_not_found_message(path: str | None) -> str:
    if path:
        return f"Credentials file not found at {path}."
    return "Credentials file not found."


def _is_rate_limited(text_lower: str, status_code: int | None) -> bool:
    if status_code == 429:
        return True
    return any(
        token in text_lower
        for token in (
            "[429]",
            "resource_exhausted",
            "rate_limit_exceeded",
            "quota exceeded",
            "read requests per minute per user",
        )
    )


def classify_api_error(text_lower: str, status_code: int | None) -> SourceError:
    if _is_rate_limited(text_lower, status_code):
        return SourceRateLimitError(RATE_LIMIT_MESSAGE)
    if status_code in _TRANSIENT_STATUS_CODES or "backenderror" in text_lower or "internal error" in text_lower:
        return SourceTransientError(f"Google Sheets is temporarily unavailable ({status_code}).")
    if "google sheets api has not been used" in text_lower or "it is disabled" in text_lower:
        return SourceApiDisabledError(API_DISABLED_MESSAGE)
    if status_code == 404 or "[404]" in text_lower or "requested entity was not found" in text_lower:
        return SourceNotFoundError(NOT_FOUND_MESSAGE)
    if status_code == 403 or "[403]" in text_lower or "permission_denied" in text_lower:
        return AuthorizationDeniedError(PERMISSION_MESSAGE)
    if status_code == 400 or "unable to parse range" in text_lower:
        return MalformedRangeError(MALFORMED_RANGE_MESSAGE)
    return SourceError(text_lower or "Unknown Google Sheets error.")


def map_gspread_exception(ex: Exception) -> Exception:
    """Translates gspread, transport and credential errors into source errors.

    Transport failures (timeouts, resets) become :class:`SourceTransientError`
    so the reader retries them; everything structural becomes a
    :class:`SourceUnavailableError` subclass with an operator-facing message.
    Anything unrecognized stays a plain :class:`SourceError`.
    """
    if isinstance(ex, SourceError):
        return ex
    if isinstance(ex, gspread.exceptions.APIError):
        text_lower = normalize_error_text(_extract_api_error_text(ex))
        return classify_api_error(text_lower, extract_response_status_code(ex))
    if isinstance(ex, (gspread.exceptions.SpreadsheetNotFound, gspread.exceptions.WorksheetNotFound)):
        return SourceNotFoundError(f"{NOT_FOUND_MESSAGE} ({ex})")
    if isinstance(ex, (requests.exceptions.Timeout, requests.exceptions.ConnectionError, TransportError)):
        return SourceTransientError(f"Network error talking to Google Sheets: {ex}")
    if isinstance(ex, FileNotFoundError):
        return SourceCredentialsError(_credentials_not_found_message(getattr(ex, "filename", None)))
    if isinstance(ex, (json.JSONDecodeError, DefaultCredentialsError)):
        return SourceCredentialsError(INVALID_CREDENTIALS_MESSAGE)
    if isinstance(ex, (TimeoutError, ConnectionError)):
        return SourceTransientError(str(ex) or type(ex).__name__)
    return SourceError(str(ex) or type(ex).__name__)
