from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any


_KEY_VALUE_PATTERNS = [
    re.compile(
        r'(?i)("?(?:access_token|refresh_token|id_token|token|client_secret|api_key|private_key|private_key_id|service_role_key)"?\s*[:=]\s*)("[^"]*"|\'[^\']*\'|[^,\s}\]]+)'  # noqa: E501
    ),
    re.compile(r"(?i)(authorization\s*[:=]\s*bearer\s+)([^\s,;]+)"),
]
_PRIVATE_KEY_BLOCK_PATTERN = re.compile(
    r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----",
    re.DOTALL,
)
_CREDENTIALS_PATH_PATTERN = re.compile(
    r"(?i)(?:[a-z]:\\[^\s'\"]*\.json|/[^\s'\"]*(?:credentials|service[-_]account)[^\s'\"]*\.json)"
)
_SENSITIVE_KEYS = frozenset(
    {
        "access_token",
        "refresh_token",
        "id_token",
        "token",
        "client_secret",
        "api_key",
        "private_key",
        "private_key_id",
        "service_role_key",
    }
)


def redact_text(text: str) -> str:
    redacted = _PRIVATE_KEY_BLOCK_PATTERN.sub("<REDACTED_KEY>", text)
    for pattern in _KEY_VALUE_PATTERNS:
        redacted = pattern.sub(r"\1<REDACTED>", redacted)
    return _CREDENTIALS_PATH_PATTERN.sub("<CRED_PATH>", redacted)


def _redact_value(value: Any) -> Any:
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, Mapping):
        return {
            key: "<REDACTED>" if str(key).lower() in _SENSITIVE_KEYS else _redact_value(item)
            for key, item in value.items()
        }
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_redact_value(item) for item in value]
    return value


class LoggingSecretsFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_text(record.msg)

        if isinstance(record.args, Mapping):
            record.args = {key: _redact_value(value) for key, value in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(_redact_value(value) for value in record.args)

        extra_payload = getattr(record, "extra", None)
        if isinstance(extra_payload, Mapping):
            record.extra = _redact_value(extra_payload)

        return True
