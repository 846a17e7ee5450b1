"""Log files for sync runs.

Every file is rotating JSON lines behind the secrets filter. ``sync.log`` takes
everything at the configured level, ``operational_errors.log`` keeps ERROR
records only and ``crash.log`` keeps unhandled exceptions, one incident per
record.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import traceback
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import TracebackType
from typing import Any

from sheetsync.core.observability import generate_correlation_id, get_correlation_id, get_job_id, job_of
from sheetsync.core.redaction import LoggingSecretsFilter, redact_text

DEFAULT_LOG_MAX_BYTES = 1_048_576
DEFAULT_LOG_BACKUP_COUNT = 10
MAIN_LOG_NAME = "sync.log"
OPERATIONAL_ERROR_LOG_NAME = "operational_errors.log"
CRASH_LOG_NAME = "crash.log"

crash_logger = logging.getLogger("sheetsync.crash")


@dataclass(frozen=True)
class LogFile:
    name: str
    min_level: int | None = None
    max_level: int = logging.CRITICAL


LOG_FILES = (
    LogFile(MAIN_LOG_NAME),
    LogFile(OPERATIONAL_ERROR_LOG_NAME, min_level=logging.ERROR, max_level=logging.ERROR),
    LogFile(CRASH_LOG_NAME, min_level=logging.CRITICAL),
)


class SyncRecordFormatter(logging.Formatter):
    """One JSON object per line, tagged with the run and job it belongs to."""

    def format(self, record: logging.LogRecord) -> str:
        event: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "module": record.module,
            "function": record.funcName,
            "message": record.getMessage(),
        }
        event.update(_run_context(record))
        payload = getattr(record, "extra", None)
        if isinstance(payload, dict) and payload:
            event["extra"] = payload
        if record.exc_info:
            event["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(event, ensure_ascii=False, default=str)


def _run_context(record: logging.LogRecord) -> dict[str, str]:
    context = {
        "correlation_id": getattr(record, "correlation_id", None) or get_correlation_id(),
        "job_id": getattr(record, "job_id", None) or get_job_id(),
        "incident_id": getattr(record, "incident_id", None),
    }
    return {key: str(value) for key, value in context.items() if value}


class _LevelCeiling(logging.Filter):
    def __init__(self, max_level: int) -> None:
        super().__init__()
        self._max_level = max_level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno <= self._max_level


def _max_bytes_from_env() -> int:
    try:
        return int(os.environ["SHEETSYNC_LOG_MAX_BYTES"])
    except (KeyError, ValueError):
        return DEFAULT_LOG_MAX_BYTES


def _file_handler(
    log_dir: Path,
    log_file: LogFile,
    *,
    level: int,
    max_bytes: int,
    backup_count: int,
) -> logging.Handler:
    handler = RotatingFileHandler(
        log_dir / log_file.name,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(log_file.min_level if log_file.min_level is not None else level)
    handler.setFormatter(SyncRecordFormatter())
    handler.addFilter(LoggingSecretsFilter())
    if log_file.max_level < logging.CRITICAL:
        handler.addFilter(_LevelCeiling(log_file.max_level))
    return handler


def configure_logging(
    log_dir: Path,
    *,
    max_bytes: int | None = None,
    backup_count: int = DEFAULT_LOG_BACKUP_COUNT,
    level: int = logging.INFO,
) -> None:
    """Replaces the root handlers with one rotating handler per entry of ``LOG_FILES``."""
    log_dir.mkdir(parents=True, exist_ok=True)
    max_bytes = max_bytes or _max_bytes_from_env()

    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()
    root_logger.setLevel(level)
    for log_file in LOG_FILES:
        root_logger.addHandler(
            _file_handler(log_dir, log_file, level=level, max_bytes=max_bytes, backup_count=backup_count)
        )


def generate_incident_id() -> str:
    return f"INC-{uuid.uuid4().hex[:12].upper()}"


@dataclass(frozen=True)
class CrashReport:
    incident_id: str
    correlation_id: str
    job_id: str | None
    error_type: str
    error_message: str


def report_crash(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
    log_dir: Path,
) -> CrashReport:
    """Records an unhandled exception in ``crash.log`` and returns the incident.

    The job comes from the active sync context, or from the exception when it
    escaped a sync run. Before logging is configured the incident is appended
    to ``crash.log`` directly.
    """
    report = CrashReport(
        incident_id=generate_incident_id(),
        correlation_id=get_correlation_id() or generate_correlation_id(),
        job_id=job_of(exc_value),
        error_type=exc_type.__name__,
        error_message=str(exc_value),
    )
    if not logging.getLogger().handlers:
        _append_crash_line(log_dir, report, exc_type, exc_value, exc_traceback)
        return report

    crash_logger.critical(
        "Unhandled %s. incident_id=%s",
        report.error_type,
        report.incident_id,
        exc_info=(exc_type, exc_value, exc_traceback),
        extra={
            "incident_id": report.incident_id,
            "correlation_id": report.correlation_id,
            "job_id": report.job_id,
            "extra": {"python": sys.version, "executable": sys.executable, "cwd": str(Path.cwd())},
        },
    )
    return report


def _append_crash_line(
    log_dir: Path,
    report: CrashReport,
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_traceback: TracebackType | None,
) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)
    line = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "CRITICAL",
        **{key: value for key, value in asdict(report).items() if value},
        "exc_info": "".join(traceback.format_exception(exc_type, exc_value, exc_traceback)),
    }
    with (log_dir / CRASH_LOG_NAME).open("a", encoding="utf-8") as handle:
        handle.write(redact_text(json.dumps(line, ensure_ascii=False)) + "\n")


def install_exception_hook(log_dir: Path) -> None:
    """Routes uncaught exceptions to ``crash.log`` and prints the incident id."""

    def _hook(
        exc_type: type[BaseException],
        exc_value: BaseException,
        exc_traceback: TracebackType | None,
    ) -> None:
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        report = report_crash(exc_type, exc_value, exc_traceback, log_dir)
        sys.stderr.write(f"Unexpected error. Incident id: {report.incident_id}\n")

    sys.excepthook = _hook
