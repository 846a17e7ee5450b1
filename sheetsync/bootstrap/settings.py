from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping


def project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def resolve_log_dir() -> Path:
    candidates: list[Path] = []
    env_dir = os.environ.get("SHEETSYNC_LOG_DIR")
    if env_dir:
        candidates.append(Path(env_dir))
    candidates.append(project_root() / "logs")
    candidates.append(Path(tempfile.gettempdir()) / "SheetSync" / "logs")

    for candidate in candidates:
        try:
            candidate.mkdir(parents=True, exist_ok=True)
            test_file = candidate / "_write_test.tmp"
            test_file.write_text("ok", encoding="utf-8")
            test_file.unlink(missing_ok=True)
            return candidate
        except OSError:
            continue

    fallback = project_root()
    fallback.mkdir(parents=True, exist_ok=True)
    return fallback


def _safe_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw_value = env.get(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError:
        return default


def _safe_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw_value = env.get(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError:
        return default


@dataclass(frozen=True)
class SyncSettings:
    initial_chunk_rows: int = 200
    chunk_size: int = 1000
    read_concurrency: int = 2
    read_max_retries: int = 3
    read_base_delay: float = 1.0
    read_max_delay: float = 16.0
    chunk_timeout_base: float = 10.0
    chunk_timeout_per_row: float = 0.02
    chunk_timeout_max: float = 60.0
    upsert_max_retries: int = 2
    upsert_base_delay: float = 0.5
    upsert_max_delay: float = 4.0
    mini_batch_pause: float = 0.005
    cache_ttl: float = 2 * 60 * 60
    cache_max_entries: int = 1000
    cache_sweep_interval: float = 30 * 60
    schema_ttl: float = 5 * 60

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "SyncSettings":
        source = os.environ if env is None else env
        defaults = cls()
        return cls(
            initial_chunk_rows=_safe_int(source, "SHEETSYNC_INITIAL_CHUNK_ROWS", defaults.initial_chunk_rows),
            chunk_size=_safe_int(source, "SHEETSYNC_CHUNK_SIZE", defaults.chunk_size),
            read_concurrency=_safe_int(source, "SHEETSYNC_READ_CONCURRENCY", defaults.read_concurrency),
            read_max_retries=_safe_int(source, "SHEETSYNC_READ_MAX_RETRIES", defaults.read_max_retries),
            read_base_delay=_safe_float(source, "SHEETSYNC_READ_BASE_DELAY", defaults.read_base_delay),
            read_max_delay=_safe_float(source, "SHEETSYNC_READ_MAX_DELAY", defaults.read_max_delay),
            chunk_timeout_base=_safe_float(source, "SHEETSYNC_CHUNK_TIMEOUT_BASE", defaults.chunk_timeout_base),
            chunk_timeout_per_row=_safe_float(source, "SHEETSYNC_CHUNK_TIMEOUT_PER_ROW", defaults.chunk_timeout_per_row),
            chunk_timeout_max=_safe_float(source, "SHEETSYNC_CHUNK_TIMEOUT_MAX", defaults.chunk_timeout_max),
            upsert_max_retries=_safe_int(source, "SHEETSYNC_UPSERT_MAX_RETRIES", defaults.upsert_max_retries),
            upsert_base_delay=_safe_float(source, "SHEETSYNC_UPSERT_BASE_DELAY", defaults.upsert_base_delay),
            upsert_max_delay=_safe_float(source, "SHEETSYNC_UPSERT_MAX_DELAY", defaults.upsert_max_delay),
            mini_batch_pause=_safe_float(source, "SHEETSYNC_MINI_BATCH_PAUSE", defaults.mini_batch_pause),
            cache_ttl=_safe_float(source, "SHEETSYNC_CACHE_TTL", defaults.cache_ttl),
            cache_max_entries=_safe_int(source, "SHEETSYNC_CACHE_MAX_ENTRIES", defaults.cache_max_entries),
            cache_sweep_interval=_safe_float(source, "SHEETSYNC_CACHE_SWEEP_INTERVAL", defaults.cache_sweep_interval),
            schema_ttl=_safe_float(source, "SHEETSYNC_SCHEMA_TTL", defaults.schema_ttl),
        )
