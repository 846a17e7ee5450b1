from __future__ import annotations

from pathlib import Path

from sheetsync.bootstrap.settings import SyncSettings, resolve_log_dir


def test_defaults() -> None:
    settings = SyncSettings()

    assert settings.chunk_size == 1000
    assert settings.read_concurrency == 2
    assert settings.read_max_retries == 3
    assert settings.cache_ttl == 7200


def test_from_env_overrides_and_ignores_garbage() -> None:
    settings = SyncSettings.from_env(
        {
            "SHEETSYNC_CHUNK_SIZE": "500",
            "SHEETSYNC_READ_BASE_DELAY": "0.25",
            "SHEETSYNC_READ_CONCURRENCY": "many",
            "SHEETSYNC_SCHEMA_TTL": "",
        }
    )

    assert settings.chunk_size == 500
    assert settings.read_base_delay == 0.25
    assert settings.read_concurrency == 2
    assert settings.schema_ttl == 300


def test_from_env_reads_process_environment(monkeypatch) -> None:
    monkeypatch.setenv("SHEETSYNC_UPSERT_MAX_RETRIES", "5")

    assert SyncSettings.from_env().upsert_max_retries == 5


def test_log_dir_honours_environment(monkeypatch, tmp_path: Path) -> None:
    target = tmp_path / "logs"
    monkeypatch.setenv("SHEETSYNC_LOG_DIR", str(target))

    assert resolve_log_dir() == target
    assert target.is_dir()
    assert list(target.iterdir()) == []
