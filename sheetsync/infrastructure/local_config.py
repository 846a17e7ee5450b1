from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from sheetsync.domain.models import SourceConfig

logger = logging.getLogger(__name__)

APP_DIR_NAME = "SheetSync"


def resolve_appdata_dir() -> Path:
    env_dir = os.environ.get("SHEETSYNC_HOME")
    if env_dir:
        return Path(env_dir)
    local_appdata = os.environ.get("LOCALAPPDATA")
    if local_appdata:
        return Path(local_appdata) / APP_DIR_NAME
    return Path.home() / ".local" / "share" / APP_DIR_NAME


class SyncConfigStore:
    def __init__(self, base_dir: Path | None = None) -> None:
        self._base_dir = base_dir or resolve_appdata_dir()
        self._config_path = self._base_dir / "config.json"

    @property
    def config_path(self) -> Path:
        return self._config_path

    def load(self) -> SourceConfig | None:
        if not self._config_path.exists():
            return None
        try:
            payload = json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.exception("Could not read config.json: %s", exc)
            return None
        if not isinstance(payload, dict):
            logger.error("config.json must contain a JSON object")
            return None
        credentials_path = str(payload.get("credentials_path", "")).strip()
        database_path = str(payload.get("database_path", "")).strip()
        if not credentials_path and not database_path:
            return None
        return SourceConfig(credentials_path=credentials_path, database_path=database_path)

    def save(self, config: SourceConfig) -> SourceConfig:
        payload = {
            "credentials_path": config.credentials_path,
            "database_path": config.database_path,
        }
        self._config_path.parent.mkdir(parents=True, exist_ok=True)
        self._config_path.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        return SourceConfig(**payload)

    def default_database_path(self) -> Path:
        return self._base_dir / "sheetsync.db"
