from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any, Callable

from sheetsync.application.mapping_suggestions import suggest_column_mapping
from sheetsync.bootstrap.container import SyncContainer, build_container
from sheetsync.bootstrap.logging import configure_logging, install_exception_hook
from sheetsync.bootstrap.settings import SyncSettings, resolve_log_dir
from sheetsync.core.errors import ConfigurationError
from sheetsync.core.observability import OperationContext
from sheetsync.domain.models import ProgressEvent, SourceConfig, SyncJob
from sheetsync.domain.sheets_errors import SourceError
from sheetsync.infrastructure.local_config import SyncConfigStore

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2

logger = logging.getLogger(__name__)

ContainerFactory = Callable[[SyncSettings, SourceConfig | None], SyncContainer]


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sheetsync", description="Spreadsheet to database synchronization")
    parser.add_argument("--config-dir", type=Path, default=None, help="Directory holding config.json")
    parser.add_argument("--credentials", default=None, help="Service account JSON (overrides config.json)")
    parser.add_argument("--database", default=None, help="sqlite database path (overrides config.json)")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Run a sync job described by a JSON file")
    run.add_argument("job", type=Path)
    run.add_argument("--progress", action="store_true", help="Print progress events to stderr")

    list_sheets = commands.add_parser("list-sheets", help="List the sheets of a spreadsheet")
    list_sheets.add_argument("source_id")
    list_sheets.add_argument("--prefix", default=None)

    suggest = commands.add_parser("suggest-mapping", help="Suggest a column mapping for a sheet and a table")
    suggest.add_argument("source_id")
    suggest.add_argument("sheet")
    suggest.add_argument("table")

    configure = commands.add_parser("configure", help="Store credentials and database paths in config.json")
    configure.add_argument("--credentials", dest="store_credentials", required=True)
    configure.add_argument("--database", dest="store_database", default="")
    return parser


def _write_json(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")


def _print_progress(event: ProgressEvent) -> None:
    sys.stderr.write(json.dumps(event.to_dict(), ensure_ascii=False) + "\n")


def _resolve_config(store: SyncConfigStore, args: argparse.Namespace) -> SourceConfig | None:
    config = store.load()
    if args.credentials is None and args.database is None:
        return config
    base = config or SourceConfig(credentials_path="")
    return replace(
        base,
        credentials_path=args.credentials if args.credentials is not None else base.credentials_path,
        database_path=args.database if args.database is not None else base.database_path,
    )


def _load_job(path: Path) -> SyncJob:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Could not read job file {path}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigurationError(f"Job file {path} must contain a JSON object")
    try:
        return SyncJob.from_dict(payload)
    except (KeyError, ValueError) as exc:
        raise ConfigurationError(f"Invalid job file {path}: {exc}") from exc


def _run_job(container: SyncContainer, args: argparse.Namespace) -> int:
    job = _load_job(args.job)
    sink = _print_progress if args.progress else None
    with OperationContext("cli.run", job_id=job.label):
        summary = asyncio.run(container.orchestrator.run(job, sink))
        _write_json(summary.to_dict())
    return EXIT_OK if summary.success else EXIT_FAILED


def _list_sheets(container: SyncContainer, args: argparse.Namespace) -> int:
    sheets = asyncio.run(container.source.list_sheets(args.source_id, args.prefix))
    _write_json([asdict(sheet) for sheet in sheets])
    return EXIT_OK


async def _suggest(container: SyncContainer, source_id: str, sheet: str, table: str) -> dict[str, Any]:
    extent = await container.reader.resolve_extent(source_id, sheet)
    header_rows = await container.source.read_rows(source_id, sheet, 1, 1, extent.column_count)
    headers = [cell.strip() for cell in header_rows[0]] if header_rows else []
    columns = await container.introspector.columns_of(table)
    return {
        "sheet_columns": headers,
        "table_columns": sorted(columns),
        "mapping": suggest_column_mapping(headers, sorted(columns)),
    }


def _suggest_mapping(container: SyncContainer, args: argparse.Namespace) -> int:
    _write_json(asyncio.run(_suggest(container, args.source_id, args.sheet, args.table)))
    return EXIT_OK


_COMMANDS = {
    "run": _run_job,
    "list-sheets": _list_sheets,
    "suggest-mapping": _suggest_mapping,
}


def main(argv: list[str] | None = None, *, container_factory: ContainerFactory = build_container) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    log_dir = resolve_log_dir()
    configure_logging(log_dir)
    install_exception_hook(log_dir)

    store = SyncConfigStore(args.config_dir)
    if args.command == "configure":
        saved = store.save(SourceConfig(credentials_path=args.store_credentials, database_path=args.store_database))
        _write_json({"config_path": str(store.config_path), **asdict(saved)})
        return EXIT_OK

    try:
        container = container_factory(SyncSettings.from_env(), _resolve_config(store, args))
        return _COMMANDS[args.command](container, args)
    except ConfigurationError as exc:
        logger.error("Configuration error: %s", exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_CONFIG
    except SourceError as exc:
        logger.error("Spreadsheet source error: %s", exc)
        sys.stderr.write(f"{exc}\n")
        return EXIT_FAILED


if __name__ == "__main__":
    raise SystemExit(main())
