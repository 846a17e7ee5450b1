from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from sheetsync.application.bulk_upsert import BulkUpsertEngine
from sheetsync.application.data_transformer import DataTransformer
from sheetsync.application.orchestrator import SyncOrchestrator
from sheetsync.application.range_reader import RangeReader
from sheetsync.application.schema_introspector import SchemaIntrospector
from sheetsync.application.validator import Validator
from sheetsync.bootstrap.settings import SyncSettings
from sheetsync.core.cache import Cache, get_default_cache
from sheetsync.core.errors import ConfigurationError
from sheetsync.domain.models import SourceConfig
from sheetsync.domain.ports import DatastorePort, SpreadsheetSourcePort
from sheetsync.infrastructure.db import get_connection
from sheetsync.infrastructure.sheets_client import SheetsClient
from sheetsync.infrastructure.sqlite_datastore import SqliteDatastore


@dataclass
class SyncContainer:
    cache: Cache
    source: SpreadsheetSourcePort
    datastore: DatastorePort
    introspector: SchemaIntrospector
    reader: RangeReader
    transformer: DataTransformer
    validator: Validator
    upsert_engine: BulkUpsertEngine
    orchestrator: SyncOrchestrator


ConnectionFactory = Callable[[Path | None], sqlite3.Connection]


def build_container(
    settings: SyncSettings,
    config: SourceConfig | None,
    *,
    connection_factory: ConnectionFactory = get_connection,
    cache: Cache | None = None,
    source: SpreadsheetSourcePort | None = None,
    datastore: DatastorePort | None = None,
) -> SyncContainer:
    shared_cache = cache or get_default_cache(
        default_ttl=settings.cache_ttl,
        max_entries=settings.cache_max_entries,
        sweep_interval=settings.cache_sweep_interval,
    )

    if source is None:
        if config is None or not config.credentials_path:
            raise ConfigurationError("No credentials configured. Set credentials_path in config.json.")
        credentials_path = Path(config.credentials_path)
        if not credentials_path.exists():
            raise ConfigurationError(f"Credentials file not found at {credentials_path}.")
        source = SheetsClient(credentials_path, cache=shared_cache)

    if datastore is None:
        database_path = Path(config.database_path) if config is not None and config.database_path else None
        datastore = SqliteDatastore(connection_factory(database_path))

    introspector = SchemaIntrospector(datastore, shared_cache, ttl=settings.schema_ttl)
    reader = RangeReader(
        source,
        shared_cache,
        initial_chunk_rows=settings.initial_chunk_rows,
        chunk_size=settings.chunk_size,
        read_concurrency=settings.read_concurrency,
        max_retries=settings.read_max_retries,
        base_delay=settings.read_base_delay,
        max_delay=settings.read_max_delay,
        chunk_timeout_base=settings.chunk_timeout_base,
        chunk_timeout_per_row=settings.chunk_timeout_per_row,
        chunk_timeout_max=settings.chunk_timeout_max,
    )
    transformer = DataTransformer()
    validator = Validator(datastore)
    upsert_engine = BulkUpsertEngine(
        datastore,
        introspector,
        max_retries=settings.upsert_max_retries,
        base_delay=settings.upsert_base_delay,
        max_delay=settings.upsert_max_delay,
        mini_batch_pause=settings.mini_batch_pause,
    )
    orchestrator = SyncOrchestrator(reader, transformer, validator, upsert_engine)
    return SyncContainer(
        cache=shared_cache,
        source=source,
        datastore=datastore,
        introspector=introspector,
        reader=reader,
        transformer=transformer,
        validator=validator,
        upsert_engine=upsert_engine,
        orchestrator=orchestrator,
    )
