from __future__ import annotations

import logging
import re

from sheetsync.core.cache import Cache
from sheetsync.domain.ports import DatastorePort

logger = logging.getLogger(__name__)

SCHEMA_TTL_SECONDS = 5 * 60


class SchemaIntrospector:
    """Discovers destination columns; an empty set means "unknown, assume absent"."""

    def __init__(self, datastore: DatastorePort, cache: Cache, *, ttl: float = SCHEMA_TTL_SECONDS) -> None:
        self._datastore = datastore
        self._cache = cache
        self._ttl = ttl

    async def columns_of(self, table: str) -> set[str]:
        cache_key = f"schema:{table}"
        cached = self._cache.get(cache_key, ttl=self._ttl)
        if cached is not None:
            return set(cached)
        try:
            columns = await self._discover(table)
        except Exception as exc:
            logger.warning("Could not discover columns of %s: %s", table, exc)
            return set()
        if columns:
            self._cache.set(cache_key, frozenset(columns), ttl=self._ttl)
        return columns

    async def has_column(self, table: str, column: str) -> bool:
        return column in await self.columns_of(table)

    def invalidate(self, table: str | None = None) -> int:
        pattern = f"^schema:{re.escape(table)}$" if table else "^schema:"
        return self._cache.delete_pattern(pattern)

    async def _discover(self, table: str) -> set[str]:
        sample = await self._datastore.sample_rows(table, 1)
        if sample:
            return set(sample[0].keys())
        logger.info("Table %s has no rows to sample, falling back to the column catalog", table)
        return set(await self._datastore.list_columns(table))
