from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd
from supabase import Client, create_client

from pulse.config import ServiceConfig
from pulse.errors import ConfigurationError, StoreError
from pulse.supabase_client.frame_store import FrameStore

LOGGER = logging.getLogger(__name__)

PAGE_SIZE = 1000


def _serialize(row: Mapping[str, Any]) -> Dict[str, Any]:
    data = {}
    for key, value in row.items():
        if isinstance(value, (datetime, pd.Timestamp)):
            value = value.isoformat()
        elif isinstance(value, (set, tuple)):
            value = list(value)
        data[key] = value
    return data


class SupabaseService:
    """Table access over Supabase with the same surface as `FrameStore`."""

    backend = "supabase"

    def __init__(self, url: Optional[str], key: Optional[str], client: Optional[Client] = None):
        if client is None:
            if not url or not key:
                raise ConfigurationError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in environment")
            client = create_client(url, key)
        self.client: Client = client

    def _filtered(self, query, ranges: Optional[Mapping[str, Tuple[Any, Any]]], equals: Mapping[str, Any]):
        for column, value in equals.items():
            if isinstance(value, (list, tuple, set, frozenset)):
                query = query.in_(column, list(value))
            elif value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, value)
        for column, (low, high) in (ranges or {}).items():
            if low is not None:
                query = query.gte(column, low.isoformat() if isinstance(low, datetime) else low)
            if high is not None:
                query = query.lte(column, high.isoformat() if isinstance(high, datetime) else high)
        return query

    def select(
        self,
        table: str,
        ranges: Optional[Mapping[str, Tuple[Any, Any]]] = None,
        **equals: Any,
    ) -> pd.DataFrame:
        """Fetch all matching rows, paging through the PostgREST row limit."""
        for value in equals.values():
            if isinstance(value, (list, tuple, set, frozenset)) and not value:
                return pd.DataFrame()
        rows: List[Dict[str, Any]] = []
        start = 0
        try:
            while True:
                query = self._filtered(self.client.table(table).select("*"), ranges, equals)
                response = query.range(start, start + PAGE_SIZE - 1).execute()
                batch = response.data or []
                rows.extend(batch)
                if len(batch) < PAGE_SIZE:
                    break
                start += PAGE_SIZE
        except Exception as exc:
            raise StoreError(f"select from {table} failed: {exc}") from exc
        return pd.DataFrame(rows)

    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        try:
            response = self.client.table(table).insert(_serialize(row)).execute()
        except Exception as exc:
            raise StoreError(f"insert into {table} failed: {exc}") from exc
        return response.data[0] if response.data else dict(row)

    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: str) -> Dict[str, Any]:
        try:
            response = (self.client.table(table)
                        .upsert(_serialize(row), on_conflict=on_conflict)
                        .execute())
        except Exception as exc:
            raise StoreError(f"upsert into {table} failed: {exc}") from exc
        return response.data[0] if response.data else dict(row)

    def delete(self, table: str, **equals: Any) -> int:
        try:
            query = self._filtered(self.client.table(table).delete(), None, equals)
            response = query.execute()
        except Exception as exc:
            raise StoreError(f"delete from {table} failed: {exc}") from exc
        return len(response.data or [])

    def delete_before(self, table: str, column: str, value: Any) -> int:
        if isinstance(value, (datetime, pd.Timestamp)):
            value = value.isoformat()
        try:
            response = self.client.table(table).delete().lt(column, value).execute()
        except Exception as exc:
            raise StoreError(f"delete from {table} failed: {exc}") from exc
        return len(response.data or [])

    def count(self, table: str, **equals: Any) -> int:
        return len(self.select(table, **equals))


# Singleton instance
_store = None


def get_store(config: ServiceConfig):
    """Get or create the process-wide store: Supabase when configured, else local frames."""
    global _store
    if _store is None:
        if config.supabase_configured:
            LOGGER.info("Using Supabase store at %s", config.supabase_url)
            _store = SupabaseService(config.supabase_url, config.supabase_key)
        else:
            LOGGER.info("Supabase not configured; loading tables from %s", config.data_dir)
            _store = FrameStore.from_directory(config.data_dir)
    return _store


def reset_store() -> None:
    global _store
    _store = None
