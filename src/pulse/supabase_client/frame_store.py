"""
pandas-backed table store.

Mirrors the subset of the Supabase query surface the engines use so the
service can run against local `.csv` / `.jsonl` exports without a database.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

import pandas as pd

LOGGER = logging.getLogger(__name__)

Range = Tuple[Optional[Any], Optional[Any]]


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _coerce(column: pd.Series, value: Any) -> Any:
    """Cast string filter values to a numeric column's type, as Postgres does for text literals."""
    if isinstance(value, str) and pd.api.types.is_numeric_dtype(column) and not pd.api.types.is_bool_dtype(column):
        converted = pd.to_numeric(value, errors="coerce")
        return value if pd.isna(converted) else converted
    return value


def _mask(frame: pd.DataFrame, ranges: Optional[Mapping[str, Range]], equals: Mapping[str, Any]) -> pd.Series:
    mask = pd.Series(True, index=frame.index)
    for column, value in equals.items():
        if column not in frame.columns:
            return pd.Series(False, index=frame.index)
        if _is_collection(value):
            mask &= frame[column].isin([_coerce(frame[column], v) for v in value])
        elif value is None:
            mask &= frame[column].isna()
        else:
            mask &= frame[column] == _coerce(frame[column], value)
    for column, (low, high) in (ranges or {}).items():
        if column not in frame.columns:
            return pd.Series(False, index=frame.index)
        values = frame[column]
        if isinstance(low, datetime) or isinstance(high, datetime):
            values = pd.to_datetime(values, utc=True, errors="coerce")
            low = pd.Timestamp(low) if low is not None else None
            high = pd.Timestamp(high) if high is not None else None
        if low is not None:
            mask &= values >= low
        if high is not None:
            mask &= values <= high
    return mask.fillna(False).astype(bool)


class FrameStore:
    """In-memory tables keyed by name. Mutations hold a lock; one store is shared across request threads."""

    backend = "frames"

    def __init__(self, tables: Optional[Dict[str, pd.DataFrame]] = None):
        self.tables: Dict[str, pd.DataFrame] = {
            name: frame.copy() for name, frame in (tables or {}).items()
        }
        self._lock = threading.RLock()

    @classmethod
    def from_directory(cls, data_dir: Path) -> "FrameStore":
        """Load every `<table>.jsonl` / `<table>.csv` file in `data_dir`."""
        tables: Dict[str, pd.DataFrame] = {}
        if not data_dir.exists():
            LOGGER.warning("Data directory %s not found; starting with an empty store", data_dir)
            return cls(tables)
        for path in sorted(data_dir.iterdir()):
            if path.suffix == ".jsonl":
                tables[path.stem] = pd.read_json(path, lines=True)
            elif path.suffix == ".csv":
                tables[path.stem] = pd.read_csv(path)
        LOGGER.info("Loaded %d tables from %s", len(tables), data_dir)
        return cls(tables)

    def table(self, name: str) -> pd.DataFrame:
        return self.tables.get(name, pd.DataFrame())

    def select(
        self,
        table: str,
        ranges: Optional[Mapping[str, Range]] = None,
        **equals: Any,
    ) -> pd.DataFrame:
        """
        Rows of `table` matching every filter.

        Args:
            table: Table name
            ranges: column -> (min, max) inclusive bounds; either side may be None
            **equals: column == value, or column IN value for list/set/tuple values

        Returns:
            Matching rows (empty DataFrame when the table is missing)
        """
        frame = self.table(table)
        if frame.empty:
            return frame.copy()
        return frame[_mask(frame, ranges, equals)].reset_index(drop=True)

    def insert(self, table: str, row: Mapping[str, Any]) -> Dict[str, Any]:
        data = dict(row)
        data.setdefault("id", str(uuid.uuid4()))
        with self._lock:
            frame = self.table(table)
            new_row = pd.DataFrame([data])
            self.tables[table] = new_row if frame.empty else pd.concat([frame, new_row], ignore_index=True)
        return data

    def upsert(self, table: str, row: Mapping[str, Any], on_conflict: str) -> Dict[str, Any]:
        key = row[on_conflict]
        with self._lock:
            frame = self.table(table)
            if not frame.empty and on_conflict in frame.columns:
                matches = frame.index[frame[on_conflict] == key]
                if len(matches):
                    merged = frame.loc[matches[0]].to_dict()
                    merged.update(row)
                    self.tables[table] = frame.drop(index=matches).reset_index(drop=True)
                    return self.insert(table, merged)
            return self.insert(table, row)

    def delete(self, table: str, **equals: Any) -> int:
        with self._lock:
            frame = self.table(table)
            if frame.empty:
                return 0
            mask = _mask(frame, None, equals)
            self.tables[table] = frame[~mask].reset_index(drop=True)
        return int(mask.sum())

    def delete_before(self, table: str, column: str, value: Any) -> int:
        with self._lock:
            frame = self.table(table)
            if frame.empty or column not in frame.columns:
                return 0
            parsed = pd.to_datetime(frame[column], utc=True, errors="coerce")
            mask = (parsed < pd.Timestamp(value)).fillna(False)
            self.tables[table] = frame[~mask].reset_index(drop=True)
        return int(mask.sum())

    def count(self, table: str, **equals: Any) -> int:
        return len(self.select(table, **equals))

    def table_names(self) -> Iterable[str]:
        return self.tables.keys()
