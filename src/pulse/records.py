"""Helpers for turning store rows (pandas or Supabase JSON) into clean Python values."""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd


def is_missing(value: Any) -> bool:
    if value is None or value is pd.NaT:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def clean(value: Any, default: Any = None) -> Any:
    return default if is_missing(value) else value


def as_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO strings / pandas timestamps into aware datetimes (naive is UTC)."""
    if is_missing(value) or value == "":
        return None
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    elif isinstance(value, str):
        value = pd.Timestamp(value).to_pydatetime()
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def as_list(value: Any) -> List[str]:
    """Normalise array-ish cells: lists, JSON arrays, or comma-separated strings."""
    if is_missing(value):
        return []
    if isinstance(value, (list, tuple, set)):
        return [str(v).strip() for v in value if str(v).strip()]
    if hasattr(value, "tolist"):
        return as_list(value.tolist())
    text = str(value).strip()
    if text.startswith("["):
        try:
            return as_list(json.loads(text))
        except json.JSONDecodeError:
            pass
    return [t.strip() for t in text.split(",") if t.strip()]


def as_bool(value: Any) -> bool:
    if is_missing(value):
        return False
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes"}
    return bool(value)


def as_float(value: Any) -> Optional[float]:
    if is_missing(value):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _native(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return clean(value)


def records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame rows as dicts with NaN/NaT replaced by None and timestamps as datetimes."""
    if frame is None or frame.empty:
        return []
    return [
        {key: _native(val) for key, val in row.items()}
        for row in frame.to_dict("records")
    ]


def index_by(rows: Iterable[Dict[str, Any]], key: str) -> Dict[Any, Dict[str, Any]]:
    return {row[key]: row for row in rows if not is_missing(row.get(key))}
