"""
Unit tests for the Supabase-backed store.

The Supabase client is a MagicMock whose query builder returns itself, so
the filters applied can be asserted call by call.
"""

from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, call, patch

import pytest

from pulse.config import ServiceConfig
from pulse.errors import ConfigurationError, StoreError
from pulse.supabase_client import FrameStore, SupabaseService, get_store, reset_store
from pulse.supabase_client.supabase_service import PAGE_SIZE

NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def query():
    builder = MagicMock()
    for name in ("select", "eq", "in_", "is_", "gte", "lte", "lt", "range", "delete", "insert", "upsert"):
        getattr(builder, name).return_value = builder
    builder.execute.return_value = SimpleNamespace(data=[{"id": "e1"}])
    return builder


@pytest.fixture
def service(query):
    client = MagicMock()
    client.table.return_value = query
    return SupabaseService(None, None, client=client)


@pytest.fixture(autouse=True)
def clean_singleton():
    reset_store()
    yield
    reset_store()


class TestSelect:
    def test_filters(self, service, query):
        frame = service.select(
            "events",
            ranges={"start_time": (NOW, None), "price": (None, 50)},
            category="ART",
            id=["e1", "e2"],
            place_id=None,
        )

        assert frame["id"].tolist() == ["e1"]
        service.client.table.assert_called_with("events")
        query.select.assert_called_with("*")
        query.eq.assert_called_once_with("category", "ART")
        query.in_.assert_called_once_with("id", ["e1", "e2"])
        query.is_.assert_called_once_with("place_id", "null")
        query.gte.assert_called_once_with("start_time", "2026-10-19T18:00:00+00:00")
        query.lte.assert_called_once_with("price", 50)

    def test_pages_through_results(self, service, query):
        query.execute.side_effect = [
            SimpleNamespace(data=[{"id": str(i)} for i in range(PAGE_SIZE)]),
            SimpleNamespace(data=[{"id": "last"}]),
        ]

        frame = service.select("items")

        assert len(frame) == PAGE_SIZE + 1
        assert query.range.call_args_list == [call(0, PAGE_SIZE - 1), call(PAGE_SIZE, 2 * PAGE_SIZE - 1)]

    def test_empty_in_filter_skips_query(self, service, query):
        assert service.select("items", id=[]).empty
        query.execute.assert_not_called()

    def test_errors_are_wrapped(self, service, query):
        query.execute.side_effect = RuntimeError("connection reset")

        with pytest.raises(StoreError, match="select from items failed"):
            service.select("items")


class TestWrites:
    def test_insert_serializes_datetimes(self, service, query):
        service.insert("user_suggestion_sets", {"user_id": "u1", "generated_at": NOW, "ids": ("a", "b")})

        query.insert.assert_called_once_with({
            "user_id": "u1",
            "generated_at": "2026-10-19T18:00:00+00:00",
            "ids": ["a", "b"],
        })

    def test_upsert(self, service, query):
        service.upsert("places_cache", {"cache_key": "k"}, on_conflict="cache_key")
        query.upsert.assert_called_once_with({"cache_key": "k"}, on_conflict="cache_key")

    def test_delete_counts_rows(self, service, query):
        query.execute.return_value = SimpleNamespace(data=[{"id": "a"}, {"id": "b"}])

        assert service.delete("user_suggestion_sets", user_id="u1") == 2
        query.eq.assert_called_once_with("user_id", "u1")

    def test_delete_before(self, service, query):
        query.execute.return_value = SimpleNamespace(data=[])

        assert service.delete_before("places_cache", "expires_at", NOW) == 0
        query.lt.assert_called_once_with("expires_at", "2026-10-19T18:00:00+00:00")

    def test_write_errors_are_wrapped(self, service, query):
        query.execute.side_effect = RuntimeError("denied")

        with pytest.raises(StoreError):
            service.insert("items", {"id": "x"})


class TestConstruction:
    def test_requires_credentials(self):
        with pytest.raises(ConfigurationError):
            SupabaseService(None, "key")

    def test_get_store_defaults_to_frames(self, tmp_path):
        store = get_store(ServiceConfig(data_dir=tmp_path))

        assert isinstance(store, FrameStore)
        assert get_store(ServiceConfig()) is store

    def test_get_store_uses_supabase_when_configured(self):
        config = ServiceConfig(supabase_url="https://example.supabase.co", supabase_key="service-key")

        with patch("pulse.supabase_client.supabase_service.create_client") as create_client:
            store = get_store(config)

        assert isinstance(store, SupabaseService)
        create_client.assert_called_once_with("https://example.supabase.co", "service-key")
