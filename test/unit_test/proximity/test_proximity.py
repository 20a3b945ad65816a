"""
Unit tests for proximity queries.

u1 owns L1 (p1 ~0.35 mi, p2 ~1.4 mi away), collaborates on L2 (event at
p4 ~0.5 mi) and L3 (p3, ~14 mi away).
"""

from datetime import timedelta

import pandas as pd
import pytest

from pulse.errors import PlacesAPIError
from pulse.geo import LatLng
from pulse.proximity import (
    CACHE_TABLE,
    cleanup_expired_cache,
    discover_nearby,
    discovery_cache_key,
    get_list_items_nearby,
    owner_display_name,
)
from pulse.supabase_client import FrameStore


class TestListItemsNearby:
    def test_groups_by_list(self, store, center):
        groups = get_list_items_nearby(store, "u1", center, 3)

        assert [g.list_id for g in groups] == ["L1", "L2"]

        own, shared = groups
        assert own.is_owner is True
        assert own.owner_name is None
        assert [i.id for i in own.items] == ["p1", "p2"]
        assert own.items[0].distance == pytest.approx(0.345, abs=0.01)
        assert own.items[1].distance == pytest.approx(1.382, abs=0.01)

        assert shared.is_owner is False
        assert shared.owner_name == "jlee"
        assert shared.list_name == "Brunch"
        [event] = shared.items
        assert event.type == "event"
        assert event.event_id == "e1"
        assert event.list_item_id == "li3"
        assert event.distance == pytest.approx(0.531, abs=0.01)

    def test_place_fields(self, store, center):
        place = get_list_items_nearby(store, "u1", center, 3)[0].items[0]

        assert place.type == "place"
        assert place.place_id == "p1"
        assert place.name == "Close Bistro"
        assert place.notes == "anniversary"
        assert place.price_level == 2
        assert place.google_rating == 4.6
        assert place.google_review_count == 320
        assert place.vibe_tags == ["cozy"]
        assert place.is_new is True

    def test_event_fields(self, store, center):
        event = get_list_items_nearby(store, "u1", center, 3)[1].items[0]

        assert event.name == "Jazz Night"
        assert event.price_range == "$20"
        assert event.price_level is None
        assert event.google_review_count == 500
        assert event.vibe_tags == ["intimate"]

    def test_smaller_radius(self, store, center):
        groups = get_list_items_nearby(store, "u1", center, 1)

        assert [i.id for i in groups[0].items] == ["p1"]
        assert [i.id for i in groups[1].items] == ["e1"]

    def test_user_without_lists(self, store, center):
        assert get_list_items_nearby(store, "u9", center, 3) == []

    def test_owner_display_name(self):
        assert owner_display_name({"name": "Sam", "username": "sam"}) == "Sam"
        assert owner_display_name({"name": None, "username": "jlee"}) == "jlee"
        assert owner_display_name({"name": None, "username": None}) == "Unknown"
        assert owner_display_name(None) == "Unknown"


class TestDiscoveryCacheKey:
    def test_rounds_coordinates(self, center):
        assert discovery_cache_key(center, 3, None) == "nearby:39.739,-104.99:3:all"

    def test_fractional_radius_and_type(self):
        assert discovery_cache_key(LatLng(39.75, -105.0), 2.5, "bar") == "nearby:39.75,-105:2.5:bar"

    def test_radius_keeps_full_precision(self, center):
        key = discovery_cache_key(center, 2.1234567, None)

        assert key == "nearby:39.739,-104.99:2.1234567:all"
        assert key != discovery_cache_key(center, 2.1234571, None)


class TestDiscoverNearby:
    def test_filters_saved_and_distant(self, store, places_client, center, now):
        items = discover_nearby(store, places_client, "u1", center, 3, now=now)

        # g1 is saved in L1, g6 is ~7 miles out
        assert [i.google_place_id for i in items] == ["g5", "g7"]
        assert items[0].pulse_id is None
        assert items[0].distance < items[1].distance

        known = items[1]
        assert known.pulse_id == "p7"
        assert known.is_new is True
        assert known.category == "COFFEE"
        assert known.vibe_tags == ["cozy", "quiet"]
        assert known.neighborhood == "Highland"

        places_client.search_nearby.assert_called_once_with(
            "restaurant", location=center, radius_m=pytest.approx(4828.032)
        )

    def test_uses_cache(self, store, places_client, center, now):
        first = discover_nearby(store, places_client, "u1", center, 3, now=now)
        second = discover_nearby(store, places_client, "u1", center, 3, now=now + timedelta(hours=1))

        assert second == first
        assert places_client.search_nearby.call_count == 1
        [row] = store.select(CACHE_TABLE, cache_key="nearby:39.739,-104.99:3:all").to_dict("records")
        assert row["expires_at"] == now + timedelta(hours=24)

    def test_expired_cache_is_refreshed(self, store, places_client, center, now):
        discover_nearby(store, places_client, "u1", center, 3, now=now)
        discover_nearby(store, places_client, "u1", center, 3, now=now + timedelta(hours=25))

        assert places_client.search_nearby.call_count == 2
        assert store.count(CACHE_TABLE) == 1

    def test_place_type_is_passed_through(self, store, places_client, center, now):
        discover_nearby(store, places_client, "u1", center, 3, place_type="bar", now=now)

        assert places_client.search_nearby.call_args.args == ("bar",)
        assert store.count(CACHE_TABLE, cache_key="nearby:39.739,-104.99:3:bar") == 1

    def test_search_errors_propagate(self, store, places_client, center, now):
        places_client.search_nearby.side_effect = PlacesAPIError("OVER_QUERY_LIMIT", status="OVER_QUERY_LIMIT")

        with pytest.raises(PlacesAPIError):
            discover_nearby(store, places_client, "u1", center, 3, now=now)


class TestCleanupExpiredCache:
    def test_removes_only_expired(self, now):
        store = FrameStore({
            CACHE_TABLE: pd.DataFrame([
                {"cache_key": "old", "results_json": "[]", "expires_at": now - timedelta(hours=1)},
                {"cache_key": "fresh", "results_json": "[]", "expires_at": now + timedelta(hours=1)},
            ])
        })

        assert cleanup_expired_cache(store, now) == 1
        assert store.table(CACHE_TABLE)["cache_key"].tolist() == ["fresh"]

    def test_missing_table(self, now):
        assert cleanup_expired_cache(FrameStore(), now) == 0
