"""
Unit tests for item recommendations.

u1 and u2 share a LIVE_MUSIC like and the saved item i2; u2 also saved
i3 and completed i4. u1 passed i5.
"""

from datetime import timedelta

import pytest

from pulse.recommendation.item_recommendations import (
    calculate_recency_boost,
    find_similar_users,
    get_collaborative_recommendations,
    get_content_based_recommendations,
    get_item_recommendations,
    get_trending_recommendations,
    jaccard_similarity,
)


def _ids(items):
    return [i["id"] for i in items]


class TestHelpers:
    def test_jaccard(self):
        assert jaccard_similarity({"a", "b"}, {"b", "c"}) == pytest.approx(1 / 3)
        assert jaccard_similarity(set(), set()) == 0

    @pytest.mark.parametrize(
        "offset,expected",
        [
            (timedelta(hours=-1), 0),
            (timedelta(hours=12), 15),
            (timedelta(hours=48), 12),
            (timedelta(days=5), 8),
            (timedelta(days=10), 5),
            (timedelta(days=30), 2),
        ],
    )
    def test_recency_boost(self, now, offset, expected):
        assert calculate_recency_boost(now + offset, now) == expected

    def test_recency_boost_for_places(self, now):
        assert calculate_recency_boost(None, now) == 5


class TestFindSimilarUsers:
    def test_blends_category_and_item_overlap(self, store):
        similar = find_similar_users(store, "u1")

        assert [s.user_id for s in similar] == ["u2"]
        # 0.3 * 1/2 (categories) + 0.7 * 1/3 (items)
        assert similar[0].similarity == pytest.approx(0.38333, abs=1e-4)

    def test_skips_users_still_onboarding(self, store):
        store.tables["users"].loc[store.tables["users"]["id"] == "u2", "onboarding_complete"] = False
        assert find_similar_users(store, "u1") == []


class TestStrategies:
    def test_collaborative(self, store, now):
        items = get_collaborative_recommendations(store, "u1", "", None, 12, now)

        assert _ids(items) == ["i2", "i4", "i3"]
        assert [i["score"] for i in items] == pytest.approx([71.1667, 33.75, 21.1667], abs=1e-3)
        assert items[0]["reason"] == "People like you also liked this"

    def test_content_based(self, store, now):
        items = get_content_based_recommendations(store, "u1", "", None, 12, now)

        assert _ids(items) == ["i1", "i6", "i2"]
        assert items[0]["score"] == pytest.approx(95)
        assert items[0]["reason"] == "Because you like art"
        assert items[2]["reason"] == "Because you like live music"

    def test_trending(self, store, now):
        items = get_trending_recommendations(store, "i2", None, 3, now)

        assert _ids(items) == ["i3", "i4", "i5"]
        assert items[0]["score"] == 1
        assert items[0]["reason"] == "Trending in Denver"


class TestGetItemRecommendations:
    def test_blends_strategies_without_duplicates(self, store, now):
        items = get_item_recommendations(store, "u1", now=now)

        assert _ids(items) == ["i2", "i4", "i3", "i1", "i6", "i5"]
        assert len(set(_ids(items))) == len(items)

    def test_limit(self, store, now):
        assert _ids(get_item_recommendations(store, "u1", limit=2, now=now)) == ["i2", "i4"]

    def test_events_only(self, store, now):
        items = get_item_recommendations(store, "u1", item_type="EVENT", now=now)

        assert _ids(items) == ["i2", "i3", "i1"]
        assert all(i["start_time"] > now for i in items)

    def test_places_only(self, store, now):
        assert _ids(get_item_recommendations(store, "u1", item_type="PLACE", now=now)) == ["i4", "i5"]

    def test_excludes_current_item(self, store, now):
        items = get_item_recommendations(store, "u1", exclude_item_id="i2", now=now)
        assert _ids(items) == ["i4", "i3", "i1", "i6", "i5"]
