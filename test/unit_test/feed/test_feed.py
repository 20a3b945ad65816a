"""
Unit tests for the personalized feed.

The shared store is extended with three feed events plus two outside the
two-week window. u1 likes ART (5) and LIVE_MUSIC (2), dislikes BARS and
has saved e1 (LIVE_MUSIC, Five Points).
"""

from datetime import datetime, timedelta, timezone

import numpy as np
import pandas as pd
import pytest

from pulse.config import DiversityConfig
from pulse.errors import UserNotFoundError
from pulse.feed import FeedFilters, get_feed, get_global_trending, get_save_counts, load_scoring_context

NO_EXPLORATION = DiversityConfig(exploration_probability=0)


@pytest.fixture
def feed_store(store, make_event, now):
    extra = pd.DataFrame([
        make_event("f1", category="ART", start_time=now + timedelta(hours=2), price_range="Free",
                   tags=["gallery"], neighborhood="RiNo", is_dog_friendly=True),
        make_event("f2", category="LIVE_MUSIC", start_time=now + timedelta(days=1), price_range="$20",
                   tags=["Concert"], neighborhood="LoDo", is_drinking_optional=True),
        make_event("f3", category="BARS", start_time=now + timedelta(days=3), price_range="$15",
                   tags=["cocktails"], neighborhood="RiNo"),
        make_event("old", start_time=datetime(2026, 10, 18, 23, 0, tzinfo=timezone.utc)),
        make_event("far", start_time=datetime(2026, 11, 10, 20, 0, tzinfo=timezone.utc)),
    ])
    store.tables["events"] = pd.concat([store.tables["events"], extra], ignore_index=True)
    return store


def _feed(store, user_id=None, **kwargs):
    kwargs.setdefault("now", datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc))
    kwargs.setdefault("rng", np.random.default_rng(0))
    kwargs.setdefault("diversity", NO_EXPLORATION)
    return get_feed(store, user_id, **kwargs)


def _ids(page):
    return [e["id"] for e in page.events]


class TestScoringContext:
    def test_anonymous(self, feed_store):
        context = load_scoring_context(feed_store, None)

        assert context.preferences.categories == {}
        assert context.feedback is None
        assert context.global_trending == set()

    def test_user(self, feed_store):
        context = load_scoring_context(feed_store, "u1")

        assert context.preferences.relationship_status == "SINGLE"
        assert context.preferences.categories["ART"].intensity == 5
        assert context.interactions.saved_categories["LIVE_MUSIC"] == 1
        assert context.interactions.top_neighborhoods == ["Five Points"]
        assert context.interactions.going_with_history["DATE"] == 1
        assert context.constraints is None
        assert context.detailed_preferences is None

    def test_unknown_user(self, feed_store):
        with pytest.raises(UserNotFoundError, match="ghost"):
            load_scoring_context(feed_store, "ghost")

    def test_trending_and_save_counts(self, feed_store):
        assert get_global_trending(feed_store, threshold=1) == {"e1"}
        assert get_save_counts(feed_store, ["e1", "f1"]) == {"e1": 1}
        assert get_save_counts(feed_store, []) == {}


class TestGetFeed:
    def test_two_week_window(self, feed_store):
        page = _feed(feed_store)

        assert sorted(_ids(page)) == ["e1", "f1", "f2", "f3"]
        assert page.total == 4
        assert page.has_more is False

    def test_personalized_order(self, feed_store):
        page = _feed(feed_store, "u1")

        assert _ids(page) == ["f1", "f2", "e1", "f3"]
        assert [e["score"] for e in page.events] == [85, 75, 70, 40]
        assert page.events[0]["recommendation_reason"] == "Matches your love for art"
        assert page.events[2]["save_count"] == 1

    def test_pagination(self, feed_store):
        first = _feed(feed_store, "u1", page=1, page_size=3)
        second = _feed(feed_store, "u1", page=2, page_size=3)
        third = _feed(feed_store, "u1", page=3, page_size=3)

        assert _ids(first) == ["f1", "f2", "e1"]
        assert first.has_more is True
        assert _ids(second) == ["f3"]
        assert second.has_more is False
        assert third.events == []
        assert third.total == 4

    def test_page_size_is_clamped(self, feed_store):
        page = _feed(feed_store, page=0, page_size=500)
        assert page.page == 1
        assert page.page_size == 50

    @pytest.mark.parametrize(
        "filters,expected",
        [
            (FeedFilters(category="ART"), ["f1"]),
            (FeedFilters(neighborhoods=["RiNo"]), ["f1", "f3"]),
            (FeedFilters(subcategories=["CONCERT"]), ["f2"]),
            (FeedFilters(dog_friendly=True), ["f1"]),
            (FeedFilters(sober_friendly=True), ["f2"]),
        ],
    )
    def test_filters(self, feed_store, filters, expected):
        assert sorted(_ids(_feed(feed_store, filters=filters))) == expected

    def test_lifestyle_preferences_force_filters(self, feed_store):
        feed_store.tables["detailed_preferences"] = pd.DataFrame([
            {"user_id": "u1", "has_dog": True, "dog_friendly_only": True},
        ])

        page = _feed(feed_store, "u1")

        assert _ids(page) == ["f1"]
        assert page.events[0]["score_breakdown"]["dog_friendly_score"] == 20

    def test_avoid_bars_keeps_sober_friendly_events(self, feed_store):
        feed_store.tables["detailed_preferences"] = pd.DataFrame([{"user_id": "u1", "avoid_bars": True}])

        assert _ids(_feed(feed_store, "u1")) == ["f2"]

    def test_hidden_events_are_dropped(self, feed_store):
        feed_store.tables["event_feedback"] = pd.DataFrame([
            {"user_id": "u1", "event_id": "f2", "feedback_type": "HIDE", "category": None, "venue_name": None},
        ])

        page = _feed(feed_store, "u1")

        assert _ids(page) == ["f1", "e1", "f3"]
        assert page.total == 3

    def test_unknown_user(self, feed_store):
        with pytest.raises(UserNotFoundError):
            _feed(feed_store, "ghost")
