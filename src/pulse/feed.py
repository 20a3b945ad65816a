"""
Personalized event feed: load the user's scoring context, fetch the next
two weeks of events, rank them and paginate.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

import numpy as np

from pulse.config import DiversityConfig, ScoringConfig
from pulse.errors import UserNotFoundError
from pulse.records import as_bool, as_datetime, as_list, index_by, records
from pulse.recommendation.scoring import (
    ScoringContext,
    build_constraints_data,
    build_detailed_preferences_data,
    build_feed_view_data,
    build_feedback_data,
    build_interaction_data,
    build_user_preferences,
    score_and_rank_events,
)

LOGGER = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50


@dataclass
class FeedFilters:
    category: Optional[str] = None
    neighborhoods: List[str] = field(default_factory=list)
    subcategories: List[str] = field(default_factory=list)
    dog_friendly: bool = False
    sober_friendly: bool = False


@dataclass
class FeedPage:
    events: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int
    has_more: bool


def _first(rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    return rows[0] if rows else None


def get_save_counts(store, event_ids: List[str]) -> Counter:
    if not event_ids:
        return Counter()
    statuses = records(store.select("event_user_statuses", event_id=event_ids))
    return Counter(row["event_id"] for row in statuses)


def get_global_trending(store, threshold: int = 10) -> Set[str]:
    """Events saved by at least `threshold` users."""
    counts = Counter(row["event_id"] for row in records(store.select("event_user_statuses")))
    return {event_id for event_id, count in counts.items() if count >= threshold}


def load_scoring_context(store, user_id: Optional[str], config: Optional[ScoringConfig] = None) -> ScoringContext:
    """
    Assemble everything the ranking model knows about a user.

    Anonymous callers get neutral preferences. Raises UserNotFoundError for
    an unknown id.
    """
    config = config or ScoringConfig()
    global_trending = get_global_trending(store, config.trending_save_threshold)
    if not user_id:
        return ScoringContext(preferences=build_user_preferences([], None), global_trending=global_trending)

    user = _first(records(store.select("users", id=user_id)))
    if user is None:
        raise UserNotFoundError(user_id)

    statuses = records(store.select("event_user_statuses", user_id=user_id))
    saved_event_ids = sorted({row["event_id"] for row in statuses})
    saved_events = index_by(records(store.select("events", id=saved_event_ids)), "id") if saved_event_ids else {}
    interactions = [
        {
            "category": saved_events[row["event_id"]].get("category"),
            "neighborhood": saved_events[row["event_id"]].get("neighborhood"),
            "going_with": row.get("going_with"),
        }
        for row in statuses
        if row["event_id"] in saved_events
    ]

    return ScoringContext(
        preferences=build_user_preferences(
            records(store.select("preferences", user_id=user_id)),
            user.get("relationship_status"),
        ),
        feedback=build_feedback_data(records(store.select("event_feedback", user_id=user_id))),
        constraints=build_constraints_data(_first(records(store.select("constraints", user_id=user_id)))),
        feed_views=build_feed_view_data(records(store.select("feed_views", user_id=user_id))),
        interactions=build_interaction_data(interactions),
        global_trending=global_trending,
        detailed_preferences=build_detailed_preferences_data(
            _first(records(store.select("detailed_preferences", user_id=user_id)))
        ),
    )


def _matches(event: Dict[str, Any], filters: FeedFilters, dog_only: bool, sober_only: bool) -> bool:
    if filters.category and event.get("category") != filters.category:
        return False
    if filters.neighborhoods and event.get("neighborhood") not in filters.neighborhoods:
        return False
    if filters.subcategories:
        wanted = {s.lower() for s in filters.subcategories}
        if not wanted & {t.lower() for t in as_list(event.get("tags"))}:
            return False
    if dog_only and not as_bool(event.get("is_dog_friendly")):
        return False
    if sober_only and not (as_bool(event.get("is_drinking_optional")) or as_bool(event.get("is_alcohol_free"))):
        return False
    return True


def get_feed(
    store,
    user_id: Optional[str] = None,
    filters: Optional[FeedFilters] = None,
    page: int = 1,
    page_size: int = 20,
    now: Optional[datetime] = None,
    rng: Optional[np.random.Generator] = None,
    config: Optional[ScoringConfig] = None,
    diversity: Optional[DiversityConfig] = None,
) -> FeedPage:
    """
    Ranked events from the start of today (UTC) through the next two weeks.

    Lifestyle preferences (dog friendly only, sober friendly, avoid bars)
    force the matching filters on. Pagination happens after ranking.
    """
    config = config or ScoringConfig()
    filters = filters or FeedFilters()
    now = now or datetime.now(timezone.utc)
    page = max(1, page)
    page_size = min(MAX_PAGE_SIZE, max(1, page_size))

    context = load_scoring_context(store, user_id, config)
    prefs = context.detailed_preferences
    dog_only = filters.dog_friendly or bool(prefs and prefs.dog_friendly_only)
    sober_only = filters.sober_friendly or bool(prefs and (prefs.prefer_sober_friendly or prefs.avoid_bars))

    window_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
    window_end = window_start + timedelta(days=config.feed_window_days)
    events = [
        event for event in records(store.select("events", ranges={"start_time": (window_start, window_end)}))
        if _matches(event, filters, dog_only, sober_only)
    ]
    events.sort(key=lambda e: as_datetime(e.get("start_time")))

    save_counts = get_save_counts(store, [e["id"] for e in events])
    for event in events:
        event["save_count"] = save_counts[event["id"]]

    ranked = score_and_rank_events(events, context, now=now, rng=rng, config=config, diversity=diversity)
    LOGGER.info("Ranked %d of %d feed events for %s", len(ranked), len(events), user_id or "anonymous")

    start = (page - 1) * page_size
    return FeedPage(
        events=ranked[start:start + page_size],
        total=len(ranked),
        page=page,
        page_size=page_size,
        has_more=start + page_size < len(ranked),
    )
