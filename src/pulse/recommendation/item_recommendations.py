"""
"People like you also liked" recommendations for events and places.

Collaborative filtering over similar users first, then content-based
matches on the user's top categories, then trending items as a fallback.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set

import pandas as pd

from pulse.records import as_bool, as_datetime, as_list, records
from pulse.recommendation.tag_taxonomy import category_label
from pulse.recommendation.taste import (
    RECOMMENDATION_RATING_SCALE,
    TasteVector,
    load_taste_vector,
    score_item_match,
)

LOGGER = logging.getLogger(__name__)

POSITIVE_STATUSES = ["WANT", "DONE"]
SIMILARITY_THRESHOLD = 0.05
CATEGORY_SIMILARITY_WEIGHT = 0.3
ITEM_SIMILARITY_WEIGHT = 0.7
SIMILARITY_MULTIPLIER = 50
DONE_WEIGHT = 1.5
CONTENT_TOP_CATEGORIES = 4


@dataclass
class UserSimilarity:
    user_id: str
    similarity: float


def jaccard_similarity(a: Set[str], b: Set[str]) -> float:
    if not a and not b:
        return 0.0
    return len(a & b) / len(a | b)


def calculate_recency_boost(start_time: Optional[datetime], now: datetime) -> float:
    """Places (no start) get 5; sooner events get more, past events nothing."""
    if start_time is None:
        return 5
    hours_until = (start_time - now).total_seconds() / 3600
    if hours_until < 0:
        return 0
    if hours_until <= 24:
        return 15
    if hours_until <= 72:
        return 12
    if hours_until <= 168:
        return 8
    if hours_until <= 336:
        return 5
    return 2


def _sets_by_user(frame: pd.DataFrame, column: str) -> Dict[str, Set[str]]:
    if frame.empty:
        return {}
    return {uid: set(group[column]) for uid, group in frame.groupby("user_id")}


def find_similar_users(store, user_id: str, limit: int = 20) -> List[UserSimilarity]:
    """Onboarded users whose liked categories and saved items overlap with this user's."""
    liked = _sets_by_user(store.select("preferences", preference_type="LIKE"), "category")
    saved = _sets_by_user(store.select("user_item_statuses", status=POSITIVE_STATUSES), "item_id")

    users = records(store.select("users"))
    others = [
        u["id"] for u in users
        if u["id"] != user_id and as_bool(u.get("onboarding_complete", True))
    ]

    my_categories = liked.get(user_id, set())
    my_items = saved.get(user_id, set())

    similarities: List[UserSimilarity] = []
    for other in others:
        combined = (
            jaccard_similarity(my_categories, liked.get(other, set())) * CATEGORY_SIMILARITY_WEIGHT
            + jaccard_similarity(my_items, saved.get(other, set())) * ITEM_SIMILARITY_WEIGHT
        )
        if combined > SIMILARITY_THRESHOLD:
            similarities.append(UserSimilarity(other, combined))

    similarities.sort(key=lambda s: s.similarity, reverse=True)
    return similarities[:limit]


def _excluded_item_ids(store, user_id: str, exclude_item_id: str) -> Set[str]:
    passed = records(store.select("user_item_statuses", user_id=user_id, status="PASS"))
    return {exclude_item_id} | {row["item_id"] for row in passed}


def _select_items(store, item_type: Optional[str], now: datetime, **equals: Any) -> List[Dict[str, Any]]:
    """Items of the requested type; EVENT means upcoming events only."""
    if item_type == "EVENT":
        rows = records(store.select("items", ranges={"start_time": (now, None)}, type="EVENT", **equals))
        return [row for row in rows if as_datetime(row.get("start_time")) > now]
    if item_type == "PLACE":
        return records(store.select("items", type="PLACE", **equals))
    return records(store.select("items", **equals))


def _scored(item: Mapping[str, Any], score: float, reason: str) -> Dict[str, Any]:
    result = dict(item)
    result["tags"] = as_list(item.get("tags"))
    result["start_time"] = as_datetime(item.get("start_time"))
    result["score"] = score
    result["reason"] = reason
    return result


def _top(items: Iterable[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
    return sorted(items, key=lambda i: i["score"], reverse=True)[:limit]


def get_collaborative_recommendations(
    store,
    user_id: str,
    exclude_item_id: str,
    item_type: Optional[str],
    limit: int,
    now: datetime,
    taste: Optional[TasteVector] = None,
) -> List[Dict[str, Any]]:
    similar = find_similar_users(store, user_id)
    if not similar:
        return []

    taste = taste or load_taste_vector(store, user_id, RECOMMENDATION_RATING_SCALE)
    excluded = _excluded_item_ids(store, user_id, exclude_item_id)
    similarity_by_user = {s.user_id: s.similarity for s in similar}

    statuses = records(store.select(
        "user_item_statuses",
        user_id=list(similarity_by_user),
        status=POSITIVE_STATUSES,
    ))
    weights: Counter = Counter()
    for status in statuses:
        status_weight = DONE_WEIGHT if status["status"] == "DONE" else 1
        weights[status["item_id"]] += similarity_by_user[status["user_id"]] * status_weight

    candidate_ids = sorted(set(weights) - excluded)
    if not candidate_ids:
        return []

    scored = []
    for item in _select_items(store, item_type, now, id=candidate_ids):
        score = (
            weights[item["id"]] * SIMILARITY_MULTIPLIER
            + score_item_match(item, taste)
            + calculate_recency_boost(as_datetime(item.get("start_time")), now)
        )
        scored.append(_scored(item, score, "People like you also liked this"))
    return _top(scored, limit)


def get_content_based_recommendations(
    store,
    user_id: str,
    exclude_item_id: str,
    item_type: Optional[str],
    limit: int,
    now: datetime,
    taste: Optional[TasteVector] = None,
) -> List[Dict[str, Any]]:
    taste = taste or load_taste_vector(store, user_id, RECOMMENDATION_RATING_SCALE)
    top_categories = taste.top_categories(CONTENT_TOP_CATEGORIES)
    if not top_categories:
        return []

    excluded = _excluded_item_ids(store, user_id, exclude_item_id)
    items = [
        item for item in _select_items(store, item_type, now, category=top_categories)
        if item["id"] not in excluded
    ][: limit * 2]

    scored = [
        _scored(
            item,
            score_item_match(item, taste) + calculate_recency_boost(as_datetime(item.get("start_time")), now),
            f"Because you like {category_label(item['category'])}",
        )
        for item in items
    ]
    return _top(scored, limit)


def get_trending_recommendations(
    store,
    exclude_item_id: str,
    item_type: Optional[str],
    limit: int,
    now: datetime,
    city_name: str = "Denver",
) -> List[Dict[str, Any]]:
    """Most-interacted items: score = statuses + 2 * ratings."""
    status_counts = Counter(row["item_id"] for row in records(store.select("user_item_statuses")))
    rating_counts = Counter(row["item_id"] for row in records(store.select("user_item_ratings")))

    items = [item for item in _select_items(store, item_type, now) if item["id"] != exclude_item_id]
    items.sort(key=lambda i: (status_counts[i["id"]], rating_counts[i["id"]]), reverse=True)

    return [
        _scored(item, status_counts[item["id"]] + rating_counts[item["id"]] * 2, f"Trending in {city_name}")
        for item in items[:limit]
    ]


def get_item_recommendations(
    store,
    user_id: str,
    exclude_item_id: str = "",
    item_type: Optional[str] = None,
    limit: int = 12,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Recommend items for a user, most relevant first.

    Args:
        store: Table store
        user_id: User identifier
        exclude_item_id: Item currently being viewed
        item_type: "EVENT", "PLACE" or None for both
        limit: Maximum number of items
        now: Reference time

    Returns:
        Item rows with score and reason, without duplicates
    """
    now = now or datetime.now(timezone.utc)
    taste = load_taste_vector(store, user_id, RECOMMENDATION_RATING_SCALE)

    recommendations = get_collaborative_recommendations(
        store, user_id, exclude_item_id, item_type, limit, now, taste
    )
    LOGGER.info("Collaborative filtering produced %d items for user %s", len(recommendations), user_id)

    if len(recommendations) < limit:
        existing = {r["id"] for r in recommendations}
        content = get_content_based_recommendations(
            store, user_id, exclude_item_id, item_type, limit - len(recommendations), now, taste
        )
        recommendations.extend(r for r in content if r["id"] not in existing)

    if len(recommendations) < limit:
        existing = {r["id"] for r in recommendations}
        trending = get_trending_recommendations(
            store, exclude_item_id, item_type, limit - len(recommendations), now
        )
        recommendations.extend(r for r in trending if r["id"] not in existing)

    return recommendations[:limit]
