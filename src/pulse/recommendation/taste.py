"""
User taste vectors over categories and tags.

Built from explicit category preferences, WANT/DONE/PASS statuses and 1-5
ratings; used to score items for suggestions and item recommendations.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pulse.records import as_datetime, as_list, clean, index_by, records

STATUS_WEIGHTS = {"DONE": 3, "WANT": 2, "PASS": -3}

SUGGESTION_RATING_SCALE = 1.0
RECOMMENDATION_RATING_SCALE = 1.5


@dataclass
class TasteVector:
    categories: Dict[str, float] = field(default_factory=lambda: defaultdict(float))
    tags: Dict[str, float] = field(default_factory=lambda: defaultdict(float))

    def category_weight(self, category: Optional[str]) -> float:
        return self.categories.get(category, 0.0)

    def tag_weight(self, tag: str) -> float:
        return self.tags.get(tag, 0.0)

    def top_categories(self, n: int, min_weight: float = 0.0) -> List[str]:
        """Categories with weight above `min_weight`, strongest first."""
        ranked = sorted(
            ((cat, w) for cat, w in self.categories.items() if w > min_weight),
            key=lambda cw: cw[1],
            reverse=True,
        )
        return [cat for cat, _ in ranked[:n]]


def rating_weight(rating: float, scale: float = SUGGESTION_RATING_SCALE) -> float:
    """4-5 stars push up, 1-2 push down, 3 is neutral."""
    if rating >= 4 or rating <= 2:
        return (rating - 3) * scale
    return 0.0


def build_taste_vector(
    preferences: Iterable[Mapping[str, Any]],
    item_statuses: Iterable[Mapping[str, Any]],
    ratings: Iterable[Mapping[str, Any]],
    items: Mapping[str, Mapping[str, Any]],
    rating_scale: float = SUGGESTION_RATING_SCALE,
) -> TasteVector:
    """
    Accumulate category and tag weights for one user.

    Args:
        preferences: rows with category, preference_type (LIKE/DISLIKE), intensity
        item_statuses: rows with item_id and status (WANT/DONE/PASS)
        ratings: rows with item_id and rating (1-5)
        items: item rows keyed by id (category, tags)
        rating_scale: multiplier for rating weights

    Returns:
        TasteVector; PASS and low ratings penalise tags at half weight
    """
    taste = TasteVector()

    for pref in preferences:
        intensity = float(clean(pref.get("intensity"), 0))
        weight = intensity if pref.get("preference_type") == "LIKE" else -intensity
        taste.categories[pref["category"]] += weight

    for status in item_statuses:
        item = items.get(status.get("item_id"))
        if item is None:
            continue
        weight = STATUS_WEIGHTS.get(status.get("status"), 0)
        taste.categories[item["category"]] += weight
        for tag in as_list(item.get("tags")):
            taste.tags[tag] += weight if weight > 0 else weight * 0.5

    for row in ratings:
        item = items.get(row.get("item_id"))
        rating = clean(row.get("rating"))
        if item is None or rating is None:
            continue
        weight = rating_weight(float(rating), rating_scale)
        if weight == 0:
            continue
        taste.categories[item["category"]] += weight
        for tag in as_list(item.get("tags")):
            taste.tags[tag] += weight * 0.5

    return taste


def load_taste_vector(store, user_id: str, rating_scale: float = SUGGESTION_RATING_SCALE) -> TasteVector:
    """Read the user's preferences, statuses and ratings from the store and build the vector."""
    preferences = records(store.select("preferences", user_id=user_id))
    statuses = records(store.select("user_item_statuses", user_id=user_id))
    ratings = records(store.select("user_item_ratings", user_id=user_id))

    item_ids = {row["item_id"] for row in statuses + ratings}
    items = index_by(records(store.select("items", id=sorted(item_ids))), "id") if item_ids else {}
    return build_taste_vector(preferences, statuses, ratings, items, rating_scale)


def score_item_match(item: Mapping[str, Any], taste: TasteVector) -> float:
    """10 points per unit of category weight plus 2 per unit of each tag weight."""
    score = taste.category_weight(item.get("category")) * 10
    for tag in as_list(item.get("tags")):
        score += taste.tag_weight(tag) * 2
    return score


def score_item(item: Mapping[str, Any], taste: TasteVector, now: Optional[datetime] = None) -> float:
    """Taste match plus a bonus for events within a week (+10) or a month (+5)."""
    now = now or datetime.now(timezone.utc)
    score = score_item_match(item, taste)

    start = as_datetime(item.get("start_time"))
    if start is not None:
        hours_until = (start - now).total_seconds() / 3600
        if 0 < hours_until <= 168:
            score += 10
        elif 168 < hours_until <= 720:
            score += 5

    return score
