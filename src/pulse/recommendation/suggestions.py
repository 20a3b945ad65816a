"""
"Suggested for you" weekly and monthly picks.

1. Build a candidate pool (top items by taste match)
2. Let the AI curator choose subsets and reasons, when enabled
3. Otherwise select deterministically (soonest for weekly, diversified for monthly)
4. Cache the set per user with a TTL
"""

from __future__ import annotations

import json
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from pulse.config import SuggestionConfig
from pulse.records import as_bool, as_datetime, as_list, clean, index_by, is_missing, records
from pulse.recommendation.ai_suggestions import AICurator, CuratedPicks, UserTasteSummary
from pulse.recommendation.tag_taxonomy import category_label
from pulse.recommendation.taste import TasteVector, load_taste_vector, score_item

LOGGER = logging.getLogger(__name__)

SUGGESTION_TABLE = "user_suggestion_sets"
CANDIDATE_FIELDS = (
    "id", "title", "description", "type", "category", "tags",
    "start_time", "venue_name", "price_range",
)


@dataclass
class SuggestionSet:
    weekly_picks: List[Dict[str, Any]] = field(default_factory=list)
    monthly_picks: List[Dict[str, Any]] = field(default_factory=list)
    reasons_by_id: Dict[str, str] = field(default_factory=dict)
    summary_text: str = ""
    is_ai_generated: bool = False
    generated_at: Optional[datetime] = None


def _candidate(item: Mapping[str, Any], score: float) -> Dict[str, Any]:
    candidate = {key: item.get(key) for key in CANDIDATE_FIELDS}
    candidate["tags"] = as_list(item.get("tags"))
    candidate["start_time"] = as_datetime(item.get("start_time"))
    candidate["score"] = score
    return candidate


# ============================================================================
# CANDIDATE POOL
# ============================================================================

def generate_candidate_pool(
    store,
    user_id: str,
    taste: TasteVector,
    now: datetime,
    config: Optional[SuggestionConfig] = None,
) -> List[Dict[str, Any]]:
    """Future events plus all places, minus PASSed items, scored and trimmed to the pool size."""
    config = config or SuggestionConfig()
    passed = records(store.select("user_item_statuses", user_id=user_id, status="PASS"))
    passed_ids = {row["item_id"] for row in passed}

    events = [
        item for item in records(store.select("items", ranges={"start_time": (now, None)}, type="EVENT"))
        if as_datetime(item.get("start_time")) > now
    ]
    places = records(store.select("items", type="PLACE"))
    items = (events + places)[: config.candidate_pool_size * 2]

    candidates = [
        _candidate(item, score_item(item, taste, now))
        for item in items
        if item["id"] not in passed_ids
    ]
    candidates.sort(key=lambda c: c["score"], reverse=True)
    return candidates[: config.candidate_pool_size]


# ============================================================================
# DETERMINISTIC SELECTION
# ============================================================================

def select_weekly_deterministic(
    candidates: Sequence[Dict[str, Any]],
    count: int,
    now: datetime,
) -> List[Dict[str, Any]]:
    """Events in the next 7 days by start time, topped up with the best-scored rest."""
    week_end = now + timedelta(days=7)
    weekly = [
        c for c in candidates
        if c.get("type") == "EVENT" and c.get("start_time") and now < c["start_time"] <= week_end
    ]
    weekly.sort(key=lambda c: c["start_time"])

    if len(weekly) >= count:
        return weekly[:count]

    chosen = {c["id"] for c in weekly}
    rest = [c for c in candidates if c["id"] not in chosen]
    return weekly + rest[: count - len(weekly)]


def select_monthly_deterministic(
    candidates: Sequence[Dict[str, Any]],
    count: int,
    exclude_ids: Set[str],
    max_per_category: int = 3,
) -> List[Dict[str, Any]]:
    """Category-diversified picks in score order, topped up with the best-scored rest."""
    available = [c for c in candidates if c["id"] not in exclude_ids]
    selected: List[Dict[str, Any]] = []
    per_category: Counter = Counter()

    for candidate in available:
        if len(selected) >= count:
            break
        if per_category[candidate.get("category")] < max_per_category:
            selected.append(candidate)
            per_category[candidate.get("category")] += 1

    if len(selected) < count:
        chosen = {c["id"] for c in selected}
        rest = [c for c in available if c["id"] not in chosen]
        selected.extend(rest[: count - len(selected)])

    return selected


def generate_deterministic_reasons(
    picks: Sequence[Mapping[str, Any]],
    taste: TasteVector,
    now: datetime,
    city_name: str = "Denver",
) -> Dict[str, str]:
    reasons: Dict[str, str] = {}
    for pick in picks:
        weight = taste.category_weight(pick.get("category"))
        label = category_label(pick.get("category") or "OTHER")
        start = pick.get("start_time")

        if weight > 3:
            reasons[pick["id"]] = f"Matches your love of {label}"
        elif weight > 0:
            reasons[pick["id"]] = f"Based on your interest in {label}"
        elif pick.get("type") == "EVENT" and start:
            days_until = math.ceil((start - now).total_seconds() / 86400)
            if days_until <= 3:
                reasons[pick["id"]] = "Happening soon - don't miss it!"
            else:
                reasons[pick["id"]] = f"Coming up in {days_until} days"
        else:
            reasons[pick["id"]] = f"Popular in {city_name}"
    return reasons


def generate_deterministic_summary(
    weekly: Sequence[Mapping[str, Any]],
    monthly: Sequence[Mapping[str, Any]],
    taste: TasteVector,
    city_name: str = "Denver",
) -> str:
    top = [category_label(c) for c in taste.top_categories(2)]
    total = len(weekly) + len(monthly)

    if len(top) >= 2:
        return (
            f"We found {total} suggestions based on your love of {top[0]} and {top[1]}. "
            "Check out the weekly highlights for what's happening soon!"
        )
    if len(top) == 1:
        return (
            f"We curated {total} picks focused on {top[0]} and things we think you'll enjoy. "
            "Don't miss this week's top events!"
        )
    return (
        f"Here are {total} handpicked suggestions for you. "
        f"Explore what's happening in {city_name} this week and month!"
    )


def create_deterministic_suggestions(
    candidates: Sequence[Dict[str, Any]],
    taste: TasteVector,
    now: datetime,
    config: Optional[SuggestionConfig] = None,
) -> SuggestionSet:
    config = config or SuggestionConfig()
    weekly = select_weekly_deterministic(candidates, config.weekly_pick_count, now)
    monthly = select_monthly_deterministic(
        candidates,
        config.monthly_pick_count,
        {p["id"] for p in weekly},
        config.max_per_category,
    )
    return SuggestionSet(
        weekly_picks=weekly,
        monthly_picks=monthly,
        reasons_by_id=generate_deterministic_reasons(weekly + monthly, taste, now, config.city_name),
        summary_text=generate_deterministic_summary(weekly, monthly, taste, config.city_name),
        is_ai_generated=False,
    )


# ============================================================================
# TASTE SUMMARY
# ============================================================================

def build_user_taste_summary(store, user_id: str, taste: TasteVector) -> UserTasteSummary:
    """Condensed taste profile handed to the AI curator."""
    liked = [cat for cat, w in taste.categories.items() if w > 2]
    disliked = [cat for cat, w in taste.categories.items() if w < -1]
    preferred_tags = [
        tag for tag, _ in sorted(
            ((t, w) for t, w in taste.tags.items() if w > 1),
            key=lambda tw: tw[1],
            reverse=True,
        )[:10]
    ]

    ratings = store.select("user_item_ratings", user_id=user_id)
    avg_rating = float(ratings["rating"].mean()) if not ratings.empty else None

    statuses = records(store.select("user_item_statuses", user_id=user_id))
    status_counts = Counter(row.get("status") for row in statuses)

    recent = sorted(
        statuses,
        key=lambda row: as_datetime(row.get("updated_at")) or datetime.min.replace(tzinfo=timezone.utc),
        reverse=True,
    )[:5]
    items = index_by(
        records(store.select("items", id=[row["item_id"] for row in recent])) if recent else [],
        "id",
    )
    activity = [
        f'{row["status"]} "{items[row["item_id"]].get("title")}" ({items[row["item_id"]].get("category")})'
        for row in recent
        if row["item_id"] in items
    ]

    return UserTasteSummary(
        liked_categories=liked,
        disliked_categories=disliked,
        preferred_tags=preferred_tags,
        avg_rating=avg_rating,
        total_done=status_counts["DONE"],
        total_pass=status_counts["PASS"],
        recent_activity=activity,
    )


# ============================================================================
# CACHE
# ============================================================================

def _stored_ids(value: Any) -> List[Any]:
    """Id arrays as stored, keeping numeric ids numeric (JSON text from CSV exports is parsed)."""
    if hasattr(value, "tolist"):
        value = value.tolist()
    if isinstance(value, str) and value.strip().startswith("["):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            return as_list(value)
    if isinstance(value, (list, tuple)):
        return [v for v in value if not is_missing(v) and str(v).strip()]
    return as_list(value)


def _load_cached(store, user_id: str, now: datetime) -> Optional[SuggestionSet]:
    rows = [
        row for row in records(store.select(SUGGESTION_TABLE, ranges={"expires_at": (now, None)}, user_id=user_id))
        if as_datetime(row.get("expires_at")) > now
    ]
    if not rows:
        return None

    cached = max(rows, key=lambda row: as_datetime(row.get("generated_at")) or now)
    weekly_ids = _stored_ids(cached.get("weekly_ids"))
    monthly_ids = _stored_ids(cached.get("monthly_ids"))
    all_ids = weekly_ids + monthly_ids
    item_rows = records(store.select("items", id=all_ids)) if all_ids else []
    items = {str(row["id"]): row for row in item_rows if not is_missing(row.get("id"))}

    def hydrate(ids: List[Any]) -> List[Dict[str, Any]]:
        return [_candidate(items[str(i)], 0) for i in ids if str(i) in items]

    LOGGER.info("Serving cached suggestions for user %s", user_id)
    return SuggestionSet(
        weekly_picks=hydrate(weekly_ids),
        monthly_picks=hydrate(monthly_ids),
        reasons_by_id=json.loads(clean(cached.get("reasons_json"), "{}")),
        summary_text=clean(cached.get("summary_text"), ""),
        is_ai_generated=as_bool(cached.get("is_ai_generated")),
        generated_at=as_datetime(cached.get("generated_at")),
    )


def _from_curated(curated: CuratedPicks, candidates: Sequence[Dict[str, Any]]) -> SuggestionSet:
    by_id = {c["id"]: c for c in candidates}
    return SuggestionSet(
        weekly_picks=[by_id[i] for i in curated.weekly_pick_ids if i in by_id],
        monthly_picks=[by_id[i] for i in curated.monthly_pick_ids if i in by_id],
        reasons_by_id=curated.reasons_by_id,
        summary_text=curated.summary_text,
        is_ai_generated=True,
    )


# ============================================================================
# PUBLIC API
# ============================================================================

def get_suggestions(
    store,
    user_id: str,
    curator: Optional[AICurator] = None,
    now: Optional[datetime] = None,
    config: Optional[SuggestionConfig] = None,
) -> SuggestionSet:
    """Return the user's unexpired cached set, or generate and cache a new one."""
    config = config or SuggestionConfig()
    now = now or datetime.now(timezone.utc)

    cached = _load_cached(store, user_id, now)
    if cached is not None:
        return cached

    taste = load_taste_vector(store, user_id)
    candidates = generate_candidate_pool(store, user_id, taste, now, config)
    LOGGER.info("Generating suggestions for user %s from %d candidates", user_id, len(candidates))

    suggestions: Optional[SuggestionSet] = None
    if curator is not None and curator.enabled and candidates:
        summary = build_user_taste_summary(store, user_id, taste)
        curated = curator.generate(summary, candidates)
        if curated is not None:
            suggestions = _from_curated(curated, candidates)
        else:
            LOGGER.warning("AI curation unavailable for user %s; using deterministic picks", user_id)

    if suggestions is None:
        suggestions = create_deterministic_suggestions(candidates, taste, now, config)

    suggestions.generated_at = now
    store.insert(SUGGESTION_TABLE, {
        "user_id": user_id,
        "generated_at": now,
        "expires_at": now + timedelta(hours=config.ttl_hours),
        "weekly_ids": [p["id"] for p in suggestions.weekly_picks],
        "monthly_ids": [p["id"] for p in suggestions.monthly_picks],
        "reasons_json": json.dumps(suggestions.reasons_by_id),
        "summary_text": suggestions.summary_text,
        "is_ai_generated": suggestions.is_ai_generated,
    })
    return suggestions


def regenerate_suggestions(
    store,
    user_id: str,
    curator: Optional[AICurator] = None,
    now: Optional[datetime] = None,
    config: Optional[SuggestionConfig] = None,
) -> SuggestionSet:
    """Drop every cached set for the user and build a fresh one."""
    deleted = store.delete(SUGGESTION_TABLE, user_id=user_id)
    LOGGER.info("Deleted %d cached suggestion sets for user %s", deleted, user_id)
    return get_suggestions(store, user_id, curator, now, config)
