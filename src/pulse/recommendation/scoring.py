"""
Feed ranking model.

Each upcoming event gets an additive score built from the user's category
preferences, timing, price, feedback, constraints, detailed preferences and
lifestyle flags. The ranked list is then reshaped by diversity rules
(category/venue caps plus exploration and trending picks).
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple
from zoneinfo import ZoneInfo

import numpy as np
import pandas as pd

from pulse.config import DiversityConfig, ScoringConfig
from pulse.records import as_bool, as_datetime, as_list, clean, records
from pulse.recommendation.tag_taxonomy import (
    CHILL_VIBE_TAGS,
    COUPLE_FRIENDLY_CATEGORIES,
    DATE_FRIENDLY_TAGS,
    DAY_NAMES,
    FAMILY_FRIENDLY_CATEGORIES,
    FAMILY_FRIENDLY_TAGS,
    FRIENDS_FRIENDLY_CATEGORIES,
    FRIENDS_FRIENDLY_TAGS,
    HIGH_ENERGY_VIBE_TAGS,
    MEET_PEOPLE_CATEGORIES,
    MODERATE_VIBE_TAGS,
    OWN_THING_CATEGORIES,
    SINGLES_FRIENDLY_CATEGORIES,
    SOCIAL_MEETUP_TAGS,
    SOLO_ACTIVITY_TAGS,
    SOLO_CATEGORIES,
    SOLO_FRIENDLY_TAGS,
    WEEKEND_DAYS,
    category_label,
    normalized_tags,
)

LOGGER = logging.getLogger(__name__)

FREE_PRICES = {"free", "$0", "0"}
BUDGET_VALUES = {
    "FREE": 0.0,
    "UNDER_25": 25.0,
    "UNDER_50": 50.0,
    "UNDER_100": 100.0,
    "ANY": float("inf"),
}
_NUMBER = re.compile(r"\d+")


# ============================================================================
# CONTEXT
# ============================================================================

@dataclass
class CategoryPreference:
    type: str  # LIKE | DISLIKE
    intensity: int


@dataclass
class UserPreferences:
    categories: Dict[str, CategoryPreference] = field(default_factory=dict)
    relationship_status: Optional[str] = None


@dataclass
class UserFeedbackData:
    more_categories: Counter = field(default_factory=Counter)
    less_categories: Counter = field(default_factory=Counter)
    more_venues: Counter = field(default_factory=Counter)
    less_venues: Counter = field(default_factory=Counter)
    hidden_event_ids: Set[str] = field(default_factory=set)


@dataclass
class UserConstraintsData:
    preferred_days: List[str] = field(default_factory=list)
    preferred_times: List[str] = field(default_factory=list)
    budget_max: str = "ANY"
    neighborhoods: List[str] = field(default_factory=list)
    home_neighborhood: Optional[str] = None
    free_events_only: bool = False
    discovery_mode: bool = False


@dataclass
class FeedViewData:
    seen_counts: Dict[str, int] = field(default_factory=dict)
    interacted_event_ids: Set[str] = field(default_factory=set)


@dataclass
class UserInteractionData:
    saved_categories: Counter = field(default_factory=Counter)
    top_neighborhoods: List[str] = field(default_factory=list)
    going_with_history: Counter = field(default_factory=Counter)


@dataclass
class DetailedPreferencesData:
    """1-5 intensities (None = unanswered) plus budget, social intent and lifestyle flags."""

    going_solo: Optional[int] = None
    going_date: Optional[int] = None
    going_friends: Optional[int] = None
    going_family: Optional[int] = None
    time_weeknight: Optional[int] = None
    time_weekend: Optional[int] = None
    time_morning: Optional[int] = None
    time_daytime: Optional[int] = None
    time_evening: Optional[int] = None
    time_late_night: Optional[int] = None
    budget: str = "ANY"
    vibe_chill: Optional[int] = None
    vibe_moderate: Optional[int] = None
    vibe_high_energy: Optional[int] = None
    social_intent: str = "EITHER"
    has_dog: bool = False
    dog_friendly_only: bool = False
    prefer_sober_friendly: bool = False
    avoid_bars: bool = False


@dataclass
class ScoringContext:
    preferences: UserPreferences = field(default_factory=UserPreferences)
    feedback: Optional[UserFeedbackData] = None
    constraints: Optional[UserConstraintsData] = None
    feed_views: Optional[FeedViewData] = None
    interactions: Optional[UserInteractionData] = None
    global_trending: Optional[Set[str]] = None
    detailed_preferences: Optional[DetailedPreferencesData] = None


@dataclass
class ScoreBreakdown:
    category_score: float = 0
    time_score: float = 0
    price_score: float = 0
    relationship_score: float = 0
    feedback_score: float = 0
    constraint_score: float = 0
    diversity_score: float = 0
    trending_score: float = 0
    companion_score: float = 0
    timing_score: float = 0
    budget_score: float = 0
    vibe_score: float = 0
    social_score: float = 0
    dog_friendly_score: float = 0
    sober_friendly_score: float = 0

    def total(self) -> float:
        return float(sum(getattr(self, f.name) for f in fields(self)))


# ============================================================================
# HELPERS
# ============================================================================

def _intensity(value: Optional[int]) -> int:
    return int(value) if value else 0


def _local(moment: datetime, tz_name: str) -> datetime:
    return moment.astimezone(ZoneInfo(tz_name))


def get_time_of_day(hour: int) -> str:
    if 6 <= hour < 12:
        return "MORNING"
    if 12 <= hour < 17:
        return "AFTERNOON"
    if 17 <= hour < 21:
        return "EVENING"
    return "LATE_NIGHT"


def _price_text(event: Mapping[str, Any]) -> str:
    return str(clean(event.get("price_range"), "") or "")


def is_free_price(price_range: str) -> bool:
    return price_range.strip().lower() in FREE_PRICES


def parse_price(price_range: str) -> float:
    """Highest number in the price text; free is 0 and unknown defaults to 50."""
    if is_free_price(price_range):
        return 0.0
    numbers = _NUMBER.findall(price_range)
    if not numbers:
        return 50.0
    return float(max(int(n) for n in numbers))


def get_budget_value(budget: str) -> float:
    return BUDGET_VALUES.get(budget, float("inf"))


def get_average_rating(google_rating: Optional[float], apple_rating: Optional[float]) -> Optional[float]:
    if google_rating and apple_rating:
        return (google_rating + apple_rating) / 2
    return google_rating or apple_rating or None


def _start(event: Mapping[str, Any]) -> datetime:
    start = as_datetime(event.get("start_time"))
    if start is None:
        raise ValueError(f"event {event.get('id')} has no start_time")
    return start


# ============================================================================
# SCORING FUNCTIONS
# ============================================================================

def calculate_category_score(category: str, preferences: UserPreferences) -> float:
    """Category match (0-50 points); 25 when the user has no opinion."""
    pref = preferences.categories.get(category)
    if pref is None:
        return 25
    if pref.type == "LIKE":
        return 30 + pref.intensity * 4
    return 20 - pref.intensity * 4


def calculate_time_score(start_time: datetime, now: datetime) -> float:
    """Time relevance (0-20 points)."""
    hours_until = (start_time - now).total_seconds() / 3600
    if hours_until < 0:
        return 0
    if hours_until <= 24:
        return 20
    if hours_until <= 72:
        return 15
    if hours_until <= 168:
        return 10
    if hours_until <= 336:
        return 5
    return 0


def calculate_price_score(price_range: str) -> float:
    """Price appeal (0-10 points)."""
    if is_free_price(price_range):
        return 10
    numbers = _NUMBER.findall(price_range)
    if not numbers:
        return 5
    max_price = max(int(n) for n in numbers)
    if max_price <= 20:
        return 7
    if max_price <= 50:
        return 5
    if max_price <= 100:
        return 3
    return 0


def calculate_relationship_score(category: str, relationship_status: Optional[str]) -> float:
    if not relationship_status:
        return 5
    if relationship_status == "COUPLE":
        return 10 if category in COUPLE_FRIENDLY_CATEGORIES else 5
    return 10 if category in SINGLES_FRIENDLY_CATEGORIES else 5


def calculate_feedback_score(event: Mapping[str, Any], feedback: Optional[UserFeedbackData]) -> float:
    """More/less-like-this feedback, clamped to [-20, 20]."""
    if feedback is None:
        return 0
    category = event.get("category")
    venue = event.get("venue_name")
    score = 5 * (feedback.more_categories[category] - feedback.less_categories[category])
    score += 8 * (feedback.more_venues[venue] - feedback.less_venues[venue])
    return max(-20, min(20, score))


def calculate_constraint_score(
    event: Mapping[str, Any],
    constraints: Optional[UserConstraintsData],
    config: ScoringConfig,
) -> float:
    if constraints is None:
        return 0

    score = 0
    local_start = _local(_start(event), config.timezone)
    neighborhood = clean(event.get("neighborhood"))

    if constraints.preferred_days:
        if DAY_NAMES[local_start.weekday()] in constraints.preferred_days:
            score += 10

    if constraints.preferred_times:
        if get_time_of_day(local_start.hour) in constraints.preferred_times:
            score += 10

    if constraints.neighborhoods and neighborhood and neighborhood in constraints.neighborhoods:
        score += 15

    if constraints.home_neighborhood and neighborhood == constraints.home_neighborhood:
        score += 5

    price_text = _price_text(event)
    if constraints.budget_max != "ANY":
        if parse_price(price_text) > get_budget_value(constraints.budget_max):
            score -= 50

    if constraints.free_events_only and not is_free_price(price_text):
        score -= 100

    return score


def calculate_diversity_score(event: Mapping[str, Any], feed_views: Optional[FeedViewData]) -> float:
    """-3 per impression once an event has been shown 3+ times without interaction."""
    if feed_views is None:
        return 0
    seen = feed_views.seen_counts.get(event.get("id"), 0)
    if seen >= 3 and event.get("id") not in feed_views.interacted_event_ids:
        return -seen * 3
    return 0


def calculate_trending_score(event: Mapping[str, Any], global_trending: Optional[Set[str]]) -> float:
    if global_trending and event.get("id") in global_trending:
        return 15
    save_count = clean(event.get("save_count"), 0) or 0
    if save_count >= 10:
        return 10
    if save_count >= 5:
        return 5
    return 0


def calculate_companion_score(event: Mapping[str, Any], prefs: Optional[DetailedPreferencesData]) -> float:
    """Companion fit, capped at 25."""
    if prefs is None:
        return 0
    tags = normalized_tags(event.get("tags"))
    category = event.get("category")
    score = 0

    if _intensity(prefs.going_solo) > 0 and tags & SOLO_FRIENDLY_TAGS:
        score += prefs.going_solo * 5
    if _intensity(prefs.going_date) > 0 and (tags & DATE_FRIENDLY_TAGS or category in COUPLE_FRIENDLY_CATEGORIES):
        score += prefs.going_date * 5
    if _intensity(prefs.going_friends) > 0 and (tags & FRIENDS_FRIENDLY_TAGS or category in FRIENDS_FRIENDLY_CATEGORIES):
        score += prefs.going_friends * 5
    if _intensity(prefs.going_family) > 0 and (tags & FAMILY_FRIENDLY_TAGS or category in FAMILY_FRIENDLY_CATEGORIES):
        score += prefs.going_family * 5

    return min(score, 25)


def calculate_detailed_timing_score(
    event: Mapping[str, Any],
    prefs: Optional[DetailedPreferencesData],
    config: ScoringConfig,
) -> float:
    """Weekday/weekend and time-of-day fit, capped at 20. Friday counts as weekend."""
    if prefs is None:
        return 0
    local_start = _local(_start(event), config.timezone)
    score = 0

    if local_start.weekday() >= 4:
        score += _intensity(prefs.time_weekend) * 2
    else:
        score += _intensity(prefs.time_weeknight) * 2

    hour = local_start.hour
    if 6 <= hour < 12:
        score += _intensity(prefs.time_morning) * 2
    elif 12 <= hour < 17:
        score += _intensity(prefs.time_daytime) * 2
    elif 17 <= hour < 21:
        score += _intensity(prefs.time_evening) * 2
    else:
        score += _intensity(prefs.time_late_night) * 2

    return min(score, 20)


def calculate_detailed_budget_score(event: Mapping[str, Any], prefs: Optional[DetailedPreferencesData]) -> float:
    if prefs is None or prefs.budget == "ANY":
        return 0
    price = parse_price(_price_text(event))
    if price == 0:
        return 5
    if price <= get_budget_value(prefs.budget):
        return 0
    return -15


def calculate_vibe_score(event: Mapping[str, Any], prefs: Optional[DetailedPreferencesData]) -> float:
    if prefs is None:
        return 0
    tags = normalized_tags(event.get("tags"))
    score = 0
    if _intensity(prefs.vibe_chill) > 0 and tags & CHILL_VIBE_TAGS:
        score += prefs.vibe_chill * 4
    if _intensity(prefs.vibe_moderate) > 0 and tags & MODERATE_VIBE_TAGS:
        score += prefs.vibe_moderate * 4
    if _intensity(prefs.vibe_high_energy) > 0 and tags & HIGH_ENERGY_VIBE_TAGS:
        score += prefs.vibe_high_energy * 4
    return min(score, 20)


def calculate_social_score(event: Mapping[str, Any], prefs: Optional[DetailedPreferencesData]) -> float:
    if prefs is None or prefs.social_intent == "EITHER":
        return 0
    tags = normalized_tags(event.get("tags"))
    category = event.get("category")

    if prefs.social_intent == "MEET_PEOPLE":
        if tags & SOCIAL_MEETUP_TAGS:
            return 15
        if category in MEET_PEOPLE_CATEGORIES:
            return 8
    elif prefs.social_intent == "OWN_THING":
        if tags & SOLO_ACTIVITY_TAGS:
            return 15
        if category in OWN_THING_CATEGORIES:
            return 8
    return 0


def calculate_dog_friendly_score(event: Mapping[str, Any], prefs: Optional[DetailedPreferencesData]) -> float:
    if prefs is None or not prefs.has_dog:
        return 0
    return 20 if as_bool(event.get("is_dog_friendly")) else 0


def calculate_sober_friendly_score(event: Mapping[str, Any], prefs: Optional[DetailedPreferencesData]) -> float:
    if prefs is None:
        return 0
    score = 0
    if prefs.prefer_sober_friendly:
        if as_bool(event.get("is_alcohol_free")):
            score += 20
        elif as_bool(event.get("is_drinking_optional")):
            score += 15
    if prefs.avoid_bars and event.get("category") == "BARS":
        score -= 15
    return score


# ============================================================================
# RECOMMENDATION REASONS
# ============================================================================

def generate_recommendation_reason(
    event: Mapping[str, Any],
    breakdown: ScoreBreakdown,
    context: ScoringContext,
    config: ScoringConfig,
) -> Tuple[str, str]:
    """Pick the highest-priority human-readable reason for an event."""
    reasons: List[Tuple[int, str, str]] = []
    category = event.get("category")
    neighborhood = clean(event.get("neighborhood"))
    local_start = _local(_start(event), config.timezone)
    prefs = context.detailed_preferences

    category_pref = context.preferences.categories.get(category)
    if category_pref is not None and category_pref.type == "LIKE" and category_pref.intensity >= 3:
        label = category_label(category)
        saved = context.interactions.saved_categories[category] if context.interactions else 0
        if saved > 0:
            plural = "s" if saved > 1 else ""
            reasons.append((10, f"Because you saved {saved} {label} event{plural}", "CATEGORY_MATCH"))
        else:
            reasons.append((8, f"Matches your love for {label}", "CATEGORY_MATCH"))

    if neighborhood and context.interactions and neighborhood in context.interactions.top_neighborhoods:
        reasons.append((9, f"Popular in {neighborhood}, your top neighborhood", "NEIGHBORHOOD_MATCH"))

    if breakdown.trending_score >= 10:
        reasons.append((7, "Trending this week", "TRENDING"))

    constraints = context.constraints
    if constraints is not None:
        if DAY_NAMES[local_start.weekday()] in WEEKEND_DAYS and WEEKEND_DAYS & set(constraints.preferred_days):
            reasons.append((6, "Matches your weekend preference", "WEEKEND_PREFERENCE"))
        time_of_day = get_time_of_day(local_start.hour)
        if constraints.preferred_times and time_of_day in constraints.preferred_times:
            label = time_of_day.lower().replace("_", " ")
            reasons.append((5, f"Perfect for your {label} plans", "TIME_PREFERENCE"))

    venue = event.get("venue_name")
    if context.feedback is not None and context.feedback.more_venues[venue] > 0:
        reasons.append((8, f"At {venue}, a venue you love", "VENUE_FAVORITE"))

    avg_rating = get_average_rating(clean(event.get("google_rating")), clean(event.get("apple_rating")))
    if avg_rating and avg_rating >= 4.5:
        reasons.append((4, f"Highly rated ({avg_rating:.1f} stars)", "HIGH_RATED"))

    if _price_text(event).strip().lower() in ("free", "$0"):
        reasons.append((3, "Free event", "FREE_EVENT"))

    if breakdown.companion_score >= 15 and prefs is not None:
        if _intensity(prefs.going_date) >= 3:
            reasons.append((9, "Perfect for date night", "DATE_NIGHT_MATCH"))
        if _intensity(prefs.going_friends) >= 3:
            reasons.append((9, "Great for going with friends", "FRIENDS_MATCH"))
        if _intensity(prefs.going_family) >= 3:
            reasons.append((9, "Family-friendly outing", "FAMILY_MATCH"))
        if _intensity(prefs.going_solo) >= 3:
            reasons.append((8, "Great for solo adventures", "SOLO_MATCH"))

    if breakdown.vibe_score >= 12 and prefs is not None:
        if _intensity(prefs.vibe_chill) >= 3:
            reasons.append((7, "Matches your chill vibe", "VIBE_MATCH"))
        if _intensity(prefs.vibe_high_energy) >= 3:
            reasons.append((7, "High energy, just how you like it", "VIBE_MATCH"))

    if breakdown.social_score >= 10 and prefs is not None:
        if prefs.social_intent == "MEET_PEOPLE":
            reasons.append((8, "Great for meeting new people", "SOCIAL_MATCH"))
        elif prefs.social_intent == "OWN_THING":
            reasons.append((7, "Perfect for doing your own thing", "SOCIAL_MATCH"))

    if breakdown.budget_score >= 5:
        reasons.append((4, "Budget-friendly choice", "BUDGET_MATCH"))

    if breakdown.dog_friendly_score >= 15:
        reasons.append((9, "Bring your pup!", "DOG_FRIENDLY_MATCH"))

    if breakdown.sober_friendly_score >= 15:
        reasons.append((8, "Great without drinking", "SOBER_FRIENDLY_MATCH"))

    if not reasons:
        return "Recommended for you", "SIMILAR_TASTE"

    # stable: ties keep insertion order
    _, reason, reason_type = sorted(reasons, key=lambda r: -r[0])[0]
    return reason, reason_type


# ============================================================================
# DIVERSITY
# ============================================================================

def find_exploration_event(
    events: List[Dict[str, Any]],
    context: ScoringContext,
) -> Optional[Dict[str, Any]]:
    """First event in a category the user has never saved."""
    explored = set(context.interactions.saved_categories) if context.interactions else set()
    for event in events:
        if event.get("category") not in explored:
            return event
    return None


def _insert_capped(top: List[Dict[str, Any]], remaining: List[Dict[str, Any]], event: Dict[str, Any], position: int, cap: int) -> None:
    remaining.remove(event)
    top.insert(min(position, len(top)), event)
    if len(top) > cap:
        remaining.insert(0, top.pop())


def apply_diversity_rules(
    events: List[Dict[str, Any]],
    context: ScoringContext,
    rng: Optional[np.random.Generator] = None,
    config: Optional[DiversityConfig] = None,
) -> List[Dict[str, Any]]:
    """
    Reshape a score-sorted list so its head is varied.

    - At most `max_per_category` events per category and `max_per_venue`
      per venue in the top `top_n`
    - One exploration pick (unexplored category) when discovery mode is on,
      or with `exploration_probability`
    - One trending pick when the head has none

    Every input event is returned exactly once.
    """
    config = config or DiversityConfig()
    rng = rng if rng is not None else np.random.default_rng()

    category_counts: Counter = Counter()
    venue_counts: Counter = Counter()
    top: List[Dict[str, Any]] = []
    remaining: List[Dict[str, Any]] = []

    for event in events:
        if len(top) >= config.top_n:
            remaining.append(event)
            continue
        category = event.get("category")
        venue = event.get("venue_name")
        if category_counts[category] >= config.max_per_category or venue_counts[venue] >= config.max_per_venue:
            remaining.append(event)
            continue
        top.append(event)
        category_counts[category] += 1
        venue_counts[venue] += 1

    discovery = bool(context.constraints and context.constraints.discovery_mode)
    if discovery or rng.random() < config.exploration_probability:
        exploration = find_exploration_event(remaining, context)
        if exploration is not None:
            exploration["is_exploration_pick"] = True
            exploration["recommendation_reason"] = "Try something new?"
            exploration["reason_type"] = "EXPLORATION"
            position = config.exploration_slot + int(rng.integers(0, config.exploration_spread))
            _insert_capped(top, remaining, exploration, position, config.top_n)

    if not any(e.get("is_trending_pick") for e in top):
        trending = next(
            (e for e in remaining if e["score_breakdown"]["trending_score"] >= 10),
            None,
        )
        if trending is not None:
            trending["is_trending_pick"] = True
            position = config.trending_slot + int(rng.integers(0, config.trending_spread))
            _insert_capped(top, remaining, trending, position, config.top_n)

    return top + remaining


# ============================================================================
# MAIN SCORING FUNCTIONS
# ============================================================================

def score_event(
    event: Mapping[str, Any],
    context: ScoringContext,
    now: Optional[datetime] = None,
    config: Optional[ScoringConfig] = None,
) -> Dict[str, Any]:
    """
    Score a single event for a user.

    Args:
        event: Event row (see `score_and_rank_events` for the expected keys)
        context: User scoring context
        now: Reference time (defaults to current UTC time)
        config: Scoring configuration

    Returns:
        The event fields plus score, score_breakdown, recommendation_reason,
        reason_type, is_trending_pick and is_exploration_pick
    """
    config = config or ScoringConfig()
    now = now or datetime.now(timezone.utc)
    scored = dict(event)
    scored["tags"] = as_list(event.get("tags"))
    scored["start_time"] = _start(event)

    if context.feedback is not None and event.get("id") in context.feedback.hidden_event_ids:
        breakdown = ScoreBreakdown(feedback_score=config.hidden_score)
        scored.update(
            score=config.hidden_score,
            score_breakdown=asdict(breakdown),
            recommendation_reason="",
            reason_type="CATEGORY_MATCH",
            is_trending_pick=False,
            is_exploration_pick=False,
        )
        return scored

    prefs = context.detailed_preferences
    category = scored.get("category")
    price_text = _price_text(scored)
    breakdown = ScoreBreakdown(
        category_score=calculate_category_score(category, context.preferences),
        time_score=calculate_time_score(_start(scored), now),
        price_score=calculate_price_score(price_text),
        relationship_score=calculate_relationship_score(category, context.preferences.relationship_status),
        feedback_score=calculate_feedback_score(scored, context.feedback),
        constraint_score=calculate_constraint_score(scored, context.constraints, config),
        diversity_score=calculate_diversity_score(scored, context.feed_views),
        trending_score=calculate_trending_score(scored, context.global_trending),
        companion_score=calculate_companion_score(scored, prefs),
        timing_score=calculate_detailed_timing_score(scored, prefs, config),
        budget_score=calculate_detailed_budget_score(scored, prefs),
        vibe_score=calculate_vibe_score(scored, prefs),
        social_score=calculate_social_score(scored, prefs),
        dog_friendly_score=calculate_dog_friendly_score(scored, prefs),
        sober_friendly_score=calculate_sober_friendly_score(scored, prefs),
    )
    reason, reason_type = generate_recommendation_reason(scored, breakdown, context, config)

    scored.update(
        score=breakdown.total(),
        score_breakdown=asdict(breakdown),
        recommendation_reason=reason,
        reason_type=reason_type,
        is_trending_pick=breakdown.trending_score >= 10,
        is_exploration_pick=False,
    )
    return scored


def score_and_rank_events(
    events,
    context: ScoringContext,
    now: Optional[datetime] = None,
    rng: Optional[np.random.Generator] = None,
    config: Optional[ScoringConfig] = None,
    diversity: Optional[DiversityConfig] = None,
) -> List[Dict[str, Any]]:
    """
    Score, filter hidden events, sort by score and apply diversity rules.

    `events` is a DataFrame or an iterable of mappings with at least
    id, category, venue_name, start_time, price_range and tags; optional
    keys: neighborhood, save_count, google_rating, apple_rating,
    is_dog_friendly, is_drinking_optional, is_alcohol_free.
    """
    config = config or ScoringConfig()
    rows = records(events) if isinstance(events, pd.DataFrame) else list(events)
    scored = [score_event(event, context, now, config) for event in rows]
    scored = [event for event in scored if event["score"] > config.drop_below]
    scored.sort(key=lambda e: e["score"], reverse=True)
    return apply_diversity_rules(scored, context, rng, diversity)


# ============================================================================
# CONTEXT BUILDERS
# ============================================================================

def build_user_preferences(
    preferences: Iterable[Mapping[str, Any]],
    relationship_status: Optional[str] = None,
) -> UserPreferences:
    """Rows with category, preference_type (LIKE/DISLIKE) and intensity."""
    categories = {
        pref["category"]: CategoryPreference(
            type=pref["preference_type"],
            intensity=int(clean(pref.get("intensity"), 0)),
        )
        for pref in preferences
    }
    return UserPreferences(categories=categories, relationship_status=clean(relationship_status))


def build_feedback_data(feedback: Iterable[Mapping[str, Any]]) -> UserFeedbackData:
    data = UserFeedbackData()
    for fb in feedback:
        kind = fb.get("feedback_type")
        if kind == "HIDE":
            data.hidden_event_ids.add(fb.get("event_id"))
            continue
        category = clean(fb.get("category"))
        venue = clean(fb.get("venue_name"))
        if kind == "MORE":
            if category:
                data.more_categories[category] += 1
            if venue:
                data.more_venues[venue] += 1
        elif kind == "LESS":
            if category:
                data.less_categories[category] += 1
            if venue:
                data.less_venues[venue] += 1
    return data


def build_constraints_data(constraints: Optional[Mapping[str, Any]]) -> Optional[UserConstraintsData]:
    if not constraints:
        return None
    return UserConstraintsData(
        preferred_days=as_list(constraints.get("preferred_days")),
        preferred_times=as_list(constraints.get("preferred_times")),
        budget_max=clean(constraints.get("budget_max"), "ANY"),
        neighborhoods=as_list(constraints.get("neighborhoods")),
        home_neighborhood=clean(constraints.get("home_neighborhood")),
        free_events_only=as_bool(constraints.get("free_events_only")),
        discovery_mode=as_bool(constraints.get("discovery_mode")),
    )


def build_feed_view_data(views: Iterable[Mapping[str, Any]]) -> FeedViewData:
    data = FeedViewData()
    for view in views:
        data.seen_counts[view["event_id"]] = int(clean(view.get("seen_count"), 0))
        if as_bool(view.get("interacted")):
            data.interacted_event_ids.add(view["event_id"])
    return data


def build_detailed_preferences_data(prefs: Optional[Mapping[str, Any]]) -> Optional[DetailedPreferencesData]:
    if not prefs:
        return None
    values: Dict[str, Any] = {}
    for f in fields(DetailedPreferencesData):
        raw = clean(prefs.get(f.name))
        if isinstance(f.default, bool):
            values[f.name] = as_bool(raw)
        elif raw is None:
            values[f.name] = f.default
        elif f.name in ("budget", "social_intent"):
            values[f.name] = raw
        else:
            values[f.name] = int(raw)
    return DetailedPreferencesData(**values)


def build_interaction_data(interactions: Iterable[Mapping[str, Any]]) -> UserInteractionData:
    """Rows with category, neighborhood and going_with from the user's saved events."""
    data = UserInteractionData()
    neighborhoods: Counter = Counter()
    for interaction in interactions:
        category = clean(interaction.get("category"))
        if category:
            data.saved_categories[category] += 1
        neighborhood = clean(interaction.get("neighborhood"))
        if neighborhood:
            neighborhoods[neighborhood] += 1
        going_with = clean(interaction.get("going_with"))
        if going_with:
            data.going_with_history[going_with] += 1
    data.top_neighborhoods = [name for name, _ in neighborhoods.most_common(5)]
    return data


# ============================================================================
# GOING WITH
# ============================================================================

def adjust_score_for_going_with(event: Mapping[str, Any], going_with: str) -> Dict[str, Any]:
    """Re-weight a scored event for a DATE / FRIENDS / FAMILY / SOLO outing."""
    category = event.get("category")
    adjustment = 0

    if going_with == "DATE":
        if category in COUPLE_FRIENDLY_CATEGORIES:
            adjustment += 15
        if normalized_tags(event.get("tags")) & DATE_FRIENDLY_TAGS:
            adjustment += 10
    elif going_with == "FRIENDS":
        if category in FRIENDS_FRIENDLY_CATEGORIES:
            adjustment += 15
    elif going_with == "FAMILY":
        if category in FAMILY_FRIENDLY_CATEGORIES:
            adjustment += 15
    elif going_with == "SOLO":
        if category in SOLO_CATEGORIES:
            adjustment += 10

    adjusted = dict(event)
    adjusted["score"] = event["score"] + adjustment
    if adjustment > 10:
        adjusted["recommendation_reason"] = f"Great for {going_with.lower()} plans"
        adjusted["reason_type"] = "GOING_WITH_MATCH"
    return adjusted
