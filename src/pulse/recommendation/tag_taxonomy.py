"""Category and tag vocabularies used by the scoring models."""

from __future__ import annotations

from typing import Dict, FrozenSet, List

CATEGORIES: List[str] = [
    "ART",
    "LIVE_MUSIC",
    "BARS",
    "FOOD",
    "COFFEE",
    "OUTDOORS",
    "FITNESS",
    "SEASONAL",
    "POPUP",
    "OTHER",
    "RESTAURANT",
    "ACTIVITY_VENUE",
]

DAY_NAMES = ["MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY"]
WEEKEND_DAYS = frozenset({"FRIDAY", "SATURDAY", "SUNDAY"})

COUPLE_FRIENDLY_CATEGORIES: FrozenSet[str] = frozenset(
    {"ART", "FOOD", "COFFEE", "LIVE_MUSIC", "SEASONAL", "RESTAURANT"}
)
SINGLES_FRIENDLY_CATEGORIES: FrozenSet[str] = frozenset(
    {"BARS", "LIVE_MUSIC", "FITNESS", "OUTDOORS", "POPUP"}
)
FRIENDS_FRIENDLY_CATEGORIES: FrozenSet[str] = frozenset(
    {"BARS", "LIVE_MUSIC", "FOOD", "OUTDOORS", "FITNESS", "POPUP"}
)
FAMILY_FRIENDLY_CATEGORIES: FrozenSet[str] = frozenset(
    {"ART", "OUTDOORS", "SEASONAL", "FOOD", "ACTIVITY_VENUE"}
)
SOLO_CATEGORIES: FrozenSet[str] = frozenset({"COFFEE", "ART", "FITNESS", "OUTDOORS"})
MEET_PEOPLE_CATEGORIES: FrozenSet[str] = frozenset({"BARS", "LIVE_MUSIC", "FITNESS"})
OWN_THING_CATEGORIES: FrozenSet[str] = frozenset({"COFFEE", "ART", "OUTDOORS"})

DATE_FRIENDLY_TAGS: FrozenSet[str] = frozenset(
    {"romantic", "date night", "date-friendly", "intimate", "upscale", "dinner", "sunset"}
)

SOLO_FRIENDLY_TAGS: FrozenSet[str] = frozenset({
    "solo-friendly", "self-care", "self-paced", "meditation", "yoga", "workshop",
    "class", "reading", "coffee", "museum", "gallery", "exhibition",
})

FRIENDS_FRIENDLY_TAGS: FrozenSet[str] = frozenset({
    "group", "friends-group", "social", "party", "trivia", "game-night",
    "brunch", "happy-hour", "bar-crawl", "festival", "concert",
})

FAMILY_FRIENDLY_TAGS: FrozenSet[str] = frozenset({
    "family-friendly", "kid-friendly", "all-ages", "children", "family",
    "outdoor", "park", "zoo", "aquarium",
})

CHILL_VIBE_TAGS: FrozenSet[str] = frozenset({
    "chill", "relaxed", "low-key", "casual", "acoustic", "coffee",
    "brunch", "yoga", "meditation", "spa", "self-care",
})

MODERATE_VIBE_TAGS: FrozenSet[str] = frozenset({
    "moderate", "fun", "social", "dinner", "live-music", "comedy",
    "trivia", "workshop", "outdoor",
})

HIGH_ENERGY_VIBE_TAGS: FrozenSet[str] = frozenset({
    "high-energy", "party", "club", "dancing", "festival", "concert",
    "rave", "sports", "fitness", "adventure", "edm", "electronic",
})

SOCIAL_MEETUP_TAGS: FrozenSet[str] = frozenset({
    "meetup", "networking", "social", "singles", "community", "class",
    "workshop", "group-activity", "tour", "walking-tour",
})

SOLO_ACTIVITY_TAGS: FrozenSet[str] = frozenset({
    "solo-friendly", "self-paced", "exhibition", "museum", "gallery",
    "coffee", "reading", "self-care",
})

# Phrases for deterministic suggestion reasons, cycled by pick position.
CATEGORY_REASONS: Dict[str, List[str]] = {
    "ART": ["Perfect for art lovers", "A cultural gem", "Inspiring creative experience"],
    "LIVE_MUSIC": ["Great live performance", "Music you'll love", "Can't miss this show"],
    "BARS": ["Top nightlife pick", "Perfect for a night out", "Craft drinks await"],
    "FOOD": ["Delicious culinary experience", "Foodie favorite", "Must-try flavors"],
    "COFFEE": ["Coffee culture at its best", "Perfect caffeine fix", "Cozy coffee spot"],
    "OUTDOORS": ["Get outside and explore", "Nature calling", "Adventure awaits"],
    "FITNESS": ["Stay active and healthy", "Great workout option", "Fitness goals"],
    "SEASONAL": ["Limited time experience", "Seasonal favorite", "Don't miss this"],
    "POPUP": ["Unique pop-up experience", "Here today, gone tomorrow", "Exclusive find"],
    "OTHER": ["Something special", "Unique experience", "Worth checking out"],
    "RESTAURANT": ["Top dining pick", "Delicious food awaits", "Culinary excellence"],
    "ACTIVITY_VENUE": ["Fun activity spot", "Great for groups", "Entertainment awaits"],
}


def category_label(category: str) -> str:
    """`LIVE_MUSIC` -> `live music`."""
    return category.replace("_", " ").lower()


def normalized_tags(tags) -> FrozenSet[str]:
    return frozenset(str(t).lower() for t in tags or [])
