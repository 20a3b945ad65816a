from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_TIMEZONE = "America/Denver"


@dataclass
class ScoringConfig:
    """Parameters for the feed ranking model."""

    timezone: str = DEFAULT_TIMEZONE
    feed_window_days: int = 14
    trending_save_threshold: int = 10
    hidden_score: float = -1000.0
    drop_below: float = -100.0


@dataclass
class DiversityConfig:
    """Limits applied to the head of the ranked feed."""

    top_n: int = 20
    max_per_category: int = 3
    max_per_venue: int = 2
    exploration_probability: float = 0.2
    exploration_slot: int = 5
    exploration_spread: int = 5
    trending_slot: int = 3
    trending_spread: int = 2


@dataclass
class SuggestionConfig:
    """Sizes and lifetime of the weekly/monthly suggestion sets."""

    candidate_pool_size: int = 100
    weekly_pick_count: int = 8
    monthly_pick_count: int = 15
    max_per_category: int = 3
    ttl_hours: int = 24
    city_name: str = "Denver"


@dataclass
class ProximityConfig:
    """Nearby discovery defaults."""

    default_radius_miles: float = 3.0
    cache_ttl_hours: int = 24
    cache_precision: int = 3
    default_place_type: str = "restaurant"


@dataclass
class AIConfig:
    """OpenAI-backed curation of suggestion sets."""

    enabled: bool = False
    api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_tokens: int = 2000
    min_weekly: int = 3
    min_monthly: int = 5


@dataclass
class ServiceConfig:
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    data_dir: Path = Path("data/pulse")
    google_places_api_key: Optional[str] = None
    cron_secret: Optional[str] = None
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    diversity: DiversityConfig = field(default_factory=DiversityConfig)
    suggestions: SuggestionConfig = field(default_factory=SuggestionConfig)
    proximity: ProximityConfig = field(default_factory=ProximityConfig)
    ai: AIConfig = field(default_factory=AIConfig)

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)


def load_service_config() -> ServiceConfig:
    """Build the service configuration from the environment (and `.env`)."""

    load_dotenv()
    ai = AIConfig(
        enabled=os.getenv("AI_SUGGESTIONS_ENABLED", "").lower() == "true",
        api_key=os.getenv("OPENAI_API_KEY") or None,
        model=os.getenv("AI_MODEL", "gpt-4o-mini"),
    )
    scoring = ScoringConfig(timezone=os.getenv("PULSE_TIMEZONE", DEFAULT_TIMEZONE))
    return ServiceConfig(
        supabase_url=os.getenv("SUPABASE_URL") or None,
        supabase_key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or None,
        data_dir=Path(os.getenv("PULSE_DATA_DIR", "data/pulse")),
        google_places_api_key=os.getenv("GOOGLE_PLACES_API_KEY") or None,
        cron_secret=os.getenv("CRON_SECRET") or None,
        scoring=scoring,
        ai=ai,
    )
