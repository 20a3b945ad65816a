"""
FastAPI service for the Pulse feed, suggestions and nearby discovery.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from pulse.config import ServiceConfig, load_service_config
from pulse.errors import UserNotFoundError
from pulse.feed import FeedFilters, get_feed
from pulse.geo import DEFAULT_RADIUS_MILES, parse_lat_lng
from pulse.places import GooglePlacesClient
from pulse.proximity import cleanup_expired_cache, discover_nearby, get_list_items_nearby
from pulse.recommendation.ai_suggestions import AICurator
from pulse.recommendation.item_recommendations import get_item_recommendations
from pulse.recommendation.suggestions import SuggestionSet, get_suggestions, regenerate_suggestions
from pulse.supabase_client import get_store

LOGGER = logging.getLogger(__name__)

API_VERSION = "1.0.0"


# Pydantic models for responses
class HealthResponse(BaseModel):
    status: str
    timestamp: str
    store_backend: str


class FeedResponse(BaseModel):
    events: List[Dict[str, Any]]
    total: int
    page: int
    page_size: int
    has_more: bool


class SuggestionPick(BaseModel):
    id: str
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    category: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    venue_name: Optional[str] = None
    price_range: Optional[str] = None
    score: float = 0


class SuggestionResponse(BaseModel):
    weekly_picks: List[SuggestionPick]
    monthly_picks: List[SuggestionPick]
    reasons_by_id: Dict[str, str]
    summary_text: str
    is_ai_generated: bool
    generated_at: Optional[datetime] = None


class ItemRecommendationsResponse(BaseModel):
    items: List[Dict[str, Any]]


class NearbyListsResponse(BaseModel):
    groups: List[Dict[str, Any]]


class NearbyDiscoverResponse(BaseModel):
    items: List[Dict[str, Any]]


class CleanupResponse(BaseModel):
    success: bool
    deleted: int


# Initialize FastAPI app
app = FastAPI(
    title="Pulse Recommendations API",
    description="Personalized event feed, suggestions and nearby discovery for Denver",
    version=API_VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# DEPENDENCIES
# ============================================================================

@lru_cache(maxsize=1)
def get_config() -> ServiceConfig:
    return load_service_config()


def get_service_store(config: ServiceConfig = Depends(get_config)):
    return get_store(config)


def get_curator(config: ServiceConfig = Depends(get_config)) -> AICurator:
    return AICurator(config.ai, city_name=config.suggestions.city_name)


def get_places_client(config: ServiceConfig = Depends(get_config)) -> GooglePlacesClient:
    return GooglePlacesClient(config.google_places_api_key)


def get_now() -> datetime:
    return datetime.now(timezone.utc)


def _split(value: Optional[str]) -> List[str]:
    return [part for part in (value or "").split(",") if part]


def _radius(value: Optional[str]) -> float:
    try:
        radius = float(value) if value else 0.0
    except ValueError:
        radius = 0.0
    return radius if radius > 0 else float(DEFAULT_RADIUS_MILES)


def _suggestion_response(suggestions: SuggestionSet, include_generated_at: bool) -> SuggestionResponse:
    return SuggestionResponse(
        weekly_picks=[SuggestionPick(**pick) for pick in suggestions.weekly_picks],
        monthly_picks=[SuggestionPick(**pick) for pick in suggestions.monthly_picks],
        reasons_by_id=suggestions.reasons_by_id,
        summary_text=suggestions.summary_text,
        is_ai_generated=suggestions.is_ai_generated,
        generated_at=suggestions.generated_at if include_generated_at else None,
    )


# ============================================================================
# ENDPOINTS
# ============================================================================

@app.get("/", response_model=Dict[str, str])
def root():
    """Root endpoint."""
    return {
        "message": "Pulse Recommendations API",
        "version": API_VERSION,
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse)
def health_check(store=Depends(get_service_store), now: datetime = Depends(get_now)):
    """Health check endpoint."""
    return HealthResponse(status="healthy", timestamp=now.isoformat(), store_backend=store.backend)


@app.get("/feed", response_model=FeedResponse)
def feed(
    user_id: Optional[str] = None,
    page: int = 1,
    page_size: int = 20,
    category: Optional[str] = None,
    neighborhoods: Optional[str] = None,
    subcategories: Optional[str] = None,
    dog_friendly: bool = False,
    sober_friendly: bool = False,
    store=Depends(get_service_store),
    config: ServiceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """
    Ranked events for the next two weeks.

    Anonymous requests (no user_id) are ranked with neutral preferences.
    """
    filters = FeedFilters(
        category=category,
        neighborhoods=_split(neighborhoods),
        subcategories=_split(subcategories),
        dog_friendly=dog_friendly,
        sober_friendly=sober_friendly,
    )
    try:
        result = get_feed(
            store,
            user_id,
            filters,
            page=page,
            page_size=page_size,
            now=now,
            config=config.scoring,
            diversity=config.diversity,
        )
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return FeedResponse(**asdict(result))


@app.get("/suggestions", response_model=SuggestionResponse)
def suggestions(
    user_id: str,
    store=Depends(get_service_store),
    curator: AICurator = Depends(get_curator),
    config: ServiceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """Weekly and monthly picks, served from cache while fresh."""
    try:
        result = get_suggestions(store, user_id, curator, now, config.suggestions)
    except Exception:
        LOGGER.exception("Suggestions failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to generate suggestions")
    return _suggestion_response(result, include_generated_at=False)


@app.post("/suggestions/regenerate", response_model=SuggestionResponse)
def regenerate(
    user_id: str,
    store=Depends(get_service_store),
    curator: AICurator = Depends(get_curator),
    config: ServiceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """Discard cached picks and generate a fresh set."""
    try:
        result = regenerate_suggestions(store, user_id, curator, now, config.suggestions)
    except Exception:
        LOGGER.exception("Suggestion regeneration failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to generate suggestions")
    return _suggestion_response(result, include_generated_at=True)


@app.get("/recommendations/items", response_model=ItemRecommendationsResponse)
def item_recommendations(
    user_id: str,
    exclude_item_id: str = "",
    item_type: Optional[str] = Query(None, pattern="^(EVENT|PLACE)$"),
    limit: int = Query(12, ge=1, le=50),
    store=Depends(get_service_store),
    now: datetime = Depends(get_now),
):
    """Items liked by similar users, then taste matches, then trending."""
    items = get_item_recommendations(store, user_id, exclude_item_id, item_type, limit, now)
    return ItemRecommendationsResponse(items=items)


@app.get("/nearby/lists", response_model=NearbyListsResponse)
def nearby_lists(
    user_id: str,
    lat: Optional[str] = None,
    lng: Optional[str] = None,
    radius: Optional[str] = None,
    store=Depends(get_service_store),
):
    """Saved list items near a point, grouped by list."""
    center = parse_lat_lng(lat, lng)
    if center is None:
        raise HTTPException(status_code=400, detail="lat and lng query params are required")

    try:
        groups = get_list_items_nearby(store, user_id, center, _radius(radius))
    except Exception:
        LOGGER.exception("Nearby lists failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to fetch nearby list items")
    return NearbyListsResponse(groups=[asdict(group) for group in groups])


@app.get("/nearby/discover", response_model=NearbyDiscoverResponse)
def nearby_discover(
    user_id: str,
    lat: Optional[str] = None,
    lng: Optional[str] = None,
    radius: Optional[str] = None,
    type: Optional[str] = None,
    store=Depends(get_service_store),
    places_client: GooglePlacesClient = Depends(get_places_client),
    config: ServiceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """Unsaved places near a point from Google Places, closest first."""
    center = parse_lat_lng(lat, lng)
    if center is None:
        raise HTTPException(status_code=400, detail="lat and lng query params are required")

    try:
        items = discover_nearby(
            store, places_client, user_id, center, _radius(radius), type or None, now, config.proximity
        )
    except Exception:
        LOGGER.exception("Nearby discovery failed for user %s", user_id)
        raise HTTPException(status_code=500, detail="Failed to discover nearby places")
    return NearbyDiscoverResponse(items=[asdict(item) for item in items])


@app.api_route("/cron/cleanup-cache", methods=["GET", "POST"], response_model=CleanupResponse)
def cleanup_cache(
    authorization: Optional[str] = Header(None),
    store=Depends(get_service_store),
    config: ServiceConfig = Depends(get_config),
    now: datetime = Depends(get_now),
):
    """Drop expired Google Places cache entries. Requires `Authorization: Bearer <CRON_SECRET>`."""
    if not config.cron_secret or authorization != f"Bearer {config.cron_secret}":
        raise HTTPException(status_code=401, detail="Unauthorized")
    return CleanupResponse(success=True, deleted=cleanup_expired_cache(store, now))
