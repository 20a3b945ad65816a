"""Shared fixtures: a populated FrameStore, a fixed clock and fake external clients."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock

import pandas as pd
import pytest

from pulse.geo import LatLng
from pulse.places import GooglePlacesClient, PlaceSearchResult
from pulse.supabase_client import FrameStore

# Monday 2026-10-19, noon in Denver
NOW = datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)
CENTER = LatLng(39.7392, -104.9903)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def center() -> LatLng:
    return CENTER


@pytest.fixture
def make_event():
    """Factory for event rows with neutral defaults."""

    def _make(event_id: str = "e1", **overrides):
        event = {
            "id": event_id,
            "title": f"Event {event_id}",
            "category": "OTHER",
            "tags": [],
            "venue_name": f"Venue {event_id}",
            "neighborhood": None,
            "start_time": NOW + timedelta(days=10),
            "price_range": "$30",
        }
        event.update(overrides)
        return event

    return _make


def _items(now: datetime) -> pd.DataFrame:
    return pd.DataFrame([
        {"id": "i1", "type": "EVENT", "title": "Gallery Walk", "description": "First Friday art walk",
         "category": "ART", "tags": ["gallery"], "start_time": now + timedelta(days=2),
         "venue_name": "Santa Fe Arts", "price_range": "Free"},
        {"id": "i2", "type": "EVENT", "title": "Red Rocks Show", "description": "Live set",
         "category": "LIVE_MUSIC", "tags": ["concert"], "start_time": now + timedelta(days=5),
         "venue_name": "Red Rocks", "price_range": "$60"},
        {"id": "i3", "type": "EVENT", "title": "Taco Fest", "description": "Food trucks",
         "category": "FOOD", "tags": [], "start_time": now + timedelta(days=20),
         "venue_name": "Civic Center", "price_range": "$10"},
        {"id": "i4", "type": "PLACE", "title": "Corvus Coffee", "description": "Roaster",
         "category": "COFFEE", "tags": ["cozy"], "start_time": None,
         "venue_name": "Corvus Coffee", "price_range": "$"},
        {"id": "i5", "type": "PLACE", "title": "Dive Bar", "description": "Late night",
         "category": "BARS", "tags": ["cocktails"], "start_time": None,
         "venue_name": "Dive Bar", "price_range": "$$"},
        {"id": "i6", "type": "EVENT", "title": "Past Exhibit", "description": "Already over",
         "category": "ART", "tags": [], "start_time": now - timedelta(days=1),
         "venue_name": "Museum", "price_range": "$15"},
    ])


def _offset(lat: float = 0.0, lng: float = 0.0):
    return {"lat": CENTER.lat + lat, "lng": CENTER.lng + lng}


@pytest.fixture
def store(now) -> FrameStore:
    """
    Three users around central Denver:

    - u1 owns L1 (two nearby places) and collaborates on L2 (u2, nearby event)
      and L3 (u3, one far place)
    - u2 overlaps u1's taste (LIVE_MUSIC, saved i2)
    """
    tables = {
        "users": pd.DataFrame([
            {"id": "u1", "name": "Sam Rivera", "username": "sam", "relationship_status": "SINGLE",
             "onboarding_complete": True},
            {"id": "u2", "name": None, "username": "jlee", "relationship_status": None,
             "onboarding_complete": True},
            {"id": "u3", "name": None, "username": None, "relationship_status": None,
             "onboarding_complete": True},
        ]),
        "lists": pd.DataFrame([
            {"id": "L1", "user_id": "u1", "name": "Date spots"},
            {"id": "L2", "user_id": "u2", "name": "Brunch"},
            {"id": "L3", "user_id": "u3", "name": "Road trips"},
        ]),
        "list_collaborators": pd.DataFrame([
            {"list_id": "L2", "user_id": "u1"},
            {"list_id": "L3", "user_id": "u1"},
        ]),
        "places": pd.DataFrame([
            {"id": "p1", "google_place_id": "g1", "name": "Close Bistro", "address": "1 Main St",
             "neighborhood": "LoDo", "category": "FOOD", "price_level": 2, "google_rating": 4.6,
             "google_review_count": 320, "primary_image_url": None, "vibe_tags": ["cozy"],
             "is_new": True, **_offset(lat=0.005)},
            {"id": "p2", "google_place_id": "g2", "name": "Mid Taproom", "address": "2 Main St",
             "neighborhood": "RiNo", "category": "BARS", "price_level": 2, "google_rating": 4.2,
             "google_review_count": 80, "primary_image_url": None, "vibe_tags": [],
             "is_new": False, **_offset(lat=0.02)},
            {"id": "p3", "google_place_id": "g3", "name": "Mountain Lodge", "address": "Far Rd",
             "neighborhood": None, "category": "OUTDOORS", "price_level": None, "google_rating": None,
             "google_review_count": None, "primary_image_url": None, "vibe_tags": [],
             "is_new": False, **_offset(lat=0.2)},
            {"id": "p4", "google_place_id": "g4", "name": "Jazz Club", "address": "4 Main St",
             "neighborhood": "Five Points", "category": "LIVE_MUSIC", "price_level": 2,
             "google_rating": 4.8, "google_review_count": 500, "primary_image_url": None,
             "vibe_tags": ["intimate"], "is_new": False, **_offset(lng=0.01)},
            {"id": "p7", "google_place_id": "g7", "name": "New Roasters", "address": "7 Main St",
             "neighborhood": "Highland", "category": "COFFEE", "price_level": 1, "google_rating": 4.9,
             "google_review_count": 40, "primary_image_url": None, "vibe_tags": ["cozy", "quiet"],
             "is_new": True, **_offset(lat=0.01)},
        ]),
        "events": pd.DataFrame([
            {"id": "e1", "title": "Jazz Night", "address": "4 Main St", "neighborhood": "Five Points",
             "category": "LIVE_MUSIC", "price_range": "$20", "google_rating": 4.8,
             "google_rating_count": 500, "image_url": None, "place_id": "p4",
             "start_time": now + timedelta(days=3), "venue_name": "Jazz Club", "tags": ["jazz"]},
        ]),
        "list_items": pd.DataFrame([
            {"id": "li1", "list_id": "L1", "place_id": "p2", "event_id": None, "notes": None},
            {"id": "li2", "list_id": "L1", "place_id": "p1", "event_id": None, "notes": "anniversary"},
            {"id": "li3", "list_id": "L2", "place_id": None, "event_id": "e1", "notes": None},
            {"id": "li4", "list_id": "L3", "place_id": "p3", "event_id": None, "notes": None},
        ]),
        "event_user_statuses": pd.DataFrame([
            {"user_id": "u1", "event_id": "e1", "status": "WANT", "going_with": "DATE"},
        ]),
        "items": _items(now),
        "preferences": pd.DataFrame([
            {"user_id": "u1", "category": "ART", "preference_type": "LIKE", "intensity": 5},
            {"user_id": "u1", "category": "LIVE_MUSIC", "preference_type": "LIKE", "intensity": 2},
            {"user_id": "u1", "category": "BARS", "preference_type": "DISLIKE", "intensity": 3},
            {"user_id": "u2", "category": "LIVE_MUSIC", "preference_type": "LIKE", "intensity": 4},
        ]),
        "user_item_statuses": pd.DataFrame([
            {"user_id": "u1", "item_id": "i5", "status": "PASS", "updated_at": now - timedelta(days=2)},
            {"user_id": "u1", "item_id": "i2", "status": "WANT", "updated_at": now - timedelta(days=1)},
            {"user_id": "u2", "item_id": "i2", "status": "WANT", "updated_at": now - timedelta(days=3)},
            {"user_id": "u2", "item_id": "i4", "status": "DONE", "updated_at": now - timedelta(days=3)},
            {"user_id": "u2", "item_id": "i3", "status": "WANT", "updated_at": now - timedelta(days=3)},
        ]),
        "user_item_ratings": pd.DataFrame([
            {"user_id": "u1", "item_id": "i1", "rating": 5},
        ]),
    }
    return FrameStore(tables)


@pytest.fixture
def discovery_results():
    """Google results around the center: g1 is saved, g6 is outside 3 miles, g7 is a known place."""

    def _result(place_id: str, lat: float, name: str) -> PlaceSearchResult:
        return PlaceSearchResult(
            place_id=place_id,
            name=name,
            address=f"{name} address",
            lat=CENTER.lat + lat,
            lng=CENTER.lng,
            rating=4.5,
            user_ratings_total=100,
            price_level=2,
            types=["restaurant"],
            business_status="OPERATIONAL",
        )

    return [
        _result("g1", 0.005, "Close Bistro"),
        _result("g7", 0.01, "New Roasters"),
        _result("g6", 0.1, "Far Diner"),
        _result("g5", 0.003, "Corner Cafe"),
    ]


@pytest.fixture
def places_client(discovery_results):
    client = MagicMock(spec=GooglePlacesClient)
    client.search_nearby.return_value = discovery_results
    return client


def _completion(content):
    """Shape of a chat completion as returned by the OpenAI client."""
    message = SimpleNamespace(content=content if isinstance(content, str) or content is None else json.dumps(content))
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create.return_value = _completion(None)
    return client


@pytest.fixture
def completion():
    return _completion
