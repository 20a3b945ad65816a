"""
Proximity queries: saved list items near a point, and nearby discovery
through Google Places with a result cache.

Both use a bounding-box pre-filter in the store followed by an exact
haversine check.
"""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Set

import pandas as pd

from pulse.config import ProximityConfig
from pulse.geo import LatLng, bounding_box, filter_by_radius, haversine_distance, miles_to_meters
from pulse.places import GooglePlacesClient, PlaceSearchResult
from pulse.records import as_bool, as_datetime, as_float, as_list, clean, index_by, records

LOGGER = logging.getLogger(__name__)

CACHE_TABLE = "places_cache"


@dataclass
class NearbyListItem:
    id: str
    list_item_id: str
    type: str  # "event" | "place"
    name: str
    address: Optional[str]
    neighborhood: Optional[str]
    category: Optional[str]
    price_level: Optional[int]
    price_range: Optional[str]
    google_rating: Optional[float]
    google_review_count: Optional[int]
    image_url: Optional[str]
    distance: float
    notes: Optional[str]
    vibe_tags: List[str] = field(default_factory=list)
    is_new: bool = False
    event_id: Optional[str] = None
    place_id: Optional[str] = None


@dataclass
class NearbyListGroup:
    list_id: str
    list_name: str
    is_owner: bool
    owner_name: Optional[str]
    items: List[NearbyListItem] = field(default_factory=list)


@dataclass
class NearbyDiscoveryItem:
    google_place_id: str
    name: str
    address: str
    lat: float
    lng: float
    distance: float
    rating: Optional[float]
    user_ratings_total: Optional[int]
    price_level: Optional[int]
    types: List[str]
    pulse_id: Optional[str] = None
    is_new: bool = False
    vibe_tags: List[str] = field(default_factory=list)
    category: Optional[str] = None
    neighborhood: Optional[str] = None


def _int(value: Any) -> Optional[int]:
    value = as_float(value)
    return int(value) if value is not None else None


def _user_lists(store, user_id: str) -> List[Dict[str, Any]]:
    """Lists the user owns, then lists they collaborate on, each tagged with is_owner."""
    owned = records(store.select("lists", user_id=user_id))
    for row in owned:
        row["is_owner"] = True

    owned_ids = {row["id"] for row in owned}
    collab_ids = [
        row["list_id"] for row in records(store.select("list_collaborators", user_id=user_id))
        if row["list_id"] not in owned_ids
    ]
    shared = records(store.select("lists", id=collab_ids)) if collab_ids else []
    for row in shared:
        row["is_owner"] = False
    return owned + shared


def _places_in_radius(store, center: LatLng, radius_miles: float, **equals: Any) -> pd.DataFrame:
    box = bounding_box(center, radius_miles)
    candidates = store.select(
        "places",
        ranges={"lat": (box.min_lat, box.max_lat), "lng": (box.min_lng, box.max_lng)},
        **equals,
    )
    return filter_by_radius(center, candidates, radius_miles)


def owner_display_name(user: Optional[Mapping[str, Any]]) -> str:
    if not user:
        return "Unknown"
    return clean(user.get("name")) or clean(user.get("username")) or "Unknown"


# ============================================================================
# NEARBY LIST ITEMS
# ============================================================================

def get_list_items_nearby(
    store,
    user_id: str,
    center: LatLng,
    radius_miles: float,
) -> List[NearbyListGroup]:
    """
    Saved places and events within `radius_miles` of `center`, grouped by list.

    Args:
        store: Table store
        user_id: User whose owned and shared lists are searched
        center: Search center
        radius_miles: Search radius in miles

    Returns:
        One group per list with at least one nearby item; items sorted by distance
    """
    lists = _user_lists(store, user_id)
    if not lists:
        return []

    list_by_id = {row["id"]: row for row in lists}
    list_items = records(store.select("list_items", list_id=list(list_by_id)))

    place_ids = sorted({row["place_id"] for row in list_items if row.get("place_id")})
    event_ids = sorted({row["event_id"] for row in list_items if row.get("event_id")})

    events = index_by(records(store.select("events", id=event_ids)), "id") if event_ids else {}
    event_place_ids = sorted({e["place_id"] for e in events.values() if e.get("place_id")})

    nearby_place_ids = sorted(set(place_ids) | set(event_place_ids))
    nearby = (
        index_by(records(_places_in_radius(store, center, radius_miles, id=nearby_place_ids)), "id")
        if nearby_place_ids else {}
    )

    owner_ids = [row["user_id"] for row in lists if not row["is_owner"]]
    owners = index_by(records(store.select("users", id=owner_ids)), "id") if owner_ids else {}

    groups: Dict[str, NearbyListGroup] = {}

    def add(list_id: str, item: NearbyListItem) -> None:
        info = list_by_id.get(list_id)
        if info is None:
            return
        if list_id not in groups:
            groups[list_id] = NearbyListGroup(
                list_id=list_id,
                list_name=info.get("name") or "",
                is_owner=info["is_owner"],
                owner_name=None if info["is_owner"] else owner_display_name(owners.get(info.get("user_id"))),
            )
        groups[list_id].items.append(item)

    for row in list_items:
        place = nearby.get(row.get("place_id"))
        if place is None:
            continue
        add(row["list_id"], NearbyListItem(
            id=place["id"],
            list_item_id=row["id"],
            type="place",
            name=place.get("name") or "",
            address=place.get("address"),
            neighborhood=place.get("neighborhood"),
            category=place.get("category"),
            price_level=_int(place.get("price_level")),
            price_range=None,
            google_rating=as_float(place.get("google_rating")),
            google_review_count=_int(place.get("google_review_count")),
            image_url=place.get("primary_image_url"),
            distance=float(place["distance"]),
            notes=row.get("notes"),
            vibe_tags=as_list(place.get("vibe_tags")),
            is_new=as_bool(place.get("is_new")),
            place_id=place["id"],
        ))

    for row in list_items:
        event = events.get(row.get("event_id"))
        if event is None:
            continue
        place = nearby.get(event.get("place_id"))
        if place is None:
            continue
        add(row["list_id"], NearbyListItem(
            id=event["id"],
            list_item_id=row["id"],
            type="event",
            name=event.get("title") or "",
            address=event.get("address"),
            neighborhood=event.get("neighborhood"),
            category=event.get("category"),
            price_level=None,
            price_range=event.get("price_range"),
            google_rating=as_float(event.get("google_rating")),
            google_review_count=_int(event.get("google_rating_count")),
            image_url=event.get("image_url"),
            distance=float(place["distance"]),
            notes=row.get("notes"),
            vibe_tags=as_list(place.get("vibe_tags")),
            is_new=as_bool(place.get("is_new")),
            event_id=event["id"],
        ))

    for group in groups.values():
        group.items.sort(key=lambda item: item.distance)

    return list(groups.values())


# ============================================================================
# DISCOVERY
# ============================================================================

def _round_half_up(value: float, precision: int) -> float:
    factor = 10 ** precision
    return math.floor(value * factor + 0.5) / factor


def _format_number(value: float) -> str:
    text = repr(float(value))
    return text[:-2] if text.endswith(".0") else text


def discovery_cache_key(
    center: LatLng,
    radius_miles: float,
    place_type: Optional[str],
    precision: int = 3,
) -> str:
    """`nearby:{lat},{lng}:{radius}:{type|all}` with coordinates rounded to ~100m."""
    lat = _format_number(_round_half_up(center.lat, precision))
    lng = _format_number(_round_half_up(center.lng, precision))
    return f"nearby:{lat},{lng}:{_format_number(radius_miles)}:{place_type or 'all'}"


def _saved_google_place_ids(store, user_id: str) -> Set[str]:
    """Google ids of places the user saved in any list they can edit, or via event statuses."""
    list_ids = [row["id"] for row in _user_lists(store, user_id)]
    list_items = records(store.select("list_items", list_id=list_ids)) if list_ids else []
    place_ids = {row["place_id"] for row in list_items if row.get("place_id")}

    statuses = records(store.select("event_user_statuses", user_id=user_id))
    event_ids = sorted({row["event_id"] for row in statuses if row.get("event_id")})
    if event_ids:
        events = records(store.select("events", id=event_ids))
        place_ids |= {e["place_id"] for e in events if e.get("place_id")}

    if not place_ids:
        return set()
    places = records(store.select("places", id=sorted(place_ids)))
    return {p["google_place_id"] for p in places if p.get("google_place_id")}


def _search_with_cache(
    store,
    places_client: GooglePlacesClient,
    center: LatLng,
    radius_miles: float,
    place_type: Optional[str],
    now: datetime,
    config: ProximityConfig,
) -> List[PlaceSearchResult]:
    cache_key = discovery_cache_key(center, radius_miles, place_type, config.cache_precision)
    cached = records(store.select(CACHE_TABLE, cache_key=cache_key))

    if cached and as_datetime(cached[0].get("expires_at")) > now:
        LOGGER.info("Places cache hit for %s", cache_key)
        return [PlaceSearchResult.from_dict(d) for d in json.loads(cached[0]["results_json"])]

    LOGGER.info("Places cache miss for %s", cache_key)
    results = places_client.search_nearby(
        place_type or config.default_place_type,
        location=center,
        radius_m=miles_to_meters(radius_miles),
    )
    store.upsert(
        CACHE_TABLE,
        {
            "cache_key": cache_key,
            "results_json": json.dumps([r.to_dict() for r in results]),
            "expires_at": now + timedelta(hours=config.cache_ttl_hours),
        },
        on_conflict="cache_key",
    )
    return results


def discover_nearby(
    store,
    places_client: GooglePlacesClient,
    user_id: str,
    center: LatLng,
    radius_miles: float,
    place_type: Optional[str] = None,
    now: Optional[datetime] = None,
    config: Optional[ProximityConfig] = None,
) -> List[NearbyDiscoveryItem]:
    """
    Places near `center` the user has not saved yet, closest first.

    Search results are cached per rounded location, radius and type.
    Raises PlacesAPIError / ConfigurationError when a search is needed and fails.
    """
    config = config or ProximityConfig()
    now = now or datetime.now(timezone.utc)

    results = _search_with_cache(store, places_client, center, radius_miles, place_type, now, config)
    saved = _saved_google_place_ids(store, user_id)

    google_ids = [r.place_id for r in results if r.place_id]
    known = (
        index_by(records(store.select("places", google_place_id=google_ids)), "google_place_id")
        if google_ids else {}
    )

    items: List[NearbyDiscoveryItem] = []
    for result in results:
        if result.place_id in saved:
            continue
        distance = haversine_distance(center, LatLng(result.lat, result.lng))
        if distance > radius_miles:
            continue
        enrichment = known.get(result.place_id) or {}
        items.append(NearbyDiscoveryItem(
            google_place_id=result.place_id,
            name=result.name,
            address=result.address,
            lat=result.lat,
            lng=result.lng,
            distance=distance,
            rating=result.rating,
            user_ratings_total=result.user_ratings_total,
            price_level=result.price_level,
            types=result.types,
            pulse_id=enrichment.get("id"),
            is_new=as_bool(enrichment.get("is_new")),
            vibe_tags=as_list(enrichment.get("vibe_tags")),
            category=enrichment.get("category"),
            neighborhood=enrichment.get("neighborhood"),
        ))

    items.sort(key=lambda item: item.distance)
    return items


def cleanup_expired_cache(store, now: Optional[datetime] = None) -> int:
    """Delete cache rows whose expires_at is in the past; returns the number removed."""
    now = now or datetime.now(timezone.utc)
    deleted = store.delete_before(CACHE_TABLE, "expires_at", now)
    LOGGER.info("Removed %d expired places cache entries", deleted)
    return deleted
