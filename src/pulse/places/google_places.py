"""
Google Places API integration for nearby venue search.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import requests

from pulse.errors import ConfigurationError, PlacesAPIError
from pulse.geo import LatLng

LOGGER = logging.getLogger(__name__)

NEARBY_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/nearbysearch/json"

# Denver city center
DENVER_CENTER = LatLng(39.7392, -104.9903)

# 25km covers greater Denver
DEFAULT_RADIUS_METERS = 25000


@dataclass
class PlaceSearchResult:
    place_id: str
    name: str
    address: str
    lat: float
    lng: float
    rating: Optional[float] = None
    user_ratings_total: Optional[int] = None
    price_level: Optional[int] = None
    types: List[str] = field(default_factory=list)
    business_status: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PlaceSearchResult":
        return cls(
            place_id=data["place_id"],
            name=data["name"],
            address=data.get("address") or "",
            lat=float(data["lat"]),
            lng=float(data["lng"]),
            rating=data.get("rating"),
            user_ratings_total=data.get("user_ratings_total"),
            price_level=data.get("price_level"),
            types=list(data.get("types") or []),
            business_status=data.get("business_status"),
        )


def calculate_combined_score(rating: Optional[float], review_count: Optional[int]) -> Optional[float]:
    """
    Blend rating quality with popularity: rating * log10(review_count).
    None when either is missing or there are fewer than 5 reviews.
    """
    if not rating or not review_count or review_count < 5:
        return None
    return rating * math.log10(review_count)


def _parse_nearby_result(place: Dict[str, Any]) -> PlaceSearchResult:
    location = place["geometry"]["location"]
    return PlaceSearchResult(
        place_id=place["place_id"],
        name=place["name"],
        address=place.get("vicinity") or place.get("formatted_address") or "",
        lat=float(location["lat"]),
        lng=float(location["lng"]),
        rating=place.get("rating"),
        user_ratings_total=place.get("user_ratings_total"),
        price_level=place.get("price_level"),
        types=list(place.get("types") or []),
        business_status=place.get("business_status"),
    )


class GooglePlacesClient:
    """Thin wrapper over the legacy Places Nearby Search endpoint."""

    def __init__(self, api_key: Optional[str], session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.api_key = api_key
        self.session = session or requests.Session()
        self.timeout = timeout

    def _key(self) -> str:
        if not self.api_key:
            raise ConfigurationError("GOOGLE_PLACES_API_KEY environment variable is not set")
        return self.api_key

    def search_nearby(
        self,
        place_type: str,
        location: LatLng = DENVER_CENTER,
        radius_m: float = DEFAULT_RADIUS_METERS,
        keyword: Optional[str] = None,
    ) -> List[PlaceSearchResult]:
        params = {
            "location": f"{location.lat},{location.lng}",
            "radius": str(int(round(radius_m))),
            "type": place_type,
            "key": self._key(),
        }
        if keyword:
            params["keyword"] = keyword

        try:
            response = self.session.get(NEARBY_SEARCH_URL, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise PlacesAPIError(f"Google Places API request failed: {exc}") from exc

        if not response.ok:
            raise PlacesAPIError(f"Google Places API error: {response.status_code}")

        data = response.json()
        status = data.get("status")
        if status not in ("OK", "ZERO_RESULTS"):
            raise PlacesAPIError(
                f"Google Places API error: {status} - {data.get('error_message', '')}",
                status=status,
            )

        results = [_parse_nearby_result(place) for place in data.get("results") or []]
        LOGGER.info("Nearby search type=%s returned %d places", place_type, len(results))
        return results
