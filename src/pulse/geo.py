"""
Geo utilities for proximity-based features.
Distances are in miles; radius filtering is a bounding-box pre-filter
followed by an exact haversine check.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd


EARTH_RADIUS_MILES = 3958.8
MILES_TO_METERS = 1609.344
MILES_PER_DEGREE_LAT = 69.0

RADIUS_OPTIONS = (1, 3, 5)
DEFAULT_RADIUS_MILES = 3


@dataclass(frozen=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    max_lat: float
    min_lng: float
    max_lng: float

    def contains(self, point: LatLng) -> bool:
        return (
            self.min_lat <= point.lat <= self.max_lat
            and self.min_lng <= point.lng <= self.max_lng
        )


def haversine_distance(a: LatLng, b: LatLng) -> float:
    """
    Calculate the great circle distance between two points on Earth.

    Args:
        a: First point
        b: Second point

    Returns:
        Distance in miles
    """
    lat1_rad = math.radians(a.lat)
    lat2_rad = math.radians(b.lat)
    delta_lat = math.radians(b.lat - a.lat)
    delta_lng = math.radians(b.lng - a.lng)

    h = (math.sin(delta_lat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lng / 2) ** 2)

    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(min(1.0, h)))


def haversine_miles(
    lat: float,
    lng: float,
    lats: Sequence[float],
    lngs: Sequence[float],
) -> np.ndarray:
    """Vectorised haversine from one point to many. Missing coordinates give inf."""
    lats_arr = np.asarray(lats, dtype=float)
    lngs_arr = np.asarray(lngs, dtype=float)
    lat1 = np.radians(lat)
    lat2 = np.radians(lats_arr)
    d_lat = lat2 - lat1
    d_lng = np.radians(lngs_arr - lng)
    h = np.sin(d_lat / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(d_lng / 2) ** 2
    dist = 2 * EARTH_RADIUS_MILES * np.arcsin(np.sqrt(np.clip(h, 0.0, 1.0)))
    return np.where(np.isnan(dist), np.inf, dist)


def bounding_box(center: LatLng, radius_miles: float) -> BoundingBox:
    """
    Compute a bounding box around a center point for store pre-filtering.
    The box encloses every point within `radius_miles` of the center.
    """
    lat_delta = radius_miles / MILES_PER_DEGREE_LAT
    lng_delta = radius_miles / (MILES_PER_DEGREE_LAT * math.cos(math.radians(center.lat)))

    return BoundingBox(
        min_lat=center.lat - lat_delta,
        max_lat=center.lat + lat_delta,
        min_lng=center.lng - lng_delta,
        max_lng=center.lng + lng_delta,
    )


def filter_by_radius(
    center: LatLng,
    locations: pd.DataFrame,
    radius_miles: float,
    lat_col: str = "lat",
    lng_col: str = "lng",
) -> pd.DataFrame:
    """
    Keep rows within `radius_miles` of the center.

    Returns:
        Filtered copy sorted by distance, with a 'distance' column (miles)
    """
    if locations.empty:
        result = locations.copy()
        result["distance"] = pd.Series(dtype=float)
        return result

    result = locations.copy()
    result["distance"] = haversine_miles(
        center.lat,
        center.lng,
        pd.to_numeric(result[lat_col], errors="coerce"),
        pd.to_numeric(result[lng_col], errors="coerce"),
    )
    result = result[result["distance"] <= radius_miles]
    return result.sort_values("distance", kind="stable")


def miles_to_meters(miles: float) -> float:
    """Convert miles to meters (Google Places radius parameter)."""
    return miles * MILES_TO_METERS


def format_distance(miles: float) -> str:
    if miles < 0.1:
        return "< 0.1 mi"
    return f"{miles:.1f} mi"


def parse_lat_lng(lat: Optional[str], lng: Optional[str]) -> Optional[LatLng]:
    """Parse query-string coordinates; None when either is missing or not a number."""
    try:
        lat_val = float(lat) if lat is not None else math.nan
        lng_val = float(lng) if lng is not None else math.nan
    except ValueError:
        return None
    if math.isnan(lat_val) or math.isnan(lng_val):
        return None
    return LatLng(lat_val, lng_val)
