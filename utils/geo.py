"""Coordinate validation and small geographic helpers."""
import math
from collections.abc import Mapping
from typing import Any, Optional
from urllib.parse import urlencode

from models.chat import GeoLocation
from utils.constants import EARTH_RADIUS_KM

MAPS_SEARCH_URL = "https://www.google.com/maps/search/"
MAPS_DIRECTIONS_URL = "https://www.google.com/maps/dir/"


def _is_coordinate(value: Any, limit: float) -> bool:
    # bool is an int subclass but never a coordinate
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    if isinstance(value, float) and not math.isfinite(value):
        return False
    return -limit <= value <= limit


def validate_location(value: Any) -> Optional[GeoLocation]:
    """Return a location only if the input is a well-formed coordinate pair.

    Accepts untrusted data (stored JSON, parsed AI output, map clicks). Both
    ``lat`` and ``lng`` must be finite real numbers with ``lat`` in
    [-90, 90] and ``lng`` in [-180, 180]. Anything else yields ``None``.

    Args:
        value: A ``GeoLocation``, a mapping with ``lat``/``lng`` keys, or anything else.

    Returns:
        The validated location, or None.
    """
    if isinstance(value, GeoLocation):
        lat, lng = value.lat, value.lng
    elif isinstance(value, Mapping):
        lat, lng = value.get("lat"), value.get("lng")
    else:
        return None

    if not (_is_coordinate(lat, 90) and _is_coordinate(lng, 180)):
        return None
    if isinstance(value, GeoLocation):
        return value
    return GeoLocation(lat=lat, lng=lng)


def haversine_km(origin: GeoLocation, destination: GeoLocation) -> float:
    """Great-circle distance between two points in kilometers."""
    d_lat = math.radians(destination.lat - origin.lat)
    d_lng = math.radians(destination.lng - origin.lng)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(origin.lat))
        * math.cos(math.radians(destination.lat))
        * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def describe_distance(origin: Any, destination: Any) -> tuple[Optional[float], str]:
    """Distance between two possibly missing points, with a display label."""
    origin = validate_location(origin)
    destination = validate_location(destination)
    if origin is None or destination is None:
        return None, "Need 2 points"
    distance = haversine_km(origin, destination)
    return distance, f"{distance:.1f} km"


def directions_url(origin: GeoLocation, destination: GeoLocation) -> str:
    query = urlencode(
        {
            "api": 1,
            "origin": f"{origin.lat},{origin.lng}",
            "destination": f"{destination.lat},{destination.lng}",
        }
    )
    return f"{MAPS_DIRECTIONS_URL}?{query}"


def share_url(location: GeoLocation) -> str:
    query = urlencode({"api": 1, "query": f"{location.lat},{location.lng}"})
    return f"{MAPS_SEARCH_URL}?{query}"
