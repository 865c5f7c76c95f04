"""Utilities for transforming discovery provider records into restaurant candidates."""

import logging
from typing import Any, Dict, Iterable, Optional

from dishfinder.core.models import Coordinate, RestaurantCandidate

logger = logging.getLogger(__name__)

_IGNORE_TYPES = {"point_of_interest", "establishment", "food", "restaurant", "restaurants", "store"}


def _safe_float(value: Any) -> Optional[float]:
    try:
        if value is None:
            return None
        return float(value)
    except (TypeError, ValueError):
        return None


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value_str = str(value).strip()
    return value_str or None


def _coordinate(lat: Any, lng: Any) -> Optional[Coordinate]:
    lat_val, lng_val = _safe_float(lat), _safe_float(lng)
    if lat_val is None or lng_val is None:
        return None
    return Coordinate(lat=lat_val, lng=lng_val)


def extract_primary_type(types: Iterable[str]) -> Optional[str]:
    """Return the most specific place type, e.g. ``italian_restaurant``."""
    for type_name in types or []:
        if type_name not in _IGNORE_TYPES:
            return type_name
    return None


def place_to_candidate(place: Dict[str, Any]) -> Optional[RestaurantCandidate]:
    """Convert a Places API (New) place record into a candidate."""
    place_id = _strip_or_none(place.get("id"))
    display_name = place.get("displayName")
    name = _strip_or_none(display_name.get("text") if isinstance(display_name, dict) else display_name)
    if not place_id or not name:
        logger.debug("Skipping place without id or name: %s", place)
        return None

    location = place.get("location") or {}
    types = tuple(t for t in place.get("types") or [] if isinstance(t, str))
    return RestaurantCandidate(
        id=place_id,
        name=name,
        address=_strip_or_none(place.get("formattedAddress")),
        coordinate=_coordinate(location.get("latitude"), location.get("longitude")),
        website_url=_strip_or_none(place.get("websiteUri")),
        rating=_safe_float(place.get("rating")),
        types=types,
        cuisine=extract_primary_type(types),
        source="google_places",
    )


def business_to_candidate(business: Dict[str, Any]) -> Optional[RestaurantCandidate]:
    """Convert a Yelp business record into a candidate.

    Yelp rarely exposes the official website; ``attributes.menu_url`` is used
    when present and the rest are left for the website resolver.
    """
    business_id = _strip_or_none(business.get("id"))
    name = _strip_or_none(business.get("name"))
    if not business_id or not name:
        logger.debug("Skipping business without id or name: %s", business)
        return None

    location = business.get("location") or {}
    display_address = location.get("display_address")
    if isinstance(display_address, list) and display_address:
        address = ", ".join(str(part) for part in display_address if part)
    else:
        parts = [location.get("address1"), location.get("city"), location.get("state"), location.get("zip_code")]
        address = ", ".join(str(part) for part in parts if part) or None

    coordinates = business.get("coordinates") or {}
    attributes = business.get("attributes") or {}
    categories = business.get("categories") or []
    types = tuple(
        str(category.get("alias")) for category in categories if isinstance(category, dict) and category.get("alias")
    )
    return RestaurantCandidate(
        id=business_id,
        name=name,
        address=_strip_or_none(address),
        coordinate=_coordinate(coordinates.get("latitude"), coordinates.get("longitude")),
        website_url=_strip_or_none(attributes.get("menu_url")),
        rating=_safe_float(business.get("rating")),
        types=types,
        cuisine=extract_primary_type(types),
        source="yelp",
    )
