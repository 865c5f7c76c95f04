"""Client utilities for the Yelp Fusion business search API."""

import logging
from typing import Any, Dict, List

import requests

from dishfinder.core.errors import UpstreamError

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://api.yelp.com/v3"
MAX_RADIUS_METERS = 40000
MAX_LIMIT = 50


class YelpError(UpstreamError):
    """Raised when the Yelp API returns a non-successful response."""


def search_businesses(
    latitude: float,
    longitude: float,
    radius_meters: float,
    api_key: str,
    limit: int = 20,
    timeout: float = 10,
) -> List[Dict[str, Any]]:
    """Return restaurants sorted by distance around a coordinate."""
    params = {
        "latitude": latitude,
        "longitude": longitude,
        "radius": int(round(min(radius_meters, MAX_RADIUS_METERS))),
        "categories": "restaurants",
        "limit": max(1, min(limit, MAX_LIMIT)),
        "sort_by": "distance",
    }
    headers = {"Authorization": f"Bearer {api_key}", "Accept": "application/json"}
    try:
        response = _SESSION.get(f"{_BASE_URL}/businesses/search", params=params, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        logger.error("search_businesses request failed: %s", exc)
        raise YelpError(f"Yelp API unreachable: {exc}") from exc

    if response.status_code >= 400:
        logger.error("search_businesses failed: status=%s body=%s", response.status_code, response.text[:200])
        raise YelpError(f"Yelp API error: {response.status_code} - {response.text[:200]}")

    try:
        payload = response.json()
    except ValueError as exc:
        raise YelpError("Yelp API returned invalid JSON") from exc

    businesses = payload.get("businesses") if isinstance(payload, dict) else None
    return [business for business in businesses or [] if isinstance(business, dict)]
