"""Client utilities for the Google Places API (New)."""

import logging
from typing import Any, Dict, Optional

import requests

from dishfinder.core.errors import UpstreamError

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://places.googleapis.com/v1"
_FIELD_MASK = ",".join(
    (
        "places.id",
        "places.displayName",
        "places.formattedAddress",
        "places.location",
        "places.rating",
        "places.userRatingCount",
        "places.priceLevel",
        "places.types",
        "places.websiteUri",
        "nextPageToken",
    )
)
MAX_RESULTS_PER_PAGE = 20
MAX_RADIUS_METERS = 50000.0


class GooglePlacesError(UpstreamError):
    """Raised when the Places API returns a non-successful response."""


def search_nearby(
    latitude: float,
    longitude: float,
    radius_meters: float,
    api_key: str,
    page_token: Optional[str] = None,
    max_result_count: int = MAX_RESULTS_PER_PAGE,
    timeout: float = 10,
) -> Dict[str, Any]:
    """Run one page of a restaurant nearby search inside a circle."""
    body: Dict[str, Any] = {
        "includedTypes": ["restaurant"],
        "maxResultCount": max(1, min(max_result_count, MAX_RESULTS_PER_PAGE)),
        "locationRestriction": {
            "circle": {
                "center": {"latitude": latitude, "longitude": longitude},
                "radius": min(radius_meters, MAX_RADIUS_METERS),
            }
        },
    }
    if page_token:
        body["pageToken"] = page_token

    headers = {
        "Content-Type": "application/json",
        "X-Goog-Api-Key": api_key,
        "X-Goog-FieldMask": _FIELD_MASK,
    }
    try:
        response = _SESSION.post(f"{_BASE_URL}/places:searchNearby", json=body, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        logger.error("search_nearby request failed: %s", exc)
        raise GooglePlacesError(f"Google Places API unreachable: {exc}") from exc

    try:
        payload = response.json()
    except ValueError:
        payload = {}

    if response.status_code >= 400:
        message = (payload.get("error") or {}).get("message") if isinstance(payload, dict) else None
        logger.error("search_nearby failed: status=%s, error_message=%s", response.status_code, message)
        raise GooglePlacesError(f"Google Places API error: {response.status_code} - {message or response.text[:200]}")

    if not isinstance(payload, dict):
        raise GooglePlacesError("Google Places API returned a non-object payload")
    return payload
