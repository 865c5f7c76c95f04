"""Core data models passed between the stages of the search pipeline.

Every payload that arrives from an external service goes through a
``from_dict`` parser that raises ``ValueError`` on a shape mismatch; callers
translate that into the stage-specific error.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

NOT_FOUND = "NOT_FOUND"
METERS_PER_MILE = 1609.34
DISTANCE_UNIT = "miles"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def _require_str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field_name} must be a non-empty string")
    return value.strip()


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        value = ", ".join(str(part) for part in value if part is not None)
    value_str = str(value).strip()
    return value_str or None


def _optional_number(value: Any, field_name: str) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"{field_name} must be numeric")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip().lstrip("$"))
        except ValueError as exc:
            raise ValueError(f"{field_name} must be numeric, got {value!r}") from exc
    else:
        raise ValueError(f"{field_name} must be numeric, got {type(value).__name__}")
    if not math.isfinite(number):
        raise ValueError(f"{field_name} must be finite")
    return number


def _string_list(value: Any, field_name: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"{field_name} must be an array of strings")
    tags: List[str] = []
    for entry in value:
        if not isinstance(entry, str):
            raise ValueError(f"{field_name} entries must be strings")
        if entry.strip():
            tags.append(entry.strip())
    return tuple(tags)


def _has_name(entry: Mapping[str, Any]) -> bool:
    # Nameless modifiers are dropped; a present name must still be a string.
    name = entry.get("name")
    return name is not None and not (isinstance(name, str) and not name.strip())


def _object_list(value: Any, field_name: str) -> List[Mapping[str, Any]]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"{field_name} must be an array")
    for entry in value:
        if not isinstance(entry, Mapping):
            raise ValueError(f"{field_name} entries must be objects")
    return value


@dataclass(frozen=True, slots=True)
class Coordinate:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lng": self.lng}


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """One user search; lives for exactly one pipeline run."""

    latitude: float
    longitude: float
    radius_miles: float
    query: str

    @property
    def center(self) -> Coordinate:
        return Coordinate(lat=self.latitude, lng=self.longitude)


@dataclass(frozen=True, slots=True)
class RestaurantCandidate:
    """Normalized snapshot of a restaurant returned by a discovery provider."""

    id: str
    name: str
    address: Optional[str] = None
    coordinate: Optional[Coordinate] = None
    website_url: Optional[str] = None
    website_lookup_failed: bool = False
    rating: Optional[float] = None
    types: Tuple[str, ...] = ()
    cuisine: Optional[str] = None
    source: str = "google_places"

    def with_website(self, url: Optional[str]) -> "RestaurantCandidate":
        return replace(self, website_url=url, website_lookup_failed=url is None)

    @property
    def website_for_wire(self) -> Optional[str]:
        if self.website_url:
            return self.website_url
        if self.website_lookup_failed:
            return NOT_FOUND
        return None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "address": self.address or "",
            "location": self.coordinate.to_dict() if self.coordinate else None,
            "rating": self.rating,
            "types": list(self.types),
            "cuisine": self.cuisine or "",
            "source": self.source,
        }
        website = self.website_for_wire
        if website is not None:
            payload["websiteUrl"] = website
        return payload


@dataclass(frozen=True, slots=True)
class MenuLink:
    anchor_text: str
    href: str


@dataclass(frozen=True, slots=True)
class ScrapedPage:
    source_url: str
    cleaned_text: str = ""
    pdf_links: Tuple[MenuLink, ...] = ()
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.cleaned_text)


@dataclass(frozen=True, slots=True)
class ScrapeResult:
    homepage_url: str
    menu_links: Tuple[MenuLink, ...] = ()
    pages: Tuple[ScrapedPage, ...] = ()
    pdf_links: Tuple[MenuLink, ...] = ()


@dataclass(frozen=True, slots=True)
class Modifier:
    name: str
    price: Optional[float] = None

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Modifier":
        return cls(name=_require_str(raw.get("name"), "modifier.name"), price=_optional_number(raw.get("price"), "modifier.price"))

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "price": self.price}


@dataclass(frozen=True, slots=True)
class MenuItem:
    """A raw menu item as extracted from one scraped page."""

    name: str
    description: Optional[str] = None
    price: Optional[float] = None
    categories: Tuple[str, ...] = ()
    dietary_infos: Tuple[str, ...] = ()
    modifiers: Tuple[Modifier, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "MenuItem":
        if not isinstance(raw, Mapping):
            raise ValueError("menu item must be an object")
        return cls(
            name=_require_str(raw.get("name"), "name"),
            description=_optional_str(raw.get("description")),
            price=_optional_number(raw.get("price"), "price"),
            categories=_string_list(raw.get("categories"), "categories"),
            dietary_infos=_string_list(raw.get("dietaryInfos"), "dietaryInfos"),
            modifiers=tuple(
                Modifier.from_dict(entry)
                for entry in _object_list(raw.get("modifiers"), "modifiers")
                if _has_name(entry)
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "name": self.name,
            "categories": list(self.categories),
            "dietaryInfos": list(self.dietary_infos),
            "modifiers": [modifier.to_dict() for modifier in self.modifiers],
        }
        if self.description:
            payload["description"] = self.description
        if self.price is not None:
            payload["price"] = self.price
        return payload


@dataclass(frozen=True, slots=True)
class ParsedMenuResult:
    source_url: str
    items: Tuple[MenuItem, ...] = ()
    error: Optional[str] = None

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "sourceUrl": self.source_url,
            "itemCount": self.item_count,
            "items": [item.to_dict() for item in self.items],
        }
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(frozen=True, slots=True)
class RestaurantMenus:
    """Everything one restaurant's scrape+extract unit produced."""

    candidate: RestaurantCandidate
    parsed_menus: Tuple[ParsedMenuResult, ...] = ()
    menu_links: Tuple[MenuLink, ...] = ()
    pdf_links: Tuple[MenuLink, ...] = ()
    error: Optional[str] = None

    @property
    def has_menu_data(self) -> bool:
        return any(menu.items for menu in self.parsed_menus)

    @property
    def status(self) -> str:
        return "success" if self.has_menu_data else "error"

    @property
    def total_items(self) -> int:
        return sum(menu.item_count for menu in self.parsed_menus)


@dataclass(frozen=True, slots=True)
class Nutrition:
    calories: int = 0
    protein: str = ""
    carbs: str = ""
    fat: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "Nutrition":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValueError("nutrition must be an object")
        calories = _optional_number(raw.get("calories"), "nutrition.calories")
        return cls(
            calories=int(round(calories)) if calories is not None else 0,
            protein=_grams(raw.get("protein")),
            carbs=_grams(raw.get("carbs")),
            fat=_grams(raw.get("fat")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"calories": self.calories, "protein": self.protein, "carbs": self.carbs, "fat": self.fat}


def _grams(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return f"{value:g}g"
    return str(value).strip()


@dataclass(frozen=True, slots=True)
class MatchingItem:
    """A final, model-enriched dish. Score and nutrition are advisory estimates."""

    name: str
    price: Optional[float]
    match_score: float
    ingredients: str = ""
    nutrition: Nutrition = field(default_factory=Nutrition)
    tags: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "MatchingItem":
        if not isinstance(raw, Mapping):
            raise ValueError("matching item must be an object")
        score = _optional_number(raw.get("matchScore"), "matchScore")
        if score is None:
            raise ValueError("matchScore is required")
        if not 0.0 <= score <= 1.0:
            raise ValueError(f"matchScore must be within [0, 1], got {score}")
        return cls(
            name=_require_str(raw.get("name"), "matchingItem.name"),
            price=_optional_number(raw.get("price"), "matchingItem.price"),
            match_score=score,
            ingredients=_optional_str(raw.get("ingredients")) or "",
            nutrition=Nutrition.from_dict(raw.get("nutrition")),
            tags=_string_list(raw.get("tags"), "tags"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "price": self.price,
            "matchScore": self.match_score,
            "ingredients": self.ingredients,
            "nutrition": self.nutrition.to_dict(),
            "tags": list(self.tags),
        }


@dataclass(frozen=True, slots=True)
class RestaurantInfo:
    name: str
    id: str = ""
    rating: Optional[float] = None
    cuisine: str = ""
    distance: Optional[float] = None
    distance_unit: str = DISTANCE_UNIT

    @classmethod
    def from_dict(cls, raw: Any) -> "RestaurantInfo":
        if not isinstance(raw, Mapping):
            raise ValueError("restaurant must be an object")
        return cls(
            name=_require_str(raw.get("name"), "restaurant.name"),
            id=_optional_str(raw.get("id")) or "",
            rating=_optional_number(raw.get("rating"), "restaurant.rating"),
            cuisine=_optional_str(raw.get("cuisine")) or "",
            distance=_optional_number(raw.get("distance"), "restaurant.distance"),
            distance_unit=_optional_str(raw.get("distanceUnit")) or DISTANCE_UNIT,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "id": self.id,
            "rating": self.rating,
            "cuisine": self.cuisine,
            "distance": self.distance,
            "distanceUnit": self.distance_unit,
        }


@dataclass(frozen=True, slots=True)
class Location:
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = ""

    @classmethod
    def from_dict(cls, raw: Any) -> "Location":
        if raw is None:
            return cls()
        if not isinstance(raw, Mapping):
            raise ValueError("location must be an object")
        return cls(
            lat=_optional_number(raw.get("lat"), "location.lat"),
            lng=_optional_number(raw.get("lng"), "location.lng"),
            address=_optional_str(raw.get("address")) or "",
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "address": self.address}


@dataclass(frozen=True, slots=True)
class RestaurantResult:
    restaurant: RestaurantInfo
    location: Location
    matching_items: Tuple[MatchingItem, ...] = ()

    @classmethod
    def from_dict(cls, raw: Any) -> "RestaurantResult":
        if not isinstance(raw, Mapping):
            raise ValueError("result must be an object")
        return cls(
            restaurant=RestaurantInfo.from_dict(raw.get("restaurant")),
            location=Location.from_dict(raw.get("location")),
            matching_items=tuple(
                MatchingItem.from_dict(entry) for entry in _object_list(raw.get("matchingItems"), "matchingItems")
            ),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "restaurant": self.restaurant.to_dict(),
            "location": self.location.to_dict(),
            "matchingItems": [item.to_dict() for item in self.matching_items],
        }


@dataclass(frozen=True, slots=True)
class SearchMetadata:
    total_results: int
    search_radius: float
    search_center: Coordinate
    timestamp: str
    unit: str = DISTANCE_UNIT
    message: Optional[str] = None

    @classmethod
    def zeroed(cls, message: Optional[str] = None) -> "SearchMetadata":
        return cls(
            total_results=0,
            search_radius=0,
            search_center=Coordinate(lat=0, lng=0),
            timestamp=utc_timestamp(),
            message=message,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "totalResults": self.total_results,
            "searchRadius": self.search_radius,
            "unit": self.unit,
            "searchCenter": self.search_center.to_dict(),
            "timestamp": self.timestamp,
        }
        if self.message:
            payload["message"] = self.message
        return payload


@dataclass(frozen=True, slots=True)
class SearchResponse:
    """The terminal artifact returned to callers, success or failure."""

    results: Tuple[RestaurantResult, ...]
    metadata: SearchMetadata
    error: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def empty(cls, center: Coordinate, radius_miles: float, message: str) -> "SearchResponse":
        metadata = SearchMetadata(
            total_results=0,
            search_radius=radius_miles,
            search_center=center,
            timestamp=utc_timestamp(),
            message=message,
        )
        return cls(results=(), metadata=metadata)

    @classmethod
    def failure(cls, error: str, message: str) -> "SearchResponse":
        return cls(results=(), metadata=SearchMetadata.zeroed(), error=error, message=message)

    @classmethod
    def from_dict(
        cls,
        raw: Any,
        *,
        center: Coordinate,
        radius_miles: float,
    ) -> "SearchResponse":
        """Parse a synthesized payload, filling metadata gaps from the request.

        ``totalResults`` always reflects the parsed result count.
        """
        if not isinstance(raw, Mapping):
            raise ValueError("response must be a JSON object")
        results = tuple(RestaurantResult.from_dict(entry) for entry in _object_list(raw.get("results"), "results"))
        return cls(results=results, metadata=_metadata_from_dict(raw.get("metadata"), len(results), center, radius_miles))

    def with_results(self, results: Sequence[RestaurantResult]) -> "SearchResponse":
        metadata = replace(self.metadata, total_results=len(results))
        return replace(self, results=tuple(results), metadata=metadata)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "results": [result.to_dict() for result in self.results],
            "metadata": self.metadata.to_dict(),
        }
        if self.error:
            payload["error"] = self.error
        if self.message:
            payload["message"] = self.message
        return payload


def _metadata_from_dict(raw: Any, total: int, center: Coordinate, radius_miles: float) -> SearchMetadata:
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError("metadata must be an object")

    search_center = center
    raw_center = raw.get("searchCenter")
    if isinstance(raw_center, Mapping):
        lat = _optional_number(raw_center.get("lat"), "searchCenter.lat")
        lng = _optional_number(raw_center.get("lng"), "searchCenter.lng")
        if lat is not None and lng is not None:
            search_center = Coordinate(lat=lat, lng=lng)

    search_radius = _optional_number(raw.get("searchRadius"), "searchRadius")
    return SearchMetadata(
        total_results=total,
        search_radius=search_radius if search_radius is not None else radius_miles,
        search_center=search_center,
        timestamp=_optional_str(raw.get("timestamp")) or utc_timestamp(),
        unit=_optional_str(raw.get("unit")) or DISTANCE_UNIT,
        message=_optional_str(raw.get("message")),
    )
