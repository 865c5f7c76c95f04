"""Final merge of discovery metadata and extracted menus into a search response."""

from __future__ import annotations

import json
import logging
from typing import Any, List, Sequence

from dishfinder.core.errors import AggregationError, TextGenerationError
from dishfinder.core.models import (
    Coordinate,
    RestaurantCandidate,
    RestaurantMenus,
    RestaurantResult,
    SearchResponse,
)

logger = logging.getLogger(__name__)

NO_MENU_DATA_MESSAGE = "No restaurants with menu data were found near this location."

RESPONSE_EXAMPLE = {
    "results": [
        {
            "restaurant": {
                "name": "Restaurant Name",
                "id": "unique_id",
                "rating": 4.5,
                "cuisine": "Cuisine Type",
                "distance": 0.8,
                "distanceUnit": "miles",
            },
            "location": {"lat": 37.7823, "lng": -122.4145, "address": "Full Address"},
            "matchingItems": [
                {
                    "name": "Dish Name",
                    "price": 12.99,
                    "matchScore": 0.95,
                    "ingredients": "ingredient list",
                    "nutrition": {"calories": 520, "protein": "45g", "carbs": "52g", "fat": "14g"},
                    "tags": ["tag1", "tag2"],
                }
            ],
        }
    ],
    "metadata": {
        "totalResults": 1,
        "searchRadius": 5,
        "unit": "miles",
        "searchCenter": {"lat": 37.7749, "lng": -122.4194},
        "timestamp": "2025-10-04T14:30:00Z",
    },
}


def build_system_prompt(query: str) -> str:
    return f"""You are a restaurant menu analyzer. Your task is to combine restaurant information from a places directory with parsed menu data to produce a structured JSON response.

The output format must match this example structure:
{json.dumps(RESPONSE_EXAMPLE, indent=2)}

Rules:
1. Combine the restaurant metadata with the menu items extracted for the same restaurant. Use the restaurant id from the metadata.
2. For nutrition info, make reasonable estimates based on ingredients if not provided.
3. matchScore is a number between 0 and 1 reflecting how well the item matches the search query and healthy/high-protein criteria.
4. Infer the cuisine type from the restaurant types or menu items.
5. Calculate the distance in miles from the search center when coordinates are available.
6. Add relevant tags like "high-protein", "healthy", "gluten-free".
7. If data is missing, use empty strings or reasonable defaults.
8. Only include restaurants that have extracted menu items.
9. IMPORTANT: Only include menu items that match or are relevant to the search query "{query}". Exclude every other item instead of giving it a low score.
10. Return ONLY valid JSON, no markdown or explanations."""


def format_menu_context(restaurant_menus: Sequence[RestaurantMenus]) -> str:
    blocks: List[str] = []
    for menus in restaurant_menus:
        candidate = menus.candidate
        lines = [
            f"Restaurant: {candidate.name}",
            f"ID: {candidate.id}",
            f"URL: {candidate.website_for_wire or ''}",
            f"Status: {menus.status}",
        ]
        if menus.has_menu_data:
            items = [item.to_dict() for menu in menus.parsed_menus for item in menu.items]
            lines.append("Menu Items:")
            lines.append(json.dumps(items, indent=2))
        else:
            reasons = [menu.error for menu in menus.parsed_menus if menu.error]
            lines.append(f"Error: {menus.error or '; '.join(reasons) or 'No menu items found'}")
        blocks.append("\n".join(lines))
    return "\n\n---\n\n".join(blocks)


def build_user_prompt(
    candidates: Sequence[RestaurantCandidate],
    restaurant_menus: Sequence[RestaurantMenus],
    center: Coordinate,
    radius_miles: float,
    query: str,
) -> str:
    metadata = json.dumps([candidate.to_dict() for candidate in candidates], indent=2)
    return (
        f"Restaurant Data:\n{metadata}\n\n"
        f"Parsed Menus:\n{format_menu_context(restaurant_menus)}\n\n"
        "Search Parameters:\n"
        f"- Latitude: {center.lat}\n"
        f"- Longitude: {center.lng}\n"
        f"- Radius: {radius_miles} miles\n"
        f'- Search Query: "{query}" (ONLY return menu items matching this query)\n\n'
        "Please combine this data into the required JSON format."
    )


class ResultAggregator:
    """Single synthesis call that merges, filters, scores and enriches results.

    The model's judgement is trusted for relevance and nutrition. What is
    enforced here is the response shape, ``totalResults`` and that every
    result belongs to a restaurant with extracted menu items.
    """

    def __init__(self, client: Any, *, model: str, temperature: float = 0.7) -> None:
        self.client = client
        self.model = model
        self.temperature = temperature

    def combine(
        self,
        candidates: Sequence[RestaurantCandidate],
        restaurant_menus: Sequence[RestaurantMenus],
        center: Coordinate,
        radius_miles: float,
        query: str,
    ) -> SearchResponse:
        usable = [menus for menus in restaurant_menus if menus.has_menu_data]
        logger.info(
            "Combining data from %d restaurants and %d menus with items for query %r",
            len(candidates),
            len(usable),
            query,
        )
        if not candidates or not usable:
            logger.info("No restaurants or menu data available, returning empty results")
            return SearchResponse.empty(center, radius_miles, NO_MENU_DATA_MESSAGE)

        try:
            raw = self.client.complete_json(
                model=self.model,
                system_prompt=build_system_prompt(query),
                user_prompt=build_user_prompt(candidates, restaurant_menus, center, radius_miles, query),
                temperature=self.temperature,
            )
        except TextGenerationError as exc:
            raise AggregationError(f"Failed to combine results: {exc}") from exc

        try:
            response = SearchResponse.from_dict(raw, center=center, radius_miles=radius_miles)
        except ValueError as exc:
            raise AggregationError(f"Combined results have an invalid shape: {exc}") from exc

        kept = self._restrict_to_usable(response.results, usable)
        if len(kept) != len(response.results):
            logger.warning("Dropped %d results without extracted menu data", len(response.results) - len(kept))
        logger.info("Successfully generated combined response with %d results", len(kept))
        return response.with_results(kept)

    @staticmethod
    def _restrict_to_usable(
        results: Sequence[RestaurantResult],
        usable: Sequence[RestaurantMenus],
    ) -> List[RestaurantResult]:
        ids = {menus.candidate.id for menus in usable}
        names = {menus.candidate.name.casefold() for menus in usable}
        return [
            result
            for result in results
            if result.restaurant.id in ids or result.restaurant.name.casefold() in names
        ]
