"""Structured menu item extraction from cleaned page text."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable, List

from dishfinder.core.errors import ExtractionError, TextGenerationError
from dishfinder.core.models import MenuItem, ParsedMenuResult, ScrapedPage
from dishfinder.vendors.openai_client import FunctionTool

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = "You are a menu extraction assistant. Extract all menu items with their details accurately."

EXTRACT_MENU_ITEMS_TOOL = FunctionTool(
    name="extract_menu_items",
    description="Extracts structured menu items from restaurant menu text",
    parameters={
        "type": "object",
        "properties": {
            "menuItems": {
                "type": "array",
                "description": "List of menu items found in the text",
                "items": {
                    "type": "object",
                    "properties": {
                        "name": {"type": "string", "description": "Name of the menu item"},
                        "description": {
                            "type": "string",
                            "description": "Description or ingredients of the item (if available)",
                        },
                        "price": {"type": "number", "description": "Price in USD (if available)"},
                        "categories": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Menu category (e.g., appetizers, entrees, desserts, drinks, sides)",
                        },
                        "dietaryInfos": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Dietary tags like 'vegetarian', 'vegan', 'gluten-free', etc.",
                        },
                        "modifiers": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {"name": {"type": "string"}, "price": {"type": "number"}},
                                "required": ["name"],
                            },
                            "description": "Optional add-ons or modifications with their prices",
                        },
                    },
                    "required": ["name"],
                },
            }
        },
        "required": ["menuItems"],
    },
)


def parse_menu_items(arguments: Any) -> List[MenuItem]:
    """Validate decoded tool arguments and build menu items."""
    if not isinstance(arguments, dict):
        raise ValueError("tool arguments must be an object")
    raw_items = arguments.get("menuItems")
    if raw_items is None:
        return []
    if not isinstance(raw_items, list):
        raise ValueError("menuItems must be an array")
    return [MenuItem.from_dict(raw) for raw in raw_items]


class MenuExtractor:
    def __init__(
        self,
        client: Any,
        *,
        model: str,
        pause_seconds: float = 0.5,
        max_chars: int = 24000,
    ) -> None:
        self.client = client
        self.model = model
        self.pause_seconds = pause_seconds
        self.max_chars = max_chars

    def extract_items(self, page_text: str) -> List[MenuItem]:
        """Extract every menu item from one page of cleaned text.

        Raises ``ExtractionError`` when the call fails or the answer has the
        wrong shape. Items are not checked for plausibility.
        """
        text = page_text or ""
        if self.max_chars and len(text) > self.max_chars:
            logger.info("Truncating menu text from %d to %d characters", len(text), self.max_chars)
            text = text[: self.max_chars]

        try:
            arguments = self.client.call_function(
                model=self.model,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=f"Extract all menu items from the following restaurant menu text:\n\n{text}",
                tool=EXTRACT_MENU_ITEMS_TOOL,
            )
        except TextGenerationError as exc:
            raise ExtractionError(str(exc)) from exc

        try:
            return parse_menu_items(arguments)
        except ValueError as exc:
            raise ExtractionError(f"Malformed menu items: {exc}") from exc

    async def parse_pages(self, pages: Iterable[ScrapedPage]) -> List[ParsedMenuResult]:
        """Extract items from a restaurant's pages one at a time."""
        results: List[ParsedMenuResult] = []
        called = False
        for page in pages:
            if not page.ok:
                reason = page.error or "No text"
                logger.warning("Skipping %s: %s", page.source_url, reason)
                results.append(ParsedMenuResult(source_url=page.source_url, error=reason))
                continue

            if called and self.pause_seconds > 0:
                await asyncio.sleep(self.pause_seconds)
            called = True

            logger.info("Parsing menu from: %s", page.source_url)
            try:
                items = await asyncio.to_thread(self.extract_items, page.cleaned_text)
            except ExtractionError as exc:
                logger.warning("Error parsing %s: %s", page.source_url, exc)
                results.append(ParsedMenuResult(source_url=page.source_url, error=str(exc)))
                continue

            logger.info("Extracted %d menu items from %s", len(items), page.source_url)
            results.append(ParsedMenuResult(source_url=page.source_url, items=tuple(items)))
        return results
