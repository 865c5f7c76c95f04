"""Best-effort lookup of a restaurant's official website."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

from dishfinder.core.errors import TextGenerationError
from dishfinder.core.models import NOT_FOUND
from dishfinder.vendors.openai_client import FunctionTool

logger = logging.getLogger(__name__)

URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

SYSTEM_PROMPT = "You are a helpful assistant that finds official restaurant websites."

RETURN_WEBSITE_TOOL = FunctionTool(
    name="return_restaurant_website",
    description="Returns the official website URL for a restaurant, or indicates that no website was found",
    parameters={
        "type": "object",
        "properties": {
            "url": {
                "type": "string",
                "description": 'The official website URL (e.g., https://example.com) or "NOT_FOUND" if no website could be located',
            }
        },
        "required": ["url"],
    },
)


def normalize_resolved_url(value: Any) -> Optional[str]:
    """Map a raw tool answer onto a URL, or ``None`` when nothing usable came back."""
    if not isinstance(value, str):
        return None
    url = value.strip()
    if not url or url == NOT_FOUND or not URL_PATTERN.match(url):
        return None
    return url


class WebsiteResolver:
    """Ask the text-generation service for one official website URL.

    Failures never escape: any error, malformed answer or non-HTTP(S) value
    resolves to ``None``.
    """

    def __init__(self, client: Any, *, model: str, web_search: bool = True) -> None:
        self.client = client
        self.model = model
        self.web_search = web_search

    def resolve_website(self, name: str, address: Optional[str]) -> Optional[str]:
        prompt = f"Find the official website URL for this restaurant:\nName: {name}\nAddress: {address or 'unknown'}"
        call = self.client.call_function_with_search if self.web_search else self.client.call_function
        try:
            arguments = call(
                model=self.model,
                system_prompt=SYSTEM_PROMPT,
                user_prompt=prompt,
                tool=RETURN_WEBSITE_TOOL,
            )
        except TextGenerationError as exc:
            logger.warning("Website lookup failed for %s: %s", name, exc)
            return None
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected error resolving website for %s: %s", name, exc)
            return None

        url = normalize_resolved_url(arguments.get("url"))
        if url is None:
            logger.info("No website found for: %s", name)
        else:
            logger.info("Website found for %s: %s", name, url)
        return url
