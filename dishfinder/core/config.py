"""Application configuration helpers."""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache

from dotenv import load_dotenv

from dishfinder.core.errors import ConfigError

logger = logging.getLogger(__name__)

MIN_PLACES_PAGE_DELAY = 2.0
DISCOVERY_PROVIDERS = ("google", "yelp")


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    google_api_key: str = ""
    yelp_api_key: str = ""
    discovery_provider: str = "google"
    extraction_model: str = "gpt-4o"
    resolver_model: str = "gpt-4o"
    aggregation_model: str = "gpt-4o"
    aggregation_temperature: float = 0.7
    request_timeout: float = 10.0
    max_menu_pages: int = 5
    max_fetch_concurrency: int = 3
    extraction_pause_seconds: float = 0.5
    max_extraction_chars: int = 24000
    places_page_delay: float = MIN_PLACES_PAGE_DELAY
    places_first_page_only: bool = False
    discovery_limit: int = 5
    resolver_workers: int = 4
    resolver_web_search: bool = True
    default_latitude: float = 37.7749
    default_longitude: float = -122.4194
    default_radius_miles: float = 5.0
    empty_results_status: int = 404
    server_port: int = 8080

    def require_openai(self) -> None:
        if not self.openai_api_key:
            raise ConfigError("OPENAI_API_KEY is required")

    def require_discovery(self) -> None:
        if self.discovery_provider not in DISCOVERY_PROVIDERS:
            raise ConfigError(
                f"DISCOVERY_PROVIDER must be one of {', '.join(DISCOVERY_PROVIDERS)}, got {self.discovery_provider!r}"
            )
        if self.discovery_provider == "google" and not self.google_api_key:
            raise ConfigError("GOOGLE_MAPS_API_KEY is required for the google discovery provider")
        if self.discovery_provider == "yelp" and not self.yelp_api_key:
            raise ConfigError("YELP_API_KEY is required for the yelp discovery provider")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    openai_api_key = os.getenv("OPENAI_API_KEY", "")
    google_api_key = os.getenv("GOOGLE_MAPS_API_KEY", "")
    yelp_api_key = os.getenv("YELP_API_KEY", "")
    discovery_provider = os.getenv("DISCOVERY_PROVIDER", "google").strip().lower()

    places_page_delay = float(os.getenv("PLACES_PAGE_DELAY", str(MIN_PLACES_PAGE_DELAY)))
    if places_page_delay < MIN_PLACES_PAGE_DELAY:
        logger.warning(
            "PLACES_PAGE_DELAY=%s is below the provider minimum; using %.1fs",
            places_page_delay,
            MIN_PLACES_PAGE_DELAY,
        )
        places_page_delay = MIN_PLACES_PAGE_DELAY

    if not openai_api_key:
        logger.warning("OPENAI_API_KEY is not configured; extraction and aggregation will fail.")
    if discovery_provider == "google" and not google_api_key:
        logger.warning("GOOGLE_MAPS_API_KEY is not configured; Google Places requests will fail.")
    if discovery_provider == "yelp" and not yelp_api_key:
        logger.warning("YELP_API_KEY is not configured; Yelp requests will fail.")

    return Settings(
        openai_api_key=openai_api_key,
        google_api_key=google_api_key,
        yelp_api_key=yelp_api_key,
        discovery_provider=discovery_provider,
        extraction_model=os.getenv("EXTRACTION_MODEL", "gpt-4o"),
        resolver_model=os.getenv("RESOLVER_MODEL", "gpt-4o"),
        aggregation_model=os.getenv("AGGREGATION_MODEL", "gpt-4o"),
        aggregation_temperature=float(os.getenv("AGGREGATION_TEMPERATURE", "0.7")),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", "10")),
        max_menu_pages=int(os.getenv("MAX_MENU_PAGES", "5")),
        max_fetch_concurrency=int(os.getenv("MAX_FETCH_CONCURRENCY", "3")),
        extraction_pause_seconds=float(os.getenv("EXTRACTION_PAUSE_SECONDS", "0.5")),
        max_extraction_chars=int(os.getenv("MAX_EXTRACTION_CHARS", "24000")),
        places_page_delay=places_page_delay,
        places_first_page_only=_env_bool("PLACES_FIRST_PAGE_ONLY", "false"),
        discovery_limit=int(os.getenv("DISCOVERY_LIMIT", "5")),
        resolver_workers=int(os.getenv("RESOLVER_WORKERS", "4")),
        resolver_web_search=_env_bool("RESOLVER_WEB_SEARCH", "true"),
        default_latitude=float(os.getenv("DEFAULT_LATITUDE", "37.7749")),
        default_longitude=float(os.getenv("DEFAULT_LONGITUDE", "-122.4194")),
        default_radius_miles=float(os.getenv("DEFAULT_RADIUS_MILES", "5")),
        empty_results_status=int(os.getenv("EMPTY_RESULTS_STATUS", "404")),
        server_port=int(os.getenv("PORT", "8080")),
    )
