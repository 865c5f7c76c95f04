"""Search pipeline: validate, discover, scrape and extract per restaurant, aggregate."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Mapping, Optional

from dishfinder.core.config import Settings
from dishfinder.core.errors import (
    AggregationError,
    FetchError,
    UpstreamError,
    ValidationError,
)
from dishfinder.core.menu_extractor import MenuExtractor
from dishfinder.core.menu_scraper import MenuScraper
from dishfinder.core.models import RestaurantCandidate, RestaurantMenus, SearchRequest, SearchResponse
from dishfinder.core.place_finder import GooglePlacesFinder, PlaceFinder, YelpDirectoryFinder
from dishfinder.core.result_aggregator import NO_MENU_DATA_MESSAGE, ResultAggregator
from dishfinder.core.website_resolver import WebsiteResolver
from dishfinder.vendors.openai_client import OpenAIClient

logger = logging.getLogger(__name__)

NO_RESTAURANTS_MESSAGE = "No restaurants found near this location."


class PipelineStage(str, Enum):
    VALIDATING = "validating"
    DISCOVERING_PLACES = "discovering_places"
    SCRAPING_AND_EXTRACTING = "scraping_and_extracting"
    AGGREGATING = "aggregating"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class SearchOutcome:
    status_code: int
    response: SearchResponse
    stage: PipelineStage


def _number_param(params: Mapping[str, Any], name: str, default: float) -> float:
    value = params.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        return default
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be numeric")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{name} must be numeric, got {value!r}") from exc
    if not math.isfinite(number):
        raise ValidationError(f"{name} must be a finite number")
    return number


def validate_params(
    params: Mapping[str, Any],
    *,
    default_latitude: float = 37.7749,
    default_longitude: float = -122.4194,
    default_radius_miles: float = 5.0,
) -> SearchRequest:
    """Turn raw request parameters into a ``SearchRequest``.

    Absent coordinates and radius fall back to the defaults; present but
    unusable values raise ``ValidationError``.
    """
    query = params.get("query")
    if query is not None and not isinstance(query, str):
        raise ValidationError('Query parameter "query" must be a string')
    query = (query or "").strip()
    if not query:
        raise ValidationError('Query parameter "query" is required')

    latitude = _number_param(params, "latitude", default_latitude)
    longitude = _number_param(params, "longitude", default_longitude)
    radius = _number_param(params, "radius", default_radius_miles)
    if not -90 <= latitude <= 90:
        raise ValidationError("latitude must be between -90 and 90")
    if not -180 <= longitude <= 180:
        raise ValidationError("longitude must be between -180 and 180")
    if radius <= 0:
        raise ValidationError("radius must be positive")

    return SearchRequest(latitude=latitude, longitude=longitude, radius_miles=radius, query=query)


class SearchOrchestrator:
    """Run one search from request to ``SearchOutcome``; never raises."""

    def __init__(
        self,
        place_finder: PlaceFinder,
        scraper: MenuScraper,
        extractor: MenuExtractor,
        aggregator: ResultAggregator,
        *,
        discovery_limit: Optional[int] = 5,
        max_menu_pages: int = 5,
        max_fetch_concurrency: int = 3,
        empty_results_status: int = 404,
        default_latitude: float = 37.7749,
        default_longitude: float = -122.4194,
        default_radius_miles: float = 5.0,
    ) -> None:
        self.place_finder = place_finder
        self.scraper = scraper
        self.extractor = extractor
        self.aggregator = aggregator
        self.discovery_limit = discovery_limit
        self.max_menu_pages = max_menu_pages
        self.max_fetch_concurrency = max_fetch_concurrency
        self.empty_results_status = empty_results_status
        self.default_latitude = default_latitude
        self.default_longitude = default_longitude
        self.default_radius_miles = default_radius_miles

    async def search_from_params(self, params: Mapping[str, Any]) -> SearchOutcome:
        stage = PipelineStage.VALIDATING
        try:
            request = validate_params(
                params,
                default_latitude=self.default_latitude,
                default_longitude=self.default_longitude,
                default_radius_miles=self.default_radius_miles,
            )
        except ValidationError as exc:
            logger.warning("Search rejected during %s: %s", stage.value, exc)
            return SearchOutcome(
                status_code=400,
                response=SearchResponse.failure("Invalid search parameters", str(exc)),
                stage=PipelineStage.ERRORED,
            )
        return await self.search(request)

    async def search(self, request: SearchRequest) -> SearchOutcome:
        stage = PipelineStage.DISCOVERING_PLACES
        logger.info(
            "Search query=%r at (%s, %s) radius=%s miles",
            request.query,
            request.latitude,
            request.longitude,
            request.radius_miles,
        )
        try:
            candidates = await asyncio.to_thread(
                self.place_finder.find_candidates,
                request.center,
                request.radius_miles,
                self.discovery_limit,
            )
            if not candidates:
                logger.info("No candidates discovered; skipping scrape and aggregation")
                return self._empty(request, NO_RESTAURANTS_MESSAGE)

            stage = PipelineStage.SCRAPING_AND_EXTRACTING
            logger.info("Scraping and extracting menus for %d restaurants", len(candidates))
            restaurant_menus = await asyncio.gather(*(self.process_restaurant(c) for c in candidates))
            usable = [menus for menus in restaurant_menus if menus.has_menu_data]
            logger.info("%d of %d restaurants produced menu items", len(usable), len(candidates))
            if not usable:
                return self._empty(request, NO_MENU_DATA_MESSAGE)

            stage = PipelineStage.AGGREGATING
            response = await asyncio.to_thread(
                self.aggregator.combine,
                candidates,
                restaurant_menus,
                request.center,
                request.radius_miles,
                request.query,
            )
        except UpstreamError as exc:
            logger.error("Restaurant discovery failed: %s", exc)
            return self._failure("Failed to find restaurants", exc)
        except AggregationError as exc:
            logger.error("Aggregation failed: %s", exc)
            return self._failure("Failed to combine results", exc)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Search failed during %s: %s", stage.value, exc)
            return self._failure("Failed to fetch suggestions", exc)

        logger.info("Search complete with %d results", response.metadata.total_results)
        return SearchOutcome(status_code=200, response=response, stage=PipelineStage.DONE)

    async def process_restaurant(self, candidate: RestaurantCandidate) -> RestaurantMenus:
        """Scrape and extract one restaurant; any failure degrades only this restaurant."""
        if not candidate.website_url:
            logger.warning("Skipping %s: no website available", candidate.name)
            return RestaurantMenus(candidate=candidate, error="No website available")

        try:
            scrape = await self.scraper.scrape_restaurant(
                candidate.website_url,
                max_pages=self.max_menu_pages,
                max_concurrency=self.max_fetch_concurrency,
            )
        except FetchError as exc:
            logger.warning("Homepage fetch failed for %s: %s", candidate.name, exc)
            return RestaurantMenus(candidate=candidate, error=exc.reason)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected scrape failure for %s: %s", candidate.name, exc)
            return RestaurantMenus(candidate=candidate, error=str(exc))

        if not scrape.pages:
            logger.warning("No menu pages found for %s", candidate.name)
            return RestaurantMenus(
                candidate=candidate,
                menu_links=scrape.menu_links,
                pdf_links=scrape.pdf_links,
                error="No menu pages found",
            )

        try:
            parsed = await self.extractor.parse_pages(scrape.pages)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected extraction failure for %s: %s", candidate.name, exc)
            return RestaurantMenus(
                candidate=candidate,
                menu_links=scrape.menu_links,
                pdf_links=scrape.pdf_links,
                error=str(exc),
            )

        menus = RestaurantMenus(
            candidate=candidate,
            parsed_menus=tuple(parsed),
            menu_links=scrape.menu_links,
            pdf_links=scrape.pdf_links,
        )
        logger.info("Extracted %d items for %s", menus.total_items, candidate.name)
        return menus

    def _empty(self, request: SearchRequest, message: str) -> SearchOutcome:
        return SearchOutcome(
            status_code=self.empty_results_status,
            response=SearchResponse.empty(request.center, request.radius_miles, message),
            stage=PipelineStage.DONE,
        )

    @staticmethod
    def _failure(error: str, exc: Exception) -> SearchOutcome:
        return SearchOutcome(
            status_code=500,
            response=SearchResponse.failure(error, str(exc)),
            stage=PipelineStage.ERRORED,
        )


def build_orchestrator(settings: Settings, *, provider: Optional[str] = None) -> SearchOrchestrator:
    """Wire the pipeline from settings. Raises ``ConfigError`` on missing keys."""
    if provider:
        settings = replace(settings, discovery_provider=provider.strip().lower())
    settings.require_openai()
    settings.require_discovery()

    client = OpenAIClient(settings.openai_api_key)
    resolver = WebsiteResolver(client, model=settings.resolver_model, web_search=settings.resolver_web_search)

    place_finder: PlaceFinder
    if settings.discovery_provider == "yelp":
        place_finder = YelpDirectoryFinder(
            settings.yelp_api_key,
            timeout=settings.request_timeout,
            website_resolver=resolver,
            resolver_workers=settings.resolver_workers,
        )
    else:
        place_finder = GooglePlacesFinder(
            settings.google_api_key,
            page_delay=settings.places_page_delay,
            first_page_only=settings.places_first_page_only,
            timeout=settings.request_timeout,
            website_resolver=resolver,
            resolver_workers=settings.resolver_workers,
        )

    logger.info("Using %s discovery", settings.discovery_provider)
    return SearchOrchestrator(
        place_finder,
        MenuScraper(
            timeout=settings.request_timeout,
            max_pages=settings.max_menu_pages,
            max_concurrency=settings.max_fetch_concurrency,
        ),
        MenuExtractor(
            client,
            model=settings.extraction_model,
            pause_seconds=settings.extraction_pause_seconds,
            max_chars=settings.max_extraction_chars,
        ),
        ResultAggregator(client, model=settings.aggregation_model, temperature=settings.aggregation_temperature),
        discovery_limit=settings.discovery_limit or None,
        max_menu_pages=settings.max_menu_pages,
        max_fetch_concurrency=settings.max_fetch_concurrency,
        empty_results_status=settings.empty_results_status,
        default_latitude=settings.default_latitude,
        default_longitude=settings.default_longitude,
        default_radius_miles=settings.default_radius_miles,
    )
