"""Discovery of restaurant candidates around a coordinate."""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional

from dishfinder.core.config import MIN_PLACES_PAGE_DELAY
from dishfinder.core.models import METERS_PER_MILE, Coordinate, RestaurantCandidate
from dishfinder.core.website_resolver import WebsiteResolver
from dishfinder.etl.transform import business_to_candidate, place_to_candidate
from dishfinder.vendors import google_places, yelp

logger = logging.getLogger(__name__)


def dedupe_candidates(candidates: Iterable[Optional[RestaurantCandidate]]) -> List[RestaurantCandidate]:
    """Drop empty entries and repeated ids, keeping first-seen order."""
    unique: List[RestaurantCandidate] = []
    seen = set()
    for candidate in candidates:
        if candidate is None or candidate.id in seen:
            continue
        seen.add(candidate.id)
        unique.append(candidate)
    return unique


class PlaceFinder:
    """Base class for the interchangeable discovery strategies."""

    def __init__(self, *, website_resolver: Optional[WebsiteResolver] = None, resolver_workers: int = 4) -> None:
        self.website_resolver = website_resolver
        self.resolver_workers = max(1, resolver_workers)

    def find_candidates(
        self,
        center: Coordinate,
        radius_miles: float,
        limit: Optional[int] = None,
    ) -> List[RestaurantCandidate]:
        raise NotImplementedError

    def _fill_websites(self, candidates: List[RestaurantCandidate]) -> List[RestaurantCandidate]:
        if self.website_resolver is None:
            return candidates
        missing = [candidate for candidate in candidates if not candidate.website_url]
        if not missing:
            return candidates

        logger.info("Resolving websites for %d of %d candidates", len(missing), len(candidates))
        resolver = self.website_resolver
        with ThreadPoolExecutor(max_workers=min(self.resolver_workers, len(missing))) as executor:
            urls = list(executor.map(lambda c: resolver.resolve_website(c.name, c.address), missing))

        resolved = {candidate.id: candidate.with_website(url) for candidate, url in zip(missing, urls)}
        return [resolved.get(candidate.id, candidate) for candidate in candidates]


class GooglePlacesFinder(PlaceFinder):
    """Nearby search against Google Places, paginated with a mandatory delay."""

    def __init__(
        self,
        api_key: str,
        *,
        page_delay: float = MIN_PLACES_PAGE_DELAY,
        first_page_only: bool = False,
        timeout: float = 10,
        website_resolver: Optional[WebsiteResolver] = None,
        resolver_workers: int = 4,
    ) -> None:
        super().__init__(website_resolver=website_resolver, resolver_workers=resolver_workers)
        self.api_key = api_key
        self.page_delay = max(page_delay, MIN_PLACES_PAGE_DELAY)
        self.first_page_only = first_page_only
        self.timeout = timeout

    def find_candidates(
        self,
        center: Coordinate,
        radius_miles: float,
        limit: Optional[int] = None,
    ) -> List[RestaurantCandidate]:
        radius_meters = radius_miles * METERS_PER_MILE
        logger.info(
            "Running Places nearby search at (%s, %s) radius=%.0fm limit=%s",
            center.lat,
            center.lng,
            radius_meters,
            limit,
        )

        candidates: List[RestaurantCandidate] = []
        seen = set()
        page_token = None
        processed_pages = 0

        while True:
            remaining = google_places.MAX_RESULTS_PER_PAGE if limit is None else limit - len(candidates)
            response = google_places.search_nearby(
                latitude=center.lat,
                longitude=center.lng,
                radius_meters=radius_meters,
                api_key=self.api_key,
                page_token=page_token,
                max_result_count=remaining,
                timeout=self.timeout,
            )
            places = response.get("places") or []
            processed_pages += 1
            logger.info("Fetched %d places on page %d", len(places), processed_pages)

            for place in places:
                candidate = place_to_candidate(place)
                if candidate is None or candidate.id in seen:
                    continue
                seen.add(candidate.id)
                candidates.append(candidate)
                if limit is not None and len(candidates) >= limit:
                    break

            if limit is not None and len(candidates) >= limit:
                break
            page_token = response.get("nextPageToken")
            if not page_token or self.first_page_only:
                break
            time.sleep(self.page_delay)

        logger.info("Discovered %d candidates across %d pages", len(candidates), processed_pages)
        return self._fill_websites(candidates)


class YelpDirectoryFinder(PlaceFinder):
    """Distance-sorted Yelp business search; websites come from the resolver."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = 10,
        website_resolver: Optional[WebsiteResolver] = None,
        resolver_workers: int = 4,
    ) -> None:
        super().__init__(website_resolver=website_resolver, resolver_workers=resolver_workers)
        self.api_key = api_key
        self.timeout = timeout

    def find_candidates(
        self,
        center: Coordinate,
        radius_miles: float,
        limit: Optional[int] = None,
    ) -> List[RestaurantCandidate]:
        radius_meters = radius_miles * METERS_PER_MILE
        logger.info("Searching Yelp for restaurants at (%s, %s) within %s miles", center.lat, center.lng, radius_miles)
        businesses = yelp.search_businesses(
            latitude=center.lat,
            longitude=center.lng,
            radius_meters=radius_meters,
            api_key=self.api_key,
            limit=limit or 20,
            timeout=self.timeout,
        )
        candidates = dedupe_candidates(business_to_candidate(business) for business in businesses)
        if limit is not None:
            candidates = candidates[:limit]
        logger.info("Found %d restaurants from Yelp", len(candidates))
        return self._fill_websites(candidates)
