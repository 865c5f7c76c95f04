"""CLI job that runs one dish search and prints the response JSON."""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from typing import List, Optional

from dishfinder.core.config import DISCOVERY_PROVIDERS, get_settings
from dishfinder.core.errors import ConfigError
from dishfinder.core.models import SearchResponse
from dishfinder.core.orchestrator import SearchOutcome, build_orchestrator

logger = logging.getLogger(__name__)


def run_search_job(
    *,
    query: str,
    latitude: Optional[float],
    longitude: Optional[float],
    radius: Optional[float],
    provider: Optional[str] = None,
    limit: Optional[int] = None,
) -> SearchOutcome:
    settings = get_settings()
    if limit is not None:
        settings = replace(settings, discovery_limit=limit)

    orchestrator = build_orchestrator(settings, provider=provider)
    params = {"query": query, "latitude": latitude, "longitude": longitude, "radius": radius}
    return asyncio.run(orchestrator.search_from_params(params))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Search nearby restaurant menus for a dish")
    parser.add_argument("--query", dest="query", required=True, help="Dish or drink to look for")
    parser.add_argument("--lat", dest="latitude", type=float, help="Search center latitude")
    parser.add_argument("--lng", dest="longitude", type=float, help="Search center longitude")
    parser.add_argument("--radius", dest="radius", type=float, help="Search radius in miles")
    parser.add_argument("--provider", dest="provider", choices=DISCOVERY_PROVIDERS, help="Discovery provider")
    parser.add_argument("--limit", dest="limit", type=int, help="Maximum number of restaurants to scrape")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.limit is not None and args.limit <= 0:
        parser.error("--limit must be positive")

    try:
        outcome = run_search_job(
            query=args.query,
            latitude=args.latitude,
            longitude=args.longitude,
            radius=args.radius,
            provider=args.provider,
            limit=args.limit,
        )
    except ConfigError as exc:
        logger.error("Search is not configured: %s", exc)
        print(json.dumps(SearchResponse.failure("Service misconfigured", str(exc)).to_dict(), indent=2))
        return 1

    print(json.dumps(outcome.response.to_dict(), indent=2))
    return 0 if outcome.status_code == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
