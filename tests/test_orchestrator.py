import asyncio
import logging

import pytest

from dishfinder.core import orchestrator
from dishfinder.core.config import Settings
from dishfinder.core.errors import ConfigError, FetchTimeoutError, TextGenerationError, ValidationError
from dishfinder.core.menu_extractor import MenuExtractor
from dishfinder.core.models import Coordinate, RestaurantCandidate, ScrapedPage, ScrapeResult
from dishfinder.core.place_finder import GooglePlacesFinder, YelpDirectoryFinder
from dishfinder.core.result_aggregator import ResultAggregator
from dishfinder.vendors.google_places import GooglePlacesError

SOUVLA = RestaurantCandidate(
    id="souvla",
    name="Souvla",
    address="517 Hayes St, San Francisco, CA 94102",
    coordinate=Coordinate(lat=37.7763, lng=-122.4242),
    website_url="https://www.souvla.com/",
)
BIRD = RestaurantCandidate(
    id="the-bird",
    name="The Bird",
    address="115 New Montgomery St, San Francisco, CA 94105",
    coordinate=Coordinate(lat=37.7878, lng=-122.4006),
    website_url="https://www.thebirdsf.com/",
)
SUPER_DUPER = RestaurantCandidate(
    id="super-duper-burgers",
    name="Super Duper Burgers",
    address="98 Mission St, San Francisco, CA 94105",
    coordinate=Coordinate(lat=37.7891, lng=-122.3969),
    website_url="https://www.superduperburgers.com/",
)

SITES = {
    SOUVLA.website_url: ["Tiramisu $9\nChicken Gyro $14"],
    BIRD.website_url: ["Fried Chicken Sandwich $12", "Tiramisu Cup $6\nCola $3"],
    SUPER_DUPER.website_url: ["Mini Burger $8\nVanilla Shake $6"],
}


class FakeFinder:
    def __init__(self, candidates):
        self.candidates = candidates
        self.calls = []

    def find_candidates(self, center, radius_miles, limit=None):
        self.calls.append((center, radius_miles, limit))
        if isinstance(self.candidates, Exception):
            raise self.candidates
        return list(self.candidates)


class FakeScraper:
    def __init__(self, sites):
        self.sites = sites
        self.calls = []

    async def scrape_restaurant(self, homepage_url, max_pages=None, max_concurrency=None):
        self.calls.append((homepage_url, max_pages, max_concurrency))
        site = self.sites[homepage_url]
        if isinstance(site, Exception):
            raise site
        pages = tuple(
            ScrapedPage(source_url=f"{homepage_url}menu-{index}", cleaned_text=text) for index, text in enumerate(site)
        )
        return ScrapeResult(homepage_url=homepage_url, pages=pages)


class DummyLLM:
    """Extracts ``Name $price`` lines and plays a keyword-filtering aggregation oracle."""

    def __init__(self, candidates, query_word, oracle_error=None):
        self.candidates = candidates
        self.query_word = query_word
        self.oracle_error = oracle_error
        self.extraction_calls = []
        self.aggregation_calls = 0

    def call_function(self, *, model, system_prompt, user_prompt, tool):
        self.extraction_calls.append(user_prompt)
        text = user_prompt.split("\n\n", 1)[1]
        items = []
        for line in text.splitlines():
            name, _, price = line.partition(" $")
            items.append({"name": name, "price": float(price)})
        return {"menuItems": items}

    def complete_json(self, *, model, system_prompt, user_prompt, temperature=None):
        self.aggregation_calls += 1
        if self.oracle_error is not None:
            raise self.oracle_error
        results = []
        for candidate in self.candidates:
            lines = [line for page in SITES.get(candidate.website_url, []) for line in page.splitlines()]
            matching = [line.partition(" $") for line in lines if self.query_word in line.lower()]
            if not matching:
                continue
            results.append(
                {
                    "restaurant": {"name": candidate.name, "id": candidate.id, "cuisine": "", "distance": 1.0},
                    "location": {"lat": candidate.coordinate.lat, "lng": candidate.coordinate.lng},
                    "matchingItems": [
                        {"name": name, "price": float(price), "matchScore": 0.8, "tags": ["dessert"]}
                        for name, _, price in matching
                    ],
                }
            )
        return {"results": results, "metadata": {"totalResults": 42}}


def build(candidates, sites=SITES, llm=None, **kwargs):
    llm = llm or DummyLLM(candidates if not isinstance(candidates, Exception) else [], "tiramisu")
    finder = FakeFinder(candidates)
    scraper = FakeScraper(sites)
    search = orchestrator.SearchOrchestrator(
        finder,
        scraper,
        MenuExtractor(llm, model="m", pause_seconds=0),
        ResultAggregator(llm, model="m"),
        **kwargs,
    )
    return search, finder, scraper, llm


def run(search, params):
    return asyncio.run(search.search_from_params(params))


def test_search_returns_only_matching_items():
    search, finder, scraper, llm = build([SOUVLA, BIRD, SUPER_DUPER], max_menu_pages=4, max_fetch_concurrency=2)

    outcome = run(search, {"latitude": "37.7749", "longitude": "-122.4194", "radius": "5", "query": "tiramisu"})

    assert outcome.status_code == 200
    assert outcome.stage is orchestrator.PipelineStage.DONE
    payload = outcome.response.to_dict()
    assert len(payload["results"]) <= 3
    assert payload["metadata"]["totalResults"] == len(payload["results"]) == 2
    names = [item["name"] for result in payload["results"] for item in result["matchingItems"]]
    assert names == ["Tiramisu", "Tiramisu Cup"]
    assert finder.calls[0][1] == 5.0
    assert {call[1:] for call in scraper.calls} == {(4, 2)}
    assert len(llm.extraction_calls) == 4
    assert llm.aggregation_calls == 1


def test_blank_query_is_rejected_without_upstream_calls(caplog):
    search, finder, scraper, llm = build([SOUVLA])

    with caplog.at_level(logging.WARNING, logger="dishfinder.core.orchestrator"):
        outcome = run(search, {"query": "   "})

    assert outcome.status_code == 400
    assert outcome.stage is orchestrator.PipelineStage.ERRORED
    assert outcome.response.error
    assert outcome.response.to_dict()["results"] == []
    assert finder.calls == [] and scraper.calls == []
    assert llm.extraction_calls == [] and llm.aggregation_calls == 0
    assert "rejected during validating" in caplog.text


def test_no_candidates_returns_empty_without_scraping():
    search, _, scraper, llm = build([])

    outcome = run(search, {"query": "tiramisu"})

    assert outcome.status_code == 404
    assert outcome.response.to_dict()["results"] == []
    assert outcome.response.metadata.total_results == 0
    assert scraper.calls == []
    assert llm.extraction_calls == [] and llm.aggregation_calls == 0


def test_empty_results_status_is_configurable():
    search, _, _, _ = build([], empty_results_status=200)

    assert run(search, {"query": "tiramisu"}).status_code == 200


def test_homepage_timeout_degrades_one_restaurant():
    sites = dict(SITES)
    sites[BIRD.website_url] = FetchTimeoutError(BIRD.website_url, "Timed out after 10s")
    llm = DummyLLM([SOUVLA, BIRD, SUPER_DUPER], "tiramisu")
    search, _, _, _ = build([SOUVLA, BIRD, SUPER_DUPER], sites=sites, llm=llm)

    outcome = run(search, {"query": "tiramisu"})

    assert outcome.status_code == 200
    ids = [result.restaurant.id for result in outcome.response.results]
    assert len(ids) <= 2
    assert "the-bird" not in ids
    assert ids == ["souvla"]


def test_candidate_without_website_is_not_scraped():
    no_site = RestaurantCandidate(id="ghost", name="Ghost Kitchen", website_lookup_failed=True)
    search, _, scraper, _ = build([no_site, SOUVLA])

    outcome = run(search, {"query": "tiramisu"})

    assert [call[0] for call in scraper.calls] == [SOUVLA.website_url]
    assert outcome.status_code == 200


def test_all_restaurants_failing_returns_empty():
    sites = {SOUVLA.website_url: RuntimeError("boom")}
    search, _, _, llm = build([SOUVLA], sites=sites)

    outcome = run(search, {"query": "tiramisu"})

    assert outcome.status_code == 404
    assert outcome.response.metadata.message
    assert llm.aggregation_calls == 0


def test_discovery_failure_is_500():
    search, _, scraper, _ = build(GooglePlacesError("quota exceeded"))

    outcome = run(search, {"query": "tiramisu"})

    assert outcome.status_code == 500
    assert outcome.response.error == "Failed to find restaurants"
    assert "quota exceeded" in outcome.response.message
    assert outcome.response.to_dict()["metadata"]["searchCenter"] == {"lat": 0, "lng": 0}
    assert scraper.calls == []


def test_aggregation_failure_is_500_without_partial_results():
    llm = DummyLLM([SOUVLA], "tiramisu", oracle_error=TextGenerationError("overloaded"))
    search, _, _, _ = build([SOUVLA], llm=llm)

    outcome = run(search, {"query": "tiramisu"})

    assert outcome.status_code == 500
    assert outcome.response.error == "Failed to combine results"
    assert outcome.response.results == ()


def test_validate_params_defaults_and_errors():
    request = orchestrator.validate_params({"query": "  ramen "})
    assert (request.latitude, request.longitude, request.radius_miles, request.query) == (
        37.7749,
        -122.4194,
        5.0,
        "ramen",
    )

    for params in (
        {"query": "ramen", "latitude": "north"},
        {"query": "ramen", "longitude": "nan"},
        {"query": "ramen", "radius": "0"},
        {"query": "ramen", "latitude": "95"},
        {"query": 12},
        {},
    ):
        with pytest.raises(ValidationError):
            orchestrator.validate_params(params)


def test_build_orchestrator_selects_provider():
    settings = Settings(openai_api_key="sk", google_api_key="g", yelp_api_key="y")

    assert isinstance(orchestrator.build_orchestrator(settings).place_finder, GooglePlacesFinder)
    assert isinstance(orchestrator.build_orchestrator(settings, provider="yelp").place_finder, YelpDirectoryFinder)

    with pytest.raises(ConfigError):
        orchestrator.build_orchestrator(Settings(google_api_key="g"))
