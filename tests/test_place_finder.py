import pytest

from dishfinder.core import place_finder
from dishfinder.core.models import NOT_FOUND, Coordinate

CENTER = Coordinate(lat=37.7749, lng=-122.4194)


def make_place(place_id, website=None):
    place = {
        "id": place_id,
        "displayName": {"text": f"Place {place_id}"},
        "formattedAddress": f"{place_id} Main St",
        "location": {"latitude": 37.77, "longitude": -122.41},
        "types": ["restaurant"],
    }
    if website:
        place["websiteUri"] = website
    return place


class DummyResolver:
    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    def resolve_website(self, name, address):
        self.calls.append((name, address))
        return self.answers.get(name)


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(place_finder.time, "sleep", recorded.append)
    return recorded


@pytest.fixture
def pages(monkeypatch):
    state = {"pages": [], "calls": []}

    def fake_search_nearby(**kwargs):
        state["calls"].append(kwargs)
        return state["pages"][len(state["calls"]) - 1]

    monkeypatch.setattr(place_finder.google_places, "search_nearby", fake_search_nearby)
    return state


def test_google_finder_paginates_with_delay(pages, sleeps):
    pages["pages"] = [
        {"places": [make_place("a", "https://a.com"), make_place("b", "https://b.com")], "nextPageToken": "t1"},
        {"places": [make_place("b", "https://b.com"), make_place("c", "https://c.com")]},
    ]
    finder = place_finder.GooglePlacesFinder("key", page_delay=3.0)

    candidates = finder.find_candidates(CENTER, 5)

    assert [c.id for c in candidates] == ["a", "b", "c"]
    assert sleeps == [3.0]
    assert pages["calls"][0]["page_token"] is None
    assert pages["calls"][1]["page_token"] == "t1"
    assert pages["calls"][0]["radius_meters"] == pytest.approx(5 * 1609.34)


def test_google_finder_stops_at_limit(pages, sleeps):
    pages["pages"] = [
        {"places": [make_place(str(i), f"https://{i}.com") for i in range(5)], "nextPageToken": "more"},
    ]

    candidates = place_finder.GooglePlacesFinder("key").find_candidates(CENTER, 5, limit=3)

    assert len(candidates) == 3
    assert len(pages["calls"]) == 1
    assert pages["calls"][0]["max_result_count"] == 3
    assert sleeps == []


def test_google_finder_first_page_only(pages, sleeps):
    pages["pages"] = [{"places": [make_place("a", "https://a.com")], "nextPageToken": "t1"}]

    candidates = place_finder.GooglePlacesFinder("key", first_page_only=True).find_candidates(CENTER, 5)

    assert [c.id for c in candidates] == ["a"]
    assert len(pages["calls"]) == 1
    assert sleeps == []


def test_page_delay_never_below_minimum():
    assert place_finder.GooglePlacesFinder("key", page_delay=0.1).page_delay == 2.0


def test_missing_websites_are_resolved(pages, sleeps):
    pages["pages"] = [{"places": [make_place("a", "https://a.com"), make_place("b"), make_place("c")]}]
    resolver = DummyResolver({"Place b": "https://b.example"})
    finder = place_finder.GooglePlacesFinder("key", website_resolver=resolver, resolver_workers=2)

    candidates = finder.find_candidates(CENTER, 5)

    assert sorted(call[0] for call in resolver.calls) == ["Place b", "Place c"]
    by_id = {c.id: c for c in candidates}
    assert [c.id for c in candidates] == ["a", "b", "c"]
    assert by_id["b"].website_url == "https://b.example"
    assert by_id["c"].website_url is None
    assert by_id["c"].website_lookup_failed is True
    assert by_id["c"].to_dict()["websiteUrl"] == NOT_FOUND


def test_yelp_finder_dedupes_and_limits(monkeypatch):
    calls = []
    businesses = [
        {"id": "x", "name": "X"},
        {"id": "x", "name": "X again"},
        {"id": "y", "name": "Y"},
        {"id": "z", "name": "Z"},
    ]

    def fake_search_businesses(**kwargs):
        calls.append(kwargs)
        return businesses

    monkeypatch.setattr(place_finder.yelp, "search_businesses", fake_search_businesses)
    resolver = DummyResolver({"X": "https://x.com"})
    finder = place_finder.YelpDirectoryFinder("key", website_resolver=resolver)

    candidates = finder.find_candidates(CENTER, 2, limit=2)

    assert [c.id for c in candidates] == ["x", "y"]
    assert candidates[0].website_url == "https://x.com"
    assert candidates[1].website_lookup_failed is True
    assert calls[0]["limit"] == 2
    assert calls[0]["radius_meters"] == pytest.approx(2 * 1609.34)


def test_dedupe_candidates_keeps_first():
    first = place_finder.place_to_candidate(make_place("a"))
    duplicate = place_finder.place_to_candidate(make_place("a", "https://other.com"))

    assert place_finder.dedupe_candidates([first, None, duplicate]) == [first]
