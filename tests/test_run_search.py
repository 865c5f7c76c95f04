import json

import pytest

from dishfinder.core.config import Settings
from dishfinder.core.errors import ConfigError
from dishfinder.core.models import Coordinate, SearchResponse
from dishfinder.core.orchestrator import PipelineStage, SearchOutcome
from dishfinder.jobs import run_search


class DummyOrchestrator:
    def __init__(self, status_code=200):
        self.status_code = status_code
        self.params = None

    async def search_from_params(self, params):
        self.params = params
        response = SearchResponse.empty(Coordinate(lat=1.0, lng=2.0), 5.0, "nothing nearby")
        return SearchOutcome(status_code=self.status_code, response=response, stage=PipelineStage.DONE)


@pytest.fixture
def built(monkeypatch):
    state = {"orchestrator": DummyOrchestrator()}

    def fake_build(settings, provider=None):
        state["settings"] = settings
        state["provider"] = provider
        return state["orchestrator"]

    monkeypatch.setattr(run_search, "get_settings", lambda: Settings())
    monkeypatch.setattr(run_search, "build_orchestrator", fake_build)
    return state


def test_main_prints_response_and_succeeds(built, capsys):
    exit_code = run_search.main(["--query", "tiramisu", "--lat", "37.7", "--provider", "yelp", "--limit", "3"])

    assert exit_code == 0
    payload = json.loads(capsys.readouterr().out)
    assert payload["metadata"]["message"] == "nothing nearby"
    assert built["orchestrator"].params == {"query": "tiramisu", "latitude": 37.7, "longitude": None, "radius": None}
    assert built["provider"] == "yelp"
    assert built["settings"].discovery_limit == 3


def test_main_non_200_exits_with_failure(built, capsys):
    built["orchestrator"] = DummyOrchestrator(status_code=404)

    assert run_search.main(["--query", "tiramisu"]) == 1


def test_main_reports_missing_configuration(monkeypatch, capsys):
    def broken(settings, provider=None):
        raise ConfigError("OPENAI_API_KEY is required")

    monkeypatch.setattr(run_search, "get_settings", lambda: Settings())
    monkeypatch.setattr(run_search, "build_orchestrator", broken)

    assert run_search.main(["--query", "tiramisu"]) == 1
    assert json.loads(capsys.readouterr().out)["message"] == "OPENAI_API_KEY is required"


def test_parser_rejects_non_positive_limit(built):
    with pytest.raises(SystemExit):
        run_search.main(["--query", "tiramisu", "--limit", "0"])
