import pytest

from dishfinder.core.errors import MalformedOutputError, TextGenerationError
from dishfinder.core.website_resolver import RETURN_WEBSITE_TOOL, WebsiteResolver, normalize_resolved_url


class DummyClient:
    def __init__(self, answer=None, error=None):
        self.answer = answer
        self.error = error
        self.calls = []

    def _answer(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.answer

    call_function_with_search = _answer

    def call_function(self, **kwargs):
        kwargs["plain"] = True
        return self._answer(**kwargs)


@pytest.mark.parametrize(
    "value, expected",
    [
        ("https://www.souvla.com", "https://www.souvla.com"),
        ("  http://example.com/menu ", "http://example.com/menu"),
        ("NOT_FOUND", None),
        ("ftp://example.com", None),
        ("www.example.com", None),
        ("", None),
        (None, None),
        (42, None),
    ],
)
def test_normalize_resolved_url(value, expected):
    assert normalize_resolved_url(value) == expected


def test_resolve_website_returns_exact_url():
    client = DummyClient(answer={"url": "https://www.thebirdsf.com"})
    resolver = WebsiteResolver(client, model="gpt-4o")

    assert resolver.resolve_website("The Bird", "115 New Montgomery St") == "https://www.thebirdsf.com"
    call = client.calls[0]
    assert call["tool"] is RETURN_WEBSITE_TOOL
    assert "The Bird" in call["user_prompt"]
    assert "115 New Montgomery St" in call["user_prompt"]
    assert "plain" not in call


def test_resolve_website_without_web_search_uses_plain_call():
    client = DummyClient(answer={"url": "https://a.com"})

    assert WebsiteResolver(client, model="m", web_search=False).resolve_website("A", None) == "https://a.com"
    assert client.calls[0]["plain"] is True


def test_resolve_website_not_found():
    client = DummyClient(answer={"url": "NOT_FOUND"})

    assert WebsiteResolver(client, model="m").resolve_website("Nowhere Diner", "1 Main St") is None


@pytest.mark.parametrize(
    "error",
    [TextGenerationError("down"), MalformedOutputError("bad json"), RuntimeError("surprise")],
)
def test_resolve_website_failures_never_escape(error):
    client = DummyClient(error=error)

    assert WebsiteResolver(client, model="m").resolve_website("A", "B") is None


def test_resolve_website_missing_field():
    assert WebsiteResolver(DummyClient(answer={}), model="m").resolve_website("A", "B") is None
