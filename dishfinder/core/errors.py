"""Exception hierarchy shared by the search pipeline."""

from __future__ import annotations


class DishFinderError(RuntimeError):
    """Base class for every error raised by the pipeline."""


class ConfigError(DishFinderError):
    """Raised when mandatory configuration is missing."""


class ValidationError(DishFinderError):
    """Raised when caller input is missing or malformed."""


class UpstreamError(DishFinderError):
    """Raised when a discovery provider is unreachable or returns an error status."""


class FetchError(DishFinderError):
    """Raised when a restaurant page cannot be retrieved."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"{reason} for {url}")
        self.url = url
        self.reason = reason


class FetchTimeoutError(FetchError):
    """Raised when a page fetch exceeds its timeout."""


class TextGenerationError(DishFinderError):
    """Raised when the text-generation provider call itself fails."""


class MalformedOutputError(TextGenerationError):
    """Raised when the provider answered but the content cannot be parsed."""


class ExtractionError(DishFinderError):
    """Raised when menu items cannot be extracted from one page."""


class AggregationError(DishFinderError):
    """Raised when the final synthesis call fails or returns an unusable shape."""
