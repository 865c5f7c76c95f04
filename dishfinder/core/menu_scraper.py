"""Menu page discovery and text extraction for restaurant websites."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from contextlib import closing
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple
from urllib.parse import urldefrag, urljoin, urlparse, urlunparse

import requests
from bs4 import BeautifulSoup

from dishfinder.core.errors import FetchError, FetchTimeoutError
from dishfinder.core.models import MenuLink, ScrapedPage, ScrapeResult

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
MAX_MENU_PAGES = 5
MAX_CONCURRENCY = 3
MAX_ANCHOR_TEXT_LENGTH = 50
CHUNK_SIZE = 64 * 1024

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Referer": "https://www.google.com/",
}

MENU_LINK_PATTERNS = (
    re.compile(r"\b(menu|menus)\b", re.IGNORECASE),
    re.compile(r"\b(food|dine|dining|eat)\b", re.IGNORECASE),
    re.compile(r"\b(drink|drinks|beverage|beverages|bar)\b", re.IGNORECASE),
    re.compile(r"\b(wine|cocktail|beer|spirits)\b", re.IGNORECASE),
    re.compile(r"\b(breakfast|brunch|lunch|dinner)\b", re.IGNORECASE),
    re.compile(r"\b(appetizer|entrée|entree|dessert)\b", re.IGNORECASE),
)
NOISE_TAGS = ("script", "style", "noscript", "nav", "header", "footer")
UNFETCHABLE_SCHEMES = ("mailto:", "tel:", "javascript:", "data:", "sms:")

_INVISIBLE_CHARS = re.compile("[\u00ad\u200b-\u200f\u2060\ufeff]")
_WHITESPACE = re.compile(r"\s+")


def sanitize_website(raw_url: str) -> Optional[str]:
    """Normalise raw website strings into absolute URLs (https when no scheme)."""

    if not raw_url:
        return None

    url = raw_url.strip()
    if not url:
        return None

    parsed = urlparse(url, scheme="https")
    if not parsed.netloc:
        parsed = urlparse(f"https://{url}")

    if not parsed.netloc or parsed.scheme not in ("http", "https"):
        return None

    normalized_path = parsed.path or "/"
    if not normalized_path.startswith("/"):
        normalized_path = f"/{normalized_path}"

    normalized = parsed._replace(path=normalized_path, fragment="", query="")
    return urlunparse(normalized)


def normalize_line(text: str) -> str:
    return _WHITESPACE.sub(" ", _INVISIBLE_CHARS.sub("", text or "")).strip()


def clean_text(text: str) -> str:
    """Normalise whitespace and drop invisible characters, one line per text line.

    Idempotent: cleaning already-clean text returns it unchanged.
    """
    lines = (normalize_line(line) for line in (text or "").splitlines())
    return "\n".join(line for line in lines if line)


def is_menu_link(text: str, href: str) -> bool:
    lowered_text = (text or "").lower()
    lowered_href = (href or "").lower()
    return any(pattern.search(lowered_text) or pattern.search(lowered_href) for pattern in MENU_LINK_PATTERNS)


def is_pdf_url(url: str) -> bool:
    lowered = (url or "").lower()
    return lowered.endswith(".pdf") or ".pdf?" in lowered or "/pdf/" in lowered


def resolve_url(base_url: str, href: str) -> Optional[str]:
    """Resolve ``href`` against ``base_url``; ``None`` for anything not fetchable over HTTP(S)."""
    href = (href or "").strip()
    if not href or href.lower().startswith(UNFETCHABLE_SCHEMES):
        return None
    try:
        absolute, _fragment = urldefrag(urljoin(base_url, href))
        parsed = urlparse(absolute)
    except ValueError:
        return None
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return absolute


def _bare_host(url: str) -> str:
    host = urlparse(url).netloc.lower()
    return host[4:] if host.startswith("www.") else host


def _as_soup(markup) -> BeautifulSoup:
    if isinstance(markup, BeautifulSoup):
        return markup
    return BeautifulSoup(markup or "", "html.parser")


def extract_menu_links(markup, base_url: str) -> List[MenuLink]:
    """Collect anchors whose text or href looks like it leads to menu content."""

    soup = _as_soup(markup)
    links: List[MenuLink] = []
    seen: Set[Tuple[str, str]] = set()
    for anchor in soup.find_all("a", href=True):
        text = normalize_line(anchor.get_text(" "))
        href = anchor["href"].strip()
        if not text or len(text) > MAX_ANCHOR_TEXT_LENGTH:
            continue
        if not is_menu_link(text, href):
            continue
        absolute = resolve_url(base_url, href)
        if not absolute:
            continue
        key = (text, absolute)
        if key in seen:
            continue
        seen.add(key)
        links.append(MenuLink(anchor_text=text, href=absolute))
    return links


def collect_pdf_links(markup, base_url: str) -> List[MenuLink]:
    """Return same-domain links that point at PDF documents."""

    soup = _as_soup(markup)
    domain = _bare_host(base_url)
    links: List[MenuLink] = []
    seen: Set[str] = set()
    for anchor in soup.find_all("a", href=True):
        absolute = resolve_url(base_url, anchor["href"])
        if not absolute or not is_pdf_url(absolute) or absolute in seen:
            continue
        if _bare_host(absolute) != domain:
            continue
        seen.add(absolute)
        links.append(MenuLink(anchor_text=normalize_line(anchor.get_text(" ")), href=absolute))
    return links


def extract_text_content(markup) -> str:
    """Strip noise subtrees and return the cleaned text of the main content root."""

    soup = _as_soup(markup)
    for node in soup.find_all(NOISE_TAGS):
        node.decompose()
    root = soup.find("main") or soup.find("article") or soup.body or soup
    return clean_text(root.get_text("\n"))


def dedupe_pages(pages: Iterable[ScrapedPage]) -> List[ScrapedPage]:
    """Collapse pages with identical cleaned text; drop successful pages with no text."""

    unique: List[ScrapedPage] = []
    seen_text: Set[str] = set()
    seen_errors: Set[str] = set()
    for page in pages:
        if page.error:
            if page.source_url not in seen_errors:
                seen_errors.add(page.source_url)
                unique.append(page)
            continue
        if not page.cleaned_text or page.cleaned_text in seen_text:
            continue
        seen_text.add(page.cleaned_text)
        unique.append(page)
    return unique


def _decode(body: bytes, encoding: Optional[str]) -> str:
    try:
        return body.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        return body.decode("utf-8", errors="replace")


def _merge_links(*groups: Sequence[MenuLink]) -> Tuple[MenuLink, ...]:
    merged: List[MenuLink] = []
    seen: Set[str] = set()
    for group in groups:
        for link in group:
            if link.href not in seen:
                seen.add(link.href)
                merged.append(link)
    return tuple(merged)


class MenuScraper:
    """Find a restaurant's menu pages from its homepage and return their text.

    Each ``scrape_restaurant`` call opens its own session from
    ``session_factory`` and closes it when the scrape ends.
    """

    def __init__(
        self,
        *,
        session_factory: Callable[[], requests.Session] = requests.Session,
        timeout: float = REQUEST_TIMEOUT,
        max_pages: int = MAX_MENU_PAGES,
        max_concurrency: int = MAX_CONCURRENCY,
    ) -> None:
        self.session_factory = session_factory
        self.timeout = timeout
        self.max_pages = max_pages
        self.max_concurrency = max_concurrency

    def fetch_html(self, session: requests.Session, url: str) -> Tuple[str, str]:
        """Fetch a URL and return ``(final_url, html)``; raise ``FetchError`` otherwise.

        ``timeout`` bounds the whole fetch, body included.
        """

        deadline = time.monotonic() + self.timeout
        try:
            response = session.get(
                url,
                headers=BROWSER_HEADERS,
                timeout=self.timeout,
                allow_redirects=True,
                stream=True,
            )
        except requests.Timeout as exc:
            raise FetchTimeoutError(url, f"Timed out after {self.timeout}s") from exc
        except requests.RequestException as exc:
            raise FetchError(url, str(exc) or exc.__class__.__name__) from exc

        with closing(response):
            if not 200 <= response.status_code < 300:
                raise FetchError(url, f"HTTP {response.status_code}")

            content_type = (response.headers.get("Content-Type") or "").lower()
            if content_type and "html" not in content_type and "text" not in content_type:
                raise FetchError(url, f"Unsupported content-type {content_type}")

            chunks: List[bytes] = []
            try:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if time.monotonic() > deadline:
                        raise FetchTimeoutError(url, f"Timed out after {self.timeout}s")
                    chunks.append(chunk)
            except requests.Timeout as exc:
                raise FetchTimeoutError(url, f"Timed out after {self.timeout}s") from exc
            except requests.RequestException as exc:
                raise FetchError(url, str(exc) or exc.__class__.__name__) from exc

            return response.url or url, _decode(b"".join(chunks), response.encoding)

    def scrape_page(self, session: requests.Session, url: str) -> ScrapedPage:
        """Fetch one menu page; failures come back as an errored page."""

        try:
            final_url, html = self.fetch_html(session, url)
        except FetchError as exc:
            logger.warning("Error scraping %s: %s", url, exc.reason)
            return ScrapedPage(source_url=url, error=exc.reason)

        soup = BeautifulSoup(html, "html.parser")
        pdf_links = tuple(collect_pdf_links(soup, final_url))
        text = extract_text_content(soup)
        logger.debug("Extracted %d characters from %s", len(text), url)
        return ScrapedPage(source_url=url, cleaned_text=text, pdf_links=pdf_links)

    async def scrape_restaurant(
        self,
        homepage_url: str,
        max_pages: Optional[int] = None,
        max_concurrency: Optional[int] = None,
    ) -> ScrapeResult:
        """Discover and fetch menu pages linked from ``homepage_url``.

        Raises ``FetchError`` when the homepage itself cannot be fetched.
        """
        max_pages = self.max_pages if max_pages is None else max_pages
        concurrency = max(1, self.max_concurrency if max_concurrency is None else max_concurrency)

        root_url = sanitize_website(homepage_url)
        if not root_url:
            raise FetchError(homepage_url, "Invalid homepage URL")

        logger.info("Starting scrape for: %s", root_url)
        with closing(self.session_factory()) as session:
            final_url, html = await asyncio.to_thread(self.fetch_html, session, root_url)
            soup = BeautifulSoup(html, "html.parser")
            menu_links = extract_menu_links(soup, final_url)
            homepage_pdfs = collect_pdf_links(soup, final_url)
            logger.info("Found %d menu links on %s", len(menu_links), final_url)

            targets: List[str] = []
            for link in menu_links:
                if is_pdf_url(link.href) or link.href in targets:
                    continue
                targets.append(link.href)
            targets = targets[:max_pages]

            scraped: List[ScrapedPage] = []
            for start in range(0, len(targets), concurrency):
                batch = targets[start : start + concurrency]
                scraped.extend(
                    await asyncio.gather(*(asyncio.to_thread(self.scrape_page, session, url) for url in batch))
                )

        pages = dedupe_pages(scraped)
        pdf_links = _merge_links(homepage_pdfs, *(page.pdf_links for page in pages))
        logger.info(
            "Scraped %d menu pages (%d unique) and %d PDF links for %s",
            len(scraped),
            len(pages),
            len(pdf_links),
            final_url,
        )
        return ScrapeResult(
            homepage_url=final_url,
            menu_links=tuple(menu_links),
            pages=tuple(pages),
            pdf_links=pdf_links,
        )
