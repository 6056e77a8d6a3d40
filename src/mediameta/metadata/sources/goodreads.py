"""Goodreads adapter (HTML scraping).

Goodreads has no public API, so pages are scraped. The markup has changed
several times; every field is read with a primary selector and an alternate
one before the field is given up on. Each page fetch is preceded by a
randomized courtesy delay on top of the shared rate limit.
"""

import re
from typing import List, Optional

import httpx
import structlog
from bs4 import BeautifulSoup

from mediameta.config import GoodreadsConfig, HTTPConfig
from mediameta.metadata.cache import CacheTTL, MetadataCache
from mediameta.metadata.http import random_user_agent
from mediameta.metadata.sources.base import BookSourceAdapter
from mediameta.models.book import BookSeries, BookSource, LookupBookInput, PartialBook
from mediameta.models.common import Rating
from mediameta.utils.rate_limiter import RateLimitConfig, RateLimiter, courtesy_delay

logger = structlog.get_logger(__name__)

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
}

_BOOK_ID = re.compile(r"/book/show/(\d+)")
_SERIES_ID = re.compile(r"/series/(\d+)")
_SERIES_TEXT = re.compile(r"^(.+?)\s*(?:#|Book\s*)(\d+(?:\.\d+)?)?$", re.IGNORECASE)
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_RATINGS_COUNT = re.compile(r"[\d,]+\s*ratings")


def _digits(text: Optional[str]) -> Optional[int]:
    if not text:
        return None
    digits = re.sub(r"[^\d]", "", text)
    return int(digits) if digits else None


def _select_element(soup: BeautifulSoup, *selectors: str):
    """First element among the selectors that has non-empty text."""
    for selector in selectors:
        element = soup.select_one(selector)
        if element is not None and element.get_text(strip=True):
            return element
    return None


def _select_text(soup: BeautifulSoup, *selectors: str) -> str:
    """Stripped text of the first selector that yields non-empty text."""
    element = _select_element(soup, *selectors)
    return element.get_text(strip=True) if element is not None else ""


def _select_attr(soup: BeautifulSoup, *pairs: tuple) -> Optional[str]:
    """First non-empty attribute among ``(selector, attribute)`` pairs."""
    for selector, attr in pairs:
        element = soup.select_one(selector)
        if element is not None and element.get(attr):
            return element.get(attr)
    return None


class GoodreadsSource(BookSourceAdapter):
    """Goodreads ratings, genres and series scraping."""

    name = BookSource.GOODREADS.value
    base_url = "https://www.goodreads.com"
    default_rate_limit = RateLimitConfig(requests_per_window=20, window_ms=60_000)

    def __init__(
        self,
        cache: MetadataCache,
        rate_limiter: RateLimiter,
        config: Optional[GoodreadsConfig] = None,
        rate_limit: Optional[RateLimitConfig] = None,
        http_config: Optional[HTTPConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or GoodreadsConfig()
        super().__init__(
            cache,
            rate_limiter,
            rate_limit=rate_limit,
            http_config=http_config,
            headers={"User-Agent": random_user_agent(), **HTML_HEADERS},
            transport=transport,
        )

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    async def _fetch_page(self, path: str, params: Optional[dict] = None):
        await courtesy_delay(self.config.delay_ms, self.config.delay_ms * 1.5)
        return await self.client.get(
            path, params=params, headers={"User-Agent": random_user_agent()}
        )

    async def search(self, query: LookupBookInput) -> Optional[PartialBook]:
        return await self.search_book(query.title, query.author)

    async def fetch_details(self, identifier: str) -> Optional[PartialBook]:
        return await self.get_book_details(identifier)

    async def search_book(self, title: str, author: Optional[str] = None) -> Optional[PartialBook]:
        """Find the first search hit and scrape its book page."""
        if not self.enabled:
            return None

        cache_key = MetadataCache.make_key(self.name, "search", title, author)
        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        try:
            response = await self._fetch_page(
                "/search",
                params={"q": f"{title} {author}" if author else title, "search_type": "books"},
            )
            if not response.ok or not isinstance(response.data, str):
                logger.warning(
                    "Goodreads search failed", status=response.status, title=title, author=author
                )
                return None

            book_id = self._first_result_id(response.data)
            if book_id is None:
                logger.debug("No Goodreads search results", title=title, author=author)
                return None

            result = await self.get_book_details(book_id)
            if result is not None:
                self._cache_set(cache_key, result, CacheTTL.RATINGS)
            return result

        except Exception as e:
            logger.error("Goodreads search error", title=title, author=author, error=str(e))
            return None

    async def get_book_details(self, book_id: str) -> Optional[PartialBook]:
        """Scrape a book page for rating, genres, series, pages, description and cover."""
        if not self.enabled:
            return None

        cache_key = MetadataCache.make_key(self.name, "book", book_id)
        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        try:
            response = await self._fetch_page(f"/book/show/{book_id}")
            if not response.ok or not isinstance(response.data, str):
                return None

            result = self.parse_book_page(response.data, book_id)
            self._cache_set(cache_key, result, CacheTTL.RATINGS)
            return result

        except Exception as e:
            logger.error("Goodreads book page error", book_id=book_id, error=str(e))
            return None

    async def get_series_info(self, series_id: str) -> Optional[BookSeries]:
        """Series name and book count from a series page."""
        if not self.enabled:
            return None

        cache_key = MetadataCache.make_key(self.name, "series", series_id)
        if cached := self._cache_get_model(cache_key, BookSeries):
            return cached

        try:
            response = await self._fetch_page(f"/series/{series_id}")
            if not response.ok or not isinstance(response.data, str):
                return None

            soup = BeautifulSoup(response.data, "html.parser")
            name = _select_text(soup, "h1.seriesTitle", ".responsiveSeriesHeader__title")
            book_count = len(soup.select(".listWithDividers__item")) or len(
                soup.select(".responsiveBook")
            )

            result = BookSeries(name=name or None, total_books=book_count or None)
            self._cache_set(cache_key, result, CacheTTL.SERIES_INFO)
            return result

        except Exception as e:
            logger.error("Goodreads series page error", series_id=series_id, error=str(e))
            return None

    @staticmethod
    def _first_result_id(html: str) -> Optional[str]:
        soup = BeautifulSoup(html, "html.parser")
        row = soup.select_one('tr[itemtype="http://schema.org/Book"]') or soup.select_one(
            ".tableList tr"
        )
        if row is None:
            return None

        link = row.select_one("a.bookTitle") or row.select_one(".bookTitle a")
        href = link.get("href") if link is not None else None
        if not href:
            return None

        match = _BOOK_ID.search(href)
        return match.group(1) if match else None

    def parse_book_page(self, html: str, book_id: str) -> PartialBook:
        """Build a partial record from a book page; missing fields stay empty."""
        soup = BeautifulSoup(html, "html.parser")

        rating_text = _select_text(soup, '[itemprop="ratingValue"]', ".RatingStatistics__rating")
        rating_match = _NUMBER.search(rating_text)
        score = float(rating_match.group(0)) if rating_match else None

        count_text = _select_attr(soup, ('[itemprop="ratingCount"]', "content"))
        if not count_text:
            meta = _select_text(soup, ".RatingStatistics__meta")
            count_match = _RATINGS_COUNT.search(meta)
            count_text = count_match.group(0) if count_match else None
        count = _digits(count_text)

        pages = _digits(
            _select_text(soup, '[itemprop="numberOfPages"]', '[data-testid="pagesFormat"]')
        )
        description = _select_text(
            soup,
            '[data-testid="description"] .Formatted',
            ".DetailsLayoutRightParagraph__widthConstrained",
            '[itemprop="description"]',
        )
        cover_url = _select_attr(
            soup, (".BookCover__image img", "src"), ('[itemprop="image"]', "content")
        )

        return PartialBook(
            source=BookSource.GOODREADS,
            title=_select_text(soup, '[data-testid="bookTitle"]', "h1#bookTitle") or None,
            rating=Rating(score=score, count=count) if score and count else None,
            genres=self._genres(soup),
            series=self._series(soup),
            page_count=pages or None,
            description=description or None,
            cover_url=cover_url,
            identifier=book_id,
            source_url=f"{self.base_url}/book/show/{book_id}",
        )

    @staticmethod
    def _genres(soup: BeautifulSoup) -> List[str]:
        elements = soup.select(".BookPageMetadataSection__genres .Button__labelItem") or soup.select(
            ".actionLinkLite.bookPageGenreLink"
        )
        genres: List[str] = []
        for element in elements:
            genre = element.get_text(strip=True)
            if genre and genre not in genres:
                genres.append(genre)
        return genres

    @staticmethod
    def _series(soup: BeautifulSoup) -> Optional[BookSeries]:
        """Parse series text like "The Kingkiller Chronicle #1".

        Older pages wrap it in parentheses: "(The Kingkiller Chronicle Book 2)".
        """
        link = _select_element(soup, 'h3.Text__title3 a[href*="/series/"]', "#bookSeries a")
        if link is None:
            return None

        text = link.get_text(strip=True).strip("() ")
        match = _SERIES_TEXT.match(text)
        if match:
            position = float(match.group(2)) if match.group(2) else None
            return BookSeries(name=match.group(1).strip(), position=position)
        return BookSeries(name=text or None)

    @staticmethod
    def series_id(href: str) -> Optional[str]:
        match = _SERIES_ID.search(href)
        return match.group(1) if match else None
