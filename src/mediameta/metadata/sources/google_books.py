"""Google Books adapter."""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from mediameta.config import HTTPConfig
from mediameta.metadata.cache import CacheTTL, MetadataCache
from mediameta.metadata.sources.base import BookSourceAdapter, clean_isbn
from mediameta.models.book import BookSource, LookupBookInput, PartialBook
from mediameta.models.common import Rating
from mediameta.utils.matching import author_points, normalize, pick_best, title_points
from mediameta.utils.rate_limiter import RateLimitConfig, RateLimiter

logger = structlog.get_logger(__name__)

KEYED_RATE_LIMIT = RateLimitConfig(requests_per_window=100, window_ms=60_000)
ANONYMOUS_RATE_LIMIT = RateLimitConfig(requests_per_window=50, window_ms=60_000)


class GoogleBooksSource(BookSourceAdapter):
    """Google Books volume search and lookups.

    Works without an API key at a lower request budget.
    """

    name = BookSource.GOOGLE_BOOKS.value
    base_url = "https://www.googleapis.com/books/v1"

    def __init__(
        self,
        cache: MetadataCache,
        rate_limiter: RateLimiter,
        api_key: Optional[str] = None,
        rate_limit: Optional[RateLimitConfig] = None,
        http_config: Optional[HTTPConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.default_rate_limit = KEYED_RATE_LIMIT if api_key else ANONYMOUS_RATE_LIMIT
        super().__init__(
            cache,
            rate_limiter,
            rate_limit=rate_limit,
            http_config=http_config,
            transport=transport,
        )

    def _params(self, **params: Any) -> Dict[str, Any]:
        if self.api_key:
            params["key"] = self.api_key
        return params

    async def search(self, query: LookupBookInput) -> Optional[PartialBook]:
        result = None
        if query.isbn:
            result = await self.search_by_isbn(query.isbn)
        if result is None:
            result = await self.search_by_title_author(query.title, query.author)
        return result

    async def fetch_details(self, identifier: str) -> Optional[PartialBook]:
        return await self.get_book_by_id(identifier)

    async def search_by_isbn(self, isbn: str) -> Optional[PartialBook]:
        isbn = clean_isbn(isbn)
        cache_key = MetadataCache.make_key(self.name, "isbn", isbn)

        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        try:
            response = await self.client.get(
                "/volumes", params=self._params(q=f"isbn:{isbn}", maxResults=1)
            )
            items = self._items(response)
            if not items:
                return None

            result = self._build(items[0])
            self._cache_set(cache_key, result, CacheTTL.BOOK_METADATA)
            return result

        except Exception as e:
            logger.error("Google Books ISBN lookup failed", isbn=isbn, error=str(e))
            return None

    async def search_by_title_author(
        self, title: str, author: Optional[str] = None
    ) -> Optional[PartialBook]:
        cache_key = MetadataCache.make_key(self.name, "search", title, author)

        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        q = f"intitle:{title}"
        if author:
            q += f"+inauthor:{author}"

        try:
            response = await self.client.get(
                "/volumes",
                params=self._params(
                    q=q, maxResults=5, orderBy="relevance", printType="books"
                ),
            )
            items = self._items(response)
            if not items:
                return None

            match = self._find_best_match(items, title, author)
            if match is None:
                return None

            result = self._build(match)
            self._cache_set(cache_key, result, CacheTTL.SEARCH_RESULTS)
            return result

        except Exception as e:
            logger.error("Google Books search failed", title=title, author=author, error=str(e))
            return None

    async def get_book_by_id(self, volume_id: str) -> Optional[PartialBook]:
        cache_key = MetadataCache.make_key(self.name, "id", volume_id)

        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        try:
            response = await self.client.get(f"/volumes/{volume_id}", params=self._params())
            if not response.ok or not isinstance(response.data, dict):
                return None

            result = self._build(response.data)
            self._cache_set(cache_key, result, CacheTTL.BOOK_METADATA)
            return result

        except Exception as e:
            logger.error("Google Books volume lookup failed", volume_id=volume_id, error=str(e))
            return None

    @staticmethod
    def _items(response) -> List[dict]:
        if not response.ok or not isinstance(response.data, dict):
            return []
        return response.data.get("items") or []

    @staticmethod
    def _best_cover(image_links: Dict[str, str]) -> Optional[str]:
        """Highest resolution cover offered; thumbnails are bumped to zoom=2."""
        thumbnail = image_links.get("thumbnail")
        return (
            image_links.get("large")
            or image_links.get("medium")
            or (thumbnail.replace("zoom=1", "zoom=2") if thumbnail else None)
        )

    def _build(self, volume: dict) -> PartialBook:
        info = volume.get("volumeInfo") or {}

        isbn_10 = isbn_13 = None
        for ident in info.get("industryIdentifiers") or []:
            if ident.get("type") == "ISBN_10":
                isbn_10 = ident.get("identifier")
            elif ident.get("type") == "ISBN_13":
                isbn_13 = ident.get("identifier")

        title = info.get("title") or ""
        if info.get("subtitle"):
            title = f"{title}: {info['subtitle']}"

        authors = info.get("authors") or []
        categories = info.get("categories") or []
        rating = None
        if info.get("averageRating") and info.get("ratingsCount"):
            rating = Rating(score=info["averageRating"], count=info["ratingsCount"])

        return PartialBook(
            source=BookSource.GOOGLE_BOOKS,
            title=title,
            author=authors[0] if authors else None,
            authors=authors,
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            publisher=info.get("publisher"),
            publish_date=info.get("publishedDate"),
            page_count=info.get("pageCount"),
            description=info.get("description"),
            cover_url=self._best_cover(info.get("imageLinks") or {}),
            genres=categories,
            subjects=categories,
            rating=rating,
            identifier=volume.get("id"),
            source_url=info.get("infoLink")
            or f"https://books.google.com/books?id={volume.get('id')}",
        )

    def _find_best_match(
        self, items: List[dict], title: str, author: Optional[str]
    ) -> Optional[dict]:
        normalized_title = normalize(title)
        normalized_author = normalize(author) if author else None

        scored = []
        for item in items:
            info = item.get("volumeInfo") or {}
            score = title_points(normalized_title, info.get("title") or "")
            if info.get("authors"):
                score += author_points(normalized_author, info["authors"])

            if info.get("industryIdentifiers"):
                score += 10
            if info.get("imageLinks"):
                score += 5
            if info.get("pageCount"):
                score += 5
            if (info.get("ratingsCount") or 0) > 10:
                score += 10

            scored.append((item, score))

        return pick_best(scored)
