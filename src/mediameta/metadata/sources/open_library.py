"""Open Library adapter."""

from typing import Any, Dict, List, Optional

import structlog

from mediameta.metadata.cache import CacheTTL, MetadataCache
from mediameta.metadata.sources.base import BookSourceAdapter, clean_isbn
from mediameta.models.book import BookSource, LookupBookInput, PartialBook
from mediameta.models.common import Rating
from mediameta.utils.matching import author_points, normalize, pick_best, title_points
from mediameta.utils.rate_limiter import RateLimitConfig

logger = structlog.get_logger(__name__)

COVERS_URL = "https://covers.openlibrary.org"
SEARCH_FIELDS = (
    "key,title,author_name,author_key,first_publish_year,isbn,publisher,subject,"
    "number_of_pages_median,cover_i,ratings_average,ratings_count"
)
MAX_SUBJECTS = 20


def _text_value(value: Any) -> Optional[str]:
    """Descriptions come either as plain strings or ``{"value": ...}`` objects."""
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("value")
    return None


class OpenLibrarySource(BookSourceAdapter):
    """Open Library search, ISBN and work lookups."""

    name = BookSource.OPEN_LIBRARY.value
    base_url = "https://openlibrary.org"
    default_rate_limit = RateLimitConfig(requests_per_window=100, window_ms=60_000)

    async def search(self, query: LookupBookInput) -> Optional[PartialBook]:
        result = None
        if query.isbn:
            result = await self.search_by_isbn(query.isbn)
        if result is None:
            result = await self.search_by_title_author(query.title, query.author)
        return result

    async def fetch_details(self, identifier: str) -> Optional[PartialBook]:
        return await self.search_by_isbn(identifier)

    async def search_by_isbn(self, isbn: str) -> Optional[PartialBook]:
        """Look up an edition by ISBN, enriched from its work record."""
        isbn = clean_isbn(isbn)
        cache_key = MetadataCache.make_key(self.name, "isbn", isbn)

        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        try:
            response = await self.client.get(f"/isbn/{isbn}.json")
            if not response.ok or not isinstance(response.data, dict):
                logger.debug("ISBN not found on Open Library", isbn=isbn)
                return None

            result = await self._build_from_edition(response.data, isbn)
            self._cache_set(cache_key, result, CacheTTL.BOOK_METADATA)
            return result

        except Exception as e:
            logger.error("Open Library ISBN lookup failed", isbn=isbn, error=str(e))
            return None

    async def search_by_title_author(
        self, title: str, author: Optional[str] = None
    ) -> Optional[PartialBook]:
        """Search by title/author and keep the best-scoring document."""
        cache_key = MetadataCache.make_key(self.name, "search", title, author)

        if cached := self._cache_get_model(cache_key, PartialBook):
            return cached

        q = f"title:{title}"
        if author:
            q += f" author:{author}"

        try:
            response = await self.client.get(
                "/search.json",
                params={"q": q, "limit": 5, "fields": SEARCH_FIELDS},
            )
            data = response.data if isinstance(response.data, dict) else {}
            if not response.ok or not data.get("numFound"):
                logger.debug("No Open Library search results", title=title, author=author)
                return None

            doc = self._find_best_match(data.get("docs", []), title, author)
            if doc is None:
                return None

            result = self._build_from_search(doc)
            self._cache_set(cache_key, result, CacheTTL.SEARCH_RESULTS)
            return result

        except Exception as e:
            logger.error(
                "Open Library search failed", title=title, author=author, error=str(e)
            )
            return None

    async def get_work_details(self, work_key: str) -> Optional[Dict[str, Any]]:
        """Fetch long-form description and subjects from a work record.

        Returns:
            Dict with ``description`` and ``subjects``, or None on any failure
        """
        cache_key = MetadataCache.make_key(self.name, "work", work_key)

        if (cached := self._cache_get(cache_key)) is not None:
            return cached

        try:
            response = await self.client.get(f"{work_key}.json")
            if not response.ok or not isinstance(response.data, dict):
                return None

            data = response.data
            result = {
                "description": _text_value(data.get("description")),
                "subjects": (data.get("subjects") or [])[:MAX_SUBJECTS],
            }
            self._cache_set(cache_key, result, CacheTTL.BOOK_METADATA)
            return result

        except Exception as e:
            logger.warning("Open Library work fetch failed", work_key=work_key, error=str(e))
            return None

    @staticmethod
    def cover_url(cover_id: Optional[int], size: str = "L") -> Optional[str]:
        if not cover_id:
            return None
        return f"{COVERS_URL}/b/id/{cover_id}-{size}.jpg"

    def source_url(self, key: str) -> str:
        return f"{self.base_url}{key}"

    def _find_best_match(
        self, docs: List[dict], title: str, author: Optional[str]
    ) -> Optional[dict]:
        normalized_title = normalize(title)
        normalized_author = normalize(author) if author else None

        scored = []
        for doc in docs:
            score = title_points(normalized_title, doc.get("title") or "")
            if doc.get("author_name"):
                score += author_points(normalized_author, doc["author_name"])

            # Prefer entries with more data
            if doc.get("isbn"):
                score += 10
            if doc.get("cover_i"):
                score += 5
            if doc.get("number_of_pages_median"):
                score += 5
            if (doc.get("ratings_count") or 0) > 100:
                score += 10

            scored.append((doc, score))

        return pick_best(scored)

    async def _build_from_edition(self, data: dict, isbn: str) -> PartialBook:
        description = None
        subjects: List[str] = []

        works = data.get("works") or []
        work_key = works[0].get("key") if works else None
        if work_key:
            if details := await self.get_work_details(work_key):
                description = details.get("description")
                subjects = details.get("subjects") or []

        if not description:
            description = _text_value(data.get("description"))

        isbn_10 = (data.get("isbn_10") or [None])[0] or (isbn if len(isbn) == 10 else None)
        isbn_13 = (data.get("isbn_13") or [None])[0] or (isbn if len(isbn) == 13 else None)
        covers = data.get("covers") or []

        return PartialBook(
            source=BookSource.OPEN_LIBRARY,
            title=data.get("title"),
            isbn_10=isbn_10,
            isbn_13=isbn_13,
            publisher=(data.get("publishers") or [None])[0],
            publish_date=data.get("publish_date"),
            page_count=data.get("number_of_pages"),
            cover_url=self.cover_url(covers[0] if covers else None),
            description=description,
            subjects=subjects,
            identifier=work_key.replace("/works/", "") if work_key else None,
            source_url=self.source_url(work_key) if work_key else None,
        )

    def _build_from_search(self, doc: dict) -> PartialBook:
        isbns = doc.get("isbn") or []
        authors = doc.get("author_name") or []
        rating = None
        if doc.get("ratings_average") and doc.get("ratings_count"):
            rating = Rating(score=doc["ratings_average"], count=doc["ratings_count"])
        first_year = doc.get("first_publish_year")

        return PartialBook(
            source=BookSource.OPEN_LIBRARY,
            title=doc.get("title"),
            author=authors[0] if authors else None,
            authors=authors,
            isbn_10=next((i for i in isbns if len(i) == 10), None),
            isbn_13=next((i for i in isbns if len(i) == 13), None),
            publisher=(doc.get("publisher") or [None])[0],
            publish_date=str(first_year) if first_year else None,
            page_count=doc.get("number_of_pages_median"),
            cover_url=self.cover_url(doc.get("cover_i")),
            subjects=(doc.get("subject") or [])[:MAX_SUBJECTS],
            rating=rating,
            identifier=doc["key"].replace("/works/", ""),
            source_url=self.source_url(doc["key"]),
        )
