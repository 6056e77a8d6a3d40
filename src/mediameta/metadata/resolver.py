"""Metadata resolver that orchestrates lookups across sources."""

import asyncio
import time
from typing import Any, Dict, List, Mapping, Optional, Sequence, Type, TypeVar, Union

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from mediameta.config import Config
from mediameta.errors import AuthError, LookupValidationError, NotFoundError, SourceError
from mediameta.metadata.cache import MetadataCache
from mediameta.metadata.merge import merge_book_results
from mediameta.metadata.sources.base import BookSourceAdapter
from mediameta.metadata.sources.goodreads import GoodreadsSource
from mediameta.metadata.sources.google_books import GoogleBooksSource
from mediameta.metadata.sources.open_library import OpenLibrarySource
from mediameta.metadata.sources.tmdb import TMDBSource
from mediameta.models.book import BookResult, BookSeries, LookupBookInput, PartialBook
from mediameta.models.movie import LookupMovieInput, MovieResult
from mediameta.models.tv import LookupTVInput, TVResult
from mediameta.utils.matching import extract_series_from_title
from mediameta.utils.rate_limiter import RateLimitConfig, RateLimiter

logger = structlog.get_logger(__name__)

Q = TypeVar("Q", bound=BaseModel)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def validate_query(model: Type[Q], query: Union[Q, Mapping[str, Any]]) -> Q:
    """Coerce a raw query into its input model.

    Raises:
        LookupValidationError: If the query does not satisfy the model
    """
    if isinstance(query, model):
        return query
    try:
        return model.model_validate(query)
    except ValidationError as e:
        raise LookupValidationError(f"Invalid {model.__name__}: {e}") from e


def with_title_series(record: PartialBook, fallback_title: str) -> PartialBook:
    """Fill in series info parsed from the title when the source gave none."""
    if record.series and record.series.name:
        return record

    info = extract_series_from_title(record.title or fallback_title)
    if not info["series_name"] and info["series_position"] is None:
        return record

    return record.model_copy(
        update={
            "series": BookSeries(name=info["series_name"], position=info["series_position"]),
            "title": info["clean_title"],
        }
    )


class MetadataResolver:
    """Orchestrates metadata resolution from multiple sources.

    Book lookups fan out to every enabled book source and merge the partial
    records. Movie and TV lookups go to TMDB alone.
    """

    def __init__(
        self,
        book_sources: Sequence[BookSourceAdapter],
        tmdb: Optional[TMDBSource] = None,
        cache: Optional[MetadataCache] = None,
    ):
        """Initialize metadata resolver.

        Args:
            book_sources: Book adapters, in the order they are queried
            tmdb: TMDB adapter (None if TMDB is unavailable)
            cache: Shared cache, kept for maintenance operations
        """
        self.book_sources: Dict[str, BookSourceAdapter] = {s.name: s for s in book_sources}
        self.tmdb = tmdb
        self.cache = cache
        logger.info(
            "Initialized metadata resolver",
            book_sources=list(self.book_sources),
            tmdb_enabled=tmdb is not None,
        )

    @classmethod
    def from_config(
        cls,
        config: Config,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MetadataResolver":
        """Build the resolver and its adapters around one shared cache and limiter."""
        cache = MetadataCache(
            config.cache.path,
            default_ttl_hours=config.cache.default_ttl_hours,
            enabled=config.cache.enabled,
        )
        rate_limiter = RateLimiter()

        def limit(source: str) -> Optional[RateLimitConfig]:
            settings = config.rate_limits.get(source)
            if settings is None:
                return None
            return RateLimitConfig(settings.requests_per_window, settings.window_ms)

        common = {"http_config": config.http, "transport": transport}
        book_sources: List[BookSourceAdapter] = []
        if config.open_library.enabled:
            book_sources.append(
                OpenLibrarySource(
                    cache, rate_limiter, rate_limit=limit("open_library"), **common
                )
            )
        if config.google_books.enabled:
            book_sources.append(
                GoogleBooksSource(
                    cache,
                    rate_limiter,
                    api_key=config.google_books.api_key,
                    rate_limit=limit("google_books"),
                    **common,
                )
            )
        book_sources.append(
            GoodreadsSource(
                cache,
                rate_limiter,
                config=config.goodreads,
                rate_limit=limit("goodreads"),
                **common,
            )
        )

        tmdb = None
        if config.tmdb.available:
            tmdb = TMDBSource(
                config.tmdb.api_key, cache, rate_limiter, rate_limit=limit("tmdb"), **common
            )

        return cls(book_sources, tmdb=tmdb, cache=cache)

    async def close(self):
        """Close every adapter's HTTP client."""
        for source in self.book_sources.values():
            await source.close()
        if self.tmdb is not None:
            await self.tmdb.close()

    async def __aenter__(self) -> "MetadataResolver":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def lookup(self, media_type: str, query: Mapping[str, Any]):
        """Dispatch a raw query by media type."""
        if media_type == "book":
            return await self.lookup_book(query)
        if media_type == "movie":
            return await self.lookup_movie(query)
        if media_type == "tv":
            return await self.lookup_tv(query)
        raise LookupValidationError(f"Unknown media type: {media_type}")

    # Books

    def _requested_sources(self, query: LookupBookInput) -> List[BookSourceAdapter]:
        if query.sources is None:
            requested = list(self.book_sources)
        else:
            requested = [s.value for s in query.sources]
        return [
            source
            for name, source in self.book_sources.items()
            if name in requested and source.enabled
        ]

    async def _search_source(
        self, source: BookSourceAdapter, query: LookupBookInput
    ) -> Optional[PartialBook]:
        try:
            return await source.search(query)
        except Exception as e:
            logger.error("Book source failed", source=source.name, error=str(e))
            return None

    async def lookup_book(self, query: Union[LookupBookInput, Mapping[str, Any]]) -> BookResult:
        """Resolve a book across every requested source and merge the answers.

        Raises:
            LookupValidationError: Malformed query
            NotFoundError: No source produced a match
        """
        query = validate_query(LookupBookInput, query)
        start = time.monotonic()
        logger.info("Book lookup started", title=query.title, author=query.author, isbn=query.isbn)

        sources = self._requested_sources(query)
        outcomes = await asyncio.gather(*(self._search_source(s, query) for s in sources))

        sources_queried = [s.name for s in sources]
        sources_failed: List[str] = []
        records: List[PartialBook] = []
        for source, record in zip(sources, outcomes):
            if record is None:
                sources_failed.append(source.name)
            else:
                records.append(with_title_series(record, query.title))

        if not records:
            logger.warning(
                "Book not found",
                title=query.title,
                author=query.author,
                sources_queried=sources_queried,
                duration_ms=_elapsed_ms(start),
            )
            by = f" by {query.author}" if query.author else ""
            raise NotFoundError(f'No book found matching "{query.title}"{by}')

        result = merge_book_results(records, sources_queried, sources_failed)
        logger.info(
            "Book lookup complete",
            title=result.title,
            author=result.author,
            sources_succeeded=len(records),
            sources_failed=sources_failed,
            confidence=result.meta.confidence.value,
            duration_ms=_elapsed_ms(start),
        )
        return result

    # Screen media

    def _require_tmdb(self) -> TMDBSource:
        if self.tmdb is None:
            raise AuthError("TMDB API key required for movie/TV lookups", source="tmdb")
        return self.tmdb

    async def lookup_movie(
        self, query: Union[LookupMovieInput, Mapping[str, Any]]
    ) -> MovieResult:
        """Resolve a movie by TMDB ID, or by title search when no ID is given.

        Raises:
            LookupValidationError: Malformed query
            AuthError: TMDB is not configured
            NotFoundError: Search found no acceptable match
            SourceError: Details could not be fetched
        """
        query = validate_query(LookupMovieInput, query)
        tmdb = self._require_tmdb()
        start = time.monotonic()
        logger.info("Movie lookup started", title=query.title, year=query.year)

        tmdb_id = query.tmdb_id or await tmdb.search_movie(query.title, query.year)
        if not tmdb_id:
            year = f" ({query.year})" if query.year else ""
            raise NotFoundError(f'No movie found matching "{query.title}"{year}', source="tmdb")

        result = await tmdb.get_movie_details(tmdb_id)
        if result is None:
            raise SourceError(f"Failed to fetch movie details for TMDB ID {tmdb_id}", source="tmdb")

        logger.info(
            "Movie lookup complete",
            title=result.title,
            tmdb_id=tmdb_id,
            cached=result.meta.cached,
            duration_ms=_elapsed_ms(start),
        )
        return result

    async def lookup_tv(self, query: Union[LookupTVInput, Mapping[str, Any]]) -> TVResult:
        """Resolve a TV show by TMDB ID or title search.

        Raises:
            LookupValidationError: Malformed query
            AuthError: TMDB is not configured
            NotFoundError: Search found no acceptable match
            SourceError: Details could not be fetched
        """
        query = validate_query(LookupTVInput, query)
        tmdb = self._require_tmdb()
        start = time.monotonic()
        logger.info("TV lookup started", title=query.title, year=query.year)

        tmdb_id = query.tmdb_id or await tmdb.search_tv(query.title, query.year)
        if not tmdb_id:
            year = f" ({query.year})" if query.year else ""
            raise NotFoundError(f'No TV show found matching "{query.title}"{year}', source="tmdb")

        result = await tmdb.get_tv_details(
            tmdb_id,
            include_seasons=query.include_seasons,
            include_episodes=query.include_episodes,
            include_specials=query.include_specials,
        )
        if result is None:
            raise SourceError(
                f"Failed to fetch TV show details for TMDB ID {tmdb_id}", source="tmdb"
            )

        logger.info(
            "TV lookup complete",
            title=result.title,
            tmdb_id=tmdb_id,
            cached=result.meta.cached,
            duration_ms=_elapsed_ms(start),
        )
        return result
