"""TMDB client for movie and TV show metadata."""

import asyncio
from typing import Dict, List, Optional

import httpx
import structlog

from mediameta.config import HTTPConfig
from mediameta.metadata.cache import CacheTTL, MetadataCache
from mediameta.metadata.sources.base import MetadataSource
from mediameta.models.common import Confidence, ImdbRating, Meta, Rating
from mediameta.models.movie import (
    CastMember,
    MovieCollection,
    MovieIdentifiers,
    MovieResult,
    ScreenRatings,
    WatchProviders,
)
from mediameta.models.tv import Episode, Season, TVIdentifiers, TVResult
from mediameta.utils.matching import (
    normalize,
    parse_year,
    pick_best,
    popularity_points,
    title_points,
    year_points,
)
from mediameta.utils.rate_limiter import RateLimitConfig, RateLimiter

logger = structlog.get_logger(__name__)

IMAGE_BASE_URL = "https://image.tmdb.org/t/p"
MAX_CAST = 10
TV_STATUSES = {"Returning Series", "Ended", "Canceled", "In Production", "Planned"}


def image_url(path: Optional[str], size: str = "original") -> Optional[str]:
    if not path:
        return None
    return f"{IMAGE_BASE_URL}/{size}{path}"


def _tmdb_meta() -> Meta:
    return Meta(
        sources_queried=["tmdb"],
        sources_failed=[],
        primary_source="tmdb",
        confidence=Confidence.HIGH,
    )


def _tmdb_rating(details: dict) -> Optional[Rating]:
    if details.get("vote_average") is None:
        return None
    return Rating(
        score=round(details["vote_average"], 1),
        count=details.get("vote_count") or 0,
    )


class TMDBSource(MetadataSource):
    """TMDB API client with rate limiting and caching.

    TMDB is the single authoritative source for screen media, so this adapter
    builds complete canonical records rather than partial ones.
    """

    name = "tmdb"
    base_url = "https://api.themoviedb.org/3"
    default_rate_limit = RateLimitConfig(requests_per_window=40, window_ms=10_000)

    def __init__(
        self,
        api_key: str,
        cache: MetadataCache,
        rate_limiter: RateLimiter,
        rate_limit: Optional[RateLimitConfig] = None,
        http_config: Optional[HTTPConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize TMDB client.

        Args:
            api_key: TMDB v4 read access token, sent as a bearer token
            cache: Shared cache instance
            rate_limiter: Shared rate limiter instance
        """
        super().__init__(
            cache,
            rate_limiter,
            rate_limit=rate_limit,
            http_config=http_config,
            headers={"Authorization": f"Bearer {api_key}"},
            transport=transport,
        )
        logger.info("Initialized TMDB client")

    # Search

    async def search_movie(self, title: str, year: Optional[int] = None) -> Optional[int]:
        """Search for a movie and return the best match's TMDB ID.

        Args:
            title: Movie title
            year: Optional release year used to rank candidates

        Returns:
            TMDB ID, or None if no candidate clears the match floor
        """
        cache_key = MetadataCache.make_key(self.name, "search-movie", title, year)
        if (cached := self._cache_get(cache_key)) is not None:
            return cached

        try:
            response = await self.client.get(
                "/search/movie",
                params={"query": title, "year": year, "include_adult": "false"},
            )
            results = self._results(response)
            match = self._find_best_match(results, title, year, "title", "release_date")
            if match is None:
                logger.info("No TMDB movie match", title=title, year=year)
                return None

            self._cache_set(cache_key, match["id"], CacheTTL.SEARCH_RESULTS)
            return match["id"]

        except Exception as e:
            logger.error("TMDB movie search failed", title=title, year=year, error=str(e))
            return None

    async def search_tv(self, title: str, year: Optional[int] = None) -> Optional[int]:
        """Search for a TV show and return the best match's TMDB ID."""
        cache_key = MetadataCache.make_key(self.name, "search-tv", title, year)
        if (cached := self._cache_get(cache_key)) is not None:
            return cached

        try:
            response = await self.client.get(
                "/search/tv", params={"query": title, "first_air_date_year": year}
            )
            results = self._results(response)
            match = self._find_best_match(results, title, year, "name", "first_air_date")
            if match is None:
                logger.info("No TMDB TV match", title=title, year=year)
                return None

            self._cache_set(cache_key, match["id"], CacheTTL.SEARCH_RESULTS)
            return match["id"]

        except Exception as e:
            logger.error("TMDB TV search failed", title=title, year=year, error=str(e))
            return None

    # Movies

    async def get_movie_details(self, tmdb_id: int) -> Optional[MovieResult]:
        """Get full movie details: credits, collection and watch providers included.

        Returns:
            MovieResult (``_meta.cached`` set on a cache hit), or None on failure
        """
        cache_key = MetadataCache.make_key(self.name, "movie", tmdb_id)
        if cached := self._cache_get_model(cache_key, MovieResult):
            logger.debug("TMDB cache hit for movie", tmdb_id=tmdb_id)
            return _mark_cached(cached)

        try:
            details_res, credits_res, providers_res = await asyncio.gather(
                self.client.get(
                    f"/movie/{tmdb_id}", params={"append_to_response": "external_ids"}
                ),
                self.client.get(f"/movie/{tmdb_id}/credits"),
                self.client.get(f"/movie/{tmdb_id}/watch/providers"),
            )
            if not details_res.ok or not isinstance(details_res.data, dict):
                logger.warning(
                    "Movie not found on TMDB", tmdb_id=tmdb_id, status=details_res.status
                )
                return None

            details = details_res.data
            credits = credits_res.data if credits_res.ok else {}
            providers = providers_res.data if providers_res.ok else {}

            collection = MovieCollection()
            if details.get("belongs_to_collection"):
                collection = await self.get_collection_position(
                    details["belongs_to_collection"]["id"], tmdb_id
                )

            directors = [
                c["name"] for c in credits.get("crew") or [] if c.get("job") == "Director"
            ]
            cast = [
                CastMember(name=c["name"], character=c.get("character") or "")
                for c in (credits.get("cast") or [])[:MAX_CAST]
            ]
            imdb_id = details.get("imdb_id") or (details.get("external_ids") or {}).get(
                "imdb_id"
            )

            result = MovieResult(
                title=details.get("title") or "",
                original_title=details.get("original_title") or details.get("title") or "",
                year=parse_year(details.get("release_date")),
                release_date=details.get("release_date") or None,
                runtime_minutes=details.get("runtime") or 0,
                genres=[g["name"] for g in details.get("genres") or []],
                description=details.get("overview") or "",
                tagline=details.get("tagline") or None,
                poster_url=image_url(details.get("poster_path"), "w500"),
                backdrop_url=image_url(details.get("backdrop_path"), "w1280"),
                director=directors[0] if directors else None,
                directors=directors,
                cast=cast,
                collection=collection,
                ratings=ScreenRatings(
                    tmdb=_tmdb_rating(details), imdb=ImdbRating(score=None, id=imdb_id)
                ),
                watch_providers=self._watch_providers(providers),
                identifiers=MovieIdentifiers(tmdb=details["id"], imdb=imdb_id),
                meta=_tmdb_meta(),
            )

            logger.info("Fetched movie from TMDB", tmdb_id=tmdb_id, title=result.title)
            self._cache_set(cache_key, result, CacheTTL.MOVIE_TV_METADATA)
            return result

        except Exception as e:
            logger.error("TMDB movie details failed", tmdb_id=tmdb_id, error=str(e))
            return None

    async def get_collection_position(
        self, collection_id: int, movie_id: int
    ) -> MovieCollection:
        """Locate a movie within its collection ordered by release date.

        Undated parts are excluded from both the ordering and the total.
        """
        cache_key = MetadataCache.make_key(self.name, "collection", collection_id)
        collection = self._cache_get(cache_key)

        if collection is None:
            try:
                response = await self.client.get(f"/collection/{collection_id}")
            except Exception as e:
                logger.warning(
                    "TMDB collection fetch failed", collection_id=collection_id, error=str(e)
                )
                return MovieCollection()

            if not response.ok or not isinstance(response.data, dict):
                return MovieCollection()
            collection = response.data
            self._cache_set(cache_key, collection, CacheTTL.MOVIE_TV_METADATA)

        parts = sorted(
            (p for p in collection.get("parts") or [] if p.get("release_date")),
            key=lambda p: p["release_date"],
        )
        position = next((i for i, p in enumerate(parts, 1) if p.get("id") == movie_id), None)

        return MovieCollection(
            name=collection.get("name"),
            position=position,
            total_films=len(parts),
        )

    @staticmethod
    def _watch_providers(providers: dict) -> Dict[str, WatchProviders]:
        """Per-region provider names split into stream/rent/buy."""

        def names(entries: Optional[List[dict]]) -> Optional[List[str]]:
            if entries is None:
                return None
            return [p["provider_name"] for p in entries]

        result = {}
        for region, data in (providers.get("results") or {}).items():
            result[region] = WatchProviders(
                stream=names(data.get("flatrate")),
                rent=names(data.get("rent")),
                buy=names(data.get("buy")),
            )
        return result

    # TV

    async def get_tv_details(
        self,
        tmdb_id: int,
        include_seasons: bool = True,
        include_episodes: bool = False,
        include_specials: bool = False,
    ) -> Optional[TVResult]:
        """Get TV show details with optional season and episode breakdown.

        Still-airing shows are cached with the short episode TTL.
        """
        cache_key = MetadataCache.make_key(
            self.name,
            "tv",
            tmdb_id,
            "seasons" if include_seasons else "no-seasons",
            "episodes" if include_episodes else "no-episodes",
            "specials" if include_specials else "no-specials",
        )
        if cached := self._cache_get_model(cache_key, TVResult):
            logger.debug("TMDB cache hit for TV show", tmdb_id=tmdb_id)
            return _mark_cached(cached)

        try:
            response = await self.client.get(
                f"/tv/{tmdb_id}", params={"append_to_response": "external_ids"}
            )
            if not response.ok or not isinstance(response.data, dict):
                logger.warning("TV show not found on TMDB", tmdb_id=tmdb_id, status=response.status)
                return None

            details = response.data
            seasons: List[Season] = []
            if include_seasons:
                seasons = await self._build_seasons(
                    tmdb_id, details.get("seasons") or [], include_episodes, include_specials
                )

            external_ids = details.get("external_ids") or {}
            status = details.get("status")
            runtimes = details.get("episode_run_time") or []

            result = TVResult(
                title=details.get("name") or "",
                original_title=details.get("original_name") or details.get("name") or "",
                first_air_date=details.get("first_air_date") or None,
                last_air_date=details.get("last_air_date") or None,
                status=status if status in TV_STATUSES else "Ended",
                genres=[g["name"] for g in details.get("genres") or []],
                description=details.get("overview") or "",
                tagline=details.get("tagline") or None,
                poster_url=image_url(details.get("poster_path"), "w500"),
                backdrop_url=image_url(details.get("backdrop_path"), "w1280"),
                created_by=[c["name"] for c in details.get("created_by") or []],
                networks=[n["name"] for n in details.get("networks") or []],
                episode_runtime=runtimes[0] if runtimes else None,
                total_seasons=details.get("number_of_seasons") or 0,
                total_episodes=details.get("number_of_episodes") or 0,
                seasons=seasons,
                ratings=ScreenRatings(
                    tmdb=_tmdb_rating(details),
                    imdb=ImdbRating(score=None, id=external_ids.get("imdb_id")),
                ),
                identifiers=TVIdentifiers(
                    tmdb=details["id"],
                    imdb=external_ids.get("imdb_id"),
                    tvdb=external_ids.get("tvdb_id"),
                ),
                meta=_tmdb_meta(),
            )

            ttl = (
                CacheTTL.TV_EPISODES
                if status == "Returning Series"
                else CacheTTL.MOVIE_TV_METADATA
            )
            logger.info("Fetched TV show from TMDB", tmdb_id=tmdb_id, title=result.title)
            self._cache_set(cache_key, result, ttl)
            return result

        except Exception as e:
            logger.error("TMDB TV details failed", tmdb_id=tmdb_id, error=str(e))
            return None

    async def _build_seasons(
        self,
        tv_id: int,
        basic_seasons: List[dict],
        include_episodes: bool,
        include_specials: bool,
    ) -> List[Season]:
        seasons = []
        for s in basic_seasons:
            number = s.get("season_number", 0)
            if number == 0 and not include_specials:
                continue

            episodes = None
            if include_episodes:
                season_details = await self.get_season_details(tv_id, number)
                if season_details:
                    episodes = [
                        Episode(
                            episode_number=e.get("episode_number", 0),
                            name=e.get("name") or "",
                            air_date=e.get("air_date"),
                            runtime=e.get("runtime"),
                            description=e.get("overview") or "",
                        )
                        for e in season_details.get("episodes") or []
                    ]

            seasons.append(
                Season(
                    season_number=number,
                    name=s.get("name") or "",
                    episode_count=s.get("episode_count") or 0,
                    air_date=s.get("air_date"),
                    episodes=episodes,
                )
            )
        return seasons

    async def get_season_details(self, tv_id: int, season_number: int) -> Optional[dict]:
        """Raw season record with its episode list."""
        cache_key = MetadataCache.make_key(self.name, "season", tv_id, season_number)
        if (cached := self._cache_get(cache_key)) is not None:
            return cached

        try:
            response = await self.client.get(f"/tv/{tv_id}/season/{season_number}")
            if not response.ok or not isinstance(response.data, dict):
                return None

            self._cache_set(cache_key, response.data, CacheTTL.TV_EPISODES)
            return response.data

        except Exception as e:
            logger.warning(
                "TMDB season fetch failed", tv_id=tv_id, season=season_number, error=str(e)
            )
            return None

    # Matching

    @staticmethod
    def _results(response) -> List[dict]:
        if not response.ok or not isinstance(response.data, dict):
            return []
        return response.data.get("results") or []

    @staticmethod
    def _find_best_match(
        results: List[dict],
        title: str,
        year: Optional[int],
        title_field: str,
        date_field: str,
    ) -> Optional[dict]:
        """Rank by title, year proximity and a capped popularity bonus."""
        normalized_title = normalize(title)
        scored = []
        for r in results:
            score = title_points(normalized_title, r.get(title_field) or "", bidirectional=False)
            score += year_points(year, r.get(date_field))
            score += popularity_points(r.get("popularity"))
            scored.append((r, score))
        return pick_best(scored)


def _mark_cached(result):
    return result.model_copy(update={"meta": result.meta.model_copy(update={"cached": True})})
