"""Movie models."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from mediameta.models.common import ImdbRating, Rating, ResultModel


class LookupMovieInput(BaseModel):
    """Inbound movie query."""

    title: str = Field(..., min_length=1, description="Movie title to search for")
    year: Optional[int] = Field(default=None, ge=1800, le=2100, description="Release year")
    tmdb_id: Optional[int] = Field(default=None, gt=0, description="TMDB ID if known")


class CastMember(BaseModel):
    """Billed cast member."""

    name: str
    character: str = ""


class MovieCollection(BaseModel):
    """Collection membership, e.g. a trilogy."""

    name: Optional[str] = None
    position: Optional[int] = None
    total_films: Optional[int] = None


class WatchProviders(BaseModel):
    """Provider names available in one region."""

    stream: Optional[List[str]] = None
    rent: Optional[List[str]] = None
    buy: Optional[List[str]] = None


class ScreenRatings(BaseModel):
    """TMDB rating plus IMDb reference."""

    tmdb: Optional[Rating] = None
    imdb: Optional[ImdbRating] = None


class MovieIdentifiers(BaseModel):
    tmdb: int
    imdb: Optional[str] = None


class MovieResult(ResultModel):
    """Canonical movie record."""

    title: str
    original_title: str
    year: Optional[int] = None
    release_date: Optional[str] = None
    runtime_minutes: int = Field(default=0, ge=0)
    genres: List[str] = Field(default_factory=list)
    description: str = ""
    tagline: Optional[str] = None
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    director: Optional[str] = None
    directors: List[str] = Field(default_factory=list)
    cast: List[CastMember] = Field(default_factory=list)
    collection: MovieCollection = Field(default_factory=MovieCollection)
    ratings: ScreenRatings = Field(default_factory=ScreenRatings)
    watch_providers: Dict[str, WatchProviders] = Field(default_factory=dict)
    identifiers: MovieIdentifiers
