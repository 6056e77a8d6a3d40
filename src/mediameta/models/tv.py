"""TV show models."""

from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from mediameta.models.common import ResultModel
from mediameta.models.movie import ScreenRatings

TVStatus = Literal["Returning Series", "Ended", "Canceled", "In Production", "Planned"]


class LookupTVInput(BaseModel):
    """Inbound TV show query."""

    title: str = Field(..., min_length=1, description="TV show title to search for")
    year: Optional[int] = Field(default=None, ge=1900, le=2100, description="First air year")
    tmdb_id: Optional[int] = Field(default=None, gt=0, description="TMDB ID if known")
    include_seasons: bool = Field(default=True, description="Include season information")
    include_episodes: bool = Field(default=False, description="Include episode details")
    include_specials: bool = Field(default=False, description="Include season 0 (specials)")


class Episode(BaseModel):
    episode_number: int = Field(..., ge=0)
    name: str = ""
    air_date: Optional[str] = None
    runtime: Optional[int] = None
    description: str = ""


class Season(BaseModel):
    season_number: int = Field(..., ge=0)
    name: str = ""
    episode_count: int = Field(default=0, ge=0)
    air_date: Optional[str] = None
    episodes: Optional[List[Episode]] = None


class TVIdentifiers(BaseModel):
    tmdb: int
    imdb: Optional[str] = None
    tvdb: Optional[int] = None


class TVResult(ResultModel):
    """Canonical TV show record."""

    title: str
    original_title: str
    first_air_date: Optional[str] = None
    last_air_date: Optional[str] = None
    status: TVStatus = "Ended"
    genres: List[str] = Field(default_factory=list)
    description: str = ""
    tagline: Optional[str] = None
    poster_url: Optional[str] = None
    backdrop_url: Optional[str] = None
    created_by: List[str] = Field(default_factory=list)
    networks: List[str] = Field(default_factory=list)
    episode_runtime: Optional[int] = None
    total_seasons: int = Field(default=0, ge=0)
    total_episodes: int = Field(default=0, ge=0)
    seasons: List[Season] = Field(default_factory=list)
    ratings: ScreenRatings = Field(default_factory=ScreenRatings)
    identifiers: TVIdentifiers
