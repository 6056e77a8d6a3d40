"""Batch lookup input and output models."""

from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field

from mediameta.models.book import BookResult
from mediameta.models.movie import MovieResult
from mediameta.models.tv import TVResult

MAX_BATCH_ITEMS = 50
MAX_CONCURRENCY = 10
DEFAULT_CONCURRENCY = 3


class BatchBookItem(BaseModel):
    type: Literal["book"] = "book"
    title: str = Field(..., min_length=1)
    author: Optional[str] = None
    isbn: Optional[str] = None


class BatchMovieItem(BaseModel):
    type: Literal["movie"] = "movie"
    title: str = Field(..., min_length=1)
    year: Optional[int] = None
    tmdb_id: Optional[int] = None


class BatchTVItem(BaseModel):
    type: Literal["tv"] = "tv"
    title: str = Field(..., min_length=1)
    year: Optional[int] = None
    tmdb_id: Optional[int] = None


BatchItem = Annotated[
    Union[BatchBookItem, BatchMovieItem, BatchTVItem],
    Field(discriminator="type"),
]


class BatchLookupInput(BaseModel):
    """A list of lookups processed in bounded-concurrency waves."""

    items: List[BatchItem] = Field(..., min_length=1, max_length=MAX_BATCH_ITEMS)
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1, le=MAX_CONCURRENCY)


class BatchItemError(BaseModel):
    code: str
    message: str


class BatchItemResult(BaseModel):
    """Outcome for one batch item, tagged with its input index."""

    index: int
    type: Literal["book", "movie", "tv"]
    success: bool
    result: Optional[Union[BookResult, MovieResult, TVResult]] = None
    error: Optional[BatchItemError] = None


class BatchMeta(BaseModel):
    duration_ms: int
    concurrency: int


class BatchLookupOutput(BaseModel):
    total: int
    successful: int
    failed: int
    results: List[BatchItemResult]
    meta: BatchMeta = Field(..., alias="_meta")

    model_config = {"populate_by_name": True}

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
