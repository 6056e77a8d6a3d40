"""Book models: lookup input, per-source partial record and merged result."""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from mediameta.models.common import Rating, ResultModel


class BookSource(str, Enum):
    """Known book providers."""

    OPEN_LIBRARY = "open_library"
    GOOGLE_BOOKS = "google_books"
    GOODREADS = "goodreads"
    HARDCOVER = "hardcover"


class BookSeries(BaseModel):
    """Series membership."""

    name: Optional[str] = None
    position: Optional[float] = None
    total_books: Optional[int] = None


class PartialBook(BaseModel):
    """Best-effort book metadata produced by a single source."""

    model_config = ConfigDict(frozen=True)

    source: BookSource
    title: Optional[str] = None
    author: Optional[str] = None
    authors: List[str] = Field(default_factory=list)
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    subjects: List[str] = Field(default_factory=list)
    page_count: Optional[int] = None
    publish_date: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    cover_url: Optional[str] = None
    series: Optional[BookSeries] = None
    rating: Optional[Rating] = None
    identifier: Optional[str] = None
    source_url: Optional[str] = None


class LookupBookInput(BaseModel):
    """Inbound book query."""

    title: str = Field(..., min_length=1, description="Book title to search for")
    author: Optional[str] = Field(default=None, description="Author name")
    isbn: Optional[str] = Field(default=None, description="ISBN-10 or ISBN-13")
    sources: Optional[List[BookSource]] = Field(
        default=None, description="Sources to query (defaults to all available)"
    )


class BookIdentifiers(BaseModel):
    """Per-source identifiers, collected rather than merged."""

    open_library: Optional[str] = None
    goodreads: Optional[str] = None
    google_books: Optional[str] = None
    hardcover: Optional[str] = None


class BookSourceUrls(BaseModel):
    """Per-source landing page URLs."""

    goodreads: Optional[str] = None
    open_library: Optional[str] = None
    google_books: Optional[str] = None


class BookResult(ResultModel):
    """Canonical book record merged from every contributing source."""

    title: str
    author: str
    authors: List[str] = Field(default_factory=list)
    isbn_10: Optional[str] = None
    isbn_13: Optional[str] = None
    genres: List[str] = Field(default_factory=list)
    subjects: List[str] = Field(default_factory=list)
    page_count: Optional[int] = Field(default=None, gt=0)
    publish_date: Optional[str] = None
    publisher: Optional[str] = None
    description: Optional[str] = None
    cover_url: Optional[str] = None
    series: BookSeries = Field(default_factory=BookSeries)
    ratings: Dict[str, Rating] = Field(default_factory=dict)
    identifiers: BookIdentifiers = Field(default_factory=BookIdentifiers)
    source_urls: BookSourceUrls = Field(default_factory=BookSourceUrls)
