"""Provider adapters."""

from mediameta.metadata.sources.base import BookSourceAdapter, MetadataSource
from mediameta.metadata.sources.goodreads import GoodreadsSource
from mediameta.metadata.sources.google_books import GoogleBooksSource
from mediameta.metadata.sources.open_library import OpenLibrarySource
from mediameta.metadata.sources.tmdb import TMDBSource

__all__ = [
    "BookSourceAdapter",
    "GoodreadsSource",
    "GoogleBooksSource",
    "MetadataSource",
    "OpenLibrarySource",
    "TMDBSource",
]
