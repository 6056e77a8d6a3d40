"""Data models for lookup inputs, partial records and canonical results."""

from mediameta.models.book import BookResult, LookupBookInput, PartialBook
from mediameta.models.common import Confidence, ErrorCode, Meta, Rating
from mediameta.models.movie import LookupMovieInput, MovieResult
from mediameta.models.tv import LookupTVInput, TVResult

__all__ = [
    "BookResult",
    "Confidence",
    "ErrorCode",
    "LookupBookInput",
    "LookupMovieInput",
    "LookupTVInput",
    "Meta",
    "MovieResult",
    "PartialBook",
    "Rating",
    "TVResult",
]
