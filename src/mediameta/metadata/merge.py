"""Merge partial book records from several sources into one canonical record."""

from typing import Any, Dict, Iterable, List, Optional, Sequence

import structlog

from mediameta.models.book import (
    BookIdentifiers,
    BookResult,
    BookSeries,
    BookSource,
    BookSourceUrls,
    PartialBook,
)
from mediameta.models.common import Confidence, Meta, Rating

logger = structlog.get_logger(__name__)

# Higher wins; sources not listed rank 0
SOURCE_PRIORITY: Dict[str, int] = {
    BookSource.GOODREADS.value: 4,
    BookSource.OPEN_LIBRARY.value: 3,
    BookSource.GOOGLE_BOOKS.value: 2,
    BookSource.HARDCOVER.value: 1,
}

# Per-field preference; sources not listed fall back to input order
FIELD_SOURCE_PREFERENCE: Dict[str, List[str]] = {
    "rating": ["goodreads", "open_library", "google_books"],
    "genres": ["goodreads", "google_books", "open_library"],
    "series": ["goodreads", "hardcover", "open_library"],
    "description": ["google_books", "open_library", "goodreads"],
    "cover_url": ["open_library", "google_books", "goodreads"],
    "page_count": ["open_library", "google_books", "goodreads"],
    "isbn_10": ["open_library", "google_books"],
    "isbn_13": ["open_library", "google_books"],
}

DESCRIPTION_PREFERRED_SOURCE = "google_books"
DESCRIPTION_MIN_LENGTH = 100
COVER_FALLBACK_ORDER = ["open_library", "google_books"]
SERIES_PREFERRED_SOURCE = "goodreads"
RATED_SOURCES = ("goodreads", "open_library", "google_books")

# Confidence points
SOURCE_SUCCESS_POINTS = 15
SOURCE_FAILURE_PENALTY = 10
FIELD_POINTS = {
    "title": 10,
    "author": 10,
    "isbn": 15,
    "cover_url": 5,
    "description": 10,
    "page_count": 5,
    "genres": 5,
    "series": 10,
    "ratings": 10,
}
CORROBORATION_POINTS = 10
HIGH_CONFIDENCE = 70
MEDIUM_CONFIDENCE = 40


def _source(record: PartialBook) -> str:
    return record.source.value if isinstance(record.source, BookSource) else str(record.source)


def _find(records: Sequence[PartialBook], source: str) -> Optional[PartialBook]:
    return next((r for r in records if _source(r) == source), None)


def select_best_value(records: Sequence[PartialBook], field: str, default: Any = None) -> Any:
    """First non-null value by field preference, then by input order, else ``default``."""
    for source in FIELD_SOURCE_PREFERENCE.get(field, []):
        record = _find(records, source)
        if record is not None and getattr(record, field) is not None:
            return getattr(record, field)

    for record in records:
        if getattr(record, field) is not None:
            return getattr(record, field)

    return default


def merge_lists(lists: Iterable[Iterable[str]]) -> List[str]:
    """Case-insensitive union preserving first-seen order and spelling."""
    seen = set()
    merged = []
    for items in lists:
        for item in items:
            key = item.lower().strip()
            if key not in seen:
                seen.add(key)
                merged.append(item)
    return merged


def select_description(records: Sequence[PartialBook]) -> Optional[str]:
    preferred = _find(records, DESCRIPTION_PREFERRED_SOURCE)
    if preferred and preferred.description and len(preferred.description) > DESCRIPTION_MIN_LENGTH:
        return preferred.description

    best = None
    for record in records:
        if record.description and len(record.description) > len(best or ""):
            best = record.description
    return best


def select_cover(records: Sequence[PartialBook]) -> Optional[str]:
    for source in COVER_FALLBACK_ORDER:
        record = _find(records, source)
        if record and record.cover_url:
            return record.cover_url
    return next((r.cover_url for r in records if r.cover_url), None)


def merge_series(records: Sequence[PartialBook]) -> BookSeries:
    preferred = _find(records, SERIES_PREFERRED_SOURCE)
    if preferred and preferred.series and preferred.series.name:
        return preferred.series.model_copy()

    for record in records:
        if record.series and record.series.name:
            return record.series.model_copy()

    return BookSeries()


def merge_ratings(records: Sequence[PartialBook]) -> Dict[str, Rating]:
    """Ratings are kept per source, never averaged."""
    return {
        _source(r): r.rating for r in records if r.rating and _source(r) in RATED_SOURCES
    }


def calculate_confidence(result: BookResult, source_count: int, failed_count: int) -> Confidence:
    """Confidence tier from source counts and field completeness."""
    score = source_count * SOURCE_SUCCESS_POINTS - failed_count * SOURCE_FAILURE_PENALTY

    if result.title:
        score += FIELD_POINTS["title"]
    if result.author and result.author != "Unknown":
        score += FIELD_POINTS["author"]
    if result.isbn_10 or result.isbn_13:
        score += FIELD_POINTS["isbn"]
    if result.cover_url:
        score += FIELD_POINTS["cover_url"]
    if result.description:
        score += FIELD_POINTS["description"]
    if result.page_count:
        score += FIELD_POINTS["page_count"]
    if result.genres:
        score += FIELD_POINTS["genres"]
    if result.series.name:
        score += FIELD_POINTS["series"]
    if result.ratings:
        score += FIELD_POINTS["ratings"]

    if source_count >= 2:
        score += CORROBORATION_POINTS
    if source_count >= 3:
        score += CORROBORATION_POINTS

    if score >= HIGH_CONFIDENCE:
        return Confidence.HIGH
    if score >= MEDIUM_CONFIDENCE:
        return Confidence.MEDIUM
    return Confidence.LOW


def merge_book_results(
    records: Sequence[PartialBook],
    sources_queried: Sequence[str],
    sources_failed: Sequence[str],
) -> BookResult:
    """Merge partial records into a canonical book.

    Args:
        records: One partial record per source that produced a match
        sources_queried: Every source the lookup fanned out to
        sources_failed: Sources that errored or found nothing

    Raises:
        ValueError: If ``records`` is empty
    """
    if not records:
        raise ValueError("No results to merge")

    primary = sorted(records, key=lambda r: SOURCE_PRIORITY.get(_source(r), 0), reverse=True)[0]

    result = BookResult(
        title=select_best_value(records, "title", primary.title or ""),
        author=select_best_value(records, "author", primary.author or "Unknown"),
        authors=merge_lists(r.authors for r in records),
        isbn_10=select_best_value(records, "isbn_10"),
        isbn_13=select_best_value(records, "isbn_13"),
        genres=merge_lists(r.genres for r in records),
        subjects=merge_lists(r.subjects for r in records),
        # Zero page counts carry no information
        page_count=select_best_value(records, "page_count") or None,
        publish_date=select_best_value(records, "publish_date"),
        publisher=select_best_value(records, "publisher"),
        description=select_description(records),
        cover_url=select_cover(records),
        series=merge_series(records),
        ratings=merge_ratings(records),
        identifiers=BookIdentifiers(
            **{s.value: getattr(_find(records, s.value), "identifier", None) for s in BookSource}
        ),
        source_urls=BookSourceUrls(
            **{
                name: getattr(_find(records, name), "source_url", None)
                for name in BookSourceUrls.model_fields
            }
        ),
        meta=Meta(
            sources_queried=list(sources_queried),
            sources_failed=list(sources_failed),
            primary_source=_source(primary),
            confidence=Confidence.LOW,
        ),
    )

    confidence = calculate_confidence(result, len(records), len(sources_failed))
    result.meta.confidence = confidence

    logger.debug(
        "Merged book results",
        sources=[_source(r) for r in records],
        primary_source=_source(primary),
        confidence=confidence.value,
    )
    return result
