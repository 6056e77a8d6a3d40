"""Shared pytest fixtures for media metadata tests."""

from typing import Callable, List

import httpx
import pytest

from mediameta.config import Config, GoodreadsConfig, HTTPConfig
from mediameta.metadata.cache import MetadataCache
from mediameta.models.book import BookSeries, BookSource, PartialBook
from mediameta.models.common import Rating
from mediameta.utils.rate_limiter import RateLimiter


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float):
        self.now += ms


class FakeSleep:
    """Records requested sleeps (seconds) and advances the clock instead."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        self.clock.advance(seconds * 1000)


class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request it served."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.requests: List[httpx.Request] = []

        def recording_handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(recording_handler)

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def clock():
    """Create a controllable millisecond clock."""
    return FakeClock()


@pytest.fixture
def fake_sleep(clock):
    """Create a sleep stand-in that advances the fake clock."""
    return FakeSleep(clock)


@pytest.fixture
def rate_limiter(clock, fake_sleep):
    """Create a rate limiter driven by the fake clock."""
    return RateLimiter(clock=clock, sleep=fake_sleep)


@pytest.fixture
def cache(tmp_path, clock):
    """Create a cache backed by a temporary database."""
    return MetadataCache(tmp_path / "cache.db", clock=clock)


@pytest.fixture
def http_config():
    """HTTP settings with no retry waits."""
    return HTTPConfig(timeout_seconds=5, retry_attempts=3, backoff_multiplier=0)


@pytest.fixture
def test_config(tmp_path):
    """Create a configuration suitable for end-to-end tests."""
    return Config(
        tmdb={"enabled": True, "api_key": "test-token"},
        goodreads=GoodreadsConfig(enabled=True, delay_ms=0),
        cache={"path": str(tmp_path / "cache.db")},
        http=HTTPConfig(timeout_seconds=5, retry_attempts=2, backoff_multiplier=0),
    )


@pytest.fixture
def make_transport():
    """Factory for recording mock transports."""
    return RecordingTransport


@pytest.fixture
def open_library_record():
    """Partial record as Open Library would produce it."""
    return PartialBook(
        source=BookSource.OPEN_LIBRARY,
        title="The Name of the Wind",
        author="Patrick Rothfuss",
        authors=["Patrick Rothfuss"],
        isbn_13="9780756404741",
        page_count=662,
        cover_url="https://covers.openlibrary.org/b/id/123-L.jpg",
        subjects=["Fantasy", "Magic"],
        description="Short OL description.",
        identifier="OL8479867W",
        source_url="https://openlibrary.org/works/OL8479867W",
    )


@pytest.fixture
def google_books_record():
    """Partial record as Google Books would produce it."""
    return PartialBook(
        source=BookSource.GOOGLE_BOOKS,
        title="The Name of the Wind",
        author="Patrick Rothfuss",
        authors=["Patrick Rothfuss"],
        isbn_10="0756404746",
        isbn_13="9780756405892",
        page_count=722,
        genres=["Fiction", "fantasy"],
        subjects=["Fiction", "fantasy"],
        description="A" * 150,
        cover_url="https://books.google.com/cover?zoom=2",
        rating=Rating(score=4.5, count=1200),
        identifier="abc123",
        source_url="https://books.google.com/books?id=abc123",
    )


@pytest.fixture
def goodreads_record():
    """Partial record as Goodreads scraping would produce it."""
    return PartialBook(
        source=BookSource.GOODREADS,
        genres=["Fantasy", "Fiction"],
        series=BookSeries(name="The Kingkiller Chronicle", position=1),
        rating=Rating(score=4.52, count=1000000),
        cover_url="https://images.gr-assets.com/cover.jpg",
        identifier="186074",
        source_url="https://www.goodreads.com/book/show/186074",
    )
