"""Integration tests for batch lookups."""

import asyncio

import pytest

from mediameta.errors import LookupValidationError, NotFoundError
from mediameta.metadata.batch import UNKNOWN_ERROR, BatchProcessor
from mediameta.models.book import BookResult
from mediameta.models.common import Confidence, Meta


def book(title: str) -> BookResult:
    return BookResult(
        title=title,
        author="Someone",
        meta=Meta(primary_source="open_library", confidence=Confidence.LOW),
    )


class FakeResolver:
    """Resolver stand-in that records concurrency and call order."""

    def __init__(self):
        self.active = 0
        self.peak = 0
        self.waves = []
        self.started = []

    async def _run(self, query):
        self.active += 1
        self.peak = max(self.peak, self.active)
        self.started.append(query.title)
        if self.active == 1:
            self.waves.append([])
        self.waves[-1].append(query.title)
        try:
            # Later items finish first to check ordering is by index
            await asyncio.sleep(0.01 / len(self.started))
            if query.title == "missing":
                raise NotFoundError('No book found matching "missing"')
            if query.title == "explode":
                raise RuntimeError("kaboom")
            return book(query.title)
        finally:
            self.active -= 1

    async def lookup_book(self, query):
        return await self._run(query)

    async def lookup_movie(self, query):
        return await self._run(query)

    async def lookup_tv(self, query):
        return await self._run(query)


@pytest.fixture
def resolver():
    """Create a fake resolver."""
    return FakeResolver()


class TestBatchProcessor:
    """Test BatchProcessor class."""

    @pytest.mark.asyncio
    async def test_waves_and_order(self, resolver):
        """Test five items at concurrency two run in three waves, results in input order."""
        batch = {
            "items": [{"type": "book", "title": f"Book {i}"} for i in range(5)],
            "concurrency": 2,
        }

        output = await BatchProcessor(resolver).run(batch)

        assert resolver.peak == 2
        assert resolver.waves == [["Book 0", "Book 1"], ["Book 2", "Book 3"], ["Book 4"]]
        assert [r.index for r in output.results] == [0, 1, 2, 3, 4]
        assert [r.result.title for r in output.results] == [f"Book {i}" for i in range(5)]
        assert output.total == 5
        assert output.successful == 5
        assert output.failed == 0
        assert output.meta.concurrency == 2

    @pytest.mark.asyncio
    async def test_item_failures_recorded(self, resolver):
        """Test failing items are reported in place without aborting the batch."""
        batch = {
            "items": [
                {"type": "book", "title": "Dune"},
                {"type": "movie", "title": "missing"},
                {"type": "tv", "title": "explode"},
                {"type": "movie", "title": "Heat", "year": 1500},
            ]
        }

        output = await BatchProcessor(resolver).run(batch)

        assert output.total == 4
        assert output.successful == 1
        assert output.failed == 3
        assert output.successful + output.failed == output.total

        ok, missing, exploded, invalid = output.results
        assert ok.success is True
        assert missing.success is False
        assert missing.type == "movie"
        assert missing.error.code == "NOT_FOUND"
        assert exploded.error.code == UNKNOWN_ERROR
        assert exploded.error.message == "kaboom"
        assert invalid.error.code == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_output_serializes_meta(self, resolver):
        """Test the output exposes _meta on the wire."""
        output = await BatchProcessor(resolver).run({"items": [{"type": "book", "title": "Emma"}]})

        data = output.to_dict()

        assert data["_meta"]["concurrency"] == 3
        assert data["results"][0]["result"]["title"] == "Emma"

    @pytest.mark.asyncio
    async def test_invalid_batch(self, resolver):
        """Test an invalid batch is rejected as a whole."""
        with pytest.raises(LookupValidationError):
            await BatchProcessor(resolver).run({"items": [], "concurrency": 2})
