"""Unit tests for the Goodreads scraper."""

import httpx
import pytest

from mediameta.config import GoodreadsConfig
from mediameta.metadata.sources.goodreads import GoodreadsSource

CURRENT_BOOK_PAGE = """
<html><body>
  <h1 data-testid="bookTitle">The Name of the Wind</h1>
  <h3 class="Text__title3 Text__italic"><a href="https://www.goodreads.com/series/45285-the-kingkiller-chronicle">The Kingkiller Chronicle #1</a></h3>
  <div class="BookCover__image"><img src="https://images.gr-assets.com/186074.jpg"></div>
  <div class="RatingStatistics__rating">4.52</div>
  <div class="RatingStatistics__meta">1,023,456 ratings · 50,000 reviews</div>
  <div data-testid="description"><span class="Formatted">Told in Kvothe's own voice.</span></div>
  <p data-testid="pagesFormat">662 pages, Hardcover</p>
  <div class="BookPageMetadataSection__genres">
    <span class="Button__labelItem">Fantasy</span>
    <span class="Button__labelItem">Fiction</span>
    <span class="Button__labelItem">Fantasy</span>
  </div>
</body></html>
"""

LEGACY_BOOK_PAGE = """
<html><body>
  <h1 id="bookTitle">The Wise Man's Fear</h1>
  <h2 id="bookSeries"><a href="/series/45285">(The Kingkiller Chronicle Book 2)</a></h2>
  <span itemprop="ratingValue"> 4.56 </span>
  <meta itemprop="ratingCount" content="400123">
  <span itemprop="numberOfPages">994 pages</span>
  <div itemprop="description">Second day.</div>
  <meta itemprop="image" content="https://images.gr-assets.com/legacy.jpg">
  <a class="actionLinkLite bookPageGenreLink" href="/genres/fantasy">Fantasy</a>
</body></html>
"""

SEARCH_PAGE = """
<html><body><table class="tableList">
  <tr itemtype="http://schema.org/Book">
    <td><a class="bookTitle" href="/book/show/186074.The_Name_of_the_Wind?from_search=true">
      The Name of the Wind</a></td>
  </tr>
</table></body></html>
"""

SERIES_PAGE = """
<html><body>
  <div class="responsiveSeriesHeader__title">The Kingkiller Chronicle</div>
  <div class="listWithDividers__item">1</div>
  <div class="listWithDividers__item">2</div>
  <div class="listWithDividers__item">3</div>
</body></html>
"""


def html(body: str) -> httpx.Response:
    return httpx.Response(200, text=body, headers={"content-type": "text/html"})


def handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path == "/search":
        return html(SEARCH_PAGE)
    if path == "/book/show/186074":
        return html(CURRENT_BOOK_PAGE)
    if path == "/series/45285":
        return html(SERIES_PAGE)
    return httpx.Response(404, text="missing")


@pytest.fixture
def transport(make_transport):
    return make_transport(handler)


@pytest.fixture
def source(cache, rate_limiter, http_config, transport):
    """Create a Goodreads scraper with no courtesy delay."""
    return GoodreadsSource(
        cache,
        rate_limiter,
        config=GoodreadsConfig(delay_ms=0),
        http_config=http_config,
        transport=transport,
    )


class TestParseBookPage:
    """Test book page parsing."""

    def test_current_markup(self, source):
        """Test the current page layout."""
        record = source.parse_book_page(CURRENT_BOOK_PAGE, "186074")

        assert record.title == "The Name of the Wind"
        assert record.rating.score == 4.52
        assert record.rating.count == 1023456
        assert record.page_count == 662
        assert record.description == "Told in Kvothe's own voice."
        assert record.cover_url == "https://images.gr-assets.com/186074.jpg"
        assert record.genres == ["Fantasy", "Fiction"]
        assert record.series.name == "The Kingkiller Chronicle"
        assert record.series.position == 1
        assert record.source_url == "https://www.goodreads.com/book/show/186074"

    def test_legacy_markup(self, source):
        """Test alternate selectors for the older layout."""
        record = source.parse_book_page(LEGACY_BOOK_PAGE, "1215032")

        assert record.title == "The Wise Man's Fear"
        assert record.rating.score == 4.56
        assert record.rating.count == 400123
        assert record.page_count == 994
        assert record.description == "Second day."
        assert record.cover_url == "https://images.gr-assets.com/legacy.jpg"
        assert record.genres == ["Fantasy"]
        assert record.series.name == "The Kingkiller Chronicle"
        assert record.series.position == 2

    def test_series_alternate_selector(self, source):
        """Test the series is read from the older series heading alone."""
        page = '<h2 id="bookSeries"><a href="/work/1">(Mistborn #3)</a></h2>'

        record = source.parse_book_page(page, "1")

        assert record.series.name == "Mistborn"
        assert record.series.position == 3

    def test_empty_page(self, source):
        """Test a page with nothing recognizable yields an empty record."""
        record = source.parse_book_page("<html><body></body></html>", "1")

        assert record.title is None
        assert record.rating is None
        assert record.series is None
        assert record.genres == []
        assert record.identifier == "1"

    def test_rating_needs_count(self, source):
        """Test a score without a ratings count is dropped."""
        record = source.parse_book_page('<span itemprop="ratingValue">4.1</span>', "1")

        assert record.rating is None

    def test_series_id(self):
        """Test series id extraction from links."""
        assert GoodreadsSource.series_id("/series/45285-the-kingkiller") == "45285"
        assert GoodreadsSource.series_id("/book/show/1") is None


class TestGoodreadsSource:
    """Test GoodreadsSource class."""

    @pytest.mark.asyncio
    async def test_search_book(self, source, transport):
        """Test search follows the first result to its book page."""
        record = await source.search_book("The Name of the Wind", "Patrick Rothfuss")

        assert record.identifier == "186074"
        assert record.series.name == "The Kingkiller Chronicle"
        assert transport.paths() == ["/search", "/book/show/186074"]
        params = transport.requests[0].url.params
        assert params["q"] == "The Name of the Wind Patrick Rothfuss"
        assert params["search_type"] == "books"

    @pytest.mark.asyncio
    async def test_search_book_cached(self, source, transport):
        """Test a repeated search is served from cache."""
        await source.search_book("The Name of the Wind")
        await source.search_book("The Name of the Wind")

        assert len(transport.requests) == 2

    @pytest.mark.asyncio
    async def test_search_fallback_row(self, cache, rate_limiter, http_config, make_transport):
        """Test result rows without schema markup are still found."""
        page = (
            '<table class="tableList"><tr><td><span class="bookTitle">'
            '<a href="/book/show/186074">x</a></span></td></tr></table>'
        )

        def fallback(request):
            if request.url.path == "/search":
                return html(page)
            return handler(request)

        source = GoodreadsSource(
            cache,
            rate_limiter,
            config=GoodreadsConfig(delay_ms=0),
            http_config=http_config,
            transport=make_transport(fallback),
        )

        record = await source.search_book("The Name of the Wind")

        assert record.identifier == "186074"

    @pytest.mark.asyncio
    async def test_no_results(self, cache, rate_limiter, http_config, make_transport):
        """Test an empty search page returns None."""
        source = GoodreadsSource(
            cache,
            rate_limiter,
            config=GoodreadsConfig(delay_ms=0),
            http_config=http_config,
            transport=make_transport(lambda r: html("<html></html>")),
        )

        assert await source.search_book("Nothing") is None

    @pytest.mark.asyncio
    async def test_disabled(self, cache, rate_limiter, make_transport):
        """Test a disabled scraper never touches the network."""
        transport = make_transport(handler)
        source = GoodreadsSource(
            cache,
            rate_limiter,
            config=GoodreadsConfig(enabled=False, delay_ms=0),
            transport=transport,
        )

        assert source.enabled is False
        assert await source.search_book("The Name of the Wind") is None
        assert await source.get_book_details("186074") is None
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_get_series_info(self, source):
        """Test series name and book count."""
        series = await source.get_series_info("45285")

        assert series.name == "The Kingkiller Chronicle"
        assert series.total_books == 3

    @pytest.mark.asyncio
    async def test_missing_book_page(self, source):
        """Test a missing book page returns None."""
        assert await source.get_book_details("999") is None
