"""Unit tests for rate limiter."""

import pytest

from mediameta.utils.rate_limiter import RateLimitConfig, courtesy_delay


@pytest.fixture
def limited(rate_limiter):
    """Rate limiter with a 3 requests / 1s budget for "src"."""
    rate_limiter.configure("src", RateLimitConfig(requests_per_window=3, window_ms=1000))
    return rate_limiter


class TestRateLimiter:
    """Test RateLimiter class."""

    def test_unconfigured_source_unrestricted(self, rate_limiter):
        """Test sources without a budget are always allowed."""
        assert rate_limiter.can_request("other") is True
        assert rate_limiter.get_wait_time("other") == 0
        assert rate_limiter.trigger_backoff("other", 3) == 0

    def test_budget_exhausted(self, limited):
        """Test n recorded requests exhaust a budget of n."""
        for _ in range(3):
            assert limited.can_request("src") is True
            limited.record_request("src")

        assert limited.can_request("src") is False

    def test_window_rolls_over(self, limited, clock):
        """Test an elapsed window resets the counter."""
        for _ in range(3):
            limited.record_request("src")

        clock.advance(1000)

        assert limited.can_request("src") is True
        assert limited.state("src").request_count == 0

    def test_configure_resets_counters(self, limited):
        """Test reconfiguring starts from a clean state."""
        limited.record_request("src")
        limited.configure("src", RateLimitConfig(requests_per_window=1, window_ms=1000))

        assert limited.state("src").request_count == 0
        assert limited.can_request("src") is True

    @pytest.mark.parametrize(
        "attempt,expected",
        [(1, 2000), (2, 4000), (5, 32000), (6, 60000), (10, 60000)],
    )
    def test_backoff_duration(self, limited, attempt, expected):
        """Test backoff is 2^attempt seconds capped at 60s."""
        assert limited.trigger_backoff("src", attempt) == expected

    def test_backoff_blocks_until_elapsed(self, limited, clock):
        """Test requests are refused during backoff."""
        duration = limited.trigger_backoff("src", 1)

        assert limited.can_request("src") is False
        assert limited.get_wait_time("src") == duration

        clock.advance(duration - 1)
        assert limited.can_request("src") is False

        clock.advance(1)
        assert limited.can_request("src") is True

    def test_backoff_only_moves_forward(self, limited, clock):
        """Test a shorter backoff never shortens a longer one."""
        limited.trigger_backoff("src", 5)
        until = limited.state("src").backoff_until

        limited.trigger_backoff("src", 1)

        assert limited.state("src").backoff_until == until

    def test_wait_time_for_full_window(self, limited, clock):
        """Test wait time runs to the end of the window."""
        for _ in range(3):
            limited.record_request("src")
        clock.advance(400)

        assert limited.get_wait_time("src") == 600

    @pytest.mark.asyncio
    async def test_wait_for_slot_free(self, limited, fake_sleep):
        """Test no suspension when a slot is available."""
        await limited.wait_for_slot("src")

        assert fake_sleep.calls == []

    @pytest.mark.asyncio
    async def test_wait_for_slot_waits_out_backoff(self, limited, fake_sleep):
        """Test waiting for backoff to clear."""
        limited.trigger_backoff("src", 2)

        await limited.wait_for_slot("src")

        assert fake_sleep.calls == [4.0]
        assert limited.can_request("src") is True

    @pytest.mark.asyncio
    async def test_wait_for_slot_waits_for_window(self, limited, fake_sleep, clock):
        """Test waiting for the window to roll and counters to reset."""
        for _ in range(3):
            limited.record_request("src")
        clock.advance(250)

        await limited.wait_for_slot("src")

        assert fake_sleep.calls == [0.75]
        assert limited.state("src").request_count == 0
        assert limited.can_request("src") is True

    @pytest.mark.asyncio
    async def test_wait_for_slot_rolls_window_after_idle_gap(self, limited, fake_sleep, clock):
        """Test limiting resumes after the window expired while idle."""
        for _ in range(3):
            limited.record_request("src")
        clock.advance(1500)

        for _ in range(4):
            await limited.wait_for_slot("src")
            limited.record_request("src")
            clock.advance(10)

        assert fake_sleep.calls == [pytest.approx(0.97)]
        assert limited.state("src").request_count == 1


class TestCourtesyDelay:
    """Test courtesy_delay function."""

    @pytest.mark.asyncio
    async def test_delay_within_range(self, fake_sleep):
        """Test the applied delay falls inside the range."""
        delay = await courtesy_delay(100, 150, sleep=fake_sleep)

        assert 100 <= delay <= 150
        assert fake_sleep.calls == [pytest.approx(delay / 1000)]

    @pytest.mark.asyncio
    async def test_zero_delay_does_not_sleep(self, fake_sleep):
        """Test a zero delay skips sleeping."""
        assert await courtesy_delay(0, 0, sleep=fake_sleep) == 0
        assert fake_sleep.calls == []
