"""Per-source sliding-window rate limiting with exponential backoff."""

import asyncio
import random
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)

MAX_BACKOFF_MS = 60_000


def monotonic_ms() -> float:
    return time.monotonic() * 1000


@dataclass(frozen=True)
class RateLimitConfig:
    """Request budget for one source."""

    requests_per_window: int
    window_ms: int


@dataclass
class RateLimitState:
    """Mutable counters for one source."""

    request_count: int = 0
    window_start: float = 0.0
    backoff_until: float = 0.0


class RateLimiter:
    """Rate limiter shared by every source adapter.

    Sources without a configured budget are unrestricted. State transitions
    between suspension points run without interleaving on the event loop, so
    no locking is needed.
    """

    def __init__(
        self,
        clock: Callable[[], float] = monotonic_ms,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """Initialize rate limiter.

        Args:
            clock: Returns the current time in milliseconds
            sleep: Coroutine suspending for a number of seconds
        """
        self._clock = clock
        self._sleep = sleep
        self._configs: Dict[str, RateLimitConfig] = {}
        self._states: Dict[str, RateLimitState] = {}

    def configure(self, source: str, config: RateLimitConfig) -> None:
        """Set (or reset) the budget for a source."""
        self._configs[source] = config
        self._states[source] = RateLimitState(window_start=self._clock())
        logger.debug(
            "Configured rate limit",
            source=source,
            requests_per_window=config.requests_per_window,
            window_ms=config.window_ms,
        )

    def state(self, source: str) -> Optional[RateLimitState]:
        return self._states.get(source)

    def can_request(self, source: str) -> bool:
        """Whether a request may be dispatched now. Rolls an elapsed window."""
        config = self._configs.get(source)
        state = self._states.get(source)
        if config is None or state is None:
            return True

        now = self._clock()
        if state.backoff_until > now:
            return False

        if now - state.window_start >= config.window_ms:
            state.request_count = 0
            state.window_start = now

        return state.request_count < config.requests_per_window

    def record_request(self, source: str) -> None:
        state = self._states.get(source)
        if state is not None:
            state.request_count += 1

    def trigger_backoff(self, source: str, attempt: int = 1) -> int:
        """Start exponential backoff after a throttling signal.

        Returns:
            Backoff duration in milliseconds (``2^attempt`` seconds, capped at 60s),
            or 0 for an unconfigured source.
        """
        state = self._states.get(source)
        if state is None:
            return 0

        backoff_ms = min(2**attempt * 1000, MAX_BACKOFF_MS)
        state.backoff_until = max(state.backoff_until, self._clock() + backoff_ms)

        logger.warning(
            "Rate limit backoff triggered",
            source=source,
            attempt=attempt,
            backoff_ms=backoff_ms,
        )
        return backoff_ms

    async def wait_for_slot(self, source: str) -> None:
        """Suspend until backoff clears and the window has capacity."""
        config = self._configs.get(source)
        state = self._states.get(source)
        if config is None or state is None:
            return

        now = self._clock()
        if state.backoff_until > now:
            wait_ms = state.backoff_until - now
            logger.debug("Waiting for backoff", source=source, wait_ms=wait_ms)
            await self._sleep(wait_ms / 1000)

        now = self._clock()
        if now - state.window_start >= config.window_ms:
            state.request_count = 0
            state.window_start = now

        if state.request_count >= config.requests_per_window:
            window_end = state.window_start + config.window_ms
            now = self._clock()
            if window_end > now:
                wait_ms = window_end - now
                logger.debug("Waiting for rate limit window", source=source, wait_ms=wait_ms)
                await self._sleep(wait_ms / 1000)
                state.request_count = 0
                state.window_start = self._clock()

    def get_wait_time(self, source: str) -> float:
        """Milliseconds until the next request is permitted (0 if now)."""
        config = self._configs.get(source)
        state = self._states.get(source)
        if config is None or state is None:
            return 0

        now = self._clock()
        if state.backoff_until > now:
            return state.backoff_until - now

        if state.request_count >= config.requests_per_window:
            window_end = state.window_start + config.window_ms
            if window_end > now:
                return window_end - now

        return 0


async def courtesy_delay(
    min_ms: float,
    max_ms: Optional[float] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> float:
    """Sleep for a random duration in ``[min_ms, max_ms]``.

    Returns:
        The delay applied, in milliseconds
    """
    delay_ms = random.uniform(min_ms, max_ms) if max_ms else min_ms
    if delay_ms > 0:
        await sleep(delay_ms / 1000)
    return delay_ms
