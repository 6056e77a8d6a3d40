"""Async HTTP client gated by the shared rate limiter, with tenacity retries."""

import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from mediameta.errors import AuthError, RateLimitedError, SourceError, SourceTimeoutError
from mediameta.utils.rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/17.2 Safari/605.1.15",
]


def random_user_agent() -> str:
    return random.choice(USER_AGENTS)


@dataclass
class HttpResponse:
    """Status, decoded body (JSON or text) and headers of a response."""

    status: int
    data: Any
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == 200


class _ServerError(SourceError):
    """5xx response; retried locally."""


_RETRYABLE = (httpx.TransportError, RateLimitedError, _ServerError)


class SourceHttpClient:
    """HTTP client for one metadata source.

    Every attempt waits for a rate limit slot first. HTTP 429 triggers the
    limiter's backoff, which then gates the next attempt; transport failures and
    5xx responses wait ``backoff_multiplier * 2^(attempt-1)`` seconds.
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        rate_limiter: RateLimiter,
        headers: Optional[Dict[str, str]] = None,
        timeout_seconds: float = 30.0,
        retries: int = 3,
        backoff_multiplier: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.source = source
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.retries = retries
        self._backoff = wait_exponential(multiplier=backoff_multiplier, max=60)

        client_kwargs: Dict[str, Any] = {
            "headers": {"Accept": "application/json", **(headers or {})},
            "timeout": httpx.Timeout(timeout_seconds),
            "follow_redirects": True,
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        self.client = httpx.AsyncClient(**client_kwargs)

    async def close(self):
        """Close HTTP client."""
        await self.client.aclose()

    async def get(
        self,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> HttpResponse:
        """Send a GET request relative to the base URL.

        Raises:
            RateLimitedError: Still throttled after the last attempt
            SourceTimeoutError: Timed out on the last attempt
            SourceError: Transport failure or 5xx on the last attempt
            AuthError: Credential rejected (401/403), never retried
        """
        url = path if path.startswith("http") else f"{self.base_url}/{path.lstrip('/')}"
        query = {k: v for k, v in (params or {}).items() if v is not None}

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retries),
                wait=self._wait,
                retry=retry_if_exception_type(_RETRYABLE),
                before_sleep=self._log_retry,
                reraise=True,
            ):
                with attempt:
                    return await self._send(
                        url, query, headers, attempt.retry_state.attempt_number
                    )
        except httpx.TimeoutException as e:
            raise SourceTimeoutError(
                f"{self.source} request timed out: {url}", source=self.source
            ) from e
        except httpx.HTTPError as e:
            raise SourceError(f"{self.source} request failed: {e}", source=self.source) from e

    async def _send(
        self,
        url: str,
        params: Dict[str, Any],
        headers: Optional[Dict[str, str]],
        attempt: int,
    ) -> HttpResponse:
        await self.rate_limiter.wait_for_slot(self.source)

        start = time.monotonic()
        response = await self.client.get(url, params=params, headers=headers)
        if attempt == 1:
            self.rate_limiter.record_request(self.source)

        logger.debug(
            "HTTP request",
            method="GET",
            url=url,
            status=response.status_code,
            duration_ms=int((time.monotonic() - start) * 1000),
            source=self.source,
            attempt=attempt,
        )

        if response.status_code == 429:
            backoff_ms = self.rate_limiter.trigger_backoff(self.source, attempt)
            raise RateLimitedError(
                f"{self.source} rate limited the request",
                source=self.source,
                retry_after_seconds=_retry_after(response, backoff_ms),
            )
        if response.status_code in (401, 403):
            raise AuthError(
                f"{self.source} rejected credentials (HTTP {response.status_code})",
                source=self.source,
            )
        if response.status_code >= 500:
            raise _ServerError(
                f"{self.source} returned HTTP {response.status_code}", source=self.source
            )

        try:
            data = response.json()
        except ValueError:
            data = response.text

        return HttpResponse(status=response.status_code, data=data, headers=dict(response.headers))

    def _wait(self, retry_state: RetryCallState) -> float:
        # The limiter's backoff already gates the next attempt after a 429
        if isinstance(retry_state.outcome.exception(), RateLimitedError):
            return 0
        return self._backoff(retry_state)

    def _log_retry(self, retry_state: RetryCallState):
        logger.warning(
            "Retrying request",
            source=self.source,
            attempt=retry_state.attempt_number,
            error=str(retry_state.outcome.exception()),
        )


def _retry_after(response: httpx.Response, backoff_ms: int) -> float:
    header = response.headers.get("retry-after")
    if header and header.isdigit():
        return float(header)
    return backoff_ms / 1000
