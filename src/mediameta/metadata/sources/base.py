"""Common plumbing for provider adapters."""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from mediameta.config import HTTPConfig
from mediameta.metadata.cache import MetadataCache
from mediameta.metadata.http import SourceHttpClient
from mediameta.models.book import LookupBookInput, PartialBook
from mediameta.utils.rate_limiter import RateLimitConfig, RateLimiter

logger = structlog.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class MetadataSource(ABC):
    """Base for adapters that front one provider with cache and rate limiting.

    Cache and rate limiter are shared instances handed in by the caller.
    """

    name: str
    base_url: str
    default_rate_limit: RateLimitConfig

    def __init__(
        self,
        cache: MetadataCache,
        rate_limiter: RateLimiter,
        rate_limit: Optional[RateLimitConfig] = None,
        http_config: Optional[HTTPConfig] = None,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        rate_limiter.configure(self.name, rate_limit or self.default_rate_limit)

        http_config = http_config or HTTPConfig()
        self.client = SourceHttpClient(
            self.name,
            self.base_url,
            rate_limiter,
            headers=headers,
            timeout_seconds=http_config.timeout_seconds,
            retries=http_config.retry_attempts,
            backoff_multiplier=http_config.backoff_multiplier,
            transport=transport,
        )

    async def close(self):
        await self.client.close()

    def _cache_get(self, key: str) -> Optional[Any]:
        entry = self.cache.get(key)
        return entry.value if entry else None

    def _cache_get_model(self, key: str, model: Type[M]) -> Optional[M]:
        """Read a cached model; an entry that no longer validates is evicted."""
        value = self._cache_get(key)
        if value is None:
            return None
        try:
            return model.model_validate(value)
        except ValidationError:
            logger.warning("Cached value failed validation, evicting", key=key)
            self.cache.delete(key)
            return None

    def _cache_set(self, key: str, value: Any, ttl_hours: float):
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json", by_alias=True)
        self.cache.set(key, value, self.name, ttl_hours)


class BookSourceAdapter(MetadataSource):
    """A provider that yields at most one partial book record per query."""

    @property
    def enabled(self) -> bool:
        return True

    @abstractmethod
    async def search(self, query: LookupBookInput) -> Optional[PartialBook]:
        """Best partial record for a query, or ``None`` when nothing matches well."""

    @abstractmethod
    async def fetch_details(self, identifier: str) -> Optional[PartialBook]:
        """Partial record for a provider-native identifier."""


def clean_isbn(isbn: str) -> str:
    return re.sub(r"[-\s]", "", isbn)
