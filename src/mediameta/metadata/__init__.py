"""Metadata resolution components.

Source adapters, the shared cache and HTTP client, the book merge engine and
the resolver that orchestrates lookups across them.
"""

from mediameta.metadata.batch import BatchProcessor
from mediameta.metadata.cache import CacheTTL, MetadataCache
from mediameta.metadata.resolver import MetadataResolver

__all__ = ["BatchProcessor", "CacheTTL", "MetadataCache", "MetadataResolver"]
