"""Batch lookups processed in bounded-concurrency waves."""

import asyncio
import time
from typing import Any, Mapping, Union

import structlog

from mediameta.errors import MetadataError
from mediameta.metadata.resolver import MetadataResolver, validate_query
from mediameta.models.batch import (
    BatchBookItem,
    BatchItemError,
    BatchItemResult,
    BatchLookupInput,
    BatchLookupOutput,
    BatchMeta,
    BatchMovieItem,
)
from mediameta.models.book import LookupBookInput
from mediameta.models.movie import LookupMovieInput
from mediameta.models.tv import LookupTVInput

logger = structlog.get_logger(__name__)

UNKNOWN_ERROR = "UNKNOWN_ERROR"


class BatchProcessor:
    """Runs a list of lookups in waves of ``concurrency`` items.

    Each wave runs concurrently and waves run one after another. A failing
    item is recorded in its result entry and never aborts the batch.
    """

    def __init__(self, resolver: MetadataResolver):
        self.resolver = resolver

    async def run(self, batch: Union[BatchLookupInput, Mapping[str, Any]]) -> BatchLookupOutput:
        batch = validate_query(BatchLookupInput, batch)
        start = time.monotonic()
        logger.info(
            "Batch lookup started", total_items=len(batch.items), concurrency=batch.concurrency
        )

        results = []
        for offset in range(0, len(batch.items), batch.concurrency):
            wave = batch.items[offset : offset + batch.concurrency]
            results.extend(
                await asyncio.gather(
                    *(self._lookup_item(item, offset + i) for i, item in enumerate(wave))
                )
            )

        successful = sum(1 for r in results if r.success)
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Batch lookup complete",
            total=len(results),
            successful=successful,
            failed=len(results) - successful,
            duration_ms=duration_ms,
        )

        return BatchLookupOutput(
            total=len(batch.items),
            successful=successful,
            failed=len(results) - successful,
            results=results,
            meta=BatchMeta(duration_ms=duration_ms, concurrency=batch.concurrency),
        )

    async def _lookup_item(self, item, index: int) -> BatchItemResult:
        """Run one item; log events inside carry ``batch_index``."""
        query = item.model_dump(exclude={"type"})
        with structlog.contextvars.bound_contextvars(batch_index=index):
            try:
                if isinstance(item, BatchBookItem):
                    result = await self.resolver.lookup_book(
                        validate_query(LookupBookInput, query)
                    )
                elif isinstance(item, BatchMovieItem):
                    result = await self.resolver.lookup_movie(
                        validate_query(LookupMovieInput, query)
                    )
                else:
                    result = await self.resolver.lookup_tv(validate_query(LookupTVInput, query))
                return BatchItemResult(index=index, type=item.type, success=True, result=result)

            except MetadataError as e:
                code, message = e.code.value, e.message
            except Exception as e:
                logger.error("Batch item failed unexpectedly", error=str(e))
                code, message = UNKNOWN_ERROR, str(e) or "An unknown error occurred"

        return BatchItemResult(
            index=index,
            type=item.type,
            success=False,
            error=BatchItemError(code=code, message=message),
        )
