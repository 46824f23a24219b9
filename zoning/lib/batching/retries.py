from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from zoning.lib.batching.executor import process_in_batches
from zoning.lib.batching.types import BatchOptions, BatchResult, ItemProcessor, R, T

logger = logging.getLogger("batching")

RETRY_BASE_DELAY_MS = 100


@dataclass
class RetryingBatchResult(BatchResult[R]):
    # Attempts that failed per input index.
    retry_stats: dict[int, int] = field(default_factory=dict)


async def process_with_retries(
    items: Sequence[T],
    processor: ItemProcessor[T, R],
    max_retries: int = 2,
    options: BatchOptions | None = None,
) -> RetryingBatchResult[R]:
    retry_stats: dict[int, int] = {}

    async def _with_retries(item: T, index: int) -> R:
        retry_stats[index] = 0
        for attempt in range(max_retries + 1):
            try:
                value = await processor(item, index)
            except Exception:
                retry_stats[index] = attempt + 1
                if attempt >= max_retries:
                    raise
                logger.debug("batch item retrying", extra={"index": index, "attempt": attempt + 1})
                await asyncio.sleep((2**attempt) * RETRY_BASE_DELAY_MS / 1000)
                continue
            if attempt > 0:
                logger.debug("batch item recovered", extra={"index": index, "retries": attempt})
            return value
        raise AssertionError("unreachable")

    result = await process_in_batches(items, _with_retries, options)
    return RetryingBatchResult(
        results=result.results,
        errors=result.errors,
        total_processed=result.total_processed,
        total_time_ms=result.total_time_ms,
        batches_run=result.batches_run,
        retry_stats=retry_stats,
    )
