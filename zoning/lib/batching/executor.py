from __future__ import annotations

import asyncio
import logging
import math
import time
from collections.abc import Callable, Sequence

from zoning.lib.batching.types import (
    BatchAbortedError,
    BatchFailure,
    BatchItemOutcome,
    BatchOptions,
    BatchResult,
    ItemProcessor,
    R,
    T,
)

logger = logging.getLogger("batching")


async def process_in_batches(
    items: Sequence[T],
    processor: ItemProcessor[T, R],
    options: BatchOptions | None = None,
) -> BatchResult[R]:
    """Run ``processor`` over ``items`` in concurrent batches with per-item isolation.

    Items of one batch run together via ``asyncio.gather``; the next batch starts
    after ``delay_between_batches_ms``. A raising item is recorded in ``errors``
    and never affects its neighbours. When ``abort_event`` is set, the check
    between batches fails every item not started yet with BatchAbortedError.
    """
    opts = options or BatchOptions()
    if opts.batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    started = time.monotonic()
    total = len(items)
    total_batches = math.ceil(total / opts.batch_size)
    result: BatchResult[R] = BatchResult(results=[None] * total)

    logger.debug(
        "batch processing started",
        extra={"total_items": total, "batch_size": opts.batch_size, "total_batches": total_batches},
    )

    for batch_index, offset in enumerate(range(0, total, opts.batch_size)):
        if opts.abort_event is not None and opts.abort_event.is_set():
            _fail_remaining(result, start=offset, total=total, opts=opts)
            logger.debug("batch processing aborted", extra={"next_index": offset, "total_items": total})
            break

        batch = items[offset : offset + opts.batch_size]
        batch_started = time.monotonic()
        outcomes = await asyncio.gather(
            *(_run_item(processor, item, offset + position, opts) for position, item in enumerate(batch))
        )
        result.batches_run += 1

        for outcome in outcomes:
            if outcome.success:
                result.results[outcome.index] = outcome.result
            elif outcome.error is not None:
                result.errors.append(BatchFailure(index=outcome.index, error=outcome.error))

        result.total_processed += len(batch)
        _notify(opts.on_progress, result.total_processed, total)
        _notify(opts.on_batch_complete, batch_index, total_batches, list(outcomes))

        logger.debug(
            "batch completed",
            extra={
                "batch_index": batch_index,
                "total_batches": total_batches,
                "batch_ms": int((time.monotonic() - batch_started) * 1000),
                "success_count": sum(1 for outcome in outcomes if outcome.success),
                "error_count": sum(1 for outcome in outcomes if not outcome.success),
            },
        )

        is_last = offset + opts.batch_size >= total
        if not is_last and opts.delay_between_batches_ms > 0:
            await asyncio.sleep(opts.delay_between_batches_ms / 1000)

    result.total_time_ms = int((time.monotonic() - started) * 1000)
    logger.debug(
        "batch processing completed",
        extra={
            "total_items": total,
            "error_count": len(result.errors),
            "total_ms": result.total_time_ms,
        },
    )
    return result


async def _run_item(
    processor: ItemProcessor[T, R],
    item: T,
    index: int,
    opts: BatchOptions,
) -> BatchItemOutcome[R]:
    try:
        value = await processor(item, index)
    except Exception as exc:
        logger.warning("batch item failed", extra={"index": index, "error": str(exc)})
        _notify(opts.on_error, exc, index)
        return BatchItemOutcome(index=index, success=False, error=exc)
    return BatchItemOutcome(index=index, success=True, result=value)


def _fail_remaining(result: BatchResult[R], *, start: int, total: int, opts: BatchOptions) -> None:
    for index in range(start, total):
        error = BatchAbortedError(index)
        result.errors.append(BatchFailure(index=index, error=error))
        _notify(opts.on_error, error, index)


def _notify(callback: Callable[..., object] | None, *args: object) -> None:
    # Callback errors are logged and never reach the batch.
    if callback is None:
        return
    try:
        callback(*args)
    except Exception:
        logger.exception("batch callback failed", extra={"callback": getattr(callback, "__name__", repr(callback))})
