from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from typing import Generic

from zoning.lib.batching.executor import process_in_batches
from zoning.lib.batching.types import BatchOptions, BatchResult, ItemProcessor, R, T

logger = logging.getLogger("batching")


@dataclass(frozen=True)
class ProgressiveStats:
    total_items: int
    is_processing: bool
    aborted: bool
    batch_size: int


@dataclass
class ProgressiveBatchProcessor(Generic[T, R]):
    """Owns one input list and an abort flag around ``process_in_batches``."""

    items: Sequence[T]
    processor: ItemProcessor[T, R]
    options: BatchOptions = field(default_factory=BatchOptions)
    _abort_event: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _processing: bool = field(default=False, init=False)

    async def process(self) -> BatchResult[R]:
        if self._processing:
            raise RuntimeError("processing already in progress")

        self._processing = True
        self._abort_event.clear()
        try:
            return await process_in_batches(
                self.items,
                self.processor,
                replace(self.options, abort_event=self._abort_event),
            )
        finally:
            self._processing = False

    def abort(self) -> None:
        self._abort_event.set()
        logger.debug("batch processing abort requested", extra={"total_items": len(self.items)})

    @property
    def is_active(self) -> bool:
        return self._processing

    def stats(self) -> ProgressiveStats:
        return ProgressiveStats(
            total_items=len(self.items),
            is_processing=self._processing,
            aborted=self._abort_event.is_set(),
            batch_size=self.options.batch_size,
        )
