from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")
R = TypeVar("R")

ItemProcessor = Callable[[T, int], Awaitable[R]]
ProgressCallback = Callable[[int, int], None]
ErrorCallback = Callable[[Exception, int], None]


class BatchAbortedError(Exception):
    def __init__(self, index: int) -> None:
        super().__init__("processing aborted")
        self.index = index


@dataclass(frozen=True)
class BatchItemOutcome(Generic[R]):
    index: int
    success: bool
    result: R | None = None
    error: Exception | None = None


BatchCompleteCallback = Callable[[int, int, list[BatchItemOutcome]], None]


@dataclass(frozen=True)
class BatchOptions:
    batch_size: int = 2
    delay_between_batches_ms: int = 10
    on_progress: ProgressCallback | None = None
    on_batch_complete: BatchCompleteCallback | None = None
    on_error: ErrorCallback | None = None
    # Checked between batches only; in-flight items always finish.
    abort_event: asyncio.Event | None = None


@dataclass(frozen=True)
class BatchFailure:
    index: int
    error: Exception


@dataclass
class BatchResult(Generic[R]):
    # One slot per input; None where the item failed or never ran.
    results: list[R | None]
    errors: list[BatchFailure] = field(default_factory=list)
    total_processed: int = 0
    total_time_ms: int = 0
    batches_run: int = 0

    @property
    def success_count(self) -> int:
        return self.total_processed - sum(
            1 for failure in self.errors if not isinstance(failure.error, BatchAbortedError)
        )

    @property
    def aborted(self) -> bool:
        return any(isinstance(failure.error, BatchAbortedError) for failure in self.errors)

    def failed_indexes(self) -> set[int]:
        return {failure.index for failure in self.errors}
