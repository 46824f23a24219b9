from zoning.lib.batching.executor import process_in_batches
from zoning.lib.batching.progressive import ProgressiveBatchProcessor, ProgressiveStats
from zoning.lib.batching.retries import RetryingBatchResult, process_with_retries
from zoning.lib.batching.types import (
    BatchAbortedError,
    BatchFailure,
    BatchItemOutcome,
    BatchOptions,
    BatchResult,
)

__all__ = [
    "BatchAbortedError",
    "BatchFailure",
    "BatchItemOutcome",
    "BatchOptions",
    "BatchResult",
    "ProgressiveBatchProcessor",
    "ProgressiveStats",
    "RetryingBatchResult",
    "process_in_batches",
    "process_with_retries",
]
