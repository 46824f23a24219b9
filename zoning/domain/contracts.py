from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from zoning.domain.classification import ClassificationOutcome
from zoning.domain.models import Record, RecordChanges, RecordOrder, RecordStatus


@runtime_checkable
class RecordStore(Protocol):
    """Durable record storage used as the single source of truth.

    ``update`` applies all changes in one write. When ``expected_status`` or
    ``expected_retry_count`` is given the write is a compare-and-swap and raises
    StaleRecordError if the stored record no longer matches.
    """

    async def create(self, record: Record) -> Record: ...

    async def get(self, record_id: str) -> Record | None: ...

    async def query(
        self,
        *,
        status: RecordStatus,
        order: RecordOrder = RecordOrder.NEWEST_FIRST,
        limit: int | None = None,
    ) -> list[Record]: ...

    async def update(
        self,
        record_id: str,
        changes: RecordChanges,
        *,
        expected_status: RecordStatus | None = None,
        expected_retry_count: int | None = None,
    ) -> None: ...


@runtime_checkable
class ClassificationTransport(Protocol):
    """One call to the external classification service.

    Implementations return a tagged outcome instead of raising for transport or
    payload failures.
    """

    async def classify(self, names: Sequence[str]) -> ClassificationOutcome: ...
