from __future__ import annotations

from dataclasses import dataclass, field

from zoning.domain.errors import DomainInvariantError, StaleRecordError
from zoning.domain.lifecycle import is_transition_allowed
from zoning.domain.models import Record, RecordChanges, RecordOrder, RecordStatus


@dataclass
class InMemoryRecordStore:
    """Non-network record store with the same guard semantics as the Postgres store."""

    records: dict[str, Record] = field(default_factory=dict)
    updates: list[tuple[str, RecordChanges]] = field(default_factory=list)
    transitions: list[tuple[str, RecordStatus, RecordStatus]] = field(default_factory=list)

    async def create(self, record: Record) -> Record:
        if record.id in self.records:
            raise DomainInvariantError(f"record already exists: {record.id}")
        self.records[record.id] = record
        return record

    async def get(self, record_id: str) -> Record | None:
        return self.records.get(record_id)

    async def query(
        self,
        *,
        status: RecordStatus,
        order: RecordOrder = RecordOrder.NEWEST_FIRST,
        limit: int | None = None,
    ) -> list[Record]:
        matching = [record for record in self.records.values() if record.status == status]
        matching.sort(
            key=lambda record: (record.created_at, record.id),
            reverse=order == RecordOrder.NEWEST_FIRST,
        )
        if limit is not None:
            matching = matching[:limit]
        return matching

    async def update(
        self,
        record_id: str,
        changes: RecordChanges,
        *,
        expected_status: RecordStatus | None = None,
        expected_retry_count: int | None = None,
    ) -> None:
        current = self.records.get(record_id)
        if current is None:
            raise DomainInvariantError(f"record not found: {record_id}")
        if expected_status is not None and current.status != expected_status:
            raise StaleRecordError(record_id)
        if expected_retry_count is not None and current.retry_count != expected_retry_count:
            raise StaleRecordError(record_id)
        if changes.status is not None and not is_transition_allowed(current.status, changes.status):
            raise DomainInvariantError(f"invalid transition: {current.status} -> {changes.status}")

        self.records[record_id] = changes.apply(current)
        self.updates.append((record_id, changes))
        if changes.status is not None and changes.status != current.status:
            self.transitions.append((record_id, current.status, changes.status))
