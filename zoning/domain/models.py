from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import StrEnum


class Zone(StrEnum):
    GREEN = "green"
    YELLOW = "yellow"
    RED = "red"
    # Sentinel for "not classified yet".
    UNZONED = "unzoned"


# Canonical record lifecycle states.
#
# IMPORTANT:
# - Keep this enum synchronized with zoning/domain/lifecycle.py (ALLOWED_TRANSITIONS).
# - Keep this enum synchronized with the DB status CHECK constraint in
#   db/migrations/000001_bootstrap.up.sql.
class RecordStatus(StrEnum):
    # Terminal failure state, needs a human.
    PENDING_REVIEW = "pending_review"

    # Swept by the retry scheduler.
    ANALYZING = "analyzing"

    # No further automatic retry scheduled.
    PROCESSED = "processed"


class RecordOrder(StrEnum):
    NEWEST_FIRST = "newest_first"
    OLDEST_FIRST = "oldest_first"


DEFAULT_GROUP = "other"


@dataclass(frozen=True)
class Item:
    name: str
    zone: Zone = Zone.UNZONED
    category: str | None = None
    group: str = DEFAULT_GROUP
    organic: bool = False

    @property
    def is_unzoned(self) -> bool:
        return self.zone == Zone.UNZONED

    @property
    def is_classified(self) -> bool:
        return not self.is_unzoned and bool(self.category) and bool(self.group)


@dataclass(frozen=True)
class Record:
    id: str
    name: str
    items: tuple[Item, ...]
    status: RecordStatus
    recorded_at: datetime
    created_at: datetime
    updated_at: datetime
    notes: str = ""
    retry_count: int = 0
    last_retry_at: datetime | None = None

    @property
    def unzoned_items(self) -> tuple[Item, ...]:
        return tuple(item for item in self.items if item.is_unzoned)

    @property
    def has_unzoned_items(self) -> bool:
        return any(item.is_unzoned for item in self.items)


@dataclass(frozen=True)
class RecordChanges:
    """Partial update for one record; ``None`` leaves the stored value untouched."""

    items: tuple[Item, ...] | None = None
    status: RecordStatus | None = None
    retry_count: int | None = None
    last_retry_at: datetime | None = None
    updated_at: datetime | None = None

    def apply(self, record: Record) -> Record:
        return replace(
            record,
            items=self.items if self.items is not None else record.items,
            status=self.status if self.status is not None else record.status,
            retry_count=self.retry_count if self.retry_count is not None else record.retry_count,
            last_retry_at=self.last_retry_at if self.last_retry_at is not None else record.last_retry_at,
            updated_at=self.updated_at if self.updated_at is not None else record.updated_at,
        )


@dataclass(frozen=True)
class Classification:
    name: str
    zone: Zone
    group: str
    category: str | None = None


@dataclass(frozen=True)
class ZoneCounts:
    green: int = 0
    yellow: int = 0
    red: int = 0
    unzoned: int = 0
    total: int = 0


@dataclass(frozen=True)
class MonitoringReport:
    total_analyzing: int
    near_exhausted: int
    stuck: int
    average_retry_count: float
    max_attempts: int
    backlog_exceeded: bool
    oldest_stuck_record_id: str | None = None
    warnings: tuple[str, ...] = field(default_factory=tuple)


def zone_counts(record: Record) -> ZoneCounts:
    counts = {zone: 0 for zone in Zone}
    for item in record.items:
        counts[item.zone] += 1
    return ZoneCounts(
        green=counts[Zone.GREEN],
        yellow=counts[Zone.YELLOW],
        red=counts[Zone.RED],
        unzoned=counts[Zone.UNZONED],
        total=len(record.items),
    )


def zoning_status_message(record: Record) -> str:
    if record.status == RecordStatus.ANALYZING:
        return "Analyzing items..."
    if record.status == RecordStatus.PENDING_REVIEW:
        return "Needs manual review"
    unzoned = zone_counts(record).unzoned
    if unzoned > 0:
        suffix = "" if unzoned == 1 else "s"
        return f"{unzoned} item{suffix} need zoning"
    return "Analysis complete"
