from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from zoning.domain.error_taxonomy import ErrorCode, ErrorType
from zoning.domain.models import Classification, Item, MonitoringReport, Record, RecordStatus


@dataclass(frozen=True)
class SubmitRecordCommand:
    name: str
    items: tuple[Item, ...]
    notes: str = ""
    # Text still sitting in the input box, not yet committed as an item.
    pending_item: str = ""
    recorded_at: datetime | None = None
    defer_unclassified: bool = False


@dataclass(frozen=True)
class SubmissionError:
    message: str
    code: ErrorCode
    type: ErrorType


@dataclass(frozen=True)
class SubmissionSuccess:
    record: Record
    warnings: tuple[str, ...] = ()
    success: Literal[True] = True


@dataclass(frozen=True)
class SubmissionFailure:
    error: SubmissionError
    success: Literal[False] = False


SubmissionResult = SubmissionSuccess | SubmissionFailure


@dataclass(frozen=True)
class EnrichmentLookup:
    classifications: dict[str, Classification] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()
    requested: int = 0

    @property
    def matched(self) -> int:
        return len(self.classifications)


RecordOutcomeKind = Literal["processed", "analyzing", "pending_review", "failed", "conflict"]


@dataclass(frozen=True)
class RecordRetryOutcome:
    record_id: str
    kind: RecordOutcomeKind
    status: RecordStatus | None
    retry_count: int
    detail: str = ""
    error_code: ErrorCode | None = None


@dataclass(frozen=True)
class SweepReport:
    selected: int = 0
    eligible: int = 0
    outcomes: tuple[RecordRetryOutcome, ...] = ()
    elapsed_ms: int = 0
    monitoring: MonitoringReport | None = None
    error: str | None = None

    def count(self, kind: RecordOutcomeKind) -> int:
        return sum(1 for outcome in self.outcomes if outcome.kind == kind)


ManualRetryStatus = Literal["retried", "not_found", "not_retryable"]


@dataclass(frozen=True)
class ManualRetryResult:
    record_id: str
    status: ManualRetryStatus
    outcome: RecordRetryOutcome | None = None
