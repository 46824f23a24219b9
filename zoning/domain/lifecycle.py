from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from zoning.domain.models import Record, RecordStatus


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay_ms: int = 1000
    multiplier: float = 2.0
    max_delay_ms: int = 30000


DEFAULT_RETRY_POLICY = RetryPolicy()


ALLOWED_TRANSITIONS: dict[RecordStatus, set[RecordStatus]] = {
    RecordStatus.ANALYZING: {RecordStatus.ANALYZING, RecordStatus.PROCESSED, RecordStatus.PENDING_REVIEW},
    # Creation-path records may still hold unzoned items; a manual retry hands them back to the sweeper.
    RecordStatus.PROCESSED: {RecordStatus.PROCESSED, RecordStatus.ANALYZING, RecordStatus.PENDING_REVIEW},
    RecordStatus.PENDING_REVIEW: {RecordStatus.PENDING_REVIEW},
}


def backoff_delay_ms(attempt: int, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> int:
    """Delay required before ``attempt`` (1-based)."""
    exponent = max(attempt, 1) - 1
    try:
        delay = policy.base_delay_ms * policy.multiplier**exponent
    except OverflowError:
        return policy.max_delay_ms
    return int(min(delay, policy.max_delay_ms))


def is_eligible(
    last_retry_at: datetime | None,
    attempt: int,
    *,
    now: datetime,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> bool:
    if last_retry_at is None:
        return True
    required = timedelta(milliseconds=backoff_delay_ms(attempt, policy))
    return now - last_retry_at >= required


def is_retry_budget_spent(retry_count: int, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> bool:
    return retry_count >= policy.max_attempts


def status_after_attempt(
    *,
    still_unzoned: bool,
    retry_count: int,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
) -> RecordStatus:
    """Status of an analyzing record once an attempt brought it to ``retry_count``."""
    if not still_unzoned:
        return RecordStatus.PROCESSED
    if is_retry_budget_spent(retry_count, policy):
        return RecordStatus.PENDING_REVIEW
    return RecordStatus.ANALYZING


def needs_zoning_retry(record: Record) -> bool:
    return record.status == RecordStatus.ANALYZING or record.has_unzoned_items


def can_manually_retry(record: Record, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> bool:
    return not is_retry_budget_spent(record.retry_count, policy) and needs_zoning_retry(record)


def is_transition_allowed(from_status: RecordStatus, to_status: RecordStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, set())
