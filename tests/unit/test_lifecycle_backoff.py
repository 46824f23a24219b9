from datetime import timedelta

import pytest

from zoning.domain.lifecycle import (
    RetryPolicy,
    backoff_delay_ms,
    can_manually_retry,
    is_eligible,
    is_retry_budget_spent,
    is_transition_allowed,
    status_after_attempt,
)
from zoning.domain.models import Item, RecordStatus
from tests.unit.records_seed import BASE_TIME, make_record, zoned


@pytest.mark.unit
@pytest.mark.parametrize(
    ("attempt", "expected"),
    [(1, 1000), (2, 2000), (3, 4000), (5, 16000), (6, 30000), (10, 30000), (2000, 30000)],
)
def test_backoff_delay_doubles_and_caps(attempt: int, expected: int) -> None:
    assert backoff_delay_ms(attempt) == expected


@pytest.mark.unit
def test_backoff_delay_follows_policy() -> None:
    policy = RetryPolicy(base_delay_ms=500, multiplier=3.0, max_delay_ms=10000)

    assert backoff_delay_ms(1, policy) == 500
    assert backoff_delay_ms(2, policy) == 1500
    assert backoff_delay_ms(4, policy) == 10000


@pytest.mark.unit
@pytest.mark.parametrize("attempt", [1, 2, 3, 50])
def test_record_without_previous_attempt_is_always_eligible(attempt: int) -> None:
    assert is_eligible(None, attempt, now=BASE_TIME) is True


@pytest.mark.unit
def test_eligibility_waits_for_backoff_delay() -> None:
    last = BASE_TIME

    assert is_eligible(last, 2, now=last + timedelta(milliseconds=1999)) is False
    assert is_eligible(last, 2, now=last + timedelta(milliseconds=2000)) is True
    assert is_eligible(last, 3, now=last + timedelta(milliseconds=3999)) is False


@pytest.mark.unit
def test_eligibility_survives_very_large_attempt_numbers() -> None:
    last = BASE_TIME

    assert is_eligible(last, 5000, now=last + timedelta(milliseconds=29999)) is False
    assert is_eligible(last, 5000, now=last + timedelta(milliseconds=30000)) is True


@pytest.mark.unit
def test_status_after_attempt_covers_all_outcomes() -> None:
    assert status_after_attempt(still_unzoned=False, retry_count=1) == RecordStatus.PROCESSED
    assert status_after_attempt(still_unzoned=False, retry_count=3) == RecordStatus.PROCESSED
    assert status_after_attempt(still_unzoned=True, retry_count=2) == RecordStatus.ANALYZING
    assert status_after_attempt(still_unzoned=True, retry_count=3) == RecordStatus.PENDING_REVIEW


@pytest.mark.unit
def test_retry_budget_is_spent_at_max_attempts() -> None:
    assert is_retry_budget_spent(2) is False
    assert is_retry_budget_spent(3) is True
    assert is_retry_budget_spent(1, RetryPolicy(max_attempts=1)) is True


@pytest.mark.unit
def test_manual_retry_requires_pending_work_and_remaining_budget() -> None:
    assert can_manually_retry(make_record()) is True
    assert can_manually_retry(make_record(retry_count=3)) is False
    assert (
        can_manually_retry(
            make_record(status=RecordStatus.PROCESSED, items=(Item(name="quinoa"),))
        )
        is True
    )
    assert (
        can_manually_retry(make_record(status=RecordStatus.PROCESSED, items=(zoned("kale"),)))
        is False
    )


@pytest.mark.unit
def test_pending_review_is_terminal() -> None:
    assert is_transition_allowed(RecordStatus.ANALYZING, RecordStatus.PROCESSED) is True
    assert is_transition_allowed(RecordStatus.ANALYZING, RecordStatus.PENDING_REVIEW) is True
    assert is_transition_allowed(RecordStatus.PENDING_REVIEW, RecordStatus.ANALYZING) is False
    assert is_transition_allowed(RecordStatus.PENDING_REVIEW, RecordStatus.PROCESSED) is False
