from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime

from zoning.domain.contracts import RecordStore
from zoning.domain.dto import ManualRetryResult, RecordRetryOutcome, SweepReport
from zoning.domain.error_taxonomy import resolve_attempt_error
from zoning.domain.errors import StaleRecordError
from zoning.domain.lifecycle import (
    can_manually_retry,
    is_eligible,
    is_retry_budget_spent,
    status_after_attempt,
)
from zoning.domain.models import MonitoringReport, Record, RecordChanges, RecordOrder, RecordStatus
from zoning.domain.use_cases.enrich import EnrichmentClient, merge_classifications
from zoning.domain.use_cases.monitoring import collect_monitoring_report, log_monitoring_report
from zoning.settings import SweepSettings

logger = logging.getLogger("runtime")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass
class RetrySweeper:
    """One bounded pass over analyzing records, invoked by an external trigger.

    Records are retried sequentially; only the per-item classification calls of
    a record run concurrently. Every write is guarded by the record's
    ``(status, retry_count)`` as read at selection time, so an overlapping sweep
    that already handled a record makes this one skip it.
    """

    store: RecordStore
    enrichment: EnrichmentClient
    settings: SweepSettings = field(default_factory=SweepSettings)
    clock: Callable[[], datetime] = _utcnow

    async def run_once(self) -> SweepReport:
        started = time.monotonic()
        try:
            candidates = await self.store.query(
                status=RecordStatus.ANALYZING,
                order=RecordOrder.NEWEST_FIRST,
                limit=self.settings.batch_size,
            )
        except Exception as exc:
            logger.exception("sweep query failed")
            return SweepReport(error=str(exc), elapsed_ms=_elapsed_ms(started))

        policy = self.settings.policy
        now = self.clock()
        outcomes: list[RecordRetryOutcome] = []
        eligible: list[Record] = []
        for record in candidates:
            if is_retry_budget_spent(record.retry_count, policy):
                outcomes.append(await self._park_exhausted(record))
            elif is_eligible(record.last_retry_at, record.retry_count + 1, now=now, policy=policy):
                eligible.append(record)

        logger.info(
            "sweep selected records",
            extra={"selected": len(candidates), "eligible": len(eligible)},
        )

        for record in eligible:
            outcomes.append(await self._retry_record(record))

        report = SweepReport(
            selected=len(candidates),
            eligible=len(eligible),
            outcomes=tuple(outcomes),
            elapsed_ms=_elapsed_ms(started),
            monitoring=await self._monitor(),
        )
        logger.info(
            "sweep completed",
            extra={
                "selected": report.selected,
                "eligible": report.eligible,
                "processed": report.count("processed"),
                "analyzing": report.count("analyzing"),
                "pending_review": report.count("pending_review"),
                "failed": report.count("failed"),
                "conflicts": report.count("conflict"),
                "elapsed_ms": report.elapsed_ms,
            },
        )
        return report

    async def retry_record(self, record_id: str) -> ManualRetryResult:
        """Operator-initiated retry of one record, ignoring backoff."""
        record = await self.store.get(record_id)
        if record is None:
            return ManualRetryResult(record_id=record_id, status="not_found")
        if not can_manually_retry(record, self.settings.policy):
            logger.info(
                "manual retry refused",
                extra={"record_id": record_id, "status": record.status.value, "retry_count": record.retry_count},
            )
            return ManualRetryResult(record_id=record_id, status="not_retryable")

        outcome = await self._retry_record(record)
        return ManualRetryResult(record_id=record_id, status="retried", outcome=outcome)

    async def _retry_record(self, record: Record) -> RecordRetryOutcome:
        try:
            return await self._attempt(record)
        except StaleRecordError:
            logger.info(
                "record changed concurrently, skipping",
                extra={"record_id": record.id, "retry_count": record.retry_count},
            )
            return RecordRetryOutcome(
                record_id=record.id,
                kind="conflict",
                status=None,
                retry_count=record.retry_count,
            )
        except Exception as exc:
            logger.exception("zoning retry failed", extra={"record_id": record.id})
            return await self._record_failed_attempt(record, exc)

    async def _attempt(self, record: Record) -> RecordRetryOutcome:
        if not record.has_unzoned_items:
            await self.store.update(
                record.id,
                RecordChanges(status=RecordStatus.PROCESSED, updated_at=self.clock()),
                expected_status=record.status,
                expected_retry_count=record.retry_count,
            )
            logger.info("record already zoned, marked processed", extra={"record_id": record.id})
            return RecordRetryOutcome(
                record_id=record.id,
                kind="processed",
                status=RecordStatus.PROCESSED,
                retry_count=record.retry_count,
            )

        lookup = await self.enrichment.classify_per_item(item.name for item in record.unzoned_items)
        items = merge_classifications(record.items, lookup.classifications)
        retry_count = record.retry_count + 1
        status = status_after_attempt(
            still_unzoned=any(item.is_unzoned for item in items),
            retry_count=retry_count,
            policy=self.settings.policy,
        )
        attempted_at = self.clock()
        await self.store.update(
            record.id,
            RecordChanges(
                items=items,
                status=status,
                retry_count=retry_count,
                last_retry_at=attempted_at,
                updated_at=attempted_at,
            ),
            expected_status=record.status,
            expected_retry_count=record.retry_count,
        )

        extra = {
            "record_id": record.id,
            "retry_count": retry_count,
            "max_attempts": self.settings.policy.max_attempts,
            "matched": lookup.matched,
            "requested": lookup.requested,
        }
        if status == RecordStatus.PROCESSED:
            logger.info("record zoned", extra=extra)
        elif status == RecordStatus.PENDING_REVIEW:
            logger.error("record marked for review after exhausting retries", extra=extra)
        else:
            logger.warning("some items still unzoned", extra=extra)

        return RecordRetryOutcome(
            record_id=record.id,
            kind=status.value,
            status=status,
            retry_count=retry_count,
            detail="; ".join(lookup.warnings),
        )

    async def _record_failed_attempt(self, record: Record, exc: Exception) -> RecordRetryOutcome:
        error_code = resolve_attempt_error(exc)
        retry_count = record.retry_count + 1
        exhausted = is_retry_budget_spent(retry_count, self.settings.policy)
        attempted_at = self.clock()
        try:
            await self.store.update(
                record.id,
                RecordChanges(
                    status=RecordStatus.PENDING_REVIEW if exhausted else None,
                    retry_count=retry_count,
                    last_retry_at=attempted_at,
                    updated_at=attempted_at,
                ),
                expected_retry_count=record.retry_count,
            )
        except Exception:
            logger.exception("failed to persist retry attempt", extra={"record_id": record.id})
            return RecordRetryOutcome(
                record_id=record.id,
                kind="failed",
                status=None,
                retry_count=record.retry_count,
                detail=str(exc),
                error_code=error_code,
            )

        if exhausted:
            logger.error(
                "record marked for review after retry error",
                extra={"record_id": record.id, "retry_count": retry_count, "error_code": error_code},
            )
        return RecordRetryOutcome(
            record_id=record.id,
            kind="pending_review" if exhausted else "failed",
            status=RecordStatus.PENDING_REVIEW if exhausted else record.status,
            retry_count=retry_count,
            detail=str(exc),
            error_code=error_code,
        )

    async def _park_exhausted(self, record: Record) -> RecordRetryOutcome:
        logger.warning(
            "record exceeded max retry attempts",
            extra={
                "record_id": record.id,
                "retry_count": record.retry_count,
                "max_attempts": self.settings.policy.max_attempts,
            },
        )
        try:
            await self.store.update(
                record.id,
                RecordChanges(status=RecordStatus.PENDING_REVIEW, updated_at=self.clock()),
                expected_status=record.status,
                expected_retry_count=record.retry_count,
            )
        except Exception as exc:
            logger.exception("failed to park exhausted record", extra={"record_id": record.id})
            return RecordRetryOutcome(
                record_id=record.id,
                kind="failed",
                status=None,
                retry_count=record.retry_count,
                detail=str(exc),
                error_code=resolve_attempt_error(exc),
            )
        return RecordRetryOutcome(
            record_id=record.id,
            kind="pending_review",
            status=RecordStatus.PENDING_REVIEW,
            retry_count=record.retry_count,
        )

    async def _monitor(self) -> MonitoringReport | None:
        try:
            report = await collect_monitoring_report(
                self.store,
                now=self.clock(),
                policy=self.settings.policy,
                batch_size=self.settings.batch_size,
                stuck_threshold=self.settings.stuck_threshold,
            )
        except Exception:
            logger.exception("retry monitoring failed")
            return None
        log_monitoring_report(report)
        return report


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
