from __future__ import annotations

import logging
from datetime import datetime, timedelta

from zoning.domain.contracts import RecordStore
from zoning.domain.lifecycle import DEFAULT_RETRY_POLICY, RetryPolicy
from zoning.domain.models import MonitoringReport, RecordOrder, RecordStatus

COMPONENT_ID = "domain.monitoring.retries"
DEFAULT_STUCK_THRESHOLD = timedelta(hours=24)
BACKLOG_FACTOR = 3

logger = logging.getLogger("enrichment")


async def collect_monitoring_report(
    store: RecordStore,
    *,
    now: datetime,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    batch_size: int = 10,
    stuck_threshold: timedelta = DEFAULT_STUCK_THRESHOLD,
) -> MonitoringReport:
    """Read-only summary of the analyzing backlog."""
    records = await store.query(status=RecordStatus.ANALYZING, order=RecordOrder.OLDEST_FIRST)
    total = len(records)
    near_exhausted = sum(1 for record in records if record.retry_count >= policy.max_attempts - 1)
    stuck_records = [record for record in records if now - record.created_at > stuck_threshold]
    average = round(sum(record.retry_count for record in records) / total, 2) if total else 0.0
    backlog_exceeded = total > batch_size * BACKLOG_FACTOR

    warnings: list[str] = []
    if near_exhausted:
        warnings.append(f"{near_exhausted} records approaching max retry limit")
    if stuck_records:
        hours = stuck_threshold.total_seconds() / 3600
        warnings.append(f"{len(stuck_records)} records analyzing for longer than {hours:g} hours")
    if backlog_exceeded:
        warnings.append(f"Large backlog detected: {total} records in analyzing state")

    return MonitoringReport(
        total_analyzing=total,
        near_exhausted=near_exhausted,
        stuck=len(stuck_records),
        average_retry_count=average,
        max_attempts=policy.max_attempts,
        backlog_exceeded=backlog_exceeded,
        oldest_stuck_record_id=stuck_records[0].id if stuck_records else None,
        warnings=tuple(warnings),
    )


def log_monitoring_report(report: MonitoringReport) -> None:
    logger.info(
        "retry monitoring stats",
        extra={
            "total_analyzing": report.total_analyzing,
            "near_exhausted": report.near_exhausted,
            "stuck": report.stuck,
            "average_retry_count": report.average_retry_count,
            "max_attempts": report.max_attempts,
        },
    )
    for warning in report.warnings:
        logger.warning(
            warning,
            extra={
                "total_analyzing": report.total_analyzing,
                "near_exhausted": report.near_exhausted,
                "stuck": report.stuck,
                "oldest_stuck_record_id": report.oldest_stuck_record_id,
            },
        )
