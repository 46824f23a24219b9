from __future__ import annotations

from zoning.api.handlers.deps import ApiDeps
from zoning.api.schemas import (
    ManualRetryResponse,
    MonitoringResponse,
    RecordOutcomeResponse,
    SweepResponse,
)
from zoning.domain.dto import RecordRetryOutcome
from zoning.domain.models import MonitoringReport
from zoning.domain.use_cases.monitoring import collect_monitoring_report

COMPONENT_ID = "api.retries"


async def retry_record_handler(*, record_id: str, api_deps: ApiDeps) -> ManualRetryResponse:
    result = await api_deps.sweeper.retry_record(record_id)
    return ManualRetryResponse(
        record_id=result.record_id,
        status=result.status,
        outcome=_outcome_response(result.outcome) if result.outcome is not None else None,
    )


async def run_sweep_handler(*, api_deps: ApiDeps) -> SweepResponse:
    """Request-driven trigger for one sweep; the sweep itself never raises."""
    report = await api_deps.sweeper.run_once()
    return SweepResponse(
        selected=report.selected,
        eligible=report.eligible,
        processed=report.count("processed"),
        analyzing=report.count("analyzing"),
        pending_review=report.count("pending_review"),
        failed=report.count("failed"),
        conflicts=report.count("conflict"),
        elapsed_ms=report.elapsed_ms,
        error=report.error,
        monitoring=monitoring_response(report.monitoring) if report.monitoring is not None else None,
    )


async def get_monitoring_handler(*, api_deps: ApiDeps) -> MonitoringResponse:
    settings = api_deps.sweep_settings
    report = await collect_monitoring_report(
        api_deps.store,
        now=api_deps.sweeper.clock(),
        policy=settings.policy,
        batch_size=settings.batch_size,
        stuck_threshold=settings.stuck_threshold,
    )
    return monitoring_response(report)


def monitoring_response(report: MonitoringReport) -> MonitoringResponse:
    return MonitoringResponse(
        total_analyzing=report.total_analyzing,
        near_exhausted=report.near_exhausted,
        stuck=report.stuck,
        average_retry_count=report.average_retry_count,
        max_attempts=report.max_attempts,
        backlog_exceeded=report.backlog_exceeded,
        oldest_stuck_record_id=report.oldest_stuck_record_id,
        warnings=list(report.warnings),
    )


def _outcome_response(outcome: RecordRetryOutcome) -> RecordOutcomeResponse:
    return RecordOutcomeResponse(
        record_id=outcome.record_id,
        kind=outcome.kind,
        status=outcome.status,
        retry_count=outcome.retry_count,
        detail=outcome.detail,
        error_code=outcome.error_code,
    )
