from __future__ import annotations

from datetime import UTC, datetime

from zoning.api.handlers.deps import ApiDeps
from zoning.api.schemas import (
    CreateRecordRequest,
    CreateRecordResponse,
    ItemPayload,
    RecordResponse,
    SubmissionErrorResponse,
    ZoneCountsResponse,
)
from zoning.domain.dto import SubmissionFailure, SubmitRecordCommand
from zoning.domain.models import Item, Record, zone_counts, zoning_status_message
from zoning.domain.use_cases.submissions import process_submission

COMPONENT_ID = "api.records"


async def create_record_handler(
    *,
    request: CreateRecordRequest,
    api_deps: ApiDeps,
) -> CreateRecordResponse | SubmissionErrorResponse:
    """Run the submission pipeline and persist the assembled record."""
    result = await process_submission(
        SubmitRecordCommand(
            name=request.name,
            items=tuple(
                Item(
                    name=item.name,
                    zone=item.zone,
                    category=item.category,
                    group=item.group,
                    organic=item.organic,
                )
                for item in request.items
            ),
            notes=request.notes,
            pending_item=request.pending_item,
            recorded_at=_as_utc(request.recorded_at),
            defer_unclassified=request.defer_unclassified,
        ),
        enrichment=api_deps.enrichment,
    )
    if isinstance(result, SubmissionFailure):
        return SubmissionErrorResponse(
            message=result.error.message,
            code=result.error.code,
            type=result.error.type,
        )

    persisted = await api_deps.store.create(result.record)
    return CreateRecordResponse(
        record=record_to_response(persisted),
        warnings=list(result.warnings),
    )


async def get_record_handler(*, record_id: str, api_deps: ApiDeps) -> RecordResponse | None:
    record = await api_deps.store.get(record_id)
    if record is None:
        return None
    return record_to_response(record)


def record_to_response(record: Record) -> RecordResponse:
    counts = zone_counts(record)
    return RecordResponse(
        id=record.id,
        name=record.name,
        items=[
            ItemPayload(
                name=item.name,
                zone=item.zone,
                category=item.category,
                group=item.group,
                organic=item.organic,
            )
            for item in record.items
        ],
        notes=record.notes,
        status=record.status,
        retry_count=record.retry_count,
        last_retry_at=record.last_retry_at,
        recorded_at=record.recorded_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
        zone_counts=ZoneCountsResponse(
            green=counts.green,
            yellow=counts.yellow,
            red=counts.red,
            unzoned=counts.unzoned,
            total=counts.total,
        ),
        status_message=zoning_status_message(record),
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
