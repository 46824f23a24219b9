from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime

from zoning.domain.dto import (
    SubmissionError,
    SubmissionFailure,
    SubmissionResult,
    SubmissionSuccess,
    SubmitRecordCommand,
)
from zoning.domain.error_taxonomy import ErrorCode, error_type_for
from zoning.domain.ids import new_record_id
from zoning.domain.models import DEFAULT_GROUP, Item, Record, RecordStatus, Zone
from zoning.domain.sanitization import sanitize_item_name, sanitize_note, sanitize_text
from zoning.domain.use_cases.enrich import EnrichmentClient, merge_classifications

COMPONENT_ID = "domain.submissions.process"
logger = logging.getLogger("enrichment")

RECORD_NAME_MAX_LENGTH = 200


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


async def process_submission(
    cmd: SubmitRecordCommand,
    *,
    enrichment: EnrichmentClient,
    now: Callable[[], datetime] = _utcnow,
    new_id: Callable[[], str] = new_record_id,
) -> SubmissionResult:
    """Sanitize, classify best-effort and assemble a record for the write path.

    Only an empty item list after sanitization fails the submission; every
    classification problem degrades to ``unzoned`` items plus a warning.
    """
    try:
        logger.debug(
            "processing submission",
            extra={"item_count": len(cmd.items), "has_pending_item": bool(cmd.pending_item.strip())},
        )

        items, warnings = prepare_items(cmd.items, cmd.pending_item)
        if not items:
            return _failure("NO_VALID_ITEMS", "Please add at least one valid item.")

        to_classify = [item.name for item in items if not item.is_classified]
        if to_classify:
            lookup = await enrichment.classify_bulk(to_classify)
            items = merge_classifications(items, lookup.classifications)
            warnings.extend(lookup.warnings)

        record = _assemble_record(cmd, items, created_at=now(), record_id=new_id())
        logger.info(
            "submission processed",
            extra={
                "record_id": record.id,
                "status": record.status.value,
                "item_count": len(record.items),
                "unzoned_count": len(record.unzoned_items),
                "warning_count": len(warnings),
            },
        )
        return SubmissionSuccess(record=record, warnings=tuple(w for w in warnings if w))
    except Exception as exc:
        logger.exception("submission processing failed")
        return _failure("PROCESSING_FAILED", str(exc) or "Failed to process entry")


def _failure(code: ErrorCode, message: str) -> SubmissionFailure:
    return SubmissionFailure(error=SubmissionError(message=message, code=code, type=error_type_for(code)))


def prepare_items(items: tuple[Item, ...], pending_item: str) -> tuple[tuple[Item, ...], list[str]]:
    """Append the pending item, sanitize names and drop empties and duplicates."""
    warnings: list[str] = []
    candidates = list(items)

    if pending_item.strip():
        pending_name = sanitize_item_name(pending_item)
        if pending_name:
            candidates.append(Item(name=pending_name))
        else:
            warnings.append("Current item could not be processed and was skipped")

    prepared: list[Item] = []
    seen: set[str] = set()
    for item in candidates:
        name = sanitize_item_name(item.name)
        if not name:
            warnings.append(f'Item "{item.name}" was removed due to invalid characters')
            continue
        if name in seen:
            continue
        seen.add(name)
        prepared.append(replace(item, name=name))

    return tuple(prepared), warnings


def _assemble_record(
    cmd: SubmitRecordCommand,
    items: tuple[Item, ...],
    *,
    created_at: datetime,
    record_id: str,
) -> Record:
    name = sanitize_text(cmd.name, RECORD_NAME_MAX_LENGTH) or f"Entry with {items[0].name}"
    final_items = tuple(
        replace(
            item,
            organic=item.organic if isinstance(item.organic, bool) else False,
            group=item.group or DEFAULT_GROUP,
            zone=item.zone or Zone.UNZONED,
        )
        for item in items
    )
    # Creation-path "processed" means no automatic retry is scheduled; deferring hands
    # leftover unzoned items to the sweeper instead.
    status = RecordStatus.PROCESSED
    if cmd.defer_unclassified and any(item.is_unzoned for item in final_items):
        status = RecordStatus.ANALYZING

    return Record(
        id=record_id,
        name=name,
        items=final_items,
        notes=sanitize_note(cmd.notes),
        status=status,
        recorded_at=cmd.recorded_at or created_at,
        created_at=created_at,
        updated_at=created_at,
    )
