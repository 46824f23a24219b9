from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from zoning.domain.models import DEFAULT_GROUP, RecordStatus, Zone

RECORD_ID_PATTERN = r"^rec_[0-9A-HJKMNP-TV-Z]{26}$"


class ErrorResponse(BaseModel):
    detail: str


class SubmissionErrorResponse(BaseModel):
    message: str
    code: str
    type: Literal["validation", "api", "network", "unknown"]


class SweeperMetrics(BaseModel):
    started: bool
    stopped: bool
    sweeps_total: int
    records_retried_total: int
    errors_total: int


class HealthResponse(BaseModel):
    status: str
    role: str
    mode: str


class ReadyResponse(BaseModel):
    status: str
    role: str
    mode: str
    sweeper_loop_enabled: bool
    sweeper_loop_ready: bool
    sweeper_metrics: SweeperMetrics


class ItemPayload(BaseModel):
    name: str = Field(max_length=200)
    zone: Zone = Zone.UNZONED
    category: str | None = Field(default=None, max_length=128)
    group: str = Field(default=DEFAULT_GROUP, max_length=128)
    organic: bool = False


class CreateRecordRequest(BaseModel):
    name: str = Field(default="", max_length=200)
    items: list[ItemPayload] = Field(default_factory=list, max_length=100)
    notes: str = Field(default="", max_length=2000)
    pending_item: str = Field(default="", max_length=200)
    recorded_at: datetime | None = None
    # Leave unclassified items to the background sweeper instead of saving as processed.
    defer_unclassified: bool = False


class ZoneCountsResponse(BaseModel):
    green: int
    yellow: int
    red: int
    unzoned: int
    total: int


class RecordResponse(BaseModel):
    id: str = Field(pattern=RECORD_ID_PATTERN)
    name: str
    items: list[ItemPayload]
    notes: str
    status: RecordStatus
    retry_count: int = Field(ge=0)
    last_retry_at: datetime | None
    recorded_at: datetime
    created_at: datetime
    updated_at: datetime
    zone_counts: ZoneCountsResponse
    status_message: str


class CreateRecordResponse(BaseModel):
    record: RecordResponse
    warnings: list[str]


class RecordOutcomeResponse(BaseModel):
    record_id: str
    kind: Literal["processed", "analyzing", "pending_review", "failed", "conflict"]
    status: RecordStatus | None
    retry_count: int
    detail: str
    error_code: str | None = None


class ManualRetryResponse(BaseModel):
    record_id: str
    status: Literal["retried", "not_found", "not_retryable"]
    outcome: RecordOutcomeResponse | None = None


class MonitoringResponse(BaseModel):
    total_analyzing: int
    near_exhausted: int
    stuck: int
    average_retry_count: float
    max_attempts: int
    backlog_exceeded: bool
    oldest_stuck_record_id: str | None
    warnings: list[str]


class SweepResponse(BaseModel):
    selected: int
    eligible: int
    processed: int
    analyzing: int
    pending_review: int
    failed: int
    conflicts: int
    elapsed_ms: int
    error: str | None = None
    monitoring: MonitoringResponse | None = None
