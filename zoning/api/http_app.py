from __future__ import annotations

from contextlib import asynccontextmanager
import asyncio
from collections.abc import Awaitable, Callable
import logging

from fastapi import FastAPI, HTTPException, Path

from zoning.api.handlers.deps import ApiDeps
from zoning.api.handlers.records import create_record_handler, get_record_handler
from zoning.api.handlers.retries import get_monitoring_handler, retry_record_handler, run_sweep_handler
from zoning.api.schemas import (
    RECORD_ID_PATTERN,
    CreateRecordRequest,
    CreateRecordResponse,
    ErrorResponse,
    HealthResponse,
    ManualRetryResponse,
    MonitoringResponse,
    ReadyResponse,
    RecordResponse,
    SubmissionErrorResponse,
    SweeperMetrics,
    SweepResponse,
)
from zoning.repositories.postgres import PostgresRecordStore
from zoning.workers.runner import (
    SweeperRuntimeSettings,
    SweeperRuntimeState,
    run_sweeper_until_stopped,
    sweeper_runtime_settings_from_env,
)
from zoning.workers.sweep import RetrySweeper


def build_app(
    role: str,
    run_id: str,
    sweeper: RetrySweeper | None = None,
    sweeper_runtime_settings: SweeperRuntimeSettings | None = None,
    api_deps: ApiDeps | None = None,
    on_startup: Callable[[], Awaitable[None]] | None = None,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> FastAPI:
    """HTTP surface; when ``sweeper`` is given its timer loop runs for the app lifetime."""
    logger = logging.getLogger("runtime")
    sweeper_state: SweeperRuntimeState | None = None
    sweeper_task: asyncio.Task[None] | None = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal sweeper_task, sweeper_state
        del app
        stop_event: asyncio.Event | None = None

        logger.info(
            "role started",
            extra={"role": role, "service": role, "run_id": run_id},
        )

        if on_startup is not None:
            await on_startup()

        if sweeper is not None:
            settings = sweeper_runtime_settings or sweeper_runtime_settings_from_env()
            sweeper_state = SweeperRuntimeState()
            stop_event = asyncio.Event()
            sweeper_task = asyncio.create_task(
                run_sweeper_until_stopped(
                    sweeper=sweeper,
                    role=role,
                    run_id=run_id,
                    stop_event=stop_event,
                    settings=settings,
                    logger=logger,
                    state=sweeper_state,
                )
            )

        yield

        if stop_event is not None and sweeper_task is not None:
            stop_event.set()
            await sweeper_task

        if on_shutdown is not None:
            await on_shutdown()

        logger.info(
            "role stopped",
            extra={"role": role, "service": role, "run_id": run_id},
        )

    app = FastAPI(title="item-zoning", version="0.1.0", lifespan=lifespan)

    def _require_deps() -> ApiDeps:
        if api_deps is None:
            raise HTTPException(status_code=503, detail="api dependencies are not available")
        return api_deps

    @app.get("/health", response_model=HealthResponse, tags=["System"])
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", role=role, mode=_mode(api_deps))

    @app.get("/ready", response_model=ReadyResponse, tags=["System"])
    async def ready() -> ReadyResponse:
        sweeper_loop_enabled = sweeper is not None
        sweeper_loop_ready = True
        metrics = SweeperMetrics(
            started=False,
            stopped=False,
            sweeps_total=0,
            records_retried_total=0,
            errors_total=0,
        )
        if sweeper_loop_enabled:
            sweeper_loop_ready = (
                sweeper_state is not None
                and sweeper_state.started
                and sweeper_task is not None
                and not sweeper_task.done()
            )
            if sweeper_state is not None:
                metrics = SweeperMetrics(
                    started=sweeper_state.started,
                    stopped=sweeper_state.stopped,
                    sweeps_total=sweeper_state.sweeps_total,
                    records_retried_total=sweeper_state.records_retried_total,
                    errors_total=sweeper_state.errors_total,
                )

        return ReadyResponse(
            status="ready",
            role=role,
            mode=_mode(api_deps),
            sweeper_loop_enabled=sweeper_loop_enabled,
            sweeper_loop_ready=sweeper_loop_ready,
            sweeper_metrics=metrics,
        )

    @app.post(
        "/records",
        response_model=CreateRecordResponse,
        status_code=201,
        responses={422: {"model": SubmissionErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Records"],
    )
    async def create_record(request: CreateRecordRequest) -> CreateRecordResponse:
        deps = _require_deps()
        result = await create_record_handler(request=request, api_deps=deps)
        if isinstance(result, SubmissionErrorResponse):
            status_code = 422 if result.type == "validation" else 500
            raise HTTPException(status_code=status_code, detail=result.model_dump())
        return result

    @app.get(
        "/records/{record_id}",
        response_model=RecordResponse,
        responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Records"],
    )
    async def get_record(record_id: str = Path(..., pattern=RECORD_ID_PATTERN)) -> RecordResponse:
        deps = _require_deps()
        record = await get_record_handler(record_id=record_id, api_deps=deps)
        if record is None:
            raise HTTPException(status_code=404, detail="record not found")
        return record

    @app.post(
        "/records/{record_id}/retry",
        response_model=ManualRetryResponse,
        responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
        tags=["Retries"],
    )
    async def retry_record(record_id: str = Path(..., pattern=RECORD_ID_PATTERN)) -> ManualRetryResponse:
        deps = _require_deps()
        result = await retry_record_handler(record_id=record_id, api_deps=deps)
        if result.status == "not_found":
            raise HTTPException(status_code=404, detail="record not found")
        if result.status == "not_retryable":
            raise HTTPException(status_code=409, detail="record is not eligible for a manual retry")
        return result

    @app.post("/internal/sweeps", response_model=SweepResponse, tags=["Retries"])
    async def run_sweep() -> SweepResponse:
        deps = _require_deps()
        return await run_sweep_handler(api_deps=deps)

    @app.get(
        "/monitoring/retries",
        response_model=MonitoringResponse,
        responses={503: {"model": ErrorResponse}},
        tags=["Retries"],
    )
    async def get_monitoring() -> MonitoringResponse:
        deps = _require_deps()
        try:
            return await get_monitoring_handler(api_deps=deps)
        except Exception as exc:
            logger.exception("monitoring report failed")
            raise HTTPException(status_code=503, detail="monitoring is not available") from exc

    return app


def _mode(api_deps: ApiDeps | None) -> str:
    if api_deps is None:
        return "skeleton"
    return "postgres" if isinstance(api_deps.store, PostgresRecordStore) else "in-memory"
