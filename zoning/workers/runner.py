from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from zoning.settings import _env_int
from zoning.workers.sweep import RetrySweeper


@dataclass(frozen=True)
class SweeperRuntimeSettings:
    interval_ms: int = 60000
    error_backoff_ms: int = 5000


@dataclass
class SweeperRuntimeState:
    started: bool = False
    stopped: bool = False
    sweeps_total: int = 0
    records_retried_total: int = 0
    errors_total: int = 0


def sweeper_runtime_settings_from_env() -> SweeperRuntimeSettings:
    return SweeperRuntimeSettings(
        interval_ms=_env_int("SWEEP_INTERVAL_MS", 60000),
        error_backoff_ms=_env_int("SWEEP_ERROR_BACKOFF_MS", 5000),
    )


async def run_sweeper_until_stopped(
    *,
    sweeper: RetrySweeper,
    role: str,
    run_id: str,
    stop_event: asyncio.Event,
    settings: SweeperRuntimeSettings,
    logger: logging.Logger,
    state: SweeperRuntimeState | None = None,
) -> None:
    """Timer trigger for the sweeper; each tick is one independent ``run_once``."""
    if state is not None:
        state.started = True

    logger.info(
        "sweeper loop started",
        extra={"role": role, "service": role, "run_id": run_id},
    )

    while not stop_event.is_set():
        delay_ms = settings.interval_ms
        try:
            report = await sweeper.run_once()
            if state is not None:
                state.sweeps_total += 1
                state.records_retried_total += report.eligible
                if report.error is not None:
                    state.errors_total += 1
            if report.error is not None:
                delay_ms = settings.error_backoff_ms
        except Exception:
            if state is not None:
                state.sweeps_total += 1
                state.errors_total += 1
            delay_ms = settings.error_backoff_ms
            logger.exception(
                "sweeper tick error",
                extra={"role": role, "service": role, "run_id": run_id},
            )

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay_ms / 1000)
        except TimeoutError:
            continue

    logger.info(
        "sweeper loop stopped",
        extra={"role": role, "service": role, "run_id": run_id},
    )
    if state is not None:
        state.stopped = True
