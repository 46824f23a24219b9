from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import timedelta

from zoning.domain.lifecycle import RetryPolicy


@dataclass(frozen=True)
class SweepSettings:
    policy: RetryPolicy = field(default_factory=RetryPolicy)
    batch_size: int = 10
    stuck_threshold_hours: int = 24

    @property
    def stuck_threshold(self) -> timedelta:
        return timedelta(hours=self.stuck_threshold_hours)


@dataclass(frozen=True)
class ClassifierSettings:
    url: str | None = None
    timeout_seconds: float = 30.0
    per_item_concurrency: int = 2
    per_item_delay_ms: int = 50
    per_item_fallback_limit: int = 5


def sweep_settings_from_env() -> SweepSettings:
    return SweepSettings(
        policy=RetryPolicy(
            max_attempts=_env_int("MAX_RETRY_ATTEMPTS", 3),
            base_delay_ms=_env_int("BASE_RETRY_DELAY_MS", 1000),
            multiplier=_env_float("RETRY_MULTIPLIER", 2.0),
            max_delay_ms=_env_int("MAX_RETRY_DELAY_MS", 30000),
        ),
        batch_size=_env_int("BACKGROUND_BATCH_SIZE", 10),
        stuck_threshold_hours=_env_int("STUCK_THRESHOLD_HOURS", 24),
    )


def classifier_settings_from_env() -> ClassifierSettings:
    return ClassifierSettings(
        url=os.getenv("CLASSIFIER_URL") or None,
        timeout_seconds=_env_float("CLASSIFIER_TIMEOUT_SECONDS", 30.0),
        # The service truncates and rate-limits; stay within 2-3 concurrent calls.
        per_item_concurrency=min(_env_int("CLASSIFIER_PER_ITEM_CONCURRENCY", 2), 3),
        per_item_delay_ms=_env_int("CLASSIFIER_PER_ITEM_DELAY_MS", 50),
        per_item_fallback_limit=_env_int("CLASSIFIER_PER_ITEM_FALLBACK_LIMIT", 5),
    )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = int(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default

    try:
        parsed = float(value)
    except ValueError:
        return default

    return parsed if parsed > 0 else default
