from __future__ import annotations

from dataclasses import dataclass

from zoning.domain.contracts import RecordStore
from zoning.domain.use_cases.enrich import EnrichmentClient
from zoning.settings import SweepSettings
from zoning.workers.sweep import RetrySweeper


@dataclass(frozen=True)
class ApiDeps:
    store: RecordStore
    enrichment: EnrichmentClient
    sweeper: RetrySweeper
    sweep_settings: SweepSettings
