from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from zoning.clients.stub import StubClassificationTransport
from zoning.domain.errors import DomainInvariantError, StaleRecordError
from zoning.domain.models import Item, RecordChanges, RecordOrder, RecordStatus, Zone
from zoning.domain.use_cases.enrich import EnrichmentClient
from zoning.settings import SweepSettings
from zoning.workers.sweep import RetrySweeper
from tests.integration.postgres_test_utils import fresh_store, require_postgres, row_count, run_migration
from tests.unit.records_seed import BASE_TIME, FakeClock, make_record


@pytest.mark.integration
def test_migration_up_down_up_contract() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        store, manager = await fresh_store(dsn=dsn)
        try:
            assert await store.get("rec-missing") is None
        finally:
            await manager.shutdown()

        await run_migration(dsn=dsn, direction="down")
        await run_migration(dsn=dsn, direction="up")

    asyncio.run(_run())
    assert row_count(dsn=dsn) == 0


@pytest.mark.integration
def test_records_round_trip_with_items_and_ordering() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        store, manager = await fresh_store(dsn=dsn)
        try:
            first = make_record(
                "rec-a",
                items=(Item(name="kale", zone=Zone.GREEN, category="Vegetables", group="Leafy Greens", organic=True),),
            )
            await store.create(first)
            await store.create(make_record("rec-b", created_at=BASE_TIME + timedelta(minutes=1)))
            await store.create(make_record("rec-c", status=RecordStatus.PROCESSED))

            assert await store.get("rec-a") == first
            with pytest.raises(DomainInvariantError, match="already exists"):
                await store.create(first)

            newest = await store.query(status=RecordStatus.ANALYZING, limit=1)
            oldest = await store.query(status=RecordStatus.ANALYZING, order=RecordOrder.OLDEST_FIRST)
            assert [record.id for record in newest] == ["rec-b"]
            assert [record.id for record in oldest] == ["rec-a", "rec-b"]
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_guarded_update_and_transition_rules() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        store, manager = await fresh_store(dsn=dsn)
        try:
            await store.create(make_record())
            attempted_at = BASE_TIME + timedelta(seconds=3)
            await store.update(
                "rec-1",
                RecordChanges(retry_count=1, last_retry_at=attempted_at, updated_at=attempted_at),
                expected_status=RecordStatus.ANALYZING,
                expected_retry_count=0,
            )

            with pytest.raises(StaleRecordError):
                await store.update("rec-1", RecordChanges(retry_count=2), expected_retry_count=0)

            await store.update("rec-1", RecordChanges(status=RecordStatus.PENDING_REVIEW))
            with pytest.raises(DomainInvariantError, match="invalid transition"):
                await store.update("rec-1", RecordChanges(status=RecordStatus.ANALYZING))

            record = await store.get("rec-1")
            assert record is not None
            assert record.retry_count == 1
            assert record.last_retry_at == attempted_at
            assert record.status == RecordStatus.PENDING_REVIEW
        finally:
            await manager.shutdown()

    asyncio.run(_run())


@pytest.mark.integration
def test_overlapping_sweeps_against_postgres_attempt_once() -> None:
    dsn = require_postgres()

    async def _run() -> None:
        store, manager = await fresh_store(dsn=dsn)
        try:
            await store.create(make_record())
            enrichment = EnrichmentClient(transport=StubClassificationTransport(), per_item_delay_ms=0)
            sweepers = [
                RetrySweeper(store=store, enrichment=enrichment, settings=SweepSettings(), clock=FakeClock())
                for _ in range(2)
            ]

            reports = await asyncio.gather(*(sweeper.run_once() for sweeper in sweepers))

            record = await store.get("rec-1")
            assert record is not None
            assert record.retry_count == 1
            assert sum(report.count("analyzing") for report in reports) == 1
        finally:
            await manager.shutdown()

    asyncio.run(_run())
