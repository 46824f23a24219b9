from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
import os

from zoning.api.handlers.deps import ApiDeps
from zoning.clients.classifier import HttpClassificationTransport, build_http_client
from zoning.clients.stub import StubClassificationTransport
from zoning.domain.contracts import ClassificationTransport, RecordStore
from zoning.domain.use_cases.enrich import EnrichmentClient
from zoning.repositories.postgres import AsyncpgPoolManager, PostgresRecordStore
from zoning.repositories.stub import InMemoryRecordStore
from zoning.roles import RuntimeRole
from zoning.settings import classifier_settings_from_env, sweep_settings_from_env
from zoning.workers.sweep import RetrySweeper

Hook = Callable[[], Awaitable[None]]


@dataclass
class RuntimeContainer:
    store: RecordStore
    transport: ClassificationTransport
    enrichment: EnrichmentClient
    sweeper: RetrySweeper
    api_deps: ApiDeps
    run_sweeper_loop: bool
    on_startup: Hook | None
    on_shutdown: Hook | None


def build_runtime_container(role: RuntimeRole) -> RuntimeContainer:
    startup_hooks: list[Hook] = []
    shutdown_hooks: list[Hook] = []

    database_url = os.getenv("DATABASE_URL")
    store: RecordStore
    if database_url:
        pool_manager = AsyncpgPoolManager(dsn=database_url)
        store = PostgresRecordStore(pool_manager=pool_manager)
        startup_hooks.append(pool_manager.startup)
        shutdown_hooks.append(pool_manager.shutdown)
    else:
        store = InMemoryRecordStore()

    classifier_settings = classifier_settings_from_env()
    transport: ClassificationTransport
    if classifier_settings.url:
        http_client = build_http_client(timeout_seconds=classifier_settings.timeout_seconds)
        transport = HttpClassificationTransport(client=http_client, url=classifier_settings.url)
        shutdown_hooks.append(http_client.aclose)
    else:
        transport = StubClassificationTransport()

    enrichment = EnrichmentClient(
        transport=transport,
        per_item_concurrency=classifier_settings.per_item_concurrency,
        per_item_delay_ms=classifier_settings.per_item_delay_ms,
        per_item_fallback_limit=classifier_settings.per_item_fallback_limit,
    )
    sweep_settings = sweep_settings_from_env()
    sweeper = RetrySweeper(store=store, enrichment=enrichment, settings=sweep_settings)
    api_deps = ApiDeps(
        store=store,
        enrichment=enrichment,
        sweeper=sweeper,
        sweep_settings=sweep_settings,
    )

    return RuntimeContainer(
        store=store,
        transport=transport,
        enrichment=enrichment,
        sweeper=sweeper,
        api_deps=api_deps,
        run_sweeper_loop=role.runs_sweeper,
        on_startup=_chain(startup_hooks),
        on_shutdown=_chain(list(reversed(shutdown_hooks))),
    )


def _chain(hooks: list[Hook]) -> Hook | None:
    if not hooks:
        return None

    async def _run_all() -> None:
        for hook in hooks:
            await hook()

    return _run_all
