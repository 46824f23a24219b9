from __future__ import annotations

import importlib
import json
from dataclasses import dataclass
from typing import Any

from zoning.domain.errors import DomainInvariantError, StaleRecordError
from zoning.domain.lifecycle import is_transition_allowed
from zoning.domain.models import Record, RecordChanges, RecordOrder, RecordStatus
from zoning.repositories.codecs import encode_items, record_from_row
from zoning.repositories.sql_loader import load_sql

try:
    asyncpg_module = importlib.import_module("asyncpg")
except ModuleNotFoundError:  # pragma: no cover
    asyncpg_module = None  # type: ignore[assignment]


SQL_CREATE_RECORD = load_sql("create_record.sql")
SQL_GET_RECORD = load_sql("get_record.sql")
SQL_LOCK_RECORD = load_sql("lock_record.sql")
SQL_QUERY_NEWEST = load_sql("query_records_newest.sql")
SQL_QUERY_OLDEST = load_sql("query_records_oldest.sql")
SQL_UPDATE_RECORD = load_sql("update_record.sql")


def _is_unique_violation(exc: Exception) -> bool:
    return getattr(exc, "sqlstate", None) == "23505"


@dataclass
class AsyncpgPoolManager:
    dsn: str
    pool: Any | None = None
    min_size: int = 1
    max_size: int = 5

    async def startup(self) -> None:
        if asyncpg_module is None:  # pragma: no cover
            raise RuntimeError("asyncpg is required for postgres store mode")

        async def _init_connection(conn: Any) -> None:
            await conn.set_type_codec(
                "jsonb",
                encoder=json.dumps,
                decoder=json.loads,
                schema="pg_catalog",
            )

        self.pool = await asyncpg_module.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            init=_init_connection,
        )

    async def shutdown(self) -> None:
        if self.pool is None:
            return
        await self.pool.close()
        self.pool = None


@dataclass
class PostgresRecordStore:
    pool_manager: AsyncpgPoolManager

    def _pool(self) -> Any:
        if self.pool_manager.pool is None:
            raise RuntimeError("postgres pool is not initialized")
        return self.pool_manager.pool

    async def create(self, record: Record) -> Record:
        pool = self._pool()
        async with pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    SQL_CREATE_RECORD,
                    record.id,
                    record.name,
                    encode_items(record.items),
                    record.notes,
                    record.status.value,
                    record.retry_count,
                    record.last_retry_at,
                    record.recorded_at,
                    record.created_at,
                    record.updated_at,
                )
            except Exception as exc:
                if _is_unique_violation(exc):
                    raise DomainInvariantError(f"record already exists: {record.id}") from exc
                raise
        if row is None:
            raise DomainInvariantError("failed to create record")
        return record_from_row(row)

    async def get(self, record_id: str) -> Record | None:
        pool = self._pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(SQL_GET_RECORD, record_id)
        if row is None:
            return None
        return record_from_row(row)

    async def query(
        self,
        *,
        status: RecordStatus,
        order: RecordOrder = RecordOrder.NEWEST_FIRST,
        limit: int | None = None,
    ) -> list[Record]:
        sql = SQL_QUERY_NEWEST if order == RecordOrder.NEWEST_FIRST else SQL_QUERY_OLDEST
        pool = self._pool()
        async with pool.acquire() as conn:
            # LIMIT NULL means no limit in Postgres.
            rows = await conn.fetch(sql, status.value, limit)
        return [record_from_row(row) for row in rows]

    async def update(
        self,
        record_id: str,
        changes: RecordChanges,
        *,
        expected_status: RecordStatus | None = None,
        expected_retry_count: int | None = None,
    ) -> None:
        pool = self._pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                current = await conn.fetchrow(SQL_LOCK_RECORD, record_id)
                if current is None:
                    raise DomainInvariantError(f"record not found: {record_id}")
                current_status = RecordStatus(current["status"])
                if expected_status is not None and current_status != expected_status:
                    raise StaleRecordError(record_id)
                if expected_retry_count is not None and current["retry_count"] != expected_retry_count:
                    raise StaleRecordError(record_id)
                if changes.status is not None and not is_transition_allowed(current_status, changes.status):
                    raise DomainInvariantError(f"invalid transition: {current_status} -> {changes.status}")

                await conn.execute(
                    SQL_UPDATE_RECORD,
                    record_id,
                    encode_items(changes.items) if changes.items is not None else None,
                    changes.status.value if changes.status is not None else None,
                    changes.retry_count,
                    changes.last_retry_at,
                    changes.updated_at,
                )
