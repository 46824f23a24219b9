from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from zoning.domain.classification import normalize_zone
from zoning.domain.models import DEFAULT_GROUP, Item, Record, RecordStatus


class ItemRow(BaseModel):
    # JSONB element of records.items.
    name: str
    zone: str = "unzoned"
    category: str | None = None
    group: str = Field(default=DEFAULT_GROUP)
    organic: bool = False


def encode_items(items: Iterable[Item]) -> list[dict[str, object]]:
    return [
        ItemRow(
            name=item.name,
            zone=item.zone.value,
            category=item.category,
            group=item.group,
            organic=item.organic,
        ).model_dump(mode="json")
        for item in items
    ]


def decode_items(payload: Iterable[Mapping[str, Any]] | None) -> tuple[Item, ...]:
    decoded: list[Item] = []
    for raw in payload or ():
        row = ItemRow.model_validate(raw)
        decoded.append(
            Item(
                name=row.name,
                zone=normalize_zone(row.zone),
                category=row.category,
                group=row.group or DEFAULT_GROUP,
                organic=row.organic,
            )
        )
    return tuple(decoded)


def record_from_row(row: Mapping[str, Any]) -> Record:
    return Record(
        id=row["id"],
        name=row["name"],
        items=decode_items(row["items"]),
        notes=row["notes"],
        status=RecordStatus(row["status"]),
        retry_count=row["retry_count"],
        last_retry_at=row["last_retry_at"],
        recorded_at=row["recorded_at"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
