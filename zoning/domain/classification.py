from __future__ import annotations

import json
from dataclasses import dataclass

from pydantic import BaseModel, Field, ValidationError

from zoning.domain.models import Classification, Zone
from zoning.domain.sanitization import normalize_name

# Wire contract of the external classification service.
# Request: {"items": ["kale", ...]}
# Response: {"items": [{"name", "zone"?, "category"?, "group"}, ...]}, possibly
# shorter than the request.


class ClassifiedItemPayload(BaseModel):
    name: str = Field(min_length=1)
    # Free text from the service; normalized by normalize_zone().
    zone: str | None = None
    category: str | None = None
    group: str = Field(min_length=1)


class ClassificationResponsePayload(BaseModel):
    items: list[ClassifiedItemPayload] = Field(default_factory=list)


class ClassificationRequestPayload(BaseModel):
    items: list[str] = Field(min_length=1)


@dataclass(frozen=True)
class ClassificationOk:
    classifications: tuple[Classification, ...]


@dataclass(frozen=True)
class ClassificationSchemaError:
    detail: str


@dataclass(frozen=True)
class ClassificationTransportError:
    detail: str
    status_code: int | None = None


ClassificationOutcome = ClassificationOk | ClassificationSchemaError | ClassificationTransportError


def normalize_zone(value: str | None) -> Zone:
    if not value:
        return Zone.UNZONED
    try:
        return Zone(value.strip().lower())
    except ValueError:
        return Zone.UNZONED


def parse_classification_payload(raw: bytes | str) -> ClassificationOutcome:
    """Validate one whole service response; any defect rejects the entire call."""
    try:
        loaded = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return ClassificationSchemaError(detail=f"classification response is not valid JSON: {exc}")
    if not isinstance(loaded, dict):
        return ClassificationSchemaError(detail="classification response root must be JSON object")

    try:
        payload = ClassificationResponsePayload.model_validate(loaded)
    except ValidationError as exc:
        return ClassificationSchemaError(detail=f"classification response failed validation: {exc.error_count()} errors")

    return ClassificationOk(
        classifications=tuple(
            Classification(
                name=normalize_name(entry.name),
                zone=normalize_zone(entry.zone),
                category=entry.category,
                group=entry.group,
            )
            for entry in payload.items
        )
    )
