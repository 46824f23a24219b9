from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from zoning.domain.classification import (
    ClassificationOk,
    ClassificationOutcome,
    ClassificationSchemaError,
    ClassificationTransportError,
)
from zoning.domain.models import Classification, Zone
from zoning.domain.sanitization import normalize_name

DEFAULT_CATALOG: dict[str, Classification] = {
    "kale": Classification(name="kale", zone=Zone.GREEN, category="Vegetables", group="Leafy Greens"),
    "spinach": Classification(name="spinach", zone=Zone.GREEN, category="Vegetables", group="Leafy Greens"),
    "blueberries": Classification(name="blueberries", zone=Zone.GREEN, category="Fruits", group="Low-Sugar Berries"),
    "salmon": Classification(name="salmon", zone=Zone.GREEN, category="Proteins", group="Quality Animal Proteins"),
    "rice": Classification(name="rice", zone=Zone.YELLOW, category="Grains", group="Whole Grains"),
    "sugar": Classification(name="sugar", zone=Zone.RED, category="Sweeteners", group="Refined Sugars"),
}


@dataclass
class StubClassificationTransport:
    """Deterministic transport: answers names found in ``catalog`` and silently skips the rest.

    ``unavailable`` and ``malformed`` simulate whole-call failures.
    """

    catalog: dict[str, Classification] = field(default_factory=lambda: dict(DEFAULT_CATALOG))
    unavailable: bool = False
    malformed: bool = False
    calls: list[list[str]] = field(default_factory=list)

    async def classify(self, names: Sequence[str]) -> ClassificationOutcome:
        self.calls.append(list(names))
        if self.unavailable:
            return ClassificationTransportError(detail="classification service responded 503", status_code=503)
        if self.malformed:
            return ClassificationSchemaError(detail="classification response failed validation")
        found = (self.catalog.get(normalize_name(name)) for name in names)
        return ClassificationOk(classifications=tuple(entry for entry in found if entry is not None))
