from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, replace

from zoning.domain.classification import (
    ClassificationOk,
    ClassificationOutcome,
    ClassificationSchemaError,
    ClassificationTransportError,
)
from zoning.domain.contracts import ClassificationTransport
from zoning.domain.dto import EnrichmentLookup
from zoning.domain.errors import ClassificationUnavailableError
from zoning.domain.models import DEFAULT_GROUP, Classification, Item, Zone
from zoning.domain.sanitization import normalize_name
from zoning.lib.batching import BatchOptions, process_in_batches

COMPONENT_ID = "domain.enrichment.client"
logger = logging.getLogger("enrichment")


@dataclass(frozen=True)
class EnrichmentClient:
    """Classification calls for the submission and retry paths.

    Never raises for transport, HTTP or payload failures. Apart from the
    per-item follow-up in ``classify_bulk`` no call is repeated: failed names
    are simply absent from the returned lookup, and a warning explains why.
    """

    transport: ClassificationTransport
    per_item_concurrency: int = 2
    per_item_delay_ms: int = 50
    per_item_fallback_limit: int = 5

    async def classify_bulk(self, names: Iterable[str]) -> EnrichmentLookup:
        """One call for all names, then per-item calls for whatever it left out.

        Names absent from a successful bulk answer are asked for one by one,
        since the service truncates long lists without saying so. When the
        bulk call fails outright and at most ``per_item_fallback_limit`` names
        were requested, every name is retried per item instead.
        """
        requested = _distinct_names(names)
        if not requested:
            return EnrichmentLookup()

        outcome = await self._call(requested)
        if isinstance(outcome, ClassificationOk):
            classifications = _index_classifications(outcome.classifications, requested)
            answered = {entry.name for entry in outcome.classifications}
            missing = [name for name in requested if name not in answered]
            failure: ClassificationSchemaError | ClassificationTransportError | None = None
        else:
            logger.warning(
                "bulk classification failed",
                extra={"requested": len(requested), "error": outcome.detail},
            )
            classifications = {}
            missing = requested if len(requested) <= self.per_item_fallback_limit else []
            failure = outcome

        if missing:
            follow_up = await self.classify_per_item(missing)
            classifications.update(follow_up.classifications)
            logger.debug(
                "per-item fallback completed",
                extra={"requested": len(requested), "missing": len(missing), "matched": follow_up.matched},
            )

        if failure is not None and not classifications:
            warnings: tuple[str, ...] = (_failure_warning(failure),)
        else:
            warnings = _coverage_warnings(matched=len(classifications), requested=len(requested))
        return EnrichmentLookup(
            classifications=classifications,
            warnings=warnings,
            requested=len(requested),
        )

    async def classify_per_item(self, names: Iterable[str]) -> EnrichmentLookup:
        requested = _distinct_names(names)
        if not requested:
            return EnrichmentLookup()

        async def _classify_one(name: str, index: int) -> Classification | None:
            del index
            outcome = await self._call([name])
            if not isinstance(outcome, ClassificationOk):
                raise ClassificationUnavailableError(outcome.detail)
            return _index_classifications(outcome.classifications, [name]).get(name)

        batch = await process_in_batches(
            requested,
            _classify_one,
            BatchOptions(
                batch_size=self.per_item_concurrency,
                delay_between_batches_ms=self.per_item_delay_ms,
            ),
        )

        classifications = {entry.name: entry for entry in batch.results if entry is not None}
        logger.debug(
            "per-item classification completed",
            extra={
                "requested": len(requested),
                "matched": len(classifications),
                "failed_calls": len(batch.errors),
            },
        )
        return EnrichmentLookup(
            classifications=classifications,
            warnings=_coverage_warnings(matched=len(classifications), requested=len(requested)),
            requested=len(requested),
        )

    async def _call(self, names: Sequence[str]) -> ClassificationOutcome:
        try:
            return await self.transport.classify(names)
        except Exception as exc:
            # Transports should return tagged errors; anything raised still stays inside the client.
            return ClassificationTransportError(detail=str(exc) or exc.__class__.__name__)


def merge_classifications(items: Iterable[Item], classifications: Mapping[str, Classification]) -> tuple[Item, ...]:
    """Overwrite ``zone`` and ``group`` of matched items; unmatched items pass through.

    A result without a ``category`` keeps the item's existing one rather than
    blanking it, and a missing ``group`` falls back to the item's or ``"other"``.
    Caller-set fields such as ``organic`` are never touched.
    """
    merged: list[Item] = []
    for item in items:
        match = classifications.get(normalize_name(item.name))
        if match is None:
            merged.append(item)
            continue
        merged.append(
            replace(
                item,
                zone=match.zone,
                category=match.category if match.category else item.category,
                group=match.group or item.group or DEFAULT_GROUP,
            )
        )
    return tuple(merged)


def _distinct_names(names: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for name in names:
        key = normalize_name(name)
        if key:
            seen.setdefault(key, None)
    return list(seen)


def _index_classifications(
    classifications: Iterable[Classification],
    requested: Sequence[str],
) -> dict[str, Classification]:
    wanted = set(requested)
    indexed: dict[str, Classification] = {}
    for entry in classifications:
        # An "unzoned" answer carries no decision; the item stays pending.
        if entry.name in wanted and entry.zone != Zone.UNZONED:
            indexed.setdefault(entry.name, entry)
    return indexed


def _failure_warning(outcome: ClassificationSchemaError | ClassificationTransportError) -> str:
    if isinstance(outcome, ClassificationSchemaError):
        return "Classification service returned an unreadable response. Saving with default values."
    return "Classification service is unavailable. Saving with default values."


def _coverage_warnings(*, matched: int, requested: int) -> tuple[str, ...]:
    if matched == 0:
        return ("Could not classify any items. Saving with default values.",)
    if matched < requested:
        return (f"Could only classify {matched} of {requested} items.",)
    return ()
