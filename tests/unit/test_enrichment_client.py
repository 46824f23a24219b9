import asyncio
from collections.abc import Sequence

import pytest

from zoning.clients.stub import StubClassificationTransport
from zoning.domain.classification import (
    ClassificationOk,
    ClassificationOutcome,
    ClassificationSchemaError,
    ClassificationTransportError,
    parse_classification_payload,
)
from zoning.domain.models import Classification, Item, Zone
from zoning.domain.use_cases.enrich import EnrichmentClient, merge_classifications


@pytest.mark.unit
def test_merge_overwrites_matched_items_and_keeps_the_rest() -> None:
    items = (Item(name="kale", organic=True), Item(name="sugar"))
    client = EnrichmentClient(
        transport=StubClassificationTransport(
            catalog={
                "kale": Classification(name="kale", zone=Zone.GREEN, group="Leafy Greens"),
            }
        )
    )

    lookup = asyncio.run(client.classify_bulk(item.name for item in items))
    merged = merge_classifications(items, lookup.classifications)

    assert merged[0].zone == Zone.GREEN
    assert merged[0].group == "Leafy Greens"
    assert merged[0].organic is True
    assert merged[1] == Item(name="sugar")
    assert lookup.matched == 1
    assert lookup.requested == 2
    assert lookup.warnings == ("Could only classify 1 of 2 items.",)


@pytest.mark.unit
def test_bulk_call_sends_distinct_normalized_names_once() -> None:
    transport = StubClassificationTransport()
    client = EnrichmentClient(transport=transport)

    lookup = asyncio.run(client.classify_bulk(["Kale", " kale ", "rice", ""]))

    assert transport.calls == [["kale", "rice"]]
    assert set(lookup.classifications) == {"kale", "rice"}
    assert lookup.warnings == ()


@pytest.mark.unit
def test_empty_name_list_skips_the_service() -> None:
    transport = StubClassificationTransport()

    lookup = asyncio.run(EnrichmentClient(transport=transport).classify_bulk([]))

    assert transport.calls == []
    assert lookup.classifications == {}
    assert lookup.warnings == ()


@pytest.mark.unit
@pytest.mark.parametrize(
    ("transport", "warning"),
    [
        (
            StubClassificationTransport(unavailable=True),
            "Classification service is unavailable. Saving with default values.",
        ),
        (
            StubClassificationTransport(malformed=True),
            "Classification service returned an unreadable response. Saving with default values.",
        ),
    ],
)
def test_bulk_failure_returns_empty_map_and_warning(
    transport: StubClassificationTransport,
    warning: str,
) -> None:
    lookup = asyncio.run(EnrichmentClient(transport=transport).classify_bulk(["kale", "sugar"]))

    assert lookup.classifications == {}
    assert lookup.warnings == (warning,)


@pytest.mark.unit
def test_raising_transport_never_escapes_the_client() -> None:
    class _ExplodingTransport:
        async def classify(self, names: Sequence[str]) -> ClassificationOutcome:
            del names
            raise ConnectionResetError("peer reset")

    lookup = asyncio.run(EnrichmentClient(transport=_ExplodingTransport()).classify_bulk(["kale"]))

    assert lookup.classifications == {}
    assert lookup.warnings == ("Classification service is unavailable. Saving with default values.",)


@pytest.mark.unit
def test_unzoned_answer_counts_as_no_match() -> None:
    transport = StubClassificationTransport(
        catalog={"kale": Classification(name="kale", zone=Zone.UNZONED, group="Leafy Greens")}
    )

    lookup = asyncio.run(EnrichmentClient(transport=transport).classify_bulk(["kale"]))

    assert lookup.classifications == {}
    assert lookup.warnings == ("Could not classify any items. Saving with default values.",)


@pytest.mark.unit
def test_per_item_calls_isolate_failing_names() -> None:
    class _PartiallyFailingTransport(StubClassificationTransport):
        async def classify(self, names: Sequence[str]) -> ClassificationOutcome:
            if "rice" in names:
                self.calls.append(list(names))
                return ClassificationTransportError(detail="timeout")
            return await super().classify(names)

    transport = _PartiallyFailingTransport()
    client = EnrichmentClient(transport=transport, per_item_concurrency=2, per_item_delay_ms=0)

    lookup = asyncio.run(client.classify_per_item(["kale", "rice", "sugar"]))

    assert sorted(transport.calls) == [["kale"], ["rice"], ["sugar"]]
    assert set(lookup.classifications) == {"kale", "sugar"}
    assert lookup.warnings == ("Could only classify 2 of 3 items.",)


@pytest.mark.unit
def test_payload_parser_normalizes_names_and_zones() -> None:
    outcome = parse_classification_payload(
        b'{"items": [{"name": " Kale ", "zone": "GREEN", "group": "Leafy Greens"},'
        b' {"name": "mystery", "zone": "purple", "group": "other"}]}'
    )

    assert isinstance(outcome, ClassificationOk)
    assert outcome.classifications == (
        Classification(name="kale", zone=Zone.GREEN, group="Leafy Greens"),
        Classification(name="mystery", zone=Zone.UNZONED, group="other"),
    )


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2]",
        b'{"items": [{"name": "kale"}]}',
        b'{"items": "kale"}',
    ],
)
def test_payload_parser_rejects_whole_call_on_schema_problems(raw: bytes) -> None:
    assert isinstance(parse_classification_payload(raw), ClassificationSchemaError)


class _TruncatingTransport(StubClassificationTransport):
    """Answers only the first name of a multi-name call, like a service cutting long lists."""

    async def classify(self, names: Sequence[str]) -> ClassificationOutcome:
        outcome = await super().classify(names)
        if isinstance(outcome, ClassificationOk) and len(names) > 1:
            return ClassificationOk(classifications=outcome.classifications[:1])
        return outcome


@pytest.mark.unit
def test_bulk_follows_up_per_item_for_names_left_out_of_the_answer() -> None:
    transport = _TruncatingTransport()
    client = EnrichmentClient(transport=transport, per_item_delay_ms=0)

    lookup = asyncio.run(client.classify_bulk(["kale", "rice", "sugar"]))

    assert transport.calls[0] == ["kale", "rice", "sugar"]
    assert sorted(transport.calls[1:]) == [["rice"], ["sugar"]]
    assert sorted(lookup.classifications) == ["kale", "rice", "sugar"]
    assert lookup.warnings == ()


@pytest.mark.unit
def test_bulk_does_not_follow_up_names_answered_as_unzoned() -> None:
    transport = StubClassificationTransport(
        catalog={"kale": Classification(name="kale", zone=Zone.UNZONED, group="Leafy Greens")}
    )

    asyncio.run(EnrichmentClient(transport=transport).classify_bulk(["kale"]))

    assert transport.calls == [["kale"]]


@pytest.mark.unit
def test_failed_bulk_call_with_few_names_is_retried_per_item() -> None:
    class _BulkRejectingTransport(StubClassificationTransport):
        async def classify(self, names: Sequence[str]) -> ClassificationOutcome:
            if len(names) > 1:
                self.calls.append(list(names))
                return ClassificationTransportError(detail="payload too large", status_code=413)
            return await super().classify(names)

    transport = _BulkRejectingTransport()
    client = EnrichmentClient(transport=transport, per_item_delay_ms=0)

    lookup = asyncio.run(client.classify_bulk(["kale", "rice"]))

    assert transport.calls[0] == ["kale", "rice"]
    assert sorted(transport.calls[1:]) == [["kale"], ["rice"]]
    assert sorted(lookup.classifications) == ["kale", "rice"]
    assert lookup.warnings == ()


@pytest.mark.unit
def test_failed_bulk_call_over_the_fallback_limit_is_not_retried() -> None:
    transport = StubClassificationTransport(unavailable=True)
    client = EnrichmentClient(transport=transport, per_item_fallback_limit=1)

    lookup = asyncio.run(client.classify_bulk(["kale", "rice"]))

    assert transport.calls == [["kale", "rice"]]
    assert lookup.classifications == {}
    assert lookup.warnings == ("Classification service is unavailable. Saving with default values.",)


@pytest.mark.unit
def test_merge_keeps_existing_category_when_result_has_none() -> None:
    items = (Item(name="kale", category="Vegetables"), Item(name="rice"))
    classifications = {
        "kale": Classification(name="kale", zone=Zone.GREEN, group="Leafy Greens"),
        "rice": Classification(name="rice", zone=Zone.YELLOW, category="Grains", group=""),
    }

    merged = merge_classifications(items, classifications)

    assert (merged[0].zone, merged[0].category, merged[0].group) == (Zone.GREEN, "Vegetables", "Leafy Greens")
    assert (merged[1].zone, merged[1].category, merged[1].group) == (Zone.YELLOW, "Grains", "other")
