from __future__ import annotations

import itertools
from datetime import datetime, timezone
from decimal import Decimal

from crowdprice.services.identity import StoreIdentityResolver, build_provisional_keys
from crowdprice.services.observations import (
    FulfillmentKind,
    ItemCondition,
    ObservationStatus,
    PriceObservation,
)


def test_build_provisional_keys_scopes_id_and_lowercased_name_to_location() -> None:
    id_key, name_key = build_provisional_keys(
        store_id="store-1",
        store_name="  MediaMarkt ",
        source=None,
        location_suffix="Germany:Berlin",
    )

    assert id_key == "id:store-1:Germany:Berlin"
    assert name_key == "name:mediamarkt:Germany:Berlin"


def test_build_provisional_keys_falls_back_to_source_label() -> None:
    id_key, name_key = build_provisional_keys(
        store_id=None,
        store_name=None,
        source="Extension",
        location_suffix="Spain",
    )

    assert id_key is None
    assert name_key == "source:extension:Spain"


def test_store_name_wins_over_source_label() -> None:
    _, name_key = build_provisional_keys(
        store_id=None,
        store_name="Fnac",
        source="extension",
        location_suffix="France",
    )

    assert name_key == "name:fnac:France"


def test_same_store_id_with_different_names_resolves_to_one_key() -> None:
    resolver = StoreIdentityResolver()
    first = _observation("a", store_id="s-1", store_name="Amazon")
    second = _observation("b", store_id="s-1", store_name="Amazon.de Marketplace")
    resolver.register(first)
    resolver.register(second)

    assert resolver.canonical_key(first) == resolver.canonical_key(second)


def test_name_only_reference_joins_the_store_known_by_id() -> None:
    resolver = StoreIdentityResolver()
    by_name = _observation("a", store_id=None, store_name="amazon")
    by_id = _observation("b", store_id="s-1", store_name=None)
    linked = _observation("c", store_id="s-1", store_name="Amazon")
    for row in (by_name, by_id, linked):
        resolver.register(row)

    assert resolver.canonical_key(by_name) == resolver.canonical_key(by_id) == resolver.canonical_key(linked)


def test_different_ids_sharing_a_name_are_merged() -> None:
    resolver = StoreIdentityResolver()
    first = _observation("a", store_id="s-1", store_name="Corner Shop")
    second = _observation("b", store_id="s-2", store_name="corner shop")
    resolver.register(first)
    resolver.register(second)

    assert resolver.canonical_key(first) == resolver.canonical_key(second)


def test_location_keeps_same_store_apart() -> None:
    resolver = StoreIdentityResolver()
    berlin = _observation("a", store_id="s-1", city="Berlin")
    munich = _observation("b", store_id="s-1", city="Munich")
    resolver.register(berlin)
    resolver.register(munich)

    assert resolver.canonical_key(berlin) != resolver.canonical_key(munich)


def test_observation_without_store_reference_uses_unknown_key() -> None:
    resolver = StoreIdentityResolver()
    row = _observation("a", store_id=None, store_name=None, city=None)

    assert resolver.canonical_key(row) == "unknown:Germany"


def test_canonical_key_anchors_on_first_registered_key() -> None:
    resolver = StoreIdentityResolver()
    by_name = _observation("a", store_id=None, store_name="Saturn")
    linked = _observation("b", store_id="s-9", store_name="Saturn")
    resolver.register(by_name)
    resolver.register(linked)

    assert resolver.canonical_key(linked) == "name:saturn:Germany:Berlin"


def test_partition_is_independent_of_processing_order() -> None:
    rows = [
        _observation("a", store_id="s-1", store_name=None),
        _observation("b", store_id=None, store_name="Alpha"),
        _observation("c", store_id="s-1", store_name="Alpha"),
        _observation("d", store_id="s-2", store_name=None),
        _observation("e", store_id=None, store_name="Beta"),
        _observation("f", store_id="s-2", store_name="Beta"),
        _observation("g", store_id="s-3", store_name="Gamma"),
    ]

    partitions = set()
    for permutation in itertools.permutations(rows):
        resolver = StoreIdentityResolver()
        for row in permutation:
            resolver.register(row)
        groups: dict[str, set[str]] = {}
        for row in permutation:
            groups.setdefault(resolver.canonical_key(row), set()).add(row.id)
        partitions.add(frozenset(frozenset(members) for members in groups.values()))

    assert partitions == {
        frozenset(
            {
                frozenset({"a", "b", "c"}),
                frozenset({"d", "e", "f"}),
                frozenset({"g"}),
            }
        )
    }


def _observation(
    observation_id: str,
    *,
    store_id: str | None = "s-1",
    store_name: str | None = "Store",
    country: str = "Germany",
    city: str | None = "Berlin",
) -> PriceObservation:
    return PriceObservation(
        id=observation_id,
        product_id="product-1",
        price=Decimal("10.00"),
        currency="EUR",
        store_id=store_id,
        store_name=store_name,
        source=None,
        country=country,
        city=city,
        fulfillment=FulfillmentKind.DELIVERY,
        condition=ItemCondition.NEW,
        is_final_price=False,
        submitted_by="user-1",
        status=ObservationStatus.APPROVED,
        created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
