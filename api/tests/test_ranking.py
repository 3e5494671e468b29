from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from crowdprice.services.observations import (
    FulfillmentKind,
    ItemCondition,
    ObservationStatus,
    PriceObservation,
)
from crowdprice.services.ranking import (
    FALLBACK_TIER,
    PriceFilters,
    ShopperLocation,
    rank_prices,
    relevance_tier,
)

BASE_TIME = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)
DELIVERY = FulfillmentKind.DELIVERY
IN_STORE = FulfillmentKind.IN_STORE
PERSON = FulfillmentKind.PERSON_TO_PERSON
NEW = ItemCondition.NEW
USED = ItemCondition.USED


def test_tier_dominates_price() -> None:
    shopper = ShopperLocation(country="A", city="X")
    rows = [
        _observation("p50", store="one", country="A", city="X", price="50"),
        _observation("p30", store="two", country="A", city="X", price="30"),
        _observation("p10", store="three", country="A", city="Y", price="10"),
        _observation("p1", store="four", country="B", city="Z", price="1"),
    ]

    ranked = rank_prices(rows, shopper)

    assert [group.current.price for group in ranked.groups] == [
        Decimal("30"),
        Decimal("50"),
        Decimal("10"),
        Decimal("1"),
    ]


@pytest.mark.parametrize(
    ("country", "city", "fulfillment", "condition", "expected"),
    [
        ("A", "X", DELIVERY, NEW, 1),
        ("A", "Y", DELIVERY, NEW, 2),
        ("A", "X", IN_STORE, NEW, 3),
        ("A", "X", DELIVERY, USED, 4),
        ("A", "X", IN_STORE, USED, 5),
        ("A", "Y", IN_STORE, NEW, 6),
        ("A", "Y", DELIVERY, USED, 7),
        ("A", "Y", IN_STORE, USED, 8),
        ("B", "Z", DELIVERY, NEW, 9),
        ("B", "Z", DELIVERY, USED, 10),
        ("B", "Z", IN_STORE, NEW, 11),
        ("B", "Z", IN_STORE, USED, 12),
        ("A", "X", PERSON, NEW, 13),
        ("B", None, PERSON, USED, 13),
    ],
)
def test_relevance_tiers(
    country: str,
    city: str | None,
    fulfillment: FulfillmentKind,
    condition: ItemCondition,
    expected: int,
) -> None:
    shopper = ShopperLocation(country="A", city="X")
    row = _observation("x", country=country, city=city, fulfillment=fulfillment, condition=condition)

    assert relevance_tier(row, shopper) == expected


def test_shopper_without_city_never_reaches_city_tiers() -> None:
    shopper = ShopperLocation(country="A", city=None)

    assert relevance_tier(_observation("x", country="A", city="X"), shopper) == 2
    assert relevance_tier(_observation("y", country="A", city="X", fulfillment=IN_STORE), shopper) == 6


def test_same_city_name_in_another_country_is_not_same_city() -> None:
    shopper = ShopperLocation(country="US", city="Paris")
    row = _observation("x", country="FR", city="Paris")

    assert relevance_tier(row, shopper) == 9


def test_place_matching_ignores_case_and_whitespace() -> None:
    shopper = ShopperLocation(country=" germany", city="BERLIN ")

    assert relevance_tier(_observation("x", country="Germany", city="Berlin"), shopper) == 1


def test_shopper_without_location_only_gets_global_tiers() -> None:
    shopper = ShopperLocation()

    assert relevance_tier(_observation("x", country="A", city="X"), shopper) == 9
    assert relevance_tier(_observation("y", country="A", city="X", fulfillment=PERSON), shopper) == FALLBACK_TIER


def test_missing_capture_country_is_fallback_tier() -> None:
    assert relevance_tier(_observation("x", country=None), ShopperLocation(country="A")) == FALLBACK_TIER


def test_ranking_is_deterministic_across_runs() -> None:
    shopper = ShopperLocation(country="A", city="X")
    rows = [
        _observation(f"obs-{index}", store=f"store-{index % 4}", city=city, price=price, hours=index)
        for index, (city, price) in enumerate(
            [("X", "20"), ("Y", "20"), ("X", "20"), ("Y", "15"), ("X", "20"), ("Z", "20"), ("X", "9")]
        )
    ]

    first = rank_prices(rows, shopper)
    second = rank_prices(list(reversed(rows)), shopper)

    assert rank_prices(rows, shopper) == first
    assert [group.current.id for group in first.groups] == [group.current.id for group in second.groups]


def test_only_current_record_of_a_group_is_ranked() -> None:
    shopper = ShopperLocation(country="A", city="X")
    rows = [
        _observation("old-cheap", store="one", price="5", hours=1),
        _observation("new-pricey", store="one", price="25", hours=2),
        _observation("other", store="two", price="20", hours=1),
    ]

    ranked = rank_prices(rows, shopper)

    assert [group.current.id for group in ranked.groups] == ["other", "new-pricey"]
    assert [row.id for row in ranked.groups[1].history] == ["old-cheap"]


def test_filters_report_filtered_and_total_counts() -> None:
    shopper = ShopperLocation(country="A", city="X")
    rows = [
        _observation("x-delivery", store="one", city="X"),
        _observation("x-store", store="two", city="X", fulfillment=IN_STORE),
        _observation("y-delivery", store="three", city="Y"),
        _observation("b-delivery", store="four", country="B", city="Z"),
    ]

    by_city = rank_prices(rows, shopper, PriceFilters(locations=frozenset({"A:X"})))
    by_country_and_kind = rank_prices(
        rows,
        shopper,
        PriceFilters(locations=frozenset({"A"}), fulfillments=frozenset({DELIVERY})),
    )

    assert by_city.total_count == 4
    assert by_city.filtered_count == 2
    assert sorted(group.current.id for group in by_city.groups) == ["x-delivery", "x-store"]
    assert by_country_and_kind.total_count == 4
    assert [group.current.id for group in by_country_and_kind.groups] == ["x-delivery", "y-delivery"]


def test_empty_product_yields_empty_ranking() -> None:
    ranked = rank_prices([], ShopperLocation(country="A", city="X"))

    assert ranked.groups == []
    assert ranked.total_count == 0
    assert ranked.filtered_count == 0


def _observation(
    observation_id: str,
    *,
    store: str = "store",
    country: str | None = "A",
    city: str | None = "X",
    fulfillment: FulfillmentKind = DELIVERY,
    condition: ItemCondition = NEW,
    price: str = "10",
    hours: int = 0,
) -> PriceObservation:
    return PriceObservation(
        id=observation_id,
        product_id="product-1",
        price=Decimal(price),
        currency="USD",
        store_id=None,
        store_name=store,
        source=None,
        country=country,
        city=city,
        fulfillment=fulfillment,
        condition=condition,
        is_final_price=True,
        submitted_by="user-1",
        status=ObservationStatus.APPROVED,
        created_at=BASE_TIME + timedelta(hours=hours),
    )
