from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from crowdprice.services.aggregation import CanonicalPriceGroup, aggregate_observations
from crowdprice.services.observations import FulfillmentKind, ItemCondition, PriceObservation

FALLBACK_TIER = 13

# (same_city, fulfillment, condition) -> tier for offers in the shopper's country.
# Same-city rows are always same-country as well.
_LOCAL_TIERS: dict[tuple[bool, FulfillmentKind, ItemCondition], int] = {
    (True, FulfillmentKind.DELIVERY, ItemCondition.NEW): 1,
    (False, FulfillmentKind.DELIVERY, ItemCondition.NEW): 2,
    (True, FulfillmentKind.IN_STORE, ItemCondition.NEW): 3,
    (True, FulfillmentKind.DELIVERY, ItemCondition.USED): 4,
    (True, FulfillmentKind.IN_STORE, ItemCondition.USED): 5,
    (False, FulfillmentKind.IN_STORE, ItemCondition.NEW): 6,
    (False, FulfillmentKind.DELIVERY, ItemCondition.USED): 7,
    (False, FulfillmentKind.IN_STORE, ItemCondition.USED): 8,
}
_REMOTE_TIERS: dict[tuple[FulfillmentKind, ItemCondition], int] = {
    (FulfillmentKind.DELIVERY, ItemCondition.NEW): 9,
    (FulfillmentKind.DELIVERY, ItemCondition.USED): 10,
    (FulfillmentKind.IN_STORE, ItemCondition.NEW): 11,
    (FulfillmentKind.IN_STORE, ItemCondition.USED): 12,
}


@dataclass(slots=True)
class ShopperLocation:
    country: str | None = None
    city: str | None = None


@dataclass(slots=True)
class PriceFilters:
    """Location keys are ``Country`` or ``Country:City``; empty sets match everything."""

    locations: frozenset[str] = field(default_factory=frozenset)
    fulfillments: frozenset[FulfillmentKind] = field(default_factory=frozenset)

    @property
    def active(self) -> bool:
        return bool(self.locations or self.fulfillments)

    def matches(self, observation: PriceObservation) -> bool:
        if self.fulfillments and observation.fulfillment not in self.fulfillments:
            return False
        if not self.locations:
            return True
        if observation.country in self.locations:
            return True
        if observation.city:
            return f"{observation.country}:{observation.city}" in self.locations
        return False


@dataclass(slots=True)
class RankedPrices:
    groups: list[CanonicalPriceGroup]
    total_count: int
    filtered_count: int
    excluded: dict[str, str] = field(default_factory=dict)


def _normalize_place(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped.casefold() if stripped else None


def relevance_tier(observation: PriceObservation, shopper: ShopperLocation) -> int:
    """Lower is more relevant.

    Proximity and the ability to actually obtain the item dominate raw price:
    a cheaper offer the shopper cannot reach ranks below a reachable one.
    """
    shopper_country = _normalize_place(shopper.country)
    shopper_city = _normalize_place(shopper.city)
    country = _normalize_place(observation.country)
    city = _normalize_place(observation.city)

    if country is None:
        return FALLBACK_TIER

    same_country = shopper_country is not None and country == shopper_country
    same_city = same_country and shopper_city is not None and city == shopper_city

    if same_country:
        tier = _LOCAL_TIERS.get((same_city, observation.fulfillment, observation.condition))
        if tier is not None:
            return tier
    return _REMOTE_TIERS.get((observation.fulfillment, observation.condition), FALLBACK_TIER)


def rank_groups(groups: Iterable[CanonicalPriceGroup], shopper: ShopperLocation) -> list[CanonicalPriceGroup]:
    ordered = sorted(groups, key=lambda group: group.current.id)
    ordered.sort(key=lambda group: group.current.created_at, reverse=True)
    ordered.sort(key=lambda group: (relevance_tier(group.current, shopper), group.current.price))
    return ordered


def rank_prices(
    observations: Iterable[PriceObservation],
    shopper: ShopperLocation,
    filters: PriceFilters | None = None,
) -> RankedPrices:
    rows = list(observations)
    full = aggregate_observations(rows)
    if filters is None or not filters.active:
        return RankedPrices(
            groups=rank_groups(full.groups, shopper),
            total_count=len(full.groups),
            filtered_count=len(full.groups),
            excluded=full.excluded,
        )

    filtered = aggregate_observations(row for row in rows if filters.matches(row))
    return RankedPrices(
        groups=rank_groups(filtered.groups, shopper),
        total_count=len(full.groups),
        filtered_count=len(filtered.groups),
        excluded=full.excluded,
    )
