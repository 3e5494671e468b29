from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from crowdprice.services.identity import StoreIdentityResolver
from crowdprice.services.observations import ObservationStatus, PriceObservation

EXCLUDED_NOT_APPROVED = "not_approved"
EXCLUDED_MISSING_COUNTRY = "missing_capture_country"


@dataclass(slots=True)
class CanonicalPriceGroup:
    key: str
    current: PriceObservation
    history: list[PriceObservation] = field(default_factory=list)

    @property
    def members(self) -> list[PriceObservation]:
        return [self.current, *self.history]

    def __len__(self) -> int:
        return 1 + len(self.history)


@dataclass(slots=True)
class AggregationResult:
    groups: list[CanonicalPriceGroup]
    excluded: dict[str, str]

    @property
    def observation_count(self) -> int:
        return sum(len(group) for group in self.groups)


def offer_key(store_key: str, observation: PriceObservation) -> str:
    return f"{store_key}|{observation.fulfillment.value}|{observation.condition.value}"


def newest_first(observations: Iterable[PriceObservation]) -> list[PriceObservation]:
    # two stable passes: id ascending settles ties on created_at
    ordered = sorted(observations, key=lambda row: row.id)
    ordered.sort(key=lambda row: row.created_at, reverse=True)
    return ordered


def aggregate_observations(observations: Iterable[PriceObservation]) -> AggregationResult:
    """Partition approved observations into one group per selling offer.

    An offer is a resolved store identity at a capture location, combined with
    the fulfillment kind and item condition. Rows that are not approved or that
    lack a capture country are left out and reported in ``excluded``.
    """
    eligible: list[PriceObservation] = []
    excluded: dict[str, str] = {}
    for observation in observations:
        if observation.status is not ObservationStatus.APPROVED:
            excluded[observation.id] = EXCLUDED_NOT_APPROVED
        elif not (observation.country or "").strip():
            excluded[observation.id] = EXCLUDED_MISSING_COUNTRY
        else:
            eligible.append(observation)

    resolver = StoreIdentityResolver()
    for observation in eligible:
        resolver.register(observation)

    buckets: dict[str, list[PriceObservation]] = {}
    for observation in eligible:
        key = offer_key(resolver.canonical_key(observation), observation)
        buckets.setdefault(key, []).append(observation)

    groups: list[CanonicalPriceGroup] = []
    for key, members in buckets.items():
        ordered = newest_first(members)
        groups.append(CanonicalPriceGroup(key=key, current=ordered[0], history=ordered[1:]))

    return AggregationResult(groups=groups, excluded=excluded)
