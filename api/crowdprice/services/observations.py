from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

DELETED_USER_ID = "00000000-0000-0000-0000-000000000000"


class ObservationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class FulfillmentKind(str, Enum):
    DELIVERY = "delivery"
    IN_STORE = "store"
    PERSON_TO_PERSON = "person"


class ItemCondition(str, Enum):
    NEW = "new"
    USED = "used"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(slots=True)
class ObservationDraft:
    """A validated submission that has not been persisted yet."""

    product_id: str
    price: Decimal
    country: str
    submitted_by: str
    currency: str = "USD"
    store_id: str | None = None
    store_name: str | None = None
    source: str | None = None
    city: str | None = None
    fulfillment: FulfillmentKind = FulfillmentKind.DELIVERY
    condition: ItemCondition = ItemCondition.NEW
    is_final_price: bool = False
    item_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    fees: Decimal | None = None
    source_url: str | None = None


@dataclass(slots=True)
class PriceObservation:
    id: str
    product_id: str
    price: Decimal
    currency: str
    store_id: str | None
    store_name: str | None
    source: str | None
    country: str | None
    city: str | None
    fulfillment: FulfillmentKind
    condition: ItemCondition
    is_final_price: bool
    submitted_by: str
    status: ObservationStatus
    created_at: datetime
    item_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    fees: Decimal | None = None
    source_url: str | None = None
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def location_suffix(self) -> str:
        country = (self.country or "").strip()
        city = (self.city or "").strip()
        return f"{country}:{city}" if city else country

    @property
    def has_breakdown(self) -> bool:
        return any(part is not None for part in (self.item_price, self.shipping_cost, self.fees))


def observation_to_dict(observation: PriceObservation) -> dict:
    return {
        "id": observation.id,
        "product_id": observation.product_id,
        "price": observation.price,
        "currency": observation.currency,
        "item_price": observation.item_price,
        "shipping_cost": observation.shipping_cost,
        "fees": observation.fees,
        "store_id": observation.store_id,
        "store_name": observation.store_name,
        "source": observation.source,
        "source_url": observation.source_url,
        "country": observation.country,
        "city": observation.city,
        "fulfillment": observation.fulfillment.value,
        "condition": observation.condition.value,
        "is_final_price": observation.is_final_price,
        "has_breakdown": observation.has_breakdown,
        "submitted_by": observation.submitted_by,
        "status": observation.status.value,
        "reviewed_by": observation.reviewed_by,
        "reviewed_at": observation.reviewed_at,
        "rejection_reason": observation.rejection_reason,
        "created_at": observation.created_at,
    }
