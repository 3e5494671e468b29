from datetime import datetime
from decimal import Decimal
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

FulfillmentType = Literal["delivery", "store", "person"]
ConditionType = Literal["new", "used"]
ObservationStatusType = Literal["pending", "approved", "rejected"]
ReviewAction = Literal["approve", "reject"]


class PriceSubmitRequest(BaseModel):
    product_id: str = Field(min_length=1)
    store_id: str | None = None
    store_name: str | None = Field(default=None, max_length=200)
    source: str | None = Field(default=None, max_length=200)
    source_url: str | None = Field(default=None, max_length=2048)
    price: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    item_price: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    shipping_cost: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    fees: Decimal | None = Field(default=None, ge=0, max_digits=12, decimal_places=2)
    country: str = Field(min_length=1, max_length=100)
    city: str | None = Field(default=None, max_length=100)
    fulfillment: FulfillmentType = "delivery"
    condition: ConditionType = "new"
    is_final_price: bool = False

    @model_validator(mode="after")
    def _require_store_reference(self) -> "PriceSubmitRequest":
        if not (self.store_id or "").strip() and not (self.store_name or "").strip():
            raise ValueError("store_id or store_name is required")
        return self


class PriceObservationOut(BaseModel):
    id: str
    product_id: str
    price: Decimal
    currency: str
    item_price: Decimal | None = None
    shipping_cost: Decimal | None = None
    fees: Decimal | None = None
    store_id: str | None = None
    store_name: str | None = None
    source: str | None = None
    source_url: str | None = None
    country: str | None = None
    city: str | None = None
    fulfillment: FulfillmentType
    condition: ConditionType
    is_final_price: bool = False
    has_breakdown: bool = False
    submitted_by: str
    status: ObservationStatusType
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    rejection_reason: str | None = None
    created_at: datetime


class PriceReviewRequest(BaseModel):
    decision: ReviewAction
    rejection_reason: str | None = Field(default=None, max_length=500)


class ObservationEventOut(BaseModel):
    id: int
    observation_id: str
    event_type: str
    actor_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class SubmitterErasureOut(BaseModel):
    user_id: str
    replacement_id: str
    reassigned: int
