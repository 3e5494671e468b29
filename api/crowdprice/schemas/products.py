from pydantic import BaseModel, Field

from crowdprice.schemas.prices import PriceObservationOut


class PriceGroupOut(BaseModel):
    key: str
    tier: int
    current: PriceObservationOut
    history: list[PriceObservationOut] = Field(default_factory=list)


class RankedPricesOut(BaseModel):
    product_id: str
    records: list[PriceGroupOut] = Field(default_factory=list)
    total_count: int
    filtered_count: int
