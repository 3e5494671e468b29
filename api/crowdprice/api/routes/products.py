from fastapi import APIRouter, Depends, HTTPException, Query, status

from crowdprice.schemas.prices import FulfillmentType, PriceObservationOut
from crowdprice.schemas.products import PriceGroupOut, RankedPricesOut
from crowdprice.services.errors import RepositoryUnavailableError, RepositoryValidationError
from crowdprice.services.observations import FulfillmentKind, observation_to_dict
from crowdprice.services.prices import get_ranked_prices
from crowdprice.services.ranking import PriceFilters, ShopperLocation, relevance_tier
from crowdprice.services.repository import get_repository

router = APIRouter()


@router.get("/{product_id}/prices", response_model=RankedPricesOut)
async def list_product_prices(
    product_id: str,
    repository=Depends(get_repository),
    country: str | None = Query(default=None, min_length=1),
    city: str | None = Query(default=None, min_length=1),
    location: list[str] | None = Query(default=None),
    fulfillment: list[FulfillmentType] | None = Query(default=None),
) -> RankedPricesOut:
    shopper = ShopperLocation(country=country, city=city)
    filters = PriceFilters(
        locations=frozenset(item for item in location or [] if item),
        fulfillments=frozenset(FulfillmentKind(item) for item in fulfillment or []),
    )

    try:
        ranked = await get_ranked_prices(repository, product_id=product_id, shopper=shopper, filters=filters)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return RankedPricesOut(
        product_id=product_id,
        records=[
            PriceGroupOut(
                key=group.key,
                tier=relevance_tier(group.current, shopper),
                current=PriceObservationOut(**observation_to_dict(group.current)),
                history=[PriceObservationOut(**observation_to_dict(row)) for row in group.history],
            )
            for group in ranked.groups
        ],
        total_count=ranked.total_count,
        filtered_count=ranked.filtered_count,
    )
