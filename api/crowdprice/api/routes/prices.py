from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status

from crowdprice.core.config import Settings, get_settings
from crowdprice.core.security import get_human_principal, get_optional_principal
from crowdprice.schemas.prices import (
    ObservationEventOut,
    ObservationStatusType,
    PriceObservationOut,
    PriceReviewRequest,
    PriceSubmitRequest,
)
from crowdprice.services.errors import (
    RepositoryConflictError,
    RepositoryForbiddenError,
    RepositoryNotFoundError,
    RepositoryUnavailableError,
    RepositoryValidationError,
)
from crowdprice.services.moderation import is_visible_to
from crowdprice.services.observations import (
    FulfillmentKind,
    ItemCondition,
    ObservationDraft,
    ObservationStatus,
    ReviewDecision,
    observation_to_dict,
)
from crowdprice.services.prices import review_observation, submit_observation
from crowdprice.services.repository import get_repository

router = APIRouter()


@router.post("", response_model=PriceObservationOut, status_code=status.HTTP_201_CREATED)
async def submit_price(
    payload: PriceSubmitRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> PriceObservationOut:
    try:
        principal.require_scopes({"submission:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    draft = ObservationDraft(
        product_id=payload.product_id,
        price=payload.price,
        currency=payload.currency.upper(),
        country=payload.country.strip(),
        city=(payload.city or "").strip() or None,
        submitted_by=principal.actor_id,
        store_id=payload.store_id,
        store_name=(payload.store_name or "").strip() or None,
        source=payload.source,
        fulfillment=FulfillmentKind(payload.fulfillment),
        condition=ItemCondition(payload.condition),
        is_final_price=payload.is_final_price,
        item_price=payload.item_price,
        shipping_cost=payload.shipping_cost,
        fees=payload.fees,
        source_url=payload.source_url,
    )

    try:
        observation = await submit_observation(
            repository,
            draft,
            submitter_role=principal.role,
            duplicate_window=_duplicate_window(settings),
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    return PriceObservationOut(**observation_to_dict(observation))


@router.get("/pending", response_model=list[PriceObservationOut])
async def list_pending_prices(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> list[PriceObservationOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        rows = await repository.list_pending_observations(
            exclude_submitter=principal.actor_id,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    return [PriceObservationOut(**observation_to_dict(row)) for row in rows]


@router.get("/mine", response_model=list[PriceObservationOut])
async def list_my_prices(
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    observation_status: ObservationStatusType | None = Query(default=None, alias="status"),
    limit: int = Query(default=20, ge=1, le=100),
    offset: int = Query(default=0, ge=0),
) -> list[PriceObservationOut]:
    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        rows = await repository.list_user_observations(
            principal.actor_id,
            status=ObservationStatus(observation_status) if observation_status else None,
            limit=limit,
            offset=offset,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return [PriceObservationOut(**observation_to_dict(row)) for row in rows]


@router.get("/{observation_id}", response_model=PriceObservationOut)
async def get_price(
    observation_id: str,
    principal=Depends(get_optional_principal),
    repository=Depends(get_repository),
) -> PriceObservationOut:
    try:
        observation = await repository.get_observation(observation_id)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc

    # hidden rows answer 404 so their existence is not disclosed
    if observation is None or not is_visible_to(observation, viewer_id=principal.actor_id, viewer_role=principal.role):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="price observation not found")

    return PriceObservationOut(**observation_to_dict(observation))


@router.post("/{observation_id}/review", response_model=PriceObservationOut)
async def review_price(
    observation_id: str,
    payload: PriceReviewRequest,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
) -> PriceObservationOut:
    try:
        principal.require_scopes({"moderation:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    try:
        observation = await review_observation(
            repository,
            observation_id=observation_id,
            reviewer_id=principal.actor_id,
            decision=ReviewDecision(payload.decision),
            rejection_reason=payload.rejection_reason,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryForbiddenError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except RepositoryConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return PriceObservationOut(**observation_to_dict(observation))


@router.get("/{observation_id}/events", response_model=list[ObservationEventOut])
async def list_price_events(
    observation_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
) -> list[ObservationEventOut]:
    try:
        principal.require_scopes({"moderation:read"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    try:
        observation = await repository.get_observation(observation_id)
        if observation is None:
            raise RepositoryNotFoundError("price observation not found")
        rows = await repository.list_observation_events(observation_id, limit=limit, offset=offset)
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return [ObservationEventOut(**row) for row in rows]


def _duplicate_window(settings: Settings) -> timedelta:
    return timedelta(hours=settings.duplicate_window_hours)
