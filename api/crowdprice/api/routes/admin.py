from fastapi import APIRouter, Depends, HTTPException, status

from crowdprice.core.config import Settings, get_settings
from crowdprice.core.security import get_human_principal
from crowdprice.schemas.prices import SubmitterErasureOut
from crowdprice.services.errors import RepositoryUnavailableError, RepositoryValidationError
from crowdprice.services.repository import get_repository

router = APIRouter()


@router.post("/users/{user_id}/erase", response_model=SubmitterErasureOut)
async def erase_user_submissions(
    user_id: str,
    principal=Depends(get_human_principal),
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> SubmitterErasureOut:
    try:
        principal.require_scopes({"admin:write"})
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    if not principal.actor_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid human principal")

    if user_id == settings.deleted_user_id:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail="cannot erase the deleted-user sentinel")

    try:
        reassigned = await repository.reassign_submitter(
            user_id=user_id,
            replacement_id=settings.deleted_user_id,
            actor_id=principal.actor_id,
        )
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    except RepositoryValidationError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_CONTENT, detail=str(exc)) from exc

    return SubmitterErasureOut(user_id=user_id, replacement_id=settings.deleted_user_id, reassigned=reassigned)
