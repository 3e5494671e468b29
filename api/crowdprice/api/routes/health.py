from fastapi import APIRouter, Depends, HTTPException, status

from crowdprice.core.config import Settings, get_settings
from crowdprice.services.errors import RepositoryUnavailableError
from crowdprice.services.repository import get_repository

router = APIRouter()


@router.get("/")
async def root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    return {"service": settings.app_name, "version": settings.app_version, "status": "ok"}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(
    repository=Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> dict[str, str]:
    """Ready once the price store answers; liveness stays on ``/healthz``."""
    try:
        await repository.ping()
    except RepositoryUnavailableError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
    return {"status": "ready", "backend": settings.repository_backend}
