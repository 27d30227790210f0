from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from livecast.api.deps import SessionDependency, get_app_settings, get_storage
from livecast.core.config import Settings
from livecast.core.logging import get_logger
from livecast.core.storage import Storage

from .schemas import HealthResponse, ReadinessResponse


router = APIRouter(prefix="/health", tags=["system"])
logger = get_logger(component="system_routes")


@router.get("", response_model=HealthResponse, summary="Liveness probe")
async def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(version=settings.version, live_enabled=settings.live_enabled)


@router.get("/ready", response_model=ReadinessResponse, summary="Database and storage readiness")
async def ready(
    response: Response,
    session: SessionDependency,
    storage: Storage = Depends(get_storage),
) -> ReadinessResponse:
    try:
        await session.execute(text("SELECT 1"))
        database = True
    except SQLAlchemyError as exc:
        logger.warning("readiness_database_unavailable", error=str(exc))
        database = False

    storage_writable = storage.is_writable()
    ready_to_serve = database and storage_writable
    if not ready_to_serve:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(
        status="ok" if ready_to_serve else "degraded",
        database=database,
        storage_writable=storage_writable,
    )


__all__ = ["router"]
