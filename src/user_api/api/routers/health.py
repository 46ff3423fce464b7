"""Health and readiness endpoints."""

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from user_api.config import get_settings
from user_api.database import db

router = APIRouter(tags=["diagnostics"])


@router.get("/health", summary="Liveness probe")
async def health_check() -> dict[str, str]:
    """Signal that the API process is running."""

    settings = get_settings()
    return {"status": "ok", "service": settings.app_name, "environment": settings.environment}


@router.get("/readiness", summary="Readiness probe")
async def readiness_check() -> JSONResponse:
    """Report ready only once the database pool is open."""

    if db.pool is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "unavailable", "database": "disconnected"},
        )
    return JSONResponse(content={"status": "ready", "database": "connected"})
