"""Health check endpoint with database connectivity check.

Accessible without authentication for container orchestration health checks.
"""

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel

from authcore.core import check_db_connection, settings
from authcore.services.blacklist import TokenBlacklist, get_token_blacklist

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    database: str
    blacklist_entries: int


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={
        status.HTTP_200_OK: {"description": "Service is healthy"},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"description": "Service is unhealthy"},
    },
)
async def health_check(
    response: Response,
    blacklist: TokenBlacklist = Depends(get_token_blacklist),
) -> HealthResponse:
    """
    Health check endpoint.

    Returns the service health status including database connectivity.
    Returns 503 if the database is unavailable.
    """
    db_healthy = await check_db_connection()

    if not db_healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    entries = await blacklist.count() if db_healthy else 0

    return HealthResponse(
        status="healthy" if db_healthy else "unhealthy",
        version=settings.app_version,
        database="connected" if db_healthy else "disconnected",
        blacklist_entries=entries,
    )
