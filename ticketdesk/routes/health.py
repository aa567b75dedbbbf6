"""
Health check endpoint
"""
import time
from datetime import datetime, timezone
from fastapi import APIRouter, Request, status
from pydantic import BaseModel, Field

from ticketdesk import __version__

router = APIRouter(prefix="/api/health", tags=["health"])

# Application start time for uptime calculation
APP_START_TIME = time.time()


class HealthResponse(BaseModel):
    """Basic health check response"""
    status: str = Field(..., description="Overall status: healthy, degraded")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Check timestamp")
    version: str = Field(..., description="Application version")
    uptime_seconds: float = Field(..., description="Application uptime in seconds")
    store_backend: str = Field(..., description="Record store in use")
    pending_confirmations: int = Field(0, description="Open confirmation prompts")


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns basic application health status and uptime"
)
async def basic_health_check(request: Request) -> HealthResponse:
    """
    Liveness check. Does not call Discord or the record store.
    """
    service = getattr(request.app.state, "ticket_service", None)
    settings = service.ctx.settings if service else None

    return HealthResponse(
        status="healthy" if service else "degraded",
        version=__version__,
        uptime_seconds=round(time.time() - APP_START_TIME, 2),
        store_backend=settings.store_backend if settings else "unknown",
        pending_confirmations=len(service.ctx.confirmations) if service else 0,
    )
