# slotsync/api/routes/health.py
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from slotsync.api.dependencies.services import get_container, get_db
from slotsync.schemas.booking import ProviderKind
from slotsync.services.container import ServiceContainer


logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.
    """

    status: str = Field(
        ...,
        description="Overall health status of the SlotSync service.",
        examples=["ok"],
    )
    app_name: str = Field(
        ...,
        description="Human-friendly name of the running application.",
        examples=["SlotSync"],
    )
    environment: str = Field(
        ...,
        description="Current deployment environment (local/dev/stage/prod).",
        examples=["local"],
    )
    sync_providers: list[ProviderKind] = Field(
        default_factory=list,
        description="External providers bookings are currently mirrored into.",
        examples=[["CALENDAR", "MEETING"]],
    )
    timestamp_utc: datetime = Field(
        ...,
        description="Server-side timestamp (UTC) at which this health check was generated.",
        examples=["2026-11-02T10:30:00Z"],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check for SlotSync service",
    description=(
        "Lightweight endpoint to verify that the SlotSync backend is up and responding.\n\n"
        "Typical use-cases:\n"
        "- Kubernetes / Docker / VM health probes\n"
        "- Uptime monitoring & alerting\n"
        "- Quick smoke-test after deployments\n"
    ),
    responses={
        200: {
            "description": "Service is healthy and responding as expected.",
            "content": {
                "application/json": {
                    "example": {
                        "status": "ok",
                        "app_name": "SlotSync",
                        "environment": "local",
                        "sync_providers": ["CALENDAR", "MEETING"],
                        "timestamp_utc": "2026-11-02T10:30:00Z",
                    }
                }
            },
        }
    },
)
async def health_check(container: ServiceContainer = Depends(get_container)) -> HealthResponse:
    """
    Returns the current health status of the service.

    Does **not** call the database or any provider, so it stays reliable
    even when downstream components are degraded.
    """
    settings = container.settings
    return HealthResponse(
        status="ok",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        sync_providers=[adapter.kind for adapter in container.orchestrator.adapters],
        timestamp_utc=datetime.now(tz=timezone.utc),
    )


class DatabaseHealthResponse(BaseModel):
    status: str = Field(..., examples=["ok"])
    database: str = Field(
        ...,
        description="`ok` when a trivial query succeeded, `unavailable` otherwise.",
        examples=["ok"],
    )


@router.get(
    "/health/db",
    response_model=DatabaseHealthResponse,
    summary="Database readiness check",
    responses={503: {"model": DatabaseHealthResponse, "description": "Database unreachable."}},
)
async def database_health_check(db: AsyncSession = Depends(get_db)):
    """
    Runs `SELECT 1` on a fresh session. Use as a readiness check; `/health`
    stays the liveness check.
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "degraded", "database": "unavailable"},
        )
    return DatabaseHealthResponse(status="ok", database="ok")
