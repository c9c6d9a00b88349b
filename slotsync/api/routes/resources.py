# slotsync/api/routes/resources.py
from datetime import date as date_type
from http import HTTPStatus

from fastapi import APIRouter, Depends, Path, Query

from slotsync.api.dependencies.services import get_orchestrator
from slotsync.api.errors import error_example, http_error
from slotsync.schemas.availability import AvailableSlotsResponse
from slotsync.services.booking_orchestrator import BookingOrchestrator
from slotsync.services.errors import BookingError

router = APIRouter(prefix="/resources", tags=["Resources"])


@router.get(
    "/{resource_id}/available-slots",
    response_model=AvailableSlotsResponse,
    status_code=HTTPStatus.OK,
    summary="List free slots for one day",
    description=(
        "Expand the resource's weekly availability for the given local date and return "
        "every candidate start (on the configured granularity) that is in the future and "
        "does not overlap a confirmed booking or, when calendar sync is enabled, a busy "
        "event in the resource's calendar.\n\n"
        "The list is advisory; the slot is verified again when the booking is created."
    ),
    responses={
        200: {
            "description": "Free slots for the day (possibly empty).",
            "content": {
                "application/json": {
                    "example": {
                        "resource_id": 1,
                        "service_id": 3,
                        "day": "2026-11-02",
                        "timezone": "Europe/Berlin",
                        "duration_minutes": 30,
                        "slots": [
                            {"start": "2026-11-02T08:00:00Z", "end": "2026-11-02T08:30:00Z"},
                            {"start": "2026-11-02T08:15:00Z", "end": "2026-11-02T08:45:00Z"},
                        ],
                    }
                }
            },
        },
        404: {
            "description": "Resource or service not found.",
            "content": error_example("NotFound", "Resource with id=9 not found"),
        },
        422: {
            "description": "The requested duration is not offered by the service.",
            "content": error_example(
                "ValidationError",
                "Duration 20 is not allowed for service 3; choose one of [30, 60]",
            ),
        },
    },
)
async def list_available_slots(
    resource_id: int = Path(..., ge=1, description="Resource identifier."),
    service_id: int = Query(..., ge=1, description="Service to size the slots for."),
    day: date_type = Query(
        ...,
        description="Local calendar date in the resource's timezone.",
        examples=["2026-11-02"],
    ),
    duration_minutes: int | None = Query(
        default=None,
        ge=1,
        description="Duration for flexible services; defaults to the service duration.",
    ),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> AvailableSlotsResponse:
    try:
        return await orchestrator.available_slots(
            resource_id,
            service_id,
            day,
            duration_minutes=duration_minutes,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
