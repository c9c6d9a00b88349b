# slotsync/api/routes/internal.py
from http import HTTPStatus

from fastapi import APIRouter, Depends

from slotsync.api.dependencies.internal_auth import verify_internal_api_key
from slotsync.api.dependencies.services import get_bulk_rescheduler
from slotsync.api.errors import error_example, http_error
from slotsync.schemas.bulk_reschedule import BulkRescheduleRequest, Tally
from slotsync.services.bulk_reschedule import BulkRescheduler
from slotsync.services.errors import BookingError

router = APIRouter(
    prefix="/internal",
    tags=["Internal"],
    dependencies=[Depends(verify_internal_api_key)],
)


@router.post(
    "/bulk-reschedule",
    response_model=Tally,
    status_code=HTTPStatus.OK,
    summary="Move every booking of a resource out of an affected date range",
    description=(
        "Intended for operators or automation after a resource's availability changed "
        "(sick day, holiday, moved office hours). Protected via the `X-Internal-Api-Key` "
        "header when configured.\n\n"
        "**Logic:**\n"
        "- Confirmed bookings starting on the affected local dates are processed in "
        "ascending start order.\n"
        "- Each one takes the earliest free slot of its own duration in the replacement "
        "windows that no earlier booking of the same run claimed.\n"
        "- Replacement windows are given explicitly, or derived from the resource's "
        "weekly rules over `replacement_start`..`replacement_end`.\n"
        "- A booking that cannot be moved is reported as `FAILED`; the run continues."
    ),
    responses={
        200: {
            "description": "Per-booking results with success and failure counts.",
            "content": {
                "application/json": {
                    "example": {
                        "resource_id": 1,
                        "success_count": 1,
                        "failure_count": 1,
                        "results": [
                            {
                                "booking_id": 7,
                                "status": "SUCCESS",
                                "original_start": "2026-11-02T10:00:00Z",
                                "original_end": "2026-11-02T10:30:00Z",
                                "new_start": "2026-11-09T09:00:00Z",
                                "new_end": "2026-11-09T09:30:00Z",
                                "error": None,
                                "warnings": [],
                            },
                            {
                                "booking_id": 8,
                                "status": "FAILED",
                                "original_start": "2026-11-02T11:00:00Z",
                                "original_end": "2026-11-02T12:00:00Z",
                                "new_start": None,
                                "new_end": None,
                                "error": "NoSlotAvailable",
                                "warnings": [],
                            },
                        ],
                    }
                }
            },
        },
        401: {
            "description": "Missing or invalid internal API key (if configured).",
        },
        404: {
            "description": "Resource not found; no booking was touched.",
            "content": error_example("NotFound", "Resource with id=9 not found"),
        },
    },
)
async def bulk_reschedule(
    payload: BulkRescheduleRequest,
    rescheduler: BulkRescheduler = Depends(get_bulk_rescheduler),
) -> Tally:
    """
    Run a bulk reschedule synchronously and return its tally.
    """
    try:
        windows = payload.replacement_windows
        if windows is None:
            windows = await rescheduler.replacement_windows_for_dates(
                payload.resource_id,
                payload.replacement_start,
                payload.replacement_end,
            )
        return await rescheduler.bulk_reschedule(
            payload.resource_id,
            payload.affected_start,
            payload.affected_end,
            windows,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
