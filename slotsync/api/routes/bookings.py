# slotsync/api/routes/bookings.py
from datetime import date as date_type, datetime, time, timedelta, timezone
from http import HTTPStatus

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from slotsync.api.dependencies.services import get_orchestrator
from slotsync.api.errors import error_example, http_error
from slotsync.schemas.booking import (
    BookingCreate,
    BookingRead,
    BookingReschedule,
    BookingResult,
    BookingStatus,
)
from slotsync.services.booking_orchestrator import BookingOrchestrator
from slotsync.services.errors import BookingError

router = APIRouter(prefix="/bookings", tags=["Bookings"])


_BOOKING_RESULT_EXAMPLE = {
    "booking": {
        "id": 1,
        "resource_id": 1,
        "service_id": 3,
        "client_name": "Ada Lovelace",
        "client_email": "ada@example.com",
        "client_phone": None,
        "start_at": "2026-11-02T10:30:00Z",
        "end_at": "2026-11-02T11:00:00Z",
        "duration_minutes": 30,
        "status": "CONFIRMED",
        "notes": None,
        "sync_records": [
            {
                "provider": "CALENDAR",
                "external_id": None,
                "join_url": None,
                "status": "FAILED",
                "last_error": "Graph calendar POST failed (status=503): upstream unavailable",
            },
            {
                "provider": "MEETING",
                "external_id": "85746065432",
                "join_url": "https://zoom.us/j/85746065432",
                "status": "SYNCED",
                "last_error": None,
            },
        ],
    },
    "sync_outcomes": [
        {
            "provider": "CALENDAR",
            "operation": "create",
            "status": "FAILED",
            "external_id": None,
            "attempts": 3,
            "recovered": False,
            "error": "Graph calendar POST failed (status=503): upstream unavailable",
        },
        {
            "provider": "MEETING",
            "operation": "create",
            "status": "SYNCED",
            "external_id": "85746065432",
            "attempts": 1,
            "recovered": False,
            "error": None,
        },
    ],
    "warnings": [
        "CALENDAR sync failed (create): Graph calendar POST failed (status=503): upstream unavailable"
    ],
}


@router.post(
    "",
    response_model=BookingResult,
    status_code=HTTPStatus.CREATED,
    summary="Book a slot with a resource",
    description=(
        "Validate the requested window against the resource's weekly availability and "
        "existing confirmed bookings, reserve it atomically, then mirror the booking into "
        "every configured external provider.\n\n"
        "A provider failure never rejects the booking: the booking is returned as "
        "`CONFIRMED` and the degraded provider is listed in `warnings`."
    ),
    responses={
        201: {
            "description": "Booking persisted. Check `warnings` for degraded integrations.",
            "content": {"application/json": {"example": _BOOKING_RESULT_EXAMPLE}},
        },
        404: {
            "description": "Resource or service not found (or inactive).",
            "content": error_example("NotFound", "Service with id=3 not found for resource 1"),
        },
        409: {
            "description": "The window overlaps another confirmed booking.",
            "content": error_example("SlotTaken", "Time slot is already booked"),
        },
        422: {
            "description": "Outside availability, in the past, or an invalid duration.",
            "content": error_example(
                "OutsideAvailability",
                "Requested time 2026-11-02T17:00:00+00:00 - 2026-11-02T17:30:00+00:00 "
                "is outside the availability of resource 1",
            ),
        },
    },
)
async def create_booking(
    payload: BookingCreate,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> BookingResult:
    try:
        return await orchestrator.create_booking(payload)
    except BookingError as exc:
        raise http_error(exc) from exc


@router.get(
    "",
    response_model=list[BookingRead],
    status_code=HTTPStatus.OK,
    summary="List bookings",
    description=(
        "List bookings ordered by start time. All filters are optional; "
        "`from_date`/`to_date` are inclusive UTC dates applied to the booking start."
    ),
)
async def list_bookings(
    resource_id: int | None = Query(default=None, ge=1, description="Only this resource."),
    status: BookingStatus | None = Query(default=None, description="Only this status."),
    from_date: date_type | None = Query(
        default=None,
        description="First UTC date (inclusive) of the booking start.",
        examples=["2026-11-02"],
    ),
    to_date: date_type | None = Query(
        default=None,
        description="Last UTC date (inclusive) of the booking start.",
        examples=["2026-11-08"],
    ),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> list[BookingRead]:
    if from_date and to_date and to_date < from_date:
        raise HTTPException(
            status_code=HTTPStatus.BAD_REQUEST,
            detail={
                "code": "ValidationError",
                "message": "to_date must be greater than or equal to from_date",
            },
        )

    start = datetime.combine(from_date, time.min, tzinfo=timezone.utc) if from_date else None
    end = (
        datetime.combine(to_date + timedelta(days=1), time.min, tzinfo=timezone.utc)
        if to_date
        else None
    )
    return await orchestrator.list_bookings(
        resource_id=resource_id,
        status=status,
        start=start,
        end=end,
    )


@router.get(
    "/{booking_id}",
    response_model=BookingRead,
    status_code=HTTPStatus.OK,
    summary="Get a booking",
    description="Return one booking with its external sync records.",
    responses={
        404: {
            "description": "Booking not found.",
            "content": error_example("NotFound", "Booking with id=42 not found"),
        },
    },
)
async def get_booking(
    booking_id: int = Path(..., ge=1, description="Booking identifier."),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> BookingRead:
    try:
        return await orchestrator.get_booking(booking_id)
    except BookingError as exc:
        raise http_error(exc) from exc


@router.post(
    "/{booking_id}/cancel",
    response_model=BookingResult,
    status_code=HTTPStatus.OK,
    summary="Cancel a booking",
    description=(
        "Mark the booking `CANCELLED`, then remove its mirrored artifacts from every "
        "provider it was synced to. Cancelling an already cancelled booking succeeds "
        "without contacting any provider.\n\n"
        "Cancellation always wins: a provider that cannot be reached is reported in "
        "`warnings` and its sync record is kept as `FAILED`."
    ),
    responses={
        404: {
            "description": "Booking not found.",
            "content": error_example("NotFound", "Booking with id=42 not found"),
        },
    },
)
async def cancel_booking(
    booking_id: int = Path(..., ge=1, description="Booking identifier."),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> BookingResult:
    try:
        return await orchestrator.cancel_booking(booking_id)
    except BookingError as exc:
        raise http_error(exc) from exc


@router.post(
    "/{booking_id}/reschedule",
    response_model=BookingResult,
    status_code=HTTPStatus.OK,
    summary="Move a booking to a new start time",
    description=(
        "Move a confirmed booking in place (same id). The duration is kept; only the "
        "start is chosen by the caller. The new window goes through the same "
        "availability, past and conflict checks as a new booking, ignoring the booking "
        "itself. Providers that already hold an artifact are updated; the others get a "
        "new one."
    ),
    responses={
        404: {
            "description": "Booking not found.",
            "content": error_example("NotFound", "Booking with id=42 not found"),
        },
        409: {
            "description": "The booking is not confirmed, or the new window is taken.",
            "content": error_example(
                "InvalidState",
                "Cannot reschedule a booking with status CANCELLED",
            ),
        },
        422: {
            "description": "The new window is outside availability or in the past.",
            "content": error_example("InvalidWindow", "Requested start time is in the past"),
        },
    },
)
async def reschedule_booking(
    payload: BookingReschedule,
    booking_id: int = Path(..., ge=1, description="Booking identifier."),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> BookingResult:
    try:
        return await orchestrator.reschedule_booking(
            booking_id,
            payload.new_start,
            notes=payload.notes,
        )
    except BookingError as exc:
        raise http_error(exc) from exc
