from http import HTTPStatus

from fastapi import HTTPException

from slotsync.services.errors import (
    BookingError,
    BookingValidationError,
    InvalidStateError,
    InvalidWindowError,
    NotFoundError,
    OutsideAvailabilityError,
    SlotTakenError,
)

# Single mapping from domain errors to HTTP statuses.
STATUS_BY_ERROR: dict[type[BookingError], HTTPStatus] = {
    NotFoundError: HTTPStatus.NOT_FOUND,
    SlotTakenError: HTTPStatus.CONFLICT,
    InvalidStateError: HTTPStatus.CONFLICT,
    OutsideAvailabilityError: HTTPStatus.UNPROCESSABLE_ENTITY,
    InvalidWindowError: HTTPStatus.UNPROCESSABLE_ENTITY,
    BookingValidationError: HTTPStatus.UNPROCESSABLE_ENTITY,
}


def http_error(exc: BookingError) -> HTTPException:
    """
    Translate a domain error into an HTTPException whose body is
    `{"detail": {"code": ..., "message": ...}}`.
    """
    status_code = HTTPStatus.BAD_REQUEST
    for error_type, mapped in STATUS_BY_ERROR.items():
        if isinstance(exc, error_type):
            status_code = mapped
            break
    return HTTPException(status_code=status_code, detail=exc.to_detail())


def error_example(code: str, message: str) -> dict:
    """OpenAPI response example for a domain error."""
    return {"application/json": {"example": {"detail": {"code": code, "message": message}}}}
