from __future__ import annotations


class BookingError(Exception):
    """
    Base class for domain and validation errors raised by the booking core.

    These are surfaced verbatim to the caller and never retried.
    """

    code: str = "BookingError"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class NotFoundError(BookingError):
    code = "NotFound"


class OutsideAvailabilityError(BookingError):
    code = "OutsideAvailability"


class SlotTakenError(BookingError):
    code = "SlotTaken"


class InvalidWindowError(BookingError):
    code = "InvalidWindow"


class InvalidStateError(BookingError):
    code = "InvalidState"


class BookingValidationError(BookingError):
    code = "ValidationError"


class SyncError(RuntimeError):
    """
    Raised by provider clients and sync adapters when an external call fails.

    `transient` marks failures worth retrying (network errors, timeouts,
    throttling, 5xx). Everything else is permanent and reported immediately.
    """

    def __init__(
        self,
        message: str,
        *,
        transient: bool = False,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code

    @classmethod
    def from_status(cls, action: str, status_code: int, body: str) -> "SyncError":
        transient = status_code == 429 or status_code >= 500
        return cls(
            f"{action} failed (status={status_code}): {body}",
            transient=transient,
            status_code=status_code,
        )
