from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from slotsync.schemas.availability import AvailabilityWindow


class RescheduleEntryStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class BulkRescheduleRequest(BaseModel):
    """
    Payload for POST /internal/bulk-reschedule.

    Replacement windows are either given explicitly or derived from the
    resource's weekly rules over `replacement_start`..`replacement_end`.
    """

    resource_id: int = Field(..., ge=1, examples=[1])
    affected_start: date = Field(
        ...,
        description="First local date (inclusive) whose bookings must move.",
        examples=["2026-11-02"],
    )
    affected_end: date = Field(
        ...,
        description="Last local date (inclusive) whose bookings must move.",
        examples=["2026-11-03"],
    )
    replacement_windows: list[AvailabilityWindow] | None = Field(
        default=None,
        description="Explicit windows to place the bookings into.",
    )
    replacement_start: date | None = Field(default=None, examples=["2026-11-09"])
    replacement_end: date | None = Field(default=None, examples=["2026-11-10"])

    @model_validator(mode="after")
    def _check_ranges(self) -> "BulkRescheduleRequest":
        if self.affected_end < self.affected_start:
            raise ValueError("affected_end must be greater than or equal to affected_start")
        if self.replacement_windows is None:
            if self.replacement_start is None or self.replacement_end is None:
                raise ValueError(
                    "provide either replacement_windows or both replacement_start "
                    "and replacement_end"
                )
            if self.replacement_end < self.replacement_start:
                raise ValueError(
                    "replacement_end must be greater than or equal to replacement_start"
                )
        return self


class BookingRescheduleEntry(BaseModel):
    """
    Outcome for a single booking inside a bulk reschedule run.
    """

    booking_id: int
    status: RescheduleEntryStatus
    original_start: datetime
    original_end: datetime
    new_start: datetime | None = None
    new_end: datetime | None = None
    error: str | None = Field(
        default=None,
        description="Error code when the booking could not be moved.",
        examples=["NoSlotAvailable"],
    )
    warnings: list[str] = Field(default_factory=list)


class Tally(BaseModel):
    """
    Overall result of a bulk reschedule run.
    """

    resource_id: int
    success_count: int = 0
    failure_count: int = 0
    results: list[BookingRescheduleEntry] = Field(default_factory=list)
