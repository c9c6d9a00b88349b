from datetime import date, datetime

from pydantic import BaseModel, Field, field_validator, model_validator

from slotsync.core.clock import ensure_utc


class AvailabilityWindow(BaseModel):
    """
    A concrete open interval [start, end) during which slots may be placed.
    """

    start: datetime = Field(..., examples=["2026-11-02T09:00:00Z"])
    end: datetime = Field(..., examples=["2026-11-02T17:00:00Z"])

    @field_validator("start", "end")
    @classmethod
    def _normalize(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_order(self) -> "AvailabilityWindow":
        if self.end <= self.start:
            raise ValueError("window end must be after window start")
        return self


class SlotCandidate(BaseModel):
    """
    A candidate interval of a fixed duration. Transient, never persisted.
    """

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


class AvailableSlotsResponse(BaseModel):
    """
    Advisory list of free slots for one local day. Every slot is re-verified
    when a booking is committed.
    """

    resource_id: int
    service_id: int
    day: date = Field(..., description="Local calendar date in the resource's timezone.")
    timezone: str = Field(..., examples=["Europe/Berlin"])
    duration_minutes: int
    buffer_minutes: int = 0
    slots: list[SlotCandidate]
