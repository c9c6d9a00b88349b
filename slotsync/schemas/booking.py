from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from slotsync.core.clock import ensure_utc


class BookingStatus(str, Enum):
    """
    Lifecycle status of a booking.

    COMPLETED is set by an external lifecycle process, never by the core.
    """

    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"


class ProviderKind(str, Enum):
    """
    Closed set of external systems a booking can be mirrored into.
    """

    CALENDAR = "CALENDAR"
    MEETING = "MEETING"


class SyncStatus(str, Enum):
    SYNCED = "SYNCED"
    FAILED = "FAILED"
    NOT_ATTEMPTED = "NOT_ATTEMPTED"


# --------------------------------------------------------------------------
# Request schemas
# --------------------------------------------------------------------------

class BookingCreate(BaseModel):
    """
    Payload for POST /bookings.
    """

    resource_id: int = Field(..., ge=1, description="Resource being booked.", examples=[1])
    service_id: int = Field(..., ge=1, description="Service definition to book.", examples=[3])
    client_name: str = Field(
        ...,
        min_length=1,
        max_length=255,
        description="Client's display name.",
        examples=["Ada Lovelace"],
    )
    client_email: str = Field(
        ...,
        min_length=3,
        max_length=320,
        pattern=r"^[^@\s]+@[^@\s]+$",
        description="Client's email address; used for invites and notifications.",
        examples=["ada@example.com"],
    )
    client_phone: str | None = Field(
        default=None,
        max_length=64,
        description="Optional client phone number.",
    )
    start: datetime = Field(
        ...,
        description="Requested start instant (ISO 8601). Naive values are read as UTC.",
        examples=["2026-11-02T10:30:00Z"],
    )
    duration_minutes: int | None = Field(
        default=None,
        ge=1,
        description=(
            "Requested duration for flexible services. Must be one of the "
            "service's allowed durations; ignored for fixed-duration services."
        ),
    )
    notes: str | None = Field(default=None, description="Free-text notes from the client.")

    @field_validator("start")
    @classmethod
    def _normalize_start(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class BookingReschedule(BaseModel):
    """
    Payload for POST /bookings/{id}/reschedule.

    Duration is not user-settable on reschedule; it is taken from the booking.
    """

    new_start: datetime = Field(
        ...,
        description="New start instant (ISO 8601). Naive values are read as UTC.",
        examples=["2026-11-03T09:00:00Z"],
    )
    notes: str | None = Field(
        default=None,
        description="Replaces the booking notes when provided.",
    )

    @field_validator("new_start")
    @classmethod
    def _normalize_start(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# --------------------------------------------------------------------------
# Read schemas
# --------------------------------------------------------------------------

class SyncRecordRead(BaseModel):
    """
    Persisted link between a booking and one external provider artifact.
    """

    model_config = ConfigDict(from_attributes=True)

    provider: ProviderKind
    external_id: str | None = None
    join_url: str | None = Field(
        default=None,
        description="Meeting join URL, when the meeting provider issued one.",
    )
    status: SyncStatus
    last_error: str | None = None


class BookingRead(BaseModel):
    """
    Public representation of a Booking row.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., examples=[1], description="Database identifier of the booking.")
    resource_id: int
    service_id: int
    client_name: str
    client_email: str
    client_phone: str | None = None
    start_at: datetime = Field(..., description="Start instant (UTC).")
    end_at: datetime = Field(..., description="End instant (UTC), exclusive.")
    duration_minutes: int
    buffer_minutes: int = Field(0, description="Turnaround minutes kept free after end_at.")
    status: BookingStatus
    notes: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    sync_records: list[SyncRecordRead] = Field(default_factory=list)

    def sync_record(self, provider: ProviderKind) -> SyncRecordRead | None:
        for record in self.sync_records:
            if record.provider == provider:
                return record
        return None


class SyncOutcome(BaseModel):
    """
    Result of mirroring one booking operation into one provider.
    """

    provider: ProviderKind
    operation: str = Field(..., description="create / update / delete", examples=["create"])
    status: SyncStatus
    external_id: str | None = None
    attempts: int = Field(0, description="Number of provider calls made.")
    recovered: bool = Field(
        False,
        description="True when the call succeeded only after a retry.",
    )
    error: str | None = None


class BookingResult(BaseModel):
    """
    Envelope returned by every mutating booking operation.

    `booking` is the authoritative state. `warnings` lists degraded
    integrations, so a caller can tell "the appointment exists" apart from
    "the appointment exists but the calendar invite may be missing".
    """

    booking: BookingRead
    sync_outcomes: list[SyncOutcome] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    def outcome_for(self, provider: ProviderKind) -> SyncOutcome | None:
        for outcome in self.sync_outcomes:
            if outcome.provider == provider:
                return outcome
        return None

    @property
    def degraded_providers(self) -> list[ProviderKind]:
        return [o.provider for o in self.sync_outcomes if o.status == SyncStatus.FAILED]
