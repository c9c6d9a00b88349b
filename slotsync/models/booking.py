from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import (
    Column,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from slotsync.db.base import Base
from slotsync.db.types import UTCDateTime


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)


def blocked_end(end_at: datetime, buffer_minutes: Optional[int]) -> datetime:
    return end_at + timedelta(minutes=buffer_minutes or 0)


def _default_blocked_until(context) -> datetime:
    params = context.get_current_parameters()
    return blocked_end(params["end_at"], params.get("buffer_minutes"))


class Booking(Base):
    """
    A client appointment with a resource.

    Rows are never deleted: cancellation flips `status` and keeps the
    historical record. For a given resource, the blocked intervals
    [start_at, blocked_until) of CONFIRMED rows never overlap, where
    `blocked_until` is `end_at` plus the service buffer copied at booking time.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)

    resource_id = Column(
        Integer,
        ForeignKey("resources.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_id = Column(
        Integer,
        ForeignKey("service_definitions.id"),
        nullable=False,
    )

    client_name = Column(String(255), nullable=False)
    client_email = Column(String(320), nullable=False)
    client_phone = Column(String(64), nullable=True)

    start_at = Column(UTCDateTime, nullable=False)
    end_at = Column(UTCDateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    buffer_minutes = Column(Integer, nullable=False, default=0)
    blocked_until = Column(UTCDateTime, nullable=False, default=_default_blocked_until)

    status = Column(String(32), nullable=False, default="CONFIRMED")
    notes = Column(Text, nullable=True)

    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    sync_records = relationship(
        "ExternalSyncRecord",
        back_populates="booking",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="ExternalSyncRecord.provider",
    )

    __table_args__ = (
        Index("ix_bookings_resource_status_start", "resource_id", "status", "start_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking id={self.id} resource_id={self.resource_id} "
            f"{self.start_at}-{self.end_at} status={self.status}>"
        )


class ExternalSyncRecord(Base):
    """
    Link between a booking and the artifact mirrored in one external provider.
    """

    __tablename__ = "external_sync_records"

    id = Column(Integer, primary_key=True, index=True)

    booking_id = Column(
        Integer,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    provider = Column(String(32), nullable=False)
    external_id = Column(String(255), nullable=True)
    join_url = Column(Text, nullable=True)
    status = Column(String(32), nullable=False, default="NOT_ATTEMPTED")
    last_error = Column(Text, nullable=True)

    updated_at = Column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    booking = relationship("Booking", back_populates="sync_records")

    __table_args__ = (
        UniqueConstraint(
            "booking_id",
            "provider",
            name="uq_external_sync_records_booking_provider",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ExternalSyncRecord booking_id={self.booking_id} "
            f"provider={self.provider} status={self.status}>"
        )
