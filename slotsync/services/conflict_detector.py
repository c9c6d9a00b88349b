from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import and_, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from slotsync.models.booking import Booking
from slotsync.schemas.booking import BookingStatus


class ConflictDetector:
    """
    Detects overlap between a candidate window and a resource's CONFIRMED
    bookings.

    Overlap uses half-open intervals over blocked time: an existing booking
    conflicts with [start, end) iff
    `existing.start < end AND existing.blocked_until > start`. Callers pass
    the candidate's own blocked end (appointment end plus buffer). Without
    buffers, back-to-back bookings never conflict.

    The detector always queries the session it is handed. The orchestrator
    passes the session of its atomic commit, which makes that check the
    authoritative one; any earlier check is advisory.
    """

    @staticmethod
    def _overlap_clause(
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ):
        conditions = [
            Booking.resource_id == resource_id,
            Booking.status == BookingStatus.CONFIRMED.value,
            Booking.start_at < end,
            Booking.blocked_until > start,
        ]
        if exclude_booking_id is not None:
            conditions.append(Booking.id != exclude_booking_id)
        return and_(*conditions)

    async def has_conflict(
        self,
        session: AsyncSession,
        resource_id: int,
        start: datetime,
        end: datetime,
        exclude_booking_id: Optional[int] = None,
    ) -> bool:
        stmt = select(
            exists().where(
                self._overlap_clause(resource_id, start, end, exclude_booking_id)
            )
        )
        result = await session.execute(stmt)
        return bool(result.scalar())

    async def overlapping(
        self,
        session: AsyncSession,
        resource_id: int,
        start: datetime,
        end: datetime,
    ) -> List[Booking]:
        """
        Return the CONFIRMED bookings overlapping [start, end), ordered by start.
        """
        stmt = (
            select(Booking)
            .where(self._overlap_clause(resource_id, start, end))
            .order_by(Booking.start_at.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
