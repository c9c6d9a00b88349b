from __future__ import annotations

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Dict, List, Optional

from sqlalchemy import and_, delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotsync.models.booking import Booking, ExternalSyncRecord, blocked_end
from slotsync.models.resource import AvailabilityRule, Resource
from slotsync.models.service_definition import ServiceDefinition
from slotsync.schemas.booking import BookingStatus, ProviderKind, SyncStatus
from slotsync.services.conflict_detector import ConflictDetector
from slotsync.services.errors import InvalidStateError, NotFoundError, SlotTakenError


class BookingStore:
    """
    Repository over the relational store for everything the booking core
    reads and writes.

    Writes that must not race (insert / move a CONFIRMED booking) run as one
    atomic unit per resource:

    - a per-resource asyncio.Lock serializes writers inside this process;
    - inside one transaction the resource row is locked with
      SELECT ... FOR UPDATE (PostgreSQL; SQLite ignores it and relies on the
      process lock plus its single-writer database lock);
    - the conflict check runs on that same transaction before the write;
    - an IntegrityError on commit (e.g. a store-level exclusion constraint)
      is reported as SlotTakenError, exactly like the pre-write check.

    Every method opens and closes its own session; no transaction is ever
    left open for callers to hold across provider I/O.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        detector: ConflictDetector,
    ) -> None:
        self._session_factory = session_factory
        self._detector = detector
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    @asynccontextmanager
    async def _resource_transaction(self, resource_id: int) -> AsyncIterator[AsyncSession]:
        async with self._locks[resource_id]:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(
                        select(Resource.id)
                        .where(Resource.id == resource_id)
                        .with_for_update()
                    )
                    yield session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_resource(self, resource_id: int) -> Optional[Resource]:
        async with self._session_factory() as session:
            result = await session.execute(select(Resource).where(Resource.id == resource_id))
            return result.scalar_one_or_none()

    async def get_service(self, service_id: int) -> Optional[ServiceDefinition]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ServiceDefinition).where(ServiceDefinition.id == service_id)
            )
            return result.scalar_one_or_none()

    async def list_rules(self, resource_id: int) -> List[AvailabilityRule]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AvailabilityRule)
                .where(AvailabilityRule.resource_id == resource_id)
                .order_by(AvailabilityRule.day_of_week, AvailabilityRule.start_time)
            )
            return list(result.scalars().all())

    async def find_booking_by_id(self, booking_id: int) -> Optional[Booking]:
        async with self._session_factory() as session:
            result = await session.execute(select(Booking).where(Booking.id == booking_id))
            return result.scalar_one_or_none()

    async def find_bookings_by_resource_and_range(
        self,
        resource_id: Optional[int],
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        status: Optional[BookingStatus] = None,
    ) -> List[Booking]:
        """
        Bookings whose start falls in [start, end), ordered by start ascending.

        Every filter is optional so the same query backs both the bulk
        rescheduler and the booking listing endpoint.
        """
        conditions = []
        if resource_id is not None:
            conditions.append(Booking.resource_id == resource_id)
        if start is not None:
            conditions.append(Booking.start_at >= start)
        if end is not None:
            conditions.append(Booking.start_at < end)
        if status is not None:
            conditions.append(Booking.status == status.value)

        stmt = select(Booking).order_by(Booking.start_at.asc(), Booking.id.asc())
        if conditions:
            stmt = stmt.where(and_(*conditions))

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Atomic writes
    # ------------------------------------------------------------------

    async def insert_booking(self, booking: Booking) -> Booking:
        """
        Insert a CONFIRMED booking unless its blocked interval overlaps
        another one. `blocked_until` is derived from `end_at` and
        `buffer_minutes`.

        Raises SlotTakenError when the window is no longer free.
        """
        booking.blocked_until = blocked_end(booking.end_at, booking.buffer_minutes)
        try:
            async with self._resource_transaction(booking.resource_id) as session:
                if await self._detector.has_conflict(
                    session,
                    booking.resource_id,
                    booking.start_at,
                    booking.blocked_until,
                ):
                    raise SlotTakenError("Time slot is already booked")
                session.add(booking)
                await session.flush()
                booking_id = booking.id
        except IntegrityError as exc:
            raise SlotTakenError("Time slot is already booked") from exc

        return await self._reload(booking_id)

    async def update_booking_window(
        self,
        booking_id: int,
        resource_id: int,
        start: datetime,
        end: datetime,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Move a CONFIRMED booking in place (same id) unless the new window
        overlaps another booking of the resource. The booking keeps its own
        buffer.
        """
        try:
            async with self._resource_transaction(resource_id) as session:
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise NotFoundError(f"Booking with id={booking_id} not found")
                if booking.status != BookingStatus.CONFIRMED.value:
                    raise InvalidStateError(
                        f"Cannot reschedule a booking with status {booking.status}"
                    )
                blocked_until = blocked_end(end, booking.buffer_minutes)
                if await self._detector.has_conflict(
                    session,
                    resource_id,
                    start,
                    blocked_until,
                    exclude_booking_id=booking_id,
                ):
                    raise SlotTakenError("New time slot is already booked")

                booking.start_at = start
                booking.end_at = end
                booking.blocked_until = blocked_until
                if notes is not None:
                    booking.notes = notes
        except IntegrityError as exc:
            raise SlotTakenError("New time slot is already booked") from exc

        return await self._reload(booking_id)

    async def mark_cancelled(self, booking_id: int) -> tuple[Booking, bool]:
        """
        Set status CANCELLED.

        Returns the booking and whether this call changed it; an already
        cancelled booking is returned untouched.
        """
        async with self._session_factory() as session:
            async with session.begin():
                booking = await session.get(Booking, booking_id)
                if booking is None:
                    raise NotFoundError(f"Booking with id={booking_id} not found")
                if booking.status == BookingStatus.CANCELLED.value:
                    return booking, False
                booking.status = BookingStatus.CANCELLED.value

        return await self._reload(booking_id), True

    # ------------------------------------------------------------------
    # Sync records
    # ------------------------------------------------------------------

    async def save_sync_record(
        self,
        booking_id: int,
        provider: ProviderKind,
        status: SyncStatus,
        *,
        external_id: Optional[str] = None,
        join_url: Optional[str] = None,
        last_error: Optional[str] = None,
    ) -> None:
        """
        Upsert the (booking, provider) record. Existing external ids and join
        URLs are kept unless new ones are supplied.
        """
        async with self._session_factory() as session:
            async with session.begin():
                result = await session.execute(
                    select(ExternalSyncRecord).where(
                        ExternalSyncRecord.booking_id == booking_id,
                        ExternalSyncRecord.provider == provider.value,
                    )
                )
                record = result.scalar_one_or_none()
                if record is None:
                    record = ExternalSyncRecord(booking_id=booking_id, provider=provider.value)
                    session.add(record)

                record.status = status.value
                record.last_error = last_error
                if external_id is not None:
                    record.external_id = external_id
                if join_url is not None:
                    record.join_url = join_url

    async def clear_sync_record(self, booking_id: int, provider: ProviderKind) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(ExternalSyncRecord).where(
                        ExternalSyncRecord.booking_id == booking_id,
                        ExternalSyncRecord.provider == provider.value,
                    )
                )

    async def _reload(self, booking_id: int) -> Booking:
        booking = await self.find_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundError(f"Booking with id={booking_id} not found")
        return booking
