from __future__ import annotations

import logging
from datetime import date as date_type, timedelta
from typing import Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from slotsync.core.clock import Clock, utcnow
from slotsync.core.logging import set_booking_id
from slotsync.models.resource import Resource
from slotsync.schemas.availability import AvailabilityWindow, SlotCandidate
from slotsync.schemas.booking import BookingStatus
from slotsync.schemas.bulk_reschedule import (
    BookingRescheduleEntry,
    RescheduleEntryStatus,
    Tally,
)
from slotsync.services.availability import AvailabilityModel
from slotsync.services.booking_orchestrator import BookingOrchestrator
from slotsync.services.booking_store import BookingStore
from slotsync.services.errors import BookingError, NotFoundError
from slotsync.services.slot_search import SlotSearch

logger = logging.getLogger(__name__)

NO_SLOT_AVAILABLE = "NoSlotAvailable"
STORE_ERROR = "StoreError"


def reschedule_note(original_notes: Optional[str], original_start, original_end) -> str:
    """
    Annotate a moved booking with the time it originally had.
    """
    stamp = (
        f"Automatically rescheduled due to availability change. "
        f"Original time: {original_start.strftime('%Y-%m-%d %H:%M')} - "
        f"{original_end.strftime('%H:%M')} UTC"
    )
    if original_notes:
        return f"{original_notes}\n\n{stamp}"
    return stamp


class BulkRescheduler:
    """
    Re-slots every CONFIRMED booking of a resource inside an affected date
    range into replacement windows.

    Bookings are processed in ascending start order, each one taking the
    earliest free candidate not already claimed in the same run. A booking
    that cannot be placed (or whose reschedule is rejected) becomes a FAILED
    entry; the rest of the batch continues. Only an unknown or inactive
    resource aborts the run, before any booking is touched.
    """

    def __init__(
        self,
        store: BookingStore,
        orchestrator: BookingOrchestrator,
        slot_search: SlotSearch,
        clock: Clock = utcnow,
    ) -> None:
        self._store = store
        self._orchestrator = orchestrator
        self._slot_search = slot_search
        self._clock = clock

    async def _require_resource(self, resource_id: int) -> Resource:
        resource = await self._store.get_resource(resource_id)
        if resource is None or not resource.is_active:
            raise NotFoundError(f"Resource with id={resource_id} not found")
        return resource

    async def replacement_windows_for_dates(
        self,
        resource_id: int,
        first_day: date_type,
        last_day: date_type,
    ) -> list[AvailabilityWindow]:
        """
        Expand the resource's weekly rules over the local dates
        [first_day, last_day] into concrete replacement windows.
        """
        resource = await self._require_resource(resource_id)
        rules = await self._store.list_rules(resource.id)
        return AvailabilityModel.windows_for_dates(resource, rules, first_day, last_day)

    async def bulk_reschedule(
        self,
        resource_id: int,
        affected_start: date_type,
        affected_end: date_type,
        replacement_windows: Sequence[AvailabilityWindow],
    ) -> Tally:
        if affected_end < affected_start:
            raise ValueError("affected_end must be greater than or equal to affected_start")

        resource = await self._require_resource(resource_id)
        range_start, range_end = AvailabilityModel.local_day_bounds(
            resource, affected_start, affected_end
        )

        bookings = await self._store.find_bookings_by_resource_and_range(
            resource.id,
            start=range_start,
            end=range_end,
            status=BookingStatus.CONFIRMED,
        )
        logger.info(
            "Bulk reschedule for resource %s: %d booking(s) between %s and %s, %d window(s)",
            resource.id,
            len(bookings),
            affected_start,
            affected_end,
            len(replacement_windows),
        )

        tally = Tally(resource_id=resource.id)
        claimed: list[SlotCandidate] = []
        now = self._clock()

        for booking in bookings:
            set_booking_id(booking.id)
            entry = BookingRescheduleEntry(
                booking_id=booking.id,
                status=RescheduleEntryStatus.FAILED,
                original_start=booking.start_at,
                original_end=booking.end_at,
            )

            buffer = timedelta(minutes=booking.buffer_minutes or 0)
            try:
                slot = await self._slot_search.first_free_slot(
                    resource.id,
                    replacement_windows,
                    timedelta(minutes=booking.duration_minutes),
                    buffer=buffer,
                    exclude_booking_id=booking.id,
                    not_before=now,
                    claimed=claimed,
                )
                if slot is None:
                    logger.warning("No free slot in the replacement windows")
                    entry.error = NO_SLOT_AVAILABLE
                else:
                    result = await self._orchestrator.reschedule_booking(
                        booking.id,
                        slot.start,
                        notes=reschedule_note(booking.notes, booking.start_at, booking.end_at),
                    )
                    claimed.append(SlotCandidate(start=slot.start, end=slot.end + buffer))
                    entry.status = RescheduleEntryStatus.SUCCESS
                    entry.new_start = result.booking.start_at
                    entry.new_end = result.booking.end_at
                    entry.warnings = list(result.warnings)
            except BookingError as exc:
                logger.warning("Reschedule rejected: %s", exc.message)
                entry.error = exc.code
            except SQLAlchemyError:
                logger.exception("Store failure while rescheduling")
                entry.error = STORE_ERROR

            if entry.status == RescheduleEntryStatus.SUCCESS:
                tally.success_count += 1
            else:
                tally.failure_count += 1
            tally.results.append(entry)

        set_booking_id(None)
        logger.info(
            "Bulk reschedule for resource %s finished: %d succeeded, %d failed",
            resource.id,
            tally.success_count,
            tally.failure_count,
        )
        return tally
