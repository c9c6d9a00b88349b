from __future__ import annotations

import asyncio
import logging
from datetime import date as date_type, datetime, timedelta
from typing import Iterable, Iterator, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from slotsync.models.resource import AvailabilityRule, Resource
from slotsync.schemas.availability import AvailabilityWindow, SlotCandidate
from slotsync.services.availability import AvailabilityModel
from slotsync.services.conflict_detector import ConflictDetector
from slotsync.services.errors import SyncError
from slotsync.services.sync.base import SyncAdapter

logger = logging.getLogger(__name__)


def candidate_slots(
    windows: Iterable[AvailabilityWindow],
    duration: timedelta,
    granularity_minutes: int,
    buffer: timedelta = timedelta(0),
) -> Iterator[SlotCandidate]:
    """
    Lazily generate candidate slots inside each window.

    Starting at each window's open time, one candidate is emitted every
    `granularity_minutes` as long as `start + duration + buffer <= window.end`.
    Candidates span the appointment only; the buffer is not part of them.
    Pure function of its inputs; calling it again restarts the sequence.
    """
    if duration <= timedelta(0):
        raise ValueError("duration must be positive")
    if granularity_minutes <= 0:
        raise ValueError("granularity_minutes must be positive")
    if buffer < timedelta(0):
        raise ValueError("buffer must not be negative")

    step = timedelta(minutes=granularity_minutes)

    for window in windows:
        start = window.start
        while start + duration + buffer <= window.end:
            yield SlotCandidate(start=start, end=start + duration)
            start += step


class SlotSearch:
    """
    Finds free slots for a resource.

    Used for the client-facing availability listing and by the bulk
    rescheduler. Results are advisory: the orchestrator re-checks conflicts
    inside its atomic commit.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        detector: ConflictDetector,
        granularity_minutes: int = 15,
        *,
        min_notice_minutes: int = 0,
        busy_timeout_seconds: float = 10.0,
    ) -> None:
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be positive")
        if min_notice_minutes < 0:
            raise ValueError("min_notice_minutes must not be negative")
        self._session_factory = session_factory
        self._detector = detector
        self.granularity_minutes = granularity_minutes
        self.min_notice = timedelta(minutes=min_notice_minutes)
        self.busy_timeout_seconds = busy_timeout_seconds

    async def first_free_slot(
        self,
        resource_id: int,
        windows: Sequence[AvailabilityWindow],
        duration: timedelta,
        *,
        buffer: timedelta = timedelta(0),
        exclude_booking_id: Optional[int] = None,
        not_before: Optional[datetime] = None,
        claimed: Sequence[SlotCandidate] = (),
    ) -> Optional[SlotCandidate]:
        """
        Return the earliest conflict-free candidate, or None.

        A candidate blocks `[start, end + buffer)`. Candidates starting
        before `not_before` or overlapping an interval in `claimed` are
        skipped without querying the store.
        """
        ordered = sorted(windows, key=lambda w: w.start)

        async with self._session_factory() as session:
            for candidate in candidate_slots(
                ordered, duration, self.granularity_minutes, buffer
            ):
                if not_before is not None and candidate.start < not_before:
                    continue
                blocked_until = candidate.end + buffer
                if any(c.overlaps(candidate.start, blocked_until) for c in claimed):
                    continue
                if await self._detector.has_conflict(
                    session,
                    resource_id,
                    candidate.start,
                    blocked_until,
                    exclude_booking_id=exclude_booking_id,
                ):
                    continue
                return candidate

        return None

    async def _provider_busy(
        self,
        busy_source: SyncAdapter,
        resource: Resource,
        day_start: datetime,
        day_end: datetime,
    ) -> list[tuple[datetime, datetime]]:
        """
        Busy intervals reported by the provider, or [] when it cannot answer
        in time or sends something unreadable.
        """
        try:
            intervals = await asyncio.wait_for(
                busy_source.list_busy_intervals(resource, day_start, day_end),
                timeout=self.busy_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Busy intervals for resource %s timed out after %.1fs",
                resource.id,
                self.busy_timeout_seconds,
            )
            return []
        except (SyncError, ValueError) as exc:
            logger.warning(
                "Busy intervals unavailable for resource %s: %s", resource.id, exc
            )
            return []
        return [(i.start, i.end) for i in intervals]

    async def available_slots(
        self,
        resource: Resource,
        rules: Sequence[AvailabilityRule],
        duration: timedelta,
        day: date_type,
        now: datetime,
        busy_source: Optional[SyncAdapter] = None,
        buffer: timedelta = timedelta(0),
    ) -> list[SlotCandidate]:
        """
        List free slots for one local calendar day of the resource.

        Candidates starting before `now` plus the minimum notice are dropped.
        Confirmed bookings are the primary conflict source; when
        `busy_source` is given, its busy intervals are removed as well, but a
        failing or slow provider only degrades the listing.
        """
        windows = AvailabilityModel.windows_for_dates(resource, rules, day, day)
        if not windows:
            return []

        day_start = windows[0].start
        day_end = windows[-1].end

        async with self._session_factory() as session:
            existing = await self._detector.overlapping(session, resource.id, day_start, day_end)

        busy: list[tuple[datetime, datetime]] = [(b.start_at, b.blocked_until) for b in existing]
        if busy_source is not None:
            busy.extend(await self._provider_busy(busy_source, resource, day_start, day_end))

        earliest = now + self.min_notice
        slots: list[SlotCandidate] = []
        for candidate in candidate_slots(windows, duration, self.granularity_minutes, buffer):
            if candidate.start <= now or candidate.start < earliest:
                continue
            blocked_until = candidate.end + buffer
            if any(b_start < blocked_until and b_end > candidate.start for b_start, b_end in busy):
                continue
            slots.append(candidate)
        return slots
