# tests/test_conflict_detector.py
import pytest

from slotsync.models.booking import Booking
from slotsync.services.conflict_detector import ConflictDetector

from conftest import MONDAY, at


async def _insert(session_factory, seeded, start, end, status="CONFIRMED", buffer_minutes=0) -> int:
    async with session_factory() as session:
        async with session.begin():
            booking = Booking(
                resource_id=seeded.resource_id,
                service_id=seeded.service_id,
                client_name="Existing",
                client_email="existing@example.com",
                start_at=start,
                end_at=end,
                duration_minutes=int((end - start).total_seconds() // 60),
                status=status,
                buffer_minutes=buffer_minutes,
            )
            session.add(booking)
            await session.flush()
            return booking.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start, end, expected",
    [
        (at(MONDAY, 10, 15), at(MONDAY, 10, 45), True),   # overlaps the tail
        (at(MONDAY, 9, 45), at(MONDAY, 10, 15), True),    # overlaps the head
        (at(MONDAY, 10, 5), at(MONDAY, 10, 25), True),    # inside
        (at(MONDAY, 9, 0), at(MONDAY, 11, 0), True),      # contains
        (at(MONDAY, 10, 30), at(MONDAY, 11, 0), False),   # back-to-back after
        (at(MONDAY, 9, 30), at(MONDAY, 10, 0), False),    # back-to-back before
    ],
)
async def test_half_open_overlap(session_factory, seeded, start, end, expected):
    await _insert(session_factory, seeded, at(MONDAY, 10), at(MONDAY, 10, 30))
    detector = ConflictDetector()

    async with session_factory() as session:
        assert await detector.has_conflict(session, seeded.resource_id, start, end) is expected


@pytest.mark.asyncio
async def test_cancelled_bookings_do_not_conflict(session_factory, seeded):
    await _insert(session_factory, seeded, at(MONDAY, 10), at(MONDAY, 10, 30), status="CANCELLED")

    async with session_factory() as session:
        assert not await ConflictDetector().has_conflict(
            session, seeded.resource_id, at(MONDAY, 10), at(MONDAY, 10, 30)
        )


@pytest.mark.asyncio
async def test_excluded_booking_is_ignored(session_factory, seeded):
    booking_id = await _insert(session_factory, seeded, at(MONDAY, 10), at(MONDAY, 10, 30))

    async with session_factory() as session:
        assert not await ConflictDetector().has_conflict(
            session,
            seeded.resource_id,
            at(MONDAY, 10, 15),
            at(MONDAY, 10, 45),
            exclude_booking_id=booking_id,
        )


@pytest.mark.asyncio
async def test_other_resources_do_not_conflict(session_factory, seeded):
    await _insert(session_factory, seeded, at(MONDAY, 10), at(MONDAY, 10, 30))

    async with session_factory() as session:
        assert not await ConflictDetector().has_conflict(
            session, seeded.resource_id + 1, at(MONDAY, 10), at(MONDAY, 10, 30)
        )


@pytest.mark.asyncio
async def test_overlapping_returns_bookings_in_start_order(session_factory, seeded):
    second = await _insert(session_factory, seeded, at(MONDAY, 11), at(MONDAY, 11, 30))
    first = await _insert(session_factory, seeded, at(MONDAY, 9), at(MONDAY, 9, 30))
    await _insert(session_factory, seeded, at(MONDAY, 15), at(MONDAY, 15, 30))

    async with session_factory() as session:
        found = await ConflictDetector().overlapping(
            session, seeded.resource_id, at(MONDAY, 9), at(MONDAY, 12)
        )

    assert [b.id for b in found] == [first, second]


@pytest.mark.asyncio
async def test_existing_buffer_blocks_following_window(session_factory, seeded):
    await _insert(session_factory, seeded, at(MONDAY, 10), at(MONDAY, 10, 30), buffer_minutes=15)

    async with session_factory() as session:
        detector = ConflictDetector()
        assert await detector.has_conflict(
            session, seeded.resource_id, at(MONDAY, 10, 30), at(MONDAY, 11)
        )
        assert not await detector.has_conflict(
            session, seeded.resource_id, at(MONDAY, 10, 45), at(MONDAY, 11, 15)
        )
