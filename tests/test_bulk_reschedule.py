# tests/test_bulk_reschedule.py
from datetime import time, timedelta

import pytest

from slotsync.models.resource import Resource
from slotsync.schemas.availability import AvailabilityWindow
from slotsync.schemas.booking import BookingCreate, BookingStatus, ProviderKind, SyncStatus
from slotsync.schemas.bulk_reschedule import RescheduleEntryStatus
from slotsync.services.bulk_reschedule import NO_SLOT_AVAILABLE, reschedule_note
from slotsync.services.errors import NotFoundError, SyncError

from conftest import MONDAY, at, seed_resource

TUESDAY = MONDAY + timedelta(days=1)
WEDNESDAY = MONDAY + timedelta(days=2)

# Open Monday to Wednesday 09:00-17:00
WEEKDAY_RULES = [(dow, time(9, 0), time(17, 0)) for dow in (1, 2, 3)]


def _request(seeded, start) -> BookingCreate:
    return BookingCreate(
        resource_id=seeded.resource_id,
        service_id=seeded.service_id,
        client_name="Ada Lovelace",
        client_email="ada@example.com",
        start=start,
    )


@pytest.fixture
async def weekday_resource(session_factory):
    return await seed_resource(session_factory, rules=WEEKDAY_RULES, duration_minutes=30)


@pytest.mark.asyncio
async def test_bookings_fill_replacement_window_in_order(container, weekday_resource):
    orchestrator = container.orchestrator
    originals = []
    for hour in (15, 9, 11, 13):
        result = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, hour)))
        originals.append(result.booking)

    # exactly 4 x 30 minutes
    window = AvailabilityWindow(start=at(TUESDAY, 10), end=at(TUESDAY, 12))
    tally = await container.bulk_rescheduler.bulk_reschedule(
        weekday_resource.resource_id, MONDAY, MONDAY, [window]
    )

    assert tally.success_count == 4
    assert tally.failure_count == 0
    assert [e.original_start for e in tally.results] == [
        at(MONDAY, 9), at(MONDAY, 11), at(MONDAY, 13), at(MONDAY, 15)
    ]
    assert [e.new_start for e in tally.results] == [
        at(TUESDAY, 10), at(TUESDAY, 10, 30), at(TUESDAY, 11), at(TUESDAY, 11, 30)
    ]

    moved = await orchestrator.list_bookings(
        resource_id=weekday_resource.resource_id, status=BookingStatus.CONFIRMED
    )
    assert {b.id for b in moved} == {b.id for b in originals}
    for first, second in zip(moved, moved[1:]):
        assert first.end_at <= second.start_at


@pytest.mark.asyncio
async def test_bookings_that_do_not_fit_fail_individually(container, weekday_resource):
    orchestrator = container.orchestrator
    for hour in (9, 10, 11):
        await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, hour)))

    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 10))
    tally = await container.bulk_rescheduler.bulk_reschedule(
        weekday_resource.resource_id, MONDAY, MONDAY, [window]
    )

    assert tally.success_count == 2
    assert tally.failure_count == 1
    failed = tally.results[-1]
    assert failed.status == RescheduleEntryStatus.FAILED
    assert failed.error == NO_SLOT_AVAILABLE
    assert failed.original_start == at(MONDAY, 11)
    assert failed.new_start is None

    untouched = await orchestrator.get_booking(failed.booking_id)
    assert untouched.start_at == at(MONDAY, 11)


@pytest.mark.asyncio
async def test_existing_bookings_in_replacement_window_are_respected(container, weekday_resource):
    orchestrator = container.orchestrator
    to_move = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, 9)))
    await orchestrator.create_booking(_request(weekday_resource, at(TUESDAY, 9)))

    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 10))
    tally = await container.bulk_rescheduler.bulk_reschedule(
        weekday_resource.resource_id, MONDAY, MONDAY, [window]
    )

    assert tally.success_count == 1
    assert tally.results[0].booking_id == to_move.booking.id
    assert tally.results[0].new_start == at(TUESDAY, 9, 30)


@pytest.mark.asyncio
async def test_only_confirmed_bookings_in_range_are_moved(container, weekday_resource):
    orchestrator = container.orchestrator
    cancelled = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, 9)))
    await orchestrator.cancel_booking(cancelled.booking.id)
    in_range = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, 10)))
    await orchestrator.create_booking(_request(weekday_resource, at(WEDNESDAY, 10)))

    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 17))
    tally = await container.bulk_rescheduler.bulk_reschedule(
        weekday_resource.resource_id, MONDAY, MONDAY, [window]
    )

    assert [e.booking_id for e in tally.results] == [in_range.booking.id]


@pytest.mark.asyncio
async def test_moved_booking_is_annotated_and_synced(
    container, weekday_resource, calendar_adapter
):
    orchestrator = container.orchestrator
    created = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, 9)))
    calendar_adapter.fail("update", SyncError("calendar down", transient=False))

    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 10))
    tally = await container.bulk_rescheduler.bulk_reschedule(
        weekday_resource.resource_id, MONDAY, MONDAY, [window]
    )

    entry = tally.results[0]
    assert entry.status == RescheduleEntryStatus.SUCCESS
    assert any("CALENDAR" in w for w in entry.warnings)

    moved = await orchestrator.get_booking(created.booking.id)
    assert moved.start_at == at(TUESDAY, 9)
    assert "Original time: 2030-01-07 09:00 - 09:30 UTC" in moved.notes
    assert moved.sync_record(ProviderKind.CALENDAR).status == SyncStatus.FAILED
    assert moved.sync_record(ProviderKind.MEETING).status == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_replacement_windows_for_dates(container, weekday_resource):
    windows = await container.bulk_rescheduler.replacement_windows_for_dates(
        weekday_resource.resource_id, TUESDAY, MONDAY + timedelta(days=6)
    )

    assert [(w.start, w.end) for w in windows] == [
        (at(TUESDAY, 9), at(TUESDAY, 17)),
        (at(WEDNESDAY, 9), at(WEDNESDAY, 17)),
    ]


@pytest.mark.asyncio
async def test_unknown_resource_aborts_before_any_work(container, weekday_resource):
    orchestrator = container.orchestrator
    created = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, 9)))
    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 10))

    with pytest.raises(NotFoundError):
        await container.bulk_rescheduler.bulk_reschedule(999, MONDAY, MONDAY, [window])

    untouched = await orchestrator.get_booking(created.booking.id)
    assert untouched.start_at == at(MONDAY, 9)


@pytest.mark.asyncio
async def test_inactive_resource_aborts_before_any_work(
    container, session_factory, weekday_resource
):
    orchestrator = container.orchestrator
    created = await orchestrator.create_booking(_request(weekday_resource, at(MONDAY, 9)))
    async with session_factory() as session:
        async with session.begin():
            resource = await session.get(Resource, weekday_resource.resource_id)
            resource.is_active = False

    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 10))
    with pytest.raises(NotFoundError):
        await container.bulk_rescheduler.bulk_reschedule(
            weekday_resource.resource_id, MONDAY, MONDAY, [window]
        )

    untouched = await orchestrator.get_booking(created.booking.id)
    assert untouched.start_at == at(MONDAY, 9)
    assert untouched.notes is None


@pytest.mark.asyncio
async def test_range_without_bookings_returns_empty_tally(container, weekday_resource):
    tally = await container.bulk_rescheduler.bulk_reschedule(
        weekday_resource.resource_id, MONDAY, MONDAY, []
    )

    assert tally.success_count == 0
    assert tally.failure_count == 0
    assert tally.results == []


def test_reschedule_note_keeps_existing_notes():
    note = reschedule_note("Bring notes", at(MONDAY, 9), at(MONDAY, 9, 30))

    assert note.startswith("Bring notes\n\n")
    assert note.endswith("Original time: 2030-01-07 09:00 - 09:30 UTC")


@pytest.mark.asyncio
async def test_buffered_bookings_keep_their_gap_when_moved(container, session_factory):
    buffered = await seed_resource(
        session_factory, rules=WEEKDAY_RULES, duration_minutes=30, buffer_minutes=15
    )
    orchestrator = container.orchestrator
    for hour in (9, 10):
        await orchestrator.create_booking(_request(buffered, at(MONDAY, hour)))

    window = AvailabilityWindow(start=at(TUESDAY, 9), end=at(TUESDAY, 11))
    tally = await container.bulk_rescheduler.bulk_reschedule(
        buffered.resource_id, MONDAY, MONDAY, [window]
    )

    assert tally.success_count == 2
    assert [e.new_start for e in tally.results] == [at(TUESDAY, 9), at(TUESDAY, 9, 45)]
