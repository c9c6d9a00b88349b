# tests/test_availability.py
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from slotsync.models.resource import AvailabilityRule, Resource
from slotsync.services.availability import AvailabilityModel, day_of_week

MONDAY = date(2030, 1, 7)


def _resource(tz: str = "UTC") -> Resource:
    return Resource(id=1, name="Coach", timezone=tz, is_active=True)


def _rule(dow: int, start: time, end: time, active: bool = True) -> AvailabilityRule:
    return AvailabilityRule(resource_id=1, day_of_week=dow, start_time=start, end_time=end, is_active=active)


def _utc(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime.combine(day, time(hour, minute), tzinfo=timezone.utc)


MONDAY_RULES = [_rule(1, time(9, 0), time(17, 0))]


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2030, 1, 6)) == 0  # Sunday
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2030, 1, 12)) == 6  # Saturday


def test_window_starting_at_open_time_is_available():
    assert AvailabilityModel.is_within_availability(
        _resource(), MONDAY_RULES, _utc(MONDAY, 9), _utc(MONDAY, 9, 30)
    )


def test_window_ending_at_close_time_is_available():
    assert AvailabilityModel.is_within_availability(
        _resource(), MONDAY_RULES, _utc(MONDAY, 16, 30), _utc(MONDAY, 17)
    )


def test_window_ending_one_minute_after_close_is_rejected():
    assert not AvailabilityModel.is_within_availability(
        _resource(), MONDAY_RULES, _utc(MONDAY, 16, 31), _utc(MONDAY, 17, 1)
    )


def test_window_starting_before_open_is_rejected():
    assert not AvailabilityModel.is_within_availability(
        _resource(), MONDAY_RULES, _utc(MONDAY, 8, 45), _utc(MONDAY, 9, 15)
    )


def test_closed_day_is_not_available():
    tuesday = MONDAY + timedelta(days=1)
    assert not AvailabilityModel.is_within_availability(
        _resource(), MONDAY_RULES, _utc(tuesday, 10), _utc(tuesday, 10, 30)
    )


def test_inactive_rule_is_ignored():
    rules = [_rule(1, time(9, 0), time(17, 0), active=False)]
    assert not AvailabilityModel.is_within_availability(
        _resource(), rules, _utc(MONDAY, 10), _utc(MONDAY, 10, 30)
    )


def test_window_crossing_midnight_is_rejected():
    rules = [_rule(1, time(0, 0), time(23, 59)), _rule(2, time(0, 0), time(23, 59))]
    assert not AvailabilityModel.is_within_availability(
        _resource(), rules, _utc(MONDAY, 23, 45), _utc(MONDAY + timedelta(days=1), 0, 15)
    )


def test_adjacent_rules_form_one_interval():
    rules = [_rule(1, time(9, 0), time(12, 0)), _rule(1, time(12, 0), time(15, 0))]
    assert AvailabilityModel.is_within_availability(
        _resource(), rules, _utc(MONDAY, 11, 30), _utc(MONDAY, 12, 30)
    )


def test_gap_between_rules_is_rejected():
    rules = [_rule(1, time(9, 0), time(12, 0)), _rule(1, time(13, 0), time(15, 0))]
    assert not AvailabilityModel.is_within_availability(
        _resource(), rules, _utc(MONDAY, 11, 45), _utc(MONDAY, 13, 15)
    )


def test_rules_are_read_in_the_resource_timezone():
    # 09:00-17:00 Berlin on a winter Monday is 08:00-16:00 UTC.
    resource = _resource("Europe/Berlin")
    assert AvailabilityModel.is_within_availability(
        resource, MONDAY_RULES, _utc(MONDAY, 8), _utc(MONDAY, 8, 30)
    )
    assert not AvailabilityModel.is_within_availability(
        resource, MONDAY_RULES, _utc(MONDAY, 16), _utc(MONDAY, 16, 30)
    )


def test_unknown_timezone_falls_back_to_utc():
    assert AvailabilityModel.is_within_availability(
        _resource("Not/AZone"), MONDAY_RULES, _utc(MONDAY, 9), _utc(MONDAY, 10)
    )


def test_windows_for_dates_expands_each_local_day():
    rules = [
        _rule(1, time(9, 0), time(12, 0)),
        _rule(1, time(11, 0), time(17, 0)),
        _rule(2, time(10, 0), time(11, 0)),
    ]
    windows = AvailabilityModel.windows_for_dates(
        _resource(), rules, MONDAY, MONDAY + timedelta(days=2)
    )

    assert [(w.start, w.end) for w in windows] == [
        (_utc(MONDAY, 9), _utc(MONDAY, 17)),
        (_utc(MONDAY + timedelta(days=1), 10), _utc(MONDAY + timedelta(days=1), 11)),
    ]


def test_windows_for_dates_converts_local_time():
    windows = AvailabilityModel.windows_for_dates(
        _resource("America/New_York"), MONDAY_RULES, MONDAY, MONDAY
    )
    assert len(windows) == 1
    assert windows[0].start == datetime.combine(
        MONDAY, time(9), tzinfo=ZoneInfo("America/New_York")
    ).astimezone(timezone.utc)


def test_windows_for_dates_rejects_reversed_range():
    with pytest.raises(ValueError):
        AvailabilityModel.windows_for_dates(_resource(), MONDAY_RULES, MONDAY, MONDAY - timedelta(days=1))


def test_local_day_bounds_cover_whole_local_days():
    start, end = AvailabilityModel.local_day_bounds(_resource("Europe/Berlin"), MONDAY, MONDAY)
    assert start == _utc(MONDAY - timedelta(days=1), 23)
    assert end == _utc(MONDAY, 23)
