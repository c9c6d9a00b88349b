from __future__ import annotations

from datetime import date as date_type, datetime, time, timedelta, timezone
from typing import Iterable, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from slotsync.models.resource import AvailabilityRule, Resource
from slotsync.schemas.availability import AvailabilityWindow


def resource_zone(resource: Resource) -> ZoneInfo:
    """
    ZoneInfo for the resource, falling back to UTC for unknown names.
    """
    try:
        return ZoneInfo(resource.timezone or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def day_of_week(local_day: date_type) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return local_day.isoweekday() % 7


def _merged_intervals(
    rules: Iterable[AvailabilityRule],
    weekday: int,
) -> list[tuple[time, time]]:
    """
    Union of the active rules for one weekday as sorted, non-overlapping
    (start, end) pairs. Touching intervals are merged.
    """
    spans = sorted(
        (rule.start_time, rule.end_time)
        for rule in rules
        if rule.is_active and rule.day_of_week == weekday and rule.start_time < rule.end_time
    )

    merged: list[tuple[time, time]] = []
    for start, end in spans:
        if merged and start <= merged[-1][1]:
            prev_start, prev_end = merged[-1]
            merged[-1] = (prev_start, max(prev_end, end))
        else:
            merged.append((start, end))
    return merged


class AvailabilityModel:
    """
    Answers "is this window inside the resource's open hours" from the weekly
    recurring AvailabilityRules.

    Rules are per local calendar day in the resource's timezone; a request
    that crosses local midnight is never available.
    """

    @staticmethod
    def is_within_availability(
        resource: Resource,
        rules: Sequence[AvailabilityRule],
        start: datetime,
        end: datetime,
    ) -> bool:
        if end <= start:
            return False

        tz = resource_zone(resource)
        local_start = start.astimezone(tz)
        local_end = end.astimezone(tz)

        if local_start.date() != local_end.date():
            return False

        start_t = local_start.time().replace(tzinfo=None)
        end_t = local_end.time().replace(tzinfo=None)

        for open_t, close_t in _merged_intervals(rules, day_of_week(local_start.date())):
            if open_t <= start_t and end_t <= close_t:
                return True
        return False

    @staticmethod
    def windows_for_dates(
        resource: Resource,
        rules: Sequence[AvailabilityRule],
        first_day: date_type,
        last_day: date_type,
    ) -> list[AvailabilityWindow]:
        """
        Expand the weekly rules into concrete UTC windows for each local date
        in [first_day, last_day], ordered by start.
        """
        if last_day < first_day:
            raise ValueError("last_day must be greater than or equal to first_day")

        tz = resource_zone(resource)
        windows: list[AvailabilityWindow] = []

        current = first_day
        while current <= last_day:
            for open_t, close_t in _merged_intervals(rules, day_of_week(current)):
                start = datetime.combine(current, open_t, tzinfo=tz).astimezone(timezone.utc)
                end = datetime.combine(current, close_t, tzinfo=tz).astimezone(timezone.utc)
                if end > start:
                    windows.append(AvailabilityWindow(start=start, end=end))
            current += timedelta(days=1)

        return windows

    @staticmethod
    def local_day_bounds(
        resource: Resource,
        first_day: date_type,
        last_day: date_type,
    ) -> tuple[datetime, datetime]:
        """
        UTC instants covering the local dates [first_day, last_day]; the end is
        exclusive (start of the day after `last_day`).
        """
        tz = resource_zone(resource)
        start = datetime.combine(first_day, time.min, tzinfo=tz)
        end = datetime.combine(last_day + timedelta(days=1), time.min, tzinfo=tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)
