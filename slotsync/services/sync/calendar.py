from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List

from slotsync.models.resource import Resource
from slotsync.schemas.booking import BookingRead, ProviderKind
from slotsync.services.graph_calendar_client import GraphCalendarClient
from slotsync.services.sync.base import Interval, SyncAdapter, SyncArtifact


def build_event(booking: BookingRead) -> Dict[str, Any]:
    """
    Graph event payload for a booking. Times are sent in UTC; the calendar
    renders them in the viewer's zone.
    """
    lines = [
        f"Booking with {booking.client_name}",
        f"Email: {booking.client_email}",
        f"Phone: {booking.client_phone or 'N/A'}",
        f"Notes: {booking.notes or 'N/A'}",
    ]
    return {
        "subject": f"Appointment - {booking.client_name}",
        "body": {"contentType": "text", "content": "\n".join(lines)},
        "start": {"dateTime": _graph_time(booking.start_at), "timeZone": "UTC"},
        "end": {"dateTime": _graph_time(booking.end_at), "timeZone": "UTC"},
        "attendees": [
            {
                "emailAddress": {
                    "address": booking.client_email,
                    "name": booking.client_name,
                },
                "type": "required",
            }
        ],
        "transactionId": f"slotsync-booking-{booking.id}",
    }


def _graph_time(value: datetime) -> str:
    return value.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")


class CalendarSyncAdapter(SyncAdapter):
    """
    Mirrors bookings as events in the resource's calendar.
    """

    kind = ProviderKind.CALENDAR

    def __init__(self, client: GraphCalendarClient) -> None:
        self._client = client

    async def create(self, booking: BookingRead, resource: Resource) -> SyncArtifact:
        event_id = await self._client.create_event(resource.calendar_id, build_event(booking))
        return SyncArtifact(external_id=event_id)

    async def update(self, booking: BookingRead, resource: Resource, external_id: str) -> None:
        event = build_event(booking)
        # transactionId is only meaningful on create
        event.pop("transactionId", None)
        await self._client.update_event(external_id, event)

    async def delete(self, external_id: str, resource: Resource) -> None:
        await self._client.delete_event(external_id)

    async def list_busy_intervals(
        self,
        resource: Resource,
        day_start: datetime,
        day_end: datetime,
    ) -> List[Interval]:
        pairs = await self._client.list_busy_intervals(resource.calendar_id, day_start, day_end)
        return [Interval(start=start, end=end) for start, end in pairs]
