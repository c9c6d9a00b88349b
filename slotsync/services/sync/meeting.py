from __future__ import annotations

from datetime import timezone
from typing import Any, Dict

from slotsync.models.resource import Resource
from slotsync.schemas.booking import BookingRead, ProviderKind
from slotsync.services.sync.base import SyncAdapter, SyncArtifact
from slotsync.services.zoom_client import ZoomMeetingClient

SCHEDULED_MEETING = 2


def build_meeting(booking: BookingRead, resource: Resource) -> Dict[str, Any]:
    return {
        "topic": f"Appointment - {booking.client_name}",
        "type": SCHEDULED_MEETING,
        "start_time": booking.start_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        "duration": booking.duration_minutes,
        "timezone": resource.timezone or "UTC",
        "settings": {
            "host_video": True,
            "participant_video": True,
            "join_before_host": False,
            "mute_upon_entry": True,
            "waiting_room": True,
            "auto_recording": "none",
        },
    }


class MeetingSyncAdapter(SyncAdapter):
    """
    Mirrors bookings as scheduled video meetings hosted by the resource.

    The join URL is handed back to the orchestrator, which stores it for
    notification rendering.
    """

    kind = ProviderKind.MEETING

    def __init__(self, client: ZoomMeetingClient) -> None:
        self._client = client

    async def create(self, booking: BookingRead, resource: Resource) -> SyncArtifact:
        created = await self._client.create_meeting(
            resource.meeting_host_id,
            build_meeting(booking, resource),
        )
        return SyncArtifact(external_id=created["id"], join_url=created.get("join_url"))

    async def update(self, booking: BookingRead, resource: Resource, external_id: str) -> None:
        await self._client.update_meeting(external_id, build_meeting(booking, resource))

    async def delete(self, external_id: str, resource: Resource) -> None:
        await self._client.delete_meeting(external_id)
