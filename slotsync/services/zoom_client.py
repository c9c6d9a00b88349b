from __future__ import annotations

from typing import Any, Dict, Optional

from slotsync.services.provider_client import ProviderClient, TokenProvider


class ZoomMeetingClient(ProviderClient):
    """
    Zoom scheduled-meetings API.

    Meetings are created under the resource's host user (or `me` when the
    resource has no host id configured).
    """

    provider_name = "Zoom"

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "https://api.zoom.us/v2",
        timeout_seconds: float = 10.0,
    ) -> None:
        super().__init__(token_provider, base_url, timeout_seconds)

    async def create_meeting(
        self,
        host_id: Optional[str],
        meeting: Dict[str, Any],
    ) -> Dict[str, Any]:
        """
        Create a scheduled meeting.

        Returns a dict with `id` (as string) and `join_url`.
        """
        payload = await self.post_json(f"/users/{host_id or 'me'}/meetings", json=meeting)
        meeting_id = payload.get("id")
        if meeting_id is None:
            raise ValueError("Zoom create meeting response is missing 'id'")
        return {"id": str(meeting_id), "join_url": payload.get("join_url")}

    async def update_meeting(self, meeting_id: str, meeting: Dict[str, Any]) -> None:
        await self.patch(f"/meetings/{meeting_id}", json=meeting)

    async def delete_meeting(self, meeting_id: str) -> None:
        await self.delete(f"/meetings/{meeting_id}")
