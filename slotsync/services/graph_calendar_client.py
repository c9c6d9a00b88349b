from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from slotsync.services.errors import SyncError
from slotsync.services.provider_client import ProviderClient, TokenProvider


class GraphCalendarClient(ProviderClient):
    """
    Microsoft Graph calendar events API, scoped by an opaque calendar id.

    When no calendar id is configured for a resource, the signed-in
    account's default calendar (`/me/events`) is used.
    """

    provider_name = "Graph calendar"

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout_seconds: float = 10.0,
    ) -> None:
        super().__init__(token_provider, base_url, timeout_seconds)

    @staticmethod
    def _events_path(calendar_id: Optional[str]) -> str:
        if calendar_id:
            return f"/me/calendars/{calendar_id}/events"
        return "/me/events"

    @staticmethod
    def _event_path(event_id: str) -> str:
        return f"/me/events/{event_id}"

    async def create_event(self, calendar_id: Optional[str], event: Dict[str, Any]) -> str:
        payload = await self.post_json(self._events_path(calendar_id), json=event)
        event_id = payload.get("id")
        if not event_id:
            raise ValueError("Graph create event response is missing 'id'")
        return str(event_id)

    async def update_event(self, event_id: str, event: Dict[str, Any]) -> None:
        await self.patch(self._event_path(event_id), json=event)

    async def delete_event(self, event_id: str) -> None:
        await self.delete(self._event_path(event_id))

    async def list_busy_intervals(
        self,
        calendar_id: Optional[str],
        start: datetime,
        end: datetime,
    ) -> List[tuple[datetime, datetime]]:
        """
        Return (start, end) UTC pairs of non-free, non-cancelled events
        overlapping [start, end).
        """
        path = (
            f"/me/calendars/{calendar_id}/calendarView" if calendar_id else "/me/calendarView"
        )
        params = {
            "startDateTime": start.astimezone(timezone.utc).isoformat(),
            "endDateTime": end.astimezone(timezone.utc).isoformat(),
        }
        payload = await self.get_json(path, params=params)

        busy: List[tuple[datetime, datetime]] = []
        for ev in payload.get("value", []):
            if ev.get("isCancelled") or ev.get("showAs") == "free":
                continue
            start_raw = ev.get("start") or {}
            end_raw = ev.get("end") or {}
            if "dateTime" not in start_raw or "dateTime" not in end_raw:
                continue
            try:
                busy.append((_parse_graph_datetime(start_raw), _parse_graph_datetime(end_raw)))
            except (TypeError, ValueError) as exc:
                raise SyncError(
                    f"{self.provider_name} event {ev.get('id')} has an unreadable time: {exc}"
                ) from exc
        return busy


_EXCESS_FRACTION = re.compile(r"(\.\d{6})\d+")


def _parse_graph_datetime(dt_obj: dict) -> datetime:
    """
    Converts Graph datetime JSON into aware UTC datetime.

    calendarView returns UTC unless a Prefer: outlook.timezone header is
    sent, so naive values are tagged as UTC.
    """
    raw = dt_obj["dateTime"].replace("Z", "+00:00")
    # Graph sends 7 fractional digits; datetime accepts at most 6
    raw = _EXCESS_FRACTION.sub(r"\1", raw)
    dt = datetime.fromisoformat(raw)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
