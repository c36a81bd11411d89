"""
Google Calendar API client.

Calendar API Reference: https://developers.google.com/calendar/api/v3/reference
"""
from datetime import datetime
from typing import List
from urllib.parse import quote

from mindenu.integrations.api_client import BaseApiClient
from mindenu.models.calendar import CalendarEvent, DeleteResult, EventDraft
from mindenu.utils.errors import UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)


def _event_time(value: dict) -> str:
    """Timed events carry dateTime; all-day events only carry a date."""
    value = value or {}
    return value.get("dateTime") or value.get("date") or ""


class GoogleCalendarClient(BaseApiClient):
    """Client for the user's primary Google calendar."""

    SERVICE_NAME = "Google Calendar"
    BASE_URL = "https://www.googleapis.com/calendar/v3/calendars/primary"

    async def list_events(
        self,
        window_start: datetime,
        window_end: datetime,
        max_results: int = 10,
    ) -> List[CalendarEvent]:
        """List events overlapping [window_start, window_end), soonest first."""
        response = await self._make_request(
            "GET",
            "/events",
            params={
                "timeMin": window_start.isoformat(),
                "timeMax": window_end.isoformat(),
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return [self._parse_event(item) for item in response.get("items", [])]

    def _parse_event(self, item: dict) -> CalendarEvent:
        return CalendarEvent(
            id=item.get("id", ""),
            title=item.get("summary") or "(No title)",
            start=_event_time(item.get("start")),
            end=_event_time(item.get("end")),
            location=item.get("location", ""),
            description=item.get("description", ""),
            attendees=[a["email"] for a in item.get("attendees", []) if a.get("email")],
        )

    async def create_event(self, draft: EventDraft) -> CalendarEvent:
        body = {
            "summary": draft.title,
            "start": {"dateTime": draft.start},
            "end": {"dateTime": draft.end},
        }
        if draft.time_zone:
            body["start"]["timeZone"] = draft.time_zone
            body["end"]["timeZone"] = draft.time_zone
        if draft.description:
            body["description"] = draft.description
        if draft.location:
            body["location"] = draft.location
        if draft.attendees:
            body["attendees"] = [{"email": email} for email in draft.attendees]

        response = await self._make_request(
            "POST",
            "/events",
            json_data=body,
            params={"sendUpdates": "all"} if draft.attendees else None,
        )
        event = self._parse_event(response)
        logger.info(f"Created Google Calendar event {event.id}")
        return event

    async def delete_event(self, event_id: str) -> DeleteResult:
        """
        Delete an event.

        Google answers 410 Gone (or 404) for events that were already
        deleted; that counts as success.
        """
        try:
            await self._make_request("DELETE", f"/events/{quote(event_id, safe='')}")
        except UpstreamError as e:
            if e.status in (404, 410):
                logger.info(f"Google Calendar event {event_id} was already deleted")
                return DeleteResult(ok=True, already_deleted=True)
            raise

        logger.info(f"Deleted Google Calendar event {event_id}")
        return DeleteResult(ok=True)
