"""
Microsoft Graph client for Outlook mail and calendar.

Graph returns event times as zone-less strings; the Prefer header pins
them to UTC so they can be normalized to ISO-8601 with an offset.

Graph API Reference: https://learn.microsoft.com/graph/api/overview
"""
from datetime import datetime, timezone
from typing import List
from urllib.parse import quote

from mindenu.integrations.api_client import BaseApiClient
from mindenu.models.calendar import CalendarEvent, DeleteResult, EventDraft
from mindenu.models.email import MailDraft, MailSummary, SentMail
from mindenu.utils.errors import UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

UTC_PREFERENCE = {"Prefer": 'outlook.timezone="UTC"'}


def _graph_time(value: dict, all_day: bool) -> str:
    """Normalize a Graph dateTimeTimeZone to ISO-8601 (date-only for all-day)."""
    raw = (value or {}).get("dateTime") or ""
    if not raw:
        return ""
    if all_day:
        return raw[:10]

    # Graph sends 7 fractional digits, more than fromisoformat accepts
    main, _, fraction = raw.partition(".")
    try:
        parsed = datetime.fromisoformat(main)
    except ValueError:
        return raw
    if fraction.rstrip("0"):
        parsed = parsed.replace(microsecond=int(fraction[:6].ljust(6, "0")))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.isoformat()


def _recipients(addresses: List[str]) -> List[dict]:
    return [{"emailAddress": {"address": address}} for address in addresses]


class GraphClient(BaseApiClient):
    """Client for the signed-in user's Outlook mailbox and calendar."""

    SERVICE_NAME = "Microsoft"
    BASE_URL = "https://graph.microsoft.com/v1.0"

    async def list_recent_mail(self, max_results: int = 5) -> List[MailSummary]:
        response = await self._make_request(
            "GET",
            "/me/mailFolders/inbox/messages",
            params={
                "$top": max_results,
                "$select": "id,from,subject,receivedDateTime,bodyPreview",
                "$orderby": "receivedDateTime desc",
            },
        )

        results = []
        for item in response.get("value", []):
            sender = (item.get("from") or {}).get("emailAddress") or {}
            name, address = sender.get("name", ""), sender.get("address", "")
            results.append(MailSummary(
                id=item.get("id", ""),
                sender=f"{name} <{address}>" if name and address else (address or name or "Unknown"),
                subject=item.get("subject") or "(No Subject)",
                date=item.get("receivedDateTime", ""),
                snippet=item.get("bodyPreview", ""),
            ))
        return results

    async def list_events(
        self,
        window_start: datetime,
        window_end: datetime,
        max_results: int = 10,
    ) -> List[CalendarEvent]:
        response = await self._make_request(
            "GET",
            "/me/calendarView",
            params={
                "startDateTime": window_start.isoformat(),
                "endDateTime": window_end.isoformat(),
                "$top": max_results,
                "$orderby": "start/dateTime",
            },
            headers=UTC_PREFERENCE,
        )
        return [self._parse_event(item) for item in response.get("value", [])]

    def _parse_event(self, item: dict) -> CalendarEvent:
        all_day = bool(item.get("isAllDay"))
        return CalendarEvent(
            id=item.get("id", ""),
            title=item.get("subject") or "(No title)",
            start=_graph_time(item.get("start"), all_day),
            end=_graph_time(item.get("end"), all_day),
            location=(item.get("location") or {}).get("displayName", ""),
            description=item.get("bodyPreview", ""),
            attendees=[
                a["emailAddress"]["address"]
                for a in item.get("attendees", [])
                if (a.get("emailAddress") or {}).get("address")
            ],
        )

    async def create_event(self, draft: EventDraft) -> CalendarEvent:
        tz = draft.time_zone or "UTC"
        body = {
            "subject": draft.title,
            "start": {"dateTime": draft.start, "timeZone": tz},
            "end": {"dateTime": draft.end, "timeZone": tz},
        }
        if draft.description:
            body["body"] = {"contentType": "text", "content": draft.description}
        if draft.location:
            body["location"] = {"displayName": draft.location}
        if draft.attendees:
            body["attendees"] = [
                {"emailAddress": {"address": email}, "type": "required"} for email in draft.attendees
            ]

        response = await self._make_request("POST", "/me/events", json_data=body, headers=UTC_PREFERENCE)
        event = self._parse_event(response)
        logger.info(f"Created Outlook event {event.id}")
        return event

    async def delete_event(self, event_id: str) -> DeleteResult:
        try:
            await self._make_request("DELETE", f"/me/events/{quote(event_id, safe='')}")
        except UpstreamError as e:
            if e.status in (404, 410):
                logger.info(f"Outlook event {event_id} was already deleted")
                return DeleteResult(ok=True, already_deleted=True)
            raise

        logger.info(f"Deleted Outlook event {event_id}")
        return DeleteResult(ok=True)

    async def send_mail(self, draft: MailDraft) -> SentMail:
        """
        Send mail through /me/sendMail.

        Graph answers 202 with no body, so no message ID is available.
        """
        message = {
            "subject": draft.subject,
            "body": {"contentType": "Text", "content": draft.body_text},
            "toRecipients": _recipients(draft.recipients),
        }
        if draft.cc:
            message["ccRecipients"] = _recipients(draft.cc)
        if draft.bcc:
            message["bccRecipients"] = _recipients(draft.bcc)

        await self._make_request(
            "POST",
            "/me/sendMail",
            json_data={"message": message, "saveToSentItems": True},
        )
        logger.info(f"Outlook message sent to {len(draft.recipients)} recipient(s)")
        return SentMail()
