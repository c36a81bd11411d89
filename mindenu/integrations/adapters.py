"""
Provider adapters - one action surface for Google and Microsoft.

Every adapter method takes the user's credential and builds a fresh API
client for the call, so adapters hold no per-user state.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional

import httpx

from mindenu.integrations.api_client import DEFAULT_TIMEOUT
from mindenu.integrations.gmail_client import GmailClient
from mindenu.integrations.google_calendar_client import GoogleCalendarClient
from mindenu.integrations.graph_client import GraphClient
from mindenu.models.calendar import CalendarEvent, DeleteResult, EventDraft
from mindenu.models.credential import Provider, ProviderCredential
from mindenu.models.email import MailDraft, MailSummary, SentMail


class ProviderAdapter(ABC):
    """Uniform mail and calendar operations for one provider."""

    provider: Provider

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = timeout
        self.transport = transport

    @abstractmethod
    async def list_recent_mail(self, credential: ProviderCredential, max_results: int = 5) -> List[MailSummary]:
        ...

    @abstractmethod
    async def list_calendar_events(
        self,
        credential: ProviderCredential,
        window_start: datetime,
        window_end: datetime,
        max_results: int = 10,
    ) -> List[CalendarEvent]:
        ...

    @abstractmethod
    async def create_calendar_event(self, credential: ProviderCredential, draft: EventDraft) -> CalendarEvent:
        ...

    @abstractmethod
    async def delete_calendar_event(self, credential: ProviderCredential, event_id: str) -> DeleteResult:
        ...

    @abstractmethod
    async def send_mail(self, credential: ProviderCredential, draft: MailDraft) -> SentMail:
        ...


class GoogleAdapter(ProviderAdapter):
    """Gmail + Google Calendar."""

    provider = Provider.GOOGLE

    def _gmail(self, credential):
        return GmailClient(credential.access_token, timeout=self.timeout, transport=self.transport)

    def _calendar(self, credential):
        return GoogleCalendarClient(credential.access_token, timeout=self.timeout, transport=self.transport)

    async def list_recent_mail(self, credential, max_results=5):
        return await self._gmail(credential).list_recent_mail(max_results)

    async def list_calendar_events(self, credential, window_start, window_end, max_results=10):
        return await self._calendar(credential).list_events(window_start, window_end, max_results)

    async def create_calendar_event(self, credential, draft):
        return await self._calendar(credential).create_event(draft)

    async def delete_calendar_event(self, credential, event_id):
        return await self._calendar(credential).delete_event(event_id)

    async def send_mail(self, credential, draft):
        return await self._gmail(credential).send_mail(draft)


class MicrosoftAdapter(ProviderAdapter):
    """Outlook mail + calendar through Microsoft Graph."""

    provider = Provider.MICROSOFT

    def _graph(self, credential):
        return GraphClient(credential.access_token, timeout=self.timeout, transport=self.transport)

    async def list_recent_mail(self, credential, max_results=5):
        return await self._graph(credential).list_recent_mail(max_results)

    async def list_calendar_events(self, credential, window_start, window_end, max_results=10):
        return await self._graph(credential).list_events(window_start, window_end, max_results)

    async def create_calendar_event(self, credential, draft):
        return await self._graph(credential).create_event(draft)

    async def delete_calendar_event(self, credential, event_id):
        return await self._graph(credential).delete_event(event_id)

    async def send_mail(self, credential, draft):
        return await self._graph(credential).send_mail(draft)


def build_adapters(timeout: float = DEFAULT_TIMEOUT) -> Dict[Provider, ProviderAdapter]:
    """Adapter registry keyed by provider."""
    return {
        Provider.GOOGLE: GoogleAdapter(timeout=timeout),
        Provider.MICROSOFT: MicrosoftAdapter(timeout=timeout),
    }
