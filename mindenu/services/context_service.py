"""
Provider context for the assistant prompt.

Gathers a small snapshot of upcoming events and recent mail for the
user's connected provider. The two reads are independent and run
concurrently. Snapshots are cached per (uid, provider) for a short TTL
and dropped whenever an action mutates that provider's data.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Tuple

from mindenu.config import Settings
from mindenu.integrations.adapters import ProviderAdapter
from mindenu.models.calendar import CalendarEvent
from mindenu.models.credential import Provider
from mindenu.models.email import MailSummary
from mindenu.services.credential_service import CredentialService
from mindenu.utils.errors import AppError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ProviderContext:
    """What the assistant may see about the user's mailbox and calendar."""
    provider: Optional[Provider] = None
    events: List[CalendarEvent] = field(default_factory=list)
    emails: List[MailSummary] = field(default_factory=list)
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None


class ProviderContextCache:
    """TTL cache of ProviderContext keyed by (uid, provider)."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[Tuple[str, Provider], Tuple[float, ProviderContext]] = {}

    def get(self, uid: str, provider: Provider) -> Optional[ProviderContext]:
        entry = self._entries.get((uid, provider))
        if entry is None:
            return None
        expires_at, context = entry
        if self.clock() >= expires_at:
            del self._entries[(uid, provider)]
            return None
        return context

    def put(self, uid: str, provider: Provider, context: ProviderContext) -> None:
        if self.ttl_seconds <= 0:
            return
        self._entries[(uid, provider)] = (self.clock() + self.ttl_seconds, context)

    def invalidate(self, uid: str, provider: Provider) -> None:
        self._entries.pop((uid, provider), None)


class ContextService:
    """Builds ProviderContext snapshots for the chat engine."""

    def __init__(
        self,
        credentials: CredentialService,
        adapters: Dict[Provider, ProviderAdapter],
        cache: ProviderContextCache,
        settings: Settings,
    ):
        self.credentials = credentials
        self.adapters = adapters
        self.cache = cache
        self.settings = settings

    async def gather(self, uid: str, now: Optional[datetime] = None) -> ProviderContext:
        """
        Snapshot the preferred connected provider.

        Returns an empty context (provider=None) when nothing is connected.
        A failing read leaves its half of the snapshot empty instead of
        failing the chat turn.
        """
        connected = await self.credentials.store.connected_providers(uid)
        provider = self.credentials.preferred(connected)
        if provider is None:
            return ProviderContext()

        cached = self.cache.get(uid, provider)
        if cached is not None:
            return cached

        now = now or datetime.now(timezone.utc)
        window_end = now + timedelta(days=self.settings.calendar_window_days)
        adapter = self.adapters[provider]

        try:
            credential = await self.credentials.get_valid_credential(uid, provider)
        except AppError as e:
            logger.warning(f"Skipping {provider.value} context for uid={uid}: {e.code}")
            return ProviderContext(provider=provider)

        events, emails = await asyncio.gather(
            adapter.list_calendar_events(credential, now, window_end, self.settings.context_max_events),
            adapter.list_recent_mail(credential, self.settings.context_max_emails),
            return_exceptions=True,
        )

        for result in (events, emails):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result

        complete = True
        if isinstance(events, BaseException):
            logger.warning(f"Calendar context unavailable for uid={uid}: {events}")
            events, complete = [], False
        if isinstance(emails, BaseException):
            logger.warning(f"Mail context unavailable for uid={uid}: {emails}")
            emails, complete = [], False

        context = ProviderContext(
            provider=provider,
            events=events[: self.settings.context_max_events],
            emails=emails[: self.settings.context_max_emails],
            window_start=now,
            window_end=window_end,
        )
        # Partial snapshots are not cached so the next turn retries the failed read
        if complete:
            self.cache.put(uid, provider, context)
        return context
