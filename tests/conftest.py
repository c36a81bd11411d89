"""
Pytest fixtures for Mindenu backend tests.
"""
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from mindenu.config import Settings
from mindenu.integrations.adapters import ProviderAdapter
from mindenu.integrations.openai_client import LlmResult, LlmToolGateway
from mindenu.models.actions import ActionType, PendingAction
from mindenu.models.calendar import CalendarEvent, DeleteResult
from mindenu.models.credential import Provider, ProviderCredential
from mindenu.models.email import MailSummary, SentMail
from mindenu.services.action_executor import ActionExecutor
from mindenu.services.chat_service import ChatService
from mindenu.services.context_service import ContextService, ProviderContextCache
from mindenu.services.credential_service import CredentialService
from mindenu.services.token_store import MemoryTokenStore

UID = "user-123"


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def uid():
    return UID


@pytest.fixture
def settings():
    """Settings with every secret filled and no .env lookup."""
    return Settings(
        _env_file=None,
        google_client_id="google-client",
        google_client_secret="google-secret",
        microsoft_client_id="ms-client",
        microsoft_client_secret="ms-secret",
        openai_api_key="sk-test",
        oauth_state_secret="state-secret-for-tests-0123456789",
        llm_retry_backoff_seconds=0,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 2, 5, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def store(clock):
    return MemoryTokenStore(pending_ttl_seconds=600, clock=clock)


@pytest.fixture
def google_credential(clock):
    return ProviderCredential(
        provider=Provider.GOOGLE,
        access_token="google-access",
        refresh_token="google-refresh",
        scope="https://www.googleapis.com/auth/gmail.send",
        expiry=clock.now + timedelta(hours=1),
    )


@pytest_asyncio.fixture
async def connected_store(store, google_credential):
    """Token store with Google connected for UID."""
    await store.save_credential(UID, Provider.GOOGLE, google_credential)
    return store


@pytest.fixture
def mock_adapter():
    """Adapter double returning canned provider data."""
    adapter = MagicMock(spec=ProviderAdapter)
    adapter.list_recent_mail = AsyncMock(return_value=[
        MailSummary(
            id="msg-1",
            sender="Alice <alice@example.com>",
            subject="Project update",
            date="2025-02-05T09:00:00+00:00",
            snippet="Latest numbers attached",
        ),
    ])
    adapter.list_calendar_events = AsyncMock(return_value=[
        CalendarEvent(
            id="evt-1",
            title="Standup",
            start="2025-02-05T15:00:00+00:00",
            end="2025-02-05T15:30:00+00:00",
        ),
    ])
    adapter.send_mail = AsyncMock(return_value=SentMail(id="sent-1", thread_id="thread-1"))
    adapter.create_calendar_event = AsyncMock(return_value=CalendarEvent(
        id="evt-new",
        title="Standup",
        start="2025-02-05T16:00:00+00:00",
        end="2025-02-05T16:30:00+00:00",
    ))
    adapter.delete_calendar_event = AsyncMock(return_value=DeleteResult())
    return adapter


@pytest.fixture
def adapters(mock_adapter):
    return {Provider.GOOGLE: mock_adapter, Provider.MICROSOFT: mock_adapter}


@pytest.fixture
def mock_gateway():
    """Gateway double; set .invoke.return_value per test."""
    gateway = MagicMock(spec=LlmToolGateway)
    gateway.invoke = AsyncMock(return_value=LlmResult(assistant_text="Hi! How can I help?"))
    return gateway


@pytest.fixture
def cache():
    return ProviderContextCache(ttl_seconds=45)


@pytest.fixture
def credential_service(store, settings):
    return CredentialService(store, settings, refreshers={})


@pytest.fixture
def executor(credential_service, adapters, cache):
    return ActionExecutor(credential_service, adapters, cache)


@pytest.fixture
def context_service(credential_service, adapters, cache, settings):
    return ContextService(credential_service, adapters, cache, settings)


@pytest.fixture
def chat_service(store, mock_gateway, executor, context_service, settings):
    return ChatService(store, mock_gateway, executor, context_service, settings)


@pytest.fixture
def email_action(clock):
    return PendingAction(
        action_type=ActionType.SEND_EMAIL,
        provider=Provider.GOOGLE,
        payload={"to": "a@b.com", "subject": "Hi", "body_text": "Hello"},
        created_at=clock.now,
    )


@pytest.fixture
def event_action(clock):
    return PendingAction(
        action_type=ActionType.CREATE_CALENDAR_EVENT,
        provider=Provider.GOOGLE,
        payload={
            "title": "Standup",
            "start": "2025-02-05T16:00:00+00:00",
            "end": "2025-02-05T16:30:00+00:00",
        },
        created_at=clock.now,
    )
