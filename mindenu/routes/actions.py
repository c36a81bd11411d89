"""
Direct action endpoints.

These bypass the chat confirmation flow and are meant for client UI that
has already shown the user the exact payload and collected an explicit
confirmation. The body must be fully specified; no model is involved.

Endpoints:
- POST /v1/actions/send-email
- POST /v1/actions/create-event
- POST /v1/actions/delete-event
- GET  /v1/mail/recent
- GET  /v1/calendar/events
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Query

from mindenu.config import Settings, get_settings
from mindenu.dependencies import get_action_executor, get_adapters, get_credential_service, get_current_uid
from mindenu.integrations.adapters import ProviderAdapter
from mindenu.models.actions import (
    ActionType, CreateEventRequest, DeleteEventRequest, PendingAction, SendEmailRequest, split_request,
)
from mindenu.models.credential import Provider
from mindenu.services.action_executor import ActionExecutor
from mindenu.services.credential_service import CredentialService
from mindenu.services.proposals import result_summary
from mindenu.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


async def _run(
    uid: str,
    action_type: ActionType,
    request,
    credentials: CredentialService,
    executor: ActionExecutor,
) -> dict:
    requested, payload = split_request(request)
    provider = await credentials.resolve_provider(uid, requested)
    action = PendingAction(action_type=action_type, provider=provider, payload=payload)

    logger.info(f"Direct {action_type.value} via {provider.value} for uid={uid}")
    execution = await executor.execute(uid, action)
    return {
        "ok": True,
        "provider": provider.value,
        "message": execution.message,
        "result": result_summary(execution.result),
    }


@router.post("/actions/send-email")
async def send_email(
    request: SendEmailRequest,
    uid: str = Depends(get_current_uid),
    credentials: CredentialService = Depends(get_credential_service),
    executor: ActionExecutor = Depends(get_action_executor),
):
    """Send an email. Body: {to, subject, bodyText, cc?, bcc?, provider?}"""
    return await _run(uid, ActionType.SEND_EMAIL, request, credentials, executor)


@router.post("/actions/create-event")
async def create_event(
    request: CreateEventRequest,
    uid: str = Depends(get_current_uid),
    credentials: CredentialService = Depends(get_credential_service),
    executor: ActionExecutor = Depends(get_action_executor),
):
    """Create an event. Body: {title, start, end, description?, location?, attendees?, provider?}"""
    return await _run(uid, ActionType.CREATE_CALENDAR_EVENT, request, credentials, executor)


@router.post("/actions/delete-event")
async def delete_event(
    request: DeleteEventRequest,
    uid: str = Depends(get_current_uid),
    credentials: CredentialService = Depends(get_credential_service),
    executor: ActionExecutor = Depends(get_action_executor),
):
    """Delete an event. Body: {eventId, provider?}"""
    return await _run(uid, ActionType.DELETE_CALENDAR_EVENT, request, credentials, executor)


@router.get("/mail/recent")
async def recent_mail(
    provider: Optional[Provider] = None,
    max_results: int = Query(default=5, ge=1, le=25, alias="max"),
    uid: str = Depends(get_current_uid),
    credentials: CredentialService = Depends(get_credential_service),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
):
    """Most recent inbox messages for the chosen (or preferred) provider."""
    provider = await credentials.resolve_provider(uid, provider)
    credential = await credentials.get_valid_credential(uid, provider)
    messages = await adapters[provider].list_recent_mail(credential, max_results)
    return {"ok": True, "provider": provider.value, "messages": [m.model_dump() for m in messages]}


@router.get("/calendar/events")
async def calendar_events(
    provider: Optional[Provider] = None,
    days: Optional[int] = Query(default=None, ge=1, le=31),
    max_results: int = Query(default=10, ge=1, le=50, alias="max"),
    uid: str = Depends(get_current_uid),
    credentials: CredentialService = Depends(get_credential_service),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    settings: Settings = Depends(get_settings),
):
    """Upcoming events from now through the next `days` days."""
    provider = await credentials.resolve_provider(uid, provider)
    credential = await credentials.get_valid_credential(uid, provider)

    window_start = datetime.now(timezone.utc)
    window_end = window_start + timedelta(days=days or settings.calendar_window_days)
    events = await adapters[provider].list_calendar_events(credential, window_start, window_end, max_results)
    return {
        "ok": True,
        "provider": provider.value,
        "windowStart": window_start.isoformat(),
        "windowEnd": window_end.isoformat(),
        "events": [e.model_dump() for e in events],
    }
