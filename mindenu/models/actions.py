"""
Pending action models.

A PendingAction is a side-effecting request the assistant proposed and
the user has not confirmed yet. There is at most one per user.
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from mindenu.models.calendar import EventDeletion, EventDraft
from mindenu.models.credential import Provider
from mindenu.models.email import MailDraft


class ActionType(str, Enum):
    """Side effects that require explicit confirmation."""
    SEND_EMAIL = "send_email"
    CREATE_CALENDAR_EVENT = "create_calendar_event"
    DELETE_CALENDAR_EVENT = "delete_calendar_event"

    @property
    def description(self) -> str:
        return {
            ActionType.SEND_EMAIL: "an email to send",
            ActionType.CREATE_CALENDAR_EVENT: "a calendar event to create",
            ActionType.DELETE_CALENDAR_EVENT: "a calendar event to delete",
        }[self]


PAYLOAD_MODELS = {
    ActionType.SEND_EMAIL: MailDraft,
    ActionType.CREATE_CALENDAR_EVENT: EventDraft,
    ActionType.DELETE_CALENDAR_EVENT: EventDeletion,
}

ActionPayload = Union[MailDraft, EventDraft, EventDeletion]


class PendingAction(BaseModel):
    """An action awaiting confirmation."""
    action_type: ActionType
    provider: Provider
    payload: dict
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def typed_payload(self) -> ActionPayload:
        """Validate the stored payload against the model for its action type."""
        return PAYLOAD_MODELS[self.action_type].model_validate(self.payload)

    def summary(self) -> dict:
        """Client-facing description of the pending action."""
        return {
            "actionType": self.action_type.value,
            "provider": self.provider.value,
            "payload": self.payload,
            "createdAt": self.created_at.isoformat(),
        }


def build_pending_action(
    action_type: ActionType,
    provider: Provider,
    payload: ActionPayload,
    created_at: Optional[datetime] = None,
) -> PendingAction:
    """Create a PendingAction from a validated payload."""
    return PendingAction(
        action_type=action_type,
        provider=provider,
        payload=payload.model_dump(exclude_none=True),
        created_at=created_at or datetime.now(timezone.utc),
    )


# -- direct action requests ---------------------------------------------------
# Already-confirmed client flows; `provider` defaults to the preferred one.

class SendEmailRequest(MailDraft):
    provider: Optional[Provider] = None


class CreateEventRequest(EventDraft):
    provider: Optional[Provider] = None


class DeleteEventRequest(EventDeletion):
    provider: Optional[Provider] = None


def split_request(request: Union[SendEmailRequest, CreateEventRequest, DeleteEventRequest]) -> tuple:
    """Separate the optional provider from the payload fields."""
    data = request.model_dump(exclude={"provider"}, exclude_none=True)
    return request.provider, data
