"""
Proposals - turning tool calls into pending actions and rendering the
messages around them.

All user-facing text for proposals and completed actions is rendered
locally from the structured payload, never by the model, so the
assistant can't claim something happened when it didn't.
"""
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from mindenu.integrations.openai_client import (
    PROPOSE_CALENDAR_DELETE, PROPOSE_CALENDAR_EVENT, PROPOSE_EMAIL, ToolCall,
)
from mindenu.models.actions import PAYLOAD_MODELS, ActionType, PendingAction, build_pending_action
from mindenu.models.calendar import CalendarEvent, DeleteResult, EventDeletion, EventDraft
from mindenu.models.credential import Provider
from mindenu.models.email import MailDraft, SentMail
from mindenu.services.confirmation import required_phrase
from mindenu.utils.errors import BadRequestError

TOOL_ACTIONS = {
    PROPOSE_EMAIL: ActionType.SEND_EMAIL,
    PROPOSE_CALENDAR_EVENT: ActionType.CREATE_CALENDAR_EVENT,
    PROPOSE_CALENDAR_DELETE: ActionType.DELETE_CALENDAR_EVENT,
}

# Validation errors report camelCase aliases, tool arguments use field names
FIELD_LABELS = {
    "to": "a recipient",
    "subject": "a subject",
    "body_text": "the message",
    "bodyText": "the message",
    "title": "a title",
    "start": "a start time",
    "end": "an end time",
    "event_id": "which event",
    "eventId": "which event",
}


def first_proposal(tool_calls: list) -> Optional[ToolCall]:
    """Only the first proposal tool call in a turn is honoured."""
    for call in tool_calls:
        if call.name in TOOL_ACTIONS:
            return call
    return None


def pending_from_tool_call(
    call: ToolCall,
    provider: Provider,
    now: Optional[datetime] = None,
) -> PendingAction:
    """
    Validate tool arguments and build the pending action.

    Raises:
        BadRequestError: If arguments are missing or invalid; the message
            names what the user still needs to provide
    """
    action_type = TOOL_ACTIONS[call.name]
    model = PAYLOAD_MODELS[action_type]
    try:
        payload = model.model_validate(call.arguments)
    except ValidationError as e:
        raise BadRequestError(_missing_details_message(action_type, e), code="incomplete_proposal")
    return build_pending_action(action_type, provider, payload, created_at=now)


def _missing_details_message(action_type: ActionType, error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        loc = str(item["loc"][0]) if item["loc"] else ""
        label = FIELD_LABELS.get(loc)
        if label and label not in problems:
            problems.append(label)

    noun = {
        ActionType.SEND_EMAIL: "that email",
        ActionType.CREATE_CALENDAR_EVENT: "that event",
        ActionType.DELETE_CALENDAR_EVENT: "that deletion",
    }[action_type]
    if problems:
        return f"I need a bit more detail before I can set up {noun}: {', '.join(problems)}."
    return f"I couldn't set up {noun} from that. Could you rephrase with the details?"


def _phrase_line(action_type: ActionType, verb: str) -> str:
    return f'Reply "{required_phrase(action_type)}" to {verb}, or tell me what to change.'


def render_proposal(action: PendingAction) -> str:
    """Canned proposal text including the exact confirmation phrase."""
    payload = action.typed_payload()
    provider = action.provider.display_name

    if isinstance(payload, MailDraft):
        lines = [f"Here's the email I'm ready to send from your {provider} account:", "", f"To: {payload.to}"]
        if payload.cc:
            lines.append(f"Cc: {', '.join(payload.cc)}")
        if payload.bcc:
            lines.append(f"Bcc: {', '.join(payload.bcc)}")
        lines += [f"Subject: {payload.subject or '(No Subject)'}", "", payload.body_text, ""]
        lines.append(_phrase_line(action.action_type, "send it"))
        return "\n".join(lines)

    if isinstance(payload, EventDraft):
        lines = [f"Here's the event I'm ready to add to your {provider} calendar:", "", f"Title: {payload.title}",
                 f"Start: {payload.start}", f"End: {payload.end}"]
        if payload.location:
            lines.append(f"Location: {payload.location}")
        if payload.attendees:
            lines.append(f"Attendees: {', '.join(payload.attendees)}")
        if payload.description:
            lines.append(f"Notes: {payload.description}")
        lines += ["", _phrase_line(action.action_type, "create it")]
        return "\n".join(lines)

    label = _deletion_label(payload)
    return "\n".join([
        f"I'm ready to delete this event from your {provider} calendar:",
        "",
        label,
        "",
        _phrase_line(action.action_type, "delete it"),
    ])


def _deletion_label(payload: EventDeletion) -> str:
    if payload.title and payload.start:
        return f"{payload.title} ({payload.start}), id {payload.event_id}"
    if payload.title:
        return f"{payload.title}, id {payload.event_id}"
    return f"Event id {payload.event_id}"


def render_success(action: PendingAction, result) -> str:
    """Deterministic completion message embedding the concrete payload."""
    payload = action.typed_payload()

    if isinstance(payload, MailDraft):
        return f'Sent your email to {payload.to} with subject "{payload.subject or "(No Subject)"}".'

    if isinstance(payload, EventDraft):
        return f'Created "{payload.title}" from {payload.start} to {payload.end}.'

    if isinstance(result, DeleteResult) and result.already_deleted:
        return f"{_deletion_label(payload)} was already deleted."
    return f"Deleted {_deletion_label(payload)}."


def result_summary(result) -> dict:
    """JSON-friendly adapter result for API responses."""
    if isinstance(result, (SentMail, CalendarEvent, DeleteResult)):
        return result.model_dump()
    return {}


def render_mismatch(pending: PendingAction, attempted: ActionType) -> str:
    return (
        f"The pending request is {pending.action_type.description}, not "
        f"{attempted.description}. Reply \"{required_phrase(pending.action_type)}\" to confirm it, "
        f"or \"cancel\" to drop it."
    )


NOTHING_PENDING_TEXT = "There's nothing waiting for confirmation right now. What would you like to do?"
NOTHING_TO_CANCEL_TEXT = "There's nothing to cancel. What would you like to do?"


def render_cancelled(action: PendingAction) -> str:
    return f"Okay, I dropped {action.action_type.description}. Nothing was changed."
