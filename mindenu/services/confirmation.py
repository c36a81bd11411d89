"""
Confirmation phrase detection.

Only a small fixed set of exact phrases confirms an action. Matching is
case- and punctuation-insensitive but otherwise exact: "send it" confirms,
"yes send it to Bob" does not. Loosening this means a chatty message can
trigger an irreversible side effect.
"""
import re
from enum import Enum
from typing import Optional

from mindenu.models.actions import ActionType


class Reply(Enum):
    """Recognized control replies."""
    SEND = "send it"
    CREATE = "create it"
    DELETE = "delete it"
    CANCEL = "cancel"


CONFIRMATION_PHRASES = {
    "send it": Reply.SEND,
    "create it": Reply.CREATE,
    "delete it": Reply.DELETE,
}

CANCEL_PHRASES = {
    "cancel",
    "cancel it",
    "never mind",
    "nevermind",
    "don't send it",
    "dont send it",
}

# Confirmation reply -> the action family it confirms
PHRASE_ACTIONS = {
    Reply.SEND: ActionType.SEND_EMAIL,
    Reply.CREATE: ActionType.CREATE_CALENDAR_EVENT,
    Reply.DELETE: ActionType.DELETE_CALENDAR_EVENT,
}

# Action family -> the exact phrase shown to the user
REQUIRED_PHRASES = {
    ActionType.SEND_EMAIL: "Send it",
    ActionType.CREATE_CALENDAR_EVENT: "Create it",
    ActionType.DELETE_CALENDAR_EVENT: "Delete it",
}

_TRAILING_PUNCTUATION = re.compile(r"[\s.!?,;:'\"’)]+$")
_LEADING_PUNCTUATION = re.compile(r"^[\s'\"(‘]+")
_WHITESPACE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """Trim, lowercase, collapse whitespace and strip surrounding punctuation."""
    text = (text or "").replace("’", "'").strip().lower()
    text = _WHITESPACE.sub(" ", text)
    text = _TRAILING_PUNCTUATION.sub("", text)
    text = _LEADING_PUNCTUATION.sub("", text)
    return text


def match_reply(text: str) -> Optional[Reply]:
    """
    Match a message against the control phrases.

    Returns:
        The matched Reply, or None for ordinary chat text
    """
    normalized = normalize(text)
    if normalized in CONFIRMATION_PHRASES:
        return CONFIRMATION_PHRASES[normalized]
    if normalized in CANCEL_PHRASES:
        return Reply.CANCEL
    return None


def required_phrase(action_type: ActionType) -> str:
    return REQUIRED_PHRASES[action_type]
