"""
System prompt for the chat assistant.
"""
import re
from datetime import datetime, timezone
from typing import Optional

from mindenu.models.actions import PendingAction
from mindenu.services.confirmation import required_phrase
from mindenu.services.context_service import ProviderContext

ASSISTANT_SYSTEM = """You are Mindenu, a concise assistant that helps the user with their email and calendar.

The current date and time is {now}. Resolve relative times ("tomorrow", "at 3pm") against it and always give tool times as ISO-8601 with a UTC offset.

Rules:
- You cannot send email, create events or delete events yourself. You can only PROPOSE them with the propose_email, propose_calendar_event and propose_calendar_delete tools.
- Never say that an email was sent or that an event was created, moved or deleted. The user confirms proposals separately.
- To move or reschedule an event, propose the event at its new time with propose_calendar_event.
- Use propose_calendar_delete only with an event id listed below.
- Propose at most one action per reply. If details are missing (recipient, time), ask for them instead of guessing.
- Keep answers short and actionable.

{provider_block}"""

_EMAIL_ADDRESS = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")


def _truncate(text: str, limit: int) -> str:
    text = " ".join((text or "").split())
    return text if len(text) <= limit else text[: max(limit - 3, 0)] + "..."


def _redact(text: str) -> str:
    """Snippets can quote third-party addresses; the model doesn't need them."""
    return _EMAIL_ADDRESS.sub("[email]", text)


def build_provider_block(
    context: ProviderContext,
    snippet_chars: int = 160,
    pending: Optional[PendingAction] = None,
) -> str:
    """Describe the connected provider, upcoming events and recent mail."""
    if context.provider is None:
        return (
            "No email or calendar account is connected. If the user asks for email or calendar help, "
            "tell them to connect Google or Microsoft in settings."
        )

    lines = [f"Connected account: {context.provider.display_name}."]

    if context.events:
        lines.append("Upcoming events:")
        for event in context.events:
            lines.append(
                f"- id={event.id} | {_truncate(event.title, 80)} | {event.start} to {event.end}"
                + (f" | {_truncate(event.location, 60)}" if event.location else "")
            )
    else:
        lines.append("No upcoming events in the next few days (or the calendar couldn't be read).")

    if context.emails:
        lines.append("Recent emails:")
        for mail in context.emails:
            lines.append(
                f"- from {_truncate(mail.sender, 80)} | {_truncate(mail.subject, 100)} | "
                f"{_truncate(_redact(mail.snippet), snippet_chars)}"
            )

    if pending is not None:
        lines.append(
            f"A proposal is already awaiting confirmation ({pending.action_type.description}); "
            f"the user confirms it by typing \"{required_phrase(pending.action_type)}\". "
            "A new proposal replaces it."
        )

    return "\n".join(lines)


def build_system_prompt(
    context: ProviderContext,
    snippet_chars: int = 160,
    pending: Optional[PendingAction] = None,
    now: Optional[datetime] = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    return ASSISTANT_SYSTEM.format(
        now=now.strftime("%A, %Y-%m-%d %H:%M %Z"),
        provider_block=build_provider_block(context, snippet_chars, pending),
    )
