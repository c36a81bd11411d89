"""
OpenAI tool-calling gateway.

This module handles:
1. Declaring the proposal tool schema offered to the model
2. Making the chat-completion request with a bounded timeout
3. Retrying once on rate limits and server errors
4. Extracting free text and tool calls from the response

The model is only ever offered propose_* tools. Nothing it returns is
executed here; proposals go through the confirmation engine.
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import List, Optional

from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI

from mindenu.config import Settings
from mindenu.utils.errors import LlmError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

TOOLS_VERSION = "2024-06-proposals-v1"

PROPOSE_EMAIL = "propose_email"
PROPOSE_CALENDAR_EVENT = "propose_calendar_event"
PROPOSE_CALENDAR_DELETE = "propose_calendar_delete"

PROPOSAL_TOOLS = [
    {
        "type": "function",
        "function": {
            "name": PROPOSE_EMAIL,
            "description": (
                "Draft an email for the user to review. This does NOT send anything; "
                "the user must confirm before it is sent."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "to": {"type": "string", "description": "Recipient address(es), comma separated"},
                    "subject": {"type": "string"},
                    "body_text": {"type": "string", "description": "Plain-text body"},
                    "cc": {"type": "array", "items": {"type": "string"}},
                    "bcc": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["to", "subject", "body_text"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": PROPOSE_CALENDAR_EVENT,
            "description": (
                "Propose a new calendar event (also used to move an event: propose the "
                "event at its new time). Nothing is created until the user confirms."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "title": {"type": "string"},
                    "start": {"type": "string", "description": "ISO-8601 start date-time with offset"},
                    "end": {"type": "string", "description": "ISO-8601 end date-time with offset"},
                    "description": {"type": "string"},
                    "location": {"type": "string"},
                    "attendees": {"type": "array", "items": {"type": "string"}},
                    "time_zone": {"type": "string", "description": "IANA time zone, e.g. America/New_York"},
                },
                "required": ["title", "start", "end"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": PROPOSE_CALENDAR_DELETE,
            "description": (
                "Propose deleting one calendar event by its id. Nothing is deleted "
                "until the user confirms."
            ),
            "parameters": {
                "type": "object",
                "properties": {
                    "event_id": {"type": "string"},
                    "title": {"type": "string", "description": "Event title, for the confirmation message"},
                    "start": {"type": "string"},
                },
                "required": ["event_id"],
            },
        },
    },
]

PROPOSAL_TOOL_NAMES = frozenset(tool["function"]["name"] for tool in PROPOSAL_TOOLS)

FALLBACK_TEXT = "I didn't get a usable response. Please try again, or rephrase your request."


@dataclass
class ToolCall:
    """A tool invocation requested by the model."""
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class LlmResult:
    """Text and tool calls extracted from one completion."""
    assistant_text: str
    tool_calls: List[ToolCall] = field(default_factory=list)


def parse_arguments(raw) -> dict:
    """Parse tool-call arguments; anything that isn't a JSON object becomes {}."""
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Model returned malformed tool arguments")
        return {}
    return parsed if isinstance(parsed, dict) else {}


class LlmToolGateway:
    """
    Chat-completion wrapper with the proposal tools.

    Usage:
        gateway = LlmToolGateway(settings)
        result = await gateway.invoke(uid, "email Sam the notes", PROPOSAL_TOOLS, system_prompt)
    """

    MAX_ATTEMPTS = 2

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None):
        self.settings = settings
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            kwargs = {
                "api_key": self.settings.require("openai_api_key"),
                "timeout": self.settings.llm_timeout_seconds,
                # retries are handled in invoke()
                "max_retries": 0,
            }
            if self.settings.openai_base_url:
                kwargs["base_url"] = self.settings.openai_base_url
            self._client = AsyncOpenAI(**kwargs)
        return self._client

    async def invoke(
        self,
        uid: str,
        user_text: str,
        tools: list,
        context: str,
    ) -> LlmResult:
        """
        Ask the model to answer or propose an action.

        Args:
            uid: User id, forwarded as the end-user identifier
            user_text: The user's message
            tools: Tool schema; must only contain proposal tools
            context: System prompt with provider context

        Returns:
            LlmResult; assistant_text is non-empty whenever there are no tool calls

        Raises:
            ValueError: If a non-proposal tool is offered
            LlmError: On API failure after the allowed retry
        """
        offered = {tool["function"]["name"] for tool in tools}
        if not offered <= PROPOSAL_TOOL_NAMES:
            raise ValueError(f"Only proposal tools may be offered, got {sorted(offered - PROPOSAL_TOOL_NAMES)}")

        request = {
            "model": self.settings.openai_model,
            "messages": [
                {"role": "system", "content": context},
                {"role": "user", "content": user_text},
            ],
            "temperature": self.settings.llm_temperature,
            "user": uid,
        }
        if tools:
            request["tools"] = tools
            request["tool_choice"] = "auto"

        logger.info(f"Invoking {self.settings.openai_model} for uid={uid} with tools {TOOLS_VERSION}")
        response = await self._create_with_retry(request)
        return self._parse_response(response)

    async def _create_with_retry(self, request: dict):
        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            try:
                return await self.client.chat.completions.create(**request)

            except APITimeoutError:
                logger.warning("OpenAI request timed out")
                raise LlmError("The assistant took too long to answer. Please try again.", status=504, timed_out=True)

            except APIConnectionError as e:
                logger.error(f"OpenAI connection error: {e}")
                raise LlmError("Couldn't reach the assistant. Please try again.", status=503)

            except APIStatusError as e:
                status = e.status_code
                retryable = status == 429 or status >= 500
                logger.warning(f"OpenAI error {status} (attempt {attempt}): {e.message}")
                if retryable and attempt < self.MAX_ATTEMPTS:
                    await asyncio.sleep(self.settings.llm_retry_backoff_seconds)
                    continue
                if status == 429:
                    raise LlmError("The assistant is busy. Please try again in a moment.", status=429, body=e.message)
                raise LlmError(status=status, body=e.message)

    def _parse_response(self, response) -> LlmResult:
        if not response.choices:
            logger.warning("OpenAI returned no choices")
            return LlmResult(assistant_text=FALLBACK_TEXT)

        message = response.choices[0].message
        text = (message.content or "").strip()

        tool_calls = []
        for call in message.tool_calls or []:
            function = getattr(call, "function", None)
            if function is None or not function.name:
                continue
            tool_calls.append(ToolCall(name=function.name, arguments=parse_arguments(function.arguments)))

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.info(f"OpenAI response received, tokens: {usage.total_tokens}, tool calls: {len(tool_calls)}")

        if not text and not tool_calls:
            logger.warning("OpenAI returned neither text nor tool calls")
            text = FALLBACK_TEXT

        return LlmResult(assistant_text=text, tool_calls=tool_calls)
