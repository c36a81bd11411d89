"""
Chat Service - the propose/confirm engine.

Each inbound message is either:
1. A control phrase ("Send it", "Create it", "Delete it", "cancel"), handled
   locally against the user's pending action without calling the model, or
2. Ordinary chat, sent to the model with the proposal tools. A proposal
   tool call becomes the user's pending action; plain text is returned.

Confirmation consumes the pending action before executing it, so one
confirmation can execute it at most once. If the provider rejects the
call outright the action is restored and the user can confirm again; if
the call timed out the outcome is unknown and the action stays consumed.

Confirm and cancel are serialized per uid within this process. Across
processes there is no lock: two workers racing on the same uid may both
read the slot, and a confirmation racing a new proposal may act on
either one. Last write wins on the pending slot.
"""
import asyncio
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from mindenu.config import Settings
from mindenu.integrations.openai_client import FALLBACK_TEXT, PROPOSAL_TOOLS, LlmToolGateway
from mindenu.models.actions import PendingAction
from mindenu.services.action_executor import ActionExecutor
from mindenu.services.confirmation import PHRASE_ACTIONS, Reply, match_reply
from mindenu.services.context_service import ContextService
from mindenu.services.prompts import build_system_prompt
from mindenu.services.proposals import (
    NOTHING_PENDING_TEXT, NOTHING_TO_CANCEL_TEXT, first_proposal, pending_from_tool_call,
    render_cancelled, render_mismatch, render_proposal, result_summary,
)
from mindenu.services.token_store import TokenStore
from mindenu.utils.errors import AppError, BadRequestError, NotConnectedError, StorageError, UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)


class Outcome(str, Enum):
    """How a chat turn ended."""
    EXECUTED = "executed"
    MISMATCH = "mismatch"
    NOTHING_PENDING = "nothing_pending"
    CANCELLED = "cancelled"
    PROPOSED = "proposed"
    REPLY = "reply"
    FAILED = "failed"


@dataclass
class ChatOutcome:
    """Result of one chat turn."""
    outcome: Outcome
    assistant_text: str
    pending: Optional[PendingAction] = None
    result: Any = None
    error: Optional[AppError] = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.FAILED

    @property
    def pending_summary(self) -> Optional[dict]:
        return self.pending.summary() if self.pending else None


class UserLocks:
    """Per-uid asyncio locks, dropped once no request holds them."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def for_uid(self, uid: str) -> asyncio.Lock:
        lock = self._locks.get(uid)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[uid] = lock
        return lock


class ChatService:
    """
    Chat service orchestrating proposals and confirmations.

    Usage:
        service = ChatService(store, gateway, executor, context_service, settings)
        outcome = await service.process_message(uid, "email Sam the agenda")
    """

    def __init__(
        self,
        store: TokenStore,
        gateway: LlmToolGateway,
        executor: ActionExecutor,
        context_service: ContextService,
        settings: Settings,
        locks: Optional[UserLocks] = None,
    ):
        self.store = store
        self.gateway = gateway
        self.executor = executor
        self.context_service = context_service
        self.settings = settings
        self.locks = locks or UserLocks()

    async def process_message(self, uid: str, message: str) -> ChatOutcome:
        """
        Handle one chat message.

        Never raises: failures come back as an Outcome.FAILED with a
        user-safe message and the originating AppError.
        """
        reply = match_reply(message)

        try:
            if reply is Reply.CANCEL:
                async with self.locks.for_uid(uid):
                    return await self._handle_cancel(uid)
            if reply is not None:
                async with self.locks.for_uid(uid):
                    return await self._handle_confirm(uid, reply)
            return await self._handle_conversation(uid, message)

        except AppError as e:
            logger.warning(f"Chat turn failed for uid={uid} [{e.code}]: {e.message}")
            return ChatOutcome(Outcome.FAILED, e.message, error=e)

        except Exception as e:
            logger.exception(f"Unexpected error processing message for uid={uid}: {e}")
            error = AppError("Something went wrong. Please try again.")
            return ChatOutcome(Outcome.FAILED, error.message, error=error)

    # =========================================================================
    # CONTROL PHRASES
    # =========================================================================

    async def _handle_confirm(self, uid: str, reply: Reply) -> ChatOutcome:
        attempted = PHRASE_ACTIONS[reply]
        pending = await self.store.get_pending_action(uid)

        if pending is None:
            return ChatOutcome(Outcome.NOTHING_PENDING, NOTHING_PENDING_TEXT)

        if pending.action_type is not attempted:
            logger.info(f"Confirmation '{reply.value}' doesn't match pending {pending.action_type.value}")
            return ChatOutcome(Outcome.MISMATCH, render_mismatch(pending, attempted), pending=pending)

        # Consume first: if the slot can't be cleared, nothing is executed
        await self.store.clear_pending_action(uid)

        try:
            execution = await self.executor.execute(uid, pending)
        except UpstreamError as e:
            if not e.timed_out:
                await self._restore(uid, pending)
            raise
        except AppError:
            await self._restore(uid, pending)
            raise

        return ChatOutcome(Outcome.EXECUTED, execution.message, result=result_summary(execution.result))

    async def _restore(self, uid: str, pending: PendingAction) -> None:
        """Put back an action the provider definitely didn't perform."""
        try:
            await self.store.set_pending_action(uid, pending)
        except StorageError as e:
            logger.error(f"Couldn't restore pending {pending.action_type.value} for uid={uid}: {e}")

    async def _handle_cancel(self, uid: str) -> ChatOutcome:
        pending = await self.store.get_pending_action(uid)
        if pending is None:
            return ChatOutcome(Outcome.NOTHING_PENDING, NOTHING_TO_CANCEL_TEXT)

        await self.store.clear_pending_action(uid)
        return ChatOutcome(Outcome.CANCELLED, render_cancelled(pending))

    # =========================================================================
    # CONVERSATION
    # =========================================================================

    async def _handle_conversation(self, uid: str, message: str) -> ChatOutcome:
        pending = await self.store.get_pending_action(uid)
        context = await self.context_service.gather(uid)
        prompt = build_system_prompt(context, self.settings.context_snippet_chars, pending)

        result = await self.gateway.invoke(uid, message, PROPOSAL_TOOLS, prompt)

        call = first_proposal(result.tool_calls)
        if call is None:
            if result.tool_calls:
                logger.warning(f"Ignoring unknown tool calls: {[c.name for c in result.tool_calls]}")
            text = result.assistant_text.strip() or FALLBACK_TEXT
            return ChatOutcome(Outcome.REPLY, text, pending=pending)

        if len(result.tool_calls) > 1:
            logger.info(f"Model returned {len(result.tool_calls)} tool calls, using the first proposal")

        if context.provider is None:
            raise NotConnectedError()

        try:
            action = pending_from_tool_call(call, context.provider, now=self.store.clock())
        except BadRequestError as e:
            logger.info(f"Incomplete {call.name} arguments for uid={uid}")
            return ChatOutcome(Outcome.REPLY, e.message, pending=pending)

        await self.store.set_pending_action(uid, action)
        return ChatOutcome(Outcome.PROPOSED, render_proposal(action), pending=action)
