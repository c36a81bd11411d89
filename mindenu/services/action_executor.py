"""
Action executor - runs a confirmed action through the provider adapter.

Used by the confirmation engine and by the direct /v1/actions endpoints.
After a successful mutation the provider context cache for that user and
provider is invalidated.
"""
from dataclasses import dataclass
from typing import Any, Dict

from mindenu.integrations.adapters import ProviderAdapter
from mindenu.models.actions import ActionType, PendingAction
from mindenu.models.credential import Provider
from mindenu.services.context_service import ProviderContextCache
from mindenu.services.credential_service import CredentialService
from mindenu.services.proposals import render_success
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class ExecutionResult:
    """What happened, as returned to the client."""
    message: str
    result: Any


class ActionExecutor:
    """
    Usage:
        executor = ActionExecutor(credentials, adapters, cache)
        outcome = await executor.execute(uid, pending_action)
    """

    def __init__(
        self,
        credentials: CredentialService,
        adapters: Dict[Provider, ProviderAdapter],
        cache: ProviderContextCache,
    ):
        self.credentials = credentials
        self.adapters = adapters
        self.cache = cache

    async def execute(self, uid: str, action: PendingAction) -> ExecutionResult:
        """
        Perform the action. Not retried: the caller decides whether to try again.

        Raises:
            NotConnectedError: If the action's provider is no longer connected
            UpstreamError: If the provider rejects the call or times out
        """
        credential = await self.credentials.get_valid_credential(uid, action.provider)
        adapter = self.adapters[action.provider]
        payload = action.typed_payload()

        logger.info(f"Executing {action.action_type.value} via {action.provider.value} for uid={uid}")

        try:
            if action.action_type is ActionType.SEND_EMAIL:
                result = await adapter.send_mail(credential, payload)
            elif action.action_type is ActionType.CREATE_CALENDAR_EVENT:
                result = await adapter.create_calendar_event(credential, payload)
            else:
                result = await adapter.delete_calendar_event(credential, payload.event_id)
        finally:
            # Also on failure: a timed-out mutation may still have happened upstream
            self.cache.invalidate(uid, action.provider)

        return ExecutionResult(message=render_success(action, result), result=result)
