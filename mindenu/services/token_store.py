"""
Token store - per-user OAuth credentials and the pending-action slot.

This module provides:
1. The TokenStore interface the rest of the app is written against
2. An in-memory implementation (default, used by tests)
3. A factory that picks the backend from settings

Pending actions expire after a TTL. Expiry is checked when the slot is
read; there is no background sweep.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from mindenu.config import Settings
from mindenu.models.actions import PendingAction
from mindenu.models.credential import Provider, ProviderCredential
from mindenu.utils.errors import StorageError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TokenStore(ABC):
    """
    Storage for credentials, pending actions and OAuth state nonces.

    Subclasses implement the raw reads and writes; merge and TTL rules
    live here so every backend behaves the same.
    """

    def __init__(self, pending_ttl_seconds: int = 600, clock: Clock = utc_now):
        self.pending_ttl = timedelta(seconds=pending_ttl_seconds)
        self.clock = clock

    # -- raw backend operations ---------------------------------------------

    @abstractmethod
    async def _read_credential(self, uid: str, provider: Provider) -> Optional[ProviderCredential]:
        ...

    @abstractmethod
    async def _write_credential(self, uid: str, provider: Provider, credential: ProviderCredential) -> None:
        ...

    @abstractmethod
    async def _read_pending(self, uid: str) -> Optional[PendingAction]:
        ...

    @abstractmethod
    async def _write_pending(self, uid: str, action: Optional[PendingAction]) -> None:
        ...

    @abstractmethod
    async def consume_oauth_nonce(self, nonce: str) -> bool:
        """Mark an OAuth state nonce as used. True only the first time."""

    # -- public contract ----------------------------------------------------

    async def get_credential(self, uid: str, provider: Provider) -> Optional[ProviderCredential]:
        _require_uid(uid)
        return await self._read_credential(uid, provider)

    async def save_credential(self, uid: str, provider: Provider, credential: ProviderCredential) -> ProviderCredential:
        """
        Merge-upsert a credential.

        A write without a refresh token keeps the stored one.

        Returns:
            The credential as stored
        """
        _require_uid(uid)
        existing = await self._read_credential(uid, provider)
        merged = existing.merged_with(credential) if existing else credential
        await self._write_credential(uid, provider, merged)
        logger.info(f"Saved {provider.value} credential for uid={uid}")
        return merged

    async def connected_providers(self, uid: str) -> list[Provider]:
        providers = []
        for provider in Provider:
            if await self.get_credential(uid, provider):
                providers.append(provider)
        return providers

    async def get_pending_action(self, uid: str) -> Optional[PendingAction]:
        """Return the pending action, or None if absent or expired."""
        _require_uid(uid)
        action = await self._read_pending(uid)
        if action is None:
            return None

        created_at = action.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)

        if self.clock() - created_at > self.pending_ttl:
            logger.info(f"Pending {action.action_type.value} for uid={uid} expired")
            try:
                await self._write_pending(uid, None)
            except StorageError as e:
                # Stale entries are re-checked on the next read
                logger.warning(f"Failed to delete expired pending action: {e}")
            return None

        return action

    async def set_pending_action(self, uid: str, action: PendingAction) -> None:
        _require_uid(uid)
        await self._write_pending(uid, action)
        logger.info(f"Stored pending {action.action_type.value} for uid={uid}")

    async def clear_pending_action(self, uid: str) -> None:
        """
        Delete the pending action.

        Raises:
            StorageError: If the delete fails. Confirmation relies on this
                to avoid executing an action whose slot can't be consumed.
        """
        _require_uid(uid)
        await self._write_pending(uid, None)


def _require_uid(uid: str) -> None:
    if not uid:
        raise StorageError("Missing user id.")


class MemoryTokenStore(TokenStore):
    """
    In-process token store.

    Suitable for development and tests; state is lost on restart and
    not shared between workers.
    """

    def __init__(self, pending_ttl_seconds: int = 600, clock: Clock = utc_now):
        super().__init__(pending_ttl_seconds, clock)
        self._credentials: dict[tuple[str, Provider], dict] = {}
        self._pending: dict[str, dict] = {}
        self._nonces: set[str] = set()

    async def _read_credential(self, uid, provider):
        data = self._credentials.get((uid, provider))
        return ProviderCredential.model_validate(data) if data else None

    async def _write_credential(self, uid, provider, credential):
        self._credentials[(uid, provider)] = credential.model_dump()

    async def _read_pending(self, uid):
        data = self._pending.get(uid)
        return PendingAction.model_validate(data) if data else None

    async def _write_pending(self, uid, action):
        if action is None:
            self._pending.pop(uid, None)
        else:
            self._pending[uid] = action.model_dump()

    async def consume_oauth_nonce(self, nonce: str) -> bool:
        if nonce in self._nonces:
            return False
        self._nonces.add(nonce)
        return True


def build_token_store(settings: Settings) -> TokenStore:
    """Create the token store configured by TOKEN_STORE_BACKEND."""
    backend = settings.token_store_backend.lower()

    if backend == "firestore":
        from mindenu.integrations.firestore_store import FirestoreTokenStore
        return FirestoreTokenStore(
            pending_ttl_seconds=settings.pending_action_ttl_seconds,
        )

    if backend != "memory":
        logger.warning(f"Unknown TOKEN_STORE_BACKEND '{backend}', using memory")

    return MemoryTokenStore(pending_ttl_seconds=settings.pending_action_ttl_seconds)
