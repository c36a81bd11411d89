"""
Firestore-backed token store.

Layout:
    users/{uid}                 tokens.{provider}, pendingAction
    oauthStates/{nonce}         consumed OAuth state nonces

The Firestore client is synchronous, so calls run in a worker thread.
"""
import asyncio
from datetime import datetime, timezone

from google.api_core.exceptions import AlreadyExists, GoogleAPIError

from mindenu.integrations.firebase import get_firestore_client
from mindenu.models.actions import PendingAction
from mindenu.models.credential import ProviderCredential
from mindenu.services.token_store import Clock, TokenStore, utc_now
from mindenu.utils.errors import StorageError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

USERS = "users"
OAUTH_STATES = "oauthStates"


class FirestoreTokenStore(TokenStore):
    """Token store persisted in Firestore."""

    def __init__(self, pending_ttl_seconds: int = 600, clock: Clock = utc_now, client=None):
        super().__init__(pending_ttl_seconds, clock)
        self._client = client

    @property
    def db(self):
        if self._client is None:
            self._client = get_firestore_client()
        return self._client

    async def _run(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except GoogleAPIError as e:
            logger.error(f"Firestore error: {e}")
            raise StorageError()

    async def _user_data(self, uid: str) -> dict:
        snap = await self._run(self.db.collection(USERS).document(uid).get)
        return (snap.to_dict() or {}) if snap.exists else {}

    async def _replace_field(self, uid: str, field: str, value) -> None:
        """Overwrite one (possibly dotted) field of the user document."""
        data = {"updatedAt": datetime.now(timezone.utc)}
        target = data
        *parents, leaf = field.split(".")
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = value
        # Listing field paths replaces those maps instead of deep-merging them
        await self._run(
            self.db.collection(USERS).document(uid).set, data, merge=[field, "updatedAt"]
        )

    async def _read_credential(self, uid, provider):
        data = (await self._user_data(uid)).get("tokens", {}).get(provider.value)
        return ProviderCredential.model_validate(data) if data else None

    async def _write_credential(self, uid, provider, credential):
        await self._replace_field(uid, f"tokens.{provider.value}", credential.model_dump(mode="json"))

    async def _read_pending(self, uid):
        data = (await self._user_data(uid)).get("pendingAction")
        return PendingAction.model_validate(data) if data else None

    async def _write_pending(self, uid, action):
        value = action.model_dump(mode="json") if action else None
        await self._replace_field(uid, "pendingAction", value)

    async def consume_oauth_nonce(self, nonce: str) -> bool:
        ref = self.db.collection(OAUTH_STATES).document(nonce)
        try:
            # create() fails if the document exists, which makes this single-use
            await asyncio.to_thread(ref.create, {"consumedAt": datetime.now(timezone.utc)})
        except AlreadyExists:
            logger.warning("OAuth state nonce reused")
            return False
        except GoogleAPIError as e:
            logger.error(f"Firestore error consuming OAuth state: {e}")
            raise StorageError()
        return True
