"""
Credential service.

Reads the stored credential before every provider call and refreshes
it through the provider's token endpoint when it is about to expire.
Refreshed tokens are merge-saved, so a refresh that doesn't reissue the
refresh token keeps the old one.
"""
from typing import Awaitable, Callable, Dict, Optional

from mindenu.config import Settings
from mindenu.integrations import google_auth, microsoft_auth
from mindenu.models.credential import Provider, ProviderCredential
from mindenu.services.token_store import TokenStore
from mindenu.utils.errors import NotConnectedError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

Refresher = Callable[[Settings, str], Awaitable[ProviderCredential]]

DEFAULT_REFRESHERS: Dict[Provider, Refresher] = {
    Provider.GOOGLE: google_auth.refresh_access_token,
    Provider.MICROSOFT: microsoft_auth.refresh_access_token,
}


class CredentialService:
    """
    Usage:
        credentials = CredentialService(store, settings)
        credential = await credentials.get_valid_credential(uid, Provider.GOOGLE)
    """

    def __init__(
        self,
        store: TokenStore,
        settings: Settings,
        refreshers: Optional[Dict[Provider, Refresher]] = None,
    ):
        self.store = store
        self.settings = settings
        self.refreshers = refreshers or DEFAULT_REFRESHERS

    async def get_valid_credential(self, uid: str, provider: Provider) -> ProviderCredential:
        """
        Load a credential, refreshing it if it is expired.

        Raises:
            NotConnectedError: If the user never connected this provider
            AuthError: If the provider revoked access
        """
        credential = await self.store.get_credential(uid, provider)
        if credential is None:
            raise NotConnectedError(provider.display_name)

        if not credential.is_expired(self.store.clock()):
            return credential

        if not credential.refresh_token:
            logger.warning(f"{provider.value} token expired for uid={uid} and no refresh token is stored")
            raise NotConnectedError(provider.display_name)

        refreshed = await self.refreshers[provider](self.settings, credential.refresh_token)
        logger.info(f"Refreshed {provider.value} credential for uid={uid}")
        return await self.store.save_credential(uid, provider, refreshed)

    async def resolve_provider(self, uid: str, requested: Optional[Provider] = None) -> Provider:
        """
        Pick the provider for an operation.

        An explicitly requested provider must be connected; otherwise the
        first connected provider in PROVIDER_PREFERENCE order wins.

        Raises:
            NotConnectedError: If nothing suitable is connected
        """
        connected = await self.store.connected_providers(uid)

        if requested is not None:
            if requested not in connected:
                raise NotConnectedError(requested.display_name)
            return requested

        provider = self.preferred(connected)
        if provider is None:
            raise NotConnectedError()
        return provider

    def preferred(self, connected: list) -> Optional[Provider]:
        for name in self.settings.provider_order:
            for provider in connected:
                if provider.value == name:
                    return provider
        return connected[0] if connected else None
