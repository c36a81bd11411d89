"""
OAuth connection service.

This module orchestrates connecting a provider account:
1. Start: sign a short-lived state token {uid, provider, deep link, nonce}
   and build the provider's consent URL
2. Callback: verify the state, consume its nonce once, exchange the code
   for tokens and merge-save them
3. Redirect back into the mobile app with ?provider=..&status=..

The state token is an HS256 JWT signed with OAUTH_STATE_SECRET. The
callback is public, so the signature plus the single-use nonce is what
ties it to the user who started the flow.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Optional
from urllib.parse import urlencode

import jwt

from mindenu.config import Settings
from mindenu.integrations import google_auth, microsoft_auth
from mindenu.models.credential import Provider, ProviderCredential
from mindenu.services.token_store import TokenStore
from mindenu.utils.errors import AppError, BadRequestError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

STATE_ALGORITHM = "HS256"

Exchanger = Callable[[Settings, str], Awaitable[ProviderCredential]]
UrlBuilder = Callable[[Settings, str], str]

DEFAULT_EXCHANGERS: Dict[Provider, Exchanger] = {
    Provider.GOOGLE: google_auth.exchange_code_for_tokens,
    Provider.MICROSOFT: microsoft_auth.exchange_code_for_tokens,
}

DEFAULT_URL_BUILDERS: Dict[Provider, UrlBuilder] = {
    Provider.GOOGLE: google_auth.get_oauth_url,
    Provider.MICROSOFT: microsoft_auth.get_oauth_url,
}


def parse_provider(name: str) -> Provider:
    """
    Raises:
        BadRequestError: If the provider isn't supported
    """
    try:
        return Provider((name or "").lower())
    except ValueError:
        raise BadRequestError(f"Unknown provider '{name}'. Use google or microsoft.", code="unknown_provider")


def with_query(url: str, params: dict) -> str:
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{urlencode(params)}"


class OAuthService:
    """
    Usage:
        oauth = OAuthService(store, settings)
        url = oauth.get_authorization_url(uid, Provider.GOOGLE, deep_link)
        redirect_to = await oauth.handle_callback(Provider.GOOGLE, code, state)
    """

    def __init__(
        self,
        store: TokenStore,
        settings: Settings,
        exchangers: Optional[Dict[Provider, Exchanger]] = None,
        url_builders: Optional[Dict[Provider, UrlBuilder]] = None,
    ):
        self.store = store
        self.settings = settings
        self.exchangers = exchangers or DEFAULT_EXCHANGERS
        self.url_builders = url_builders or DEFAULT_URL_BUILDERS

    def validate_deep_link(self, deep_link: Optional[str]) -> str:
        """
        Return the deep link to use, defaulting when none is given.

        Raises:
            BadRequestError: If the link doesn't start with an allowed prefix
        """
        if not deep_link:
            return self.settings.default_deep_link
        if not any(deep_link.startswith(prefix) for prefix in self.settings.deep_link_prefixes):
            raise BadRequestError("That app link isn't allowed.", code="invalid_deep_link")
        return deep_link

    # =========================================================================
    # STATE
    # =========================================================================

    def create_state(self, uid: str, provider: Provider, deep_link: str) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "uid": uid,
            "provider": provider.value,
            "deep_link": deep_link,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + timedelta(seconds=self.settings.oauth_state_ttl_seconds),
        }
        return jwt.encode(payload, self.settings.require("oauth_state_secret"), algorithm=STATE_ALGORITHM)

    def decode_state(self, state: str) -> dict:
        """
        Verify a state token.

        Raises:
            BadRequestError: If the token is expired, tampered with or malformed
        """
        secret = self.settings.require("oauth_state_secret")
        try:
            payload = jwt.decode(state, secret, algorithms=[STATE_ALGORITHM])
        except jwt.ExpiredSignatureError:
            logger.warning("OAuth state expired")
            raise BadRequestError("This sign-in link expired. Start connecting again.", code="invalid_state")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Invalid OAuth state: {e}")
            raise BadRequestError("Invalid sign-in state. Start connecting again.", code="invalid_state")

        if not payload.get("uid") or not payload.get("jti"):
            raise BadRequestError("Invalid sign-in state. Start connecting again.", code="invalid_state")
        return payload

    # =========================================================================
    # FLOW
    # =========================================================================

    def get_authorization_url(self, uid: str, provider: Provider, deep_link: Optional[str] = None) -> str:
        """
        Build the provider consent URL for this user.

        Raises:
            BadRequestError: If the deep link isn't allowed
            ConfigurationError: If the provider or state secret isn't configured
        """
        deep_link = self.validate_deep_link(deep_link)
        state = self.create_state(uid, provider, deep_link)
        logger.info(f"Starting {provider.value} OAuth for uid={uid}")
        return self.url_builders[provider](self.settings, state)

    async def handle_callback(
        self,
        provider: Provider,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> str:
        """
        Finish the OAuth flow.

        Returns:
            The app deep link to redirect to, with provider and status

        Raises:
            BadRequestError: If the state is missing, invalid or already used;
                without a valid state there is no safe place to redirect to
        """
        if not state:
            raise BadRequestError("Missing sign-in state.", code="invalid_state")

        payload = self.decode_state(state)
        if payload.get("provider") != provider.value:
            raise BadRequestError("Sign-in state doesn't match this provider.", code="invalid_state")

        if not await self.store.consume_oauth_nonce(payload["jti"]):
            logger.warning(f"Replayed OAuth state for uid={payload['uid']}")
            raise BadRequestError("This sign-in link was already used.", code="invalid_state")

        uid = payload["uid"]
        deep_link = payload.get("deep_link") or self.settings.default_deep_link

        if error:
            logger.warning(f"{provider.value} OAuth denied for uid={uid}: {error}")
            return with_query(deep_link, {"provider": provider.value, "status": "error", "error": error})

        if not code:
            return with_query(deep_link, {"provider": provider.value, "status": "error", "error": "missing_code"})

        try:
            credential = await self.exchangers[provider](self.settings, code)
            await self.store.save_credential(uid, provider, credential)
        except AppError as e:
            logger.error(f"{provider.value} OAuth callback failed for uid={uid}: {e.message}")
            return with_query(deep_link, {"provider": provider.value, "status": "error", "error": e.code})

        logger.info(f"Connected {provider.value} for uid={uid}")
        return with_query(deep_link, {"provider": provider.value, "status": "connected"})

    async def connection_status(self, uid: str) -> dict:
        connected = await self.store.connected_providers(uid)
        return {provider.value: {"connected": provider in connected} for provider in Provider}
