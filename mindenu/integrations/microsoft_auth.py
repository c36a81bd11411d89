"""
Microsoft identity platform OAuth (confidential client, auth code flow).

Docs: https://learn.microsoft.com/entra/identity-platform/v2-oauth2-auth-code-flow
"""
from typing import Optional
from urllib.parse import urlencode

import httpx

from mindenu.config import Settings
from mindenu.models.credential import Provider, ProviderCredential, credential_from_token_response
from mindenu.utils.errors import AuthError, UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

LOGIN_BASE = "https://login.microsoftonline.com"


def authorize_url(settings: Settings) -> str:
    return f"{LOGIN_BASE}/{settings.microsoft_tenant}/oauth2/v2.0/authorize"


def token_url(settings: Settings) -> str:
    return f"{LOGIN_BASE}/{settings.microsoft_tenant}/oauth2/v2.0/token"


def get_oauth_url(settings: Settings, state: str) -> str:
    params = {
        "client_id": settings.require("microsoft_client_id"),
        "response_type": "code",
        "redirect_uri": settings.microsoft_redirect_uri,
        "response_mode": "query",
        "scope": " ".join(settings.microsoft_scope_list),
        "state": state,
    }
    return f"{authorize_url(settings)}?{urlencode(params)}"


async def _token_request(
    settings: Settings,
    data: dict,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    data = {
        "client_id": settings.require("microsoft_client_id"),
        "client_secret": settings.require("microsoft_client_secret"),
        "scope": " ".join(settings.microsoft_scope_list),
        **data,
    }

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, transport=transport) as client:
        try:
            response = await client.post(token_url(settings), data=data)
        except httpx.TimeoutException:
            raise UpstreamError("Microsoft sign-in timed out. Please try again.", status=504, timed_out=True)
        except httpx.RequestError as e:
            logger.error(f"Microsoft token request failed: {e}")
            raise UpstreamError("Couldn't reach Microsoft. Please try again.", status=503)

    if response.status_code != 200:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        logger.error(f"Microsoft token endpoint error {response.status_code}: {error_data.get('error')}")

        if error_data.get("error") == "invalid_grant":
            raise AuthError("Microsoft access was revoked. Reconnect Microsoft in settings.", code="provider_revoked")
        raise UpstreamError(
            f"Microsoft sign-in failed: {error_data.get('error_description') or error_data.get('error') or 'unknown error'}",
            status=response.status_code,
            body=response.text[:500],
        )

    return response.json()


async def exchange_code_for_tokens(
    settings: Settings,
    code: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderCredential:
    tokens = await _token_request(
        settings,
        {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": settings.microsoft_redirect_uri,
        },
        transport,
    )
    logger.info("Exchanged Microsoft authorization code for tokens")
    return credential_from_token_response(Provider.MICROSOFT, tokens)


async def refresh_access_token(
    settings: Settings,
    refresh_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderCredential:
    """Microsoft rotates refresh tokens, so the response normally includes a new one."""
    tokens = await _token_request(
        settings,
        {"refresh_token": refresh_token, "grant_type": "refresh_token"},
        transport,
    )
    logger.info("Refreshed Microsoft access token")
    return credential_from_token_response(Provider.MICROSOFT, tokens)
