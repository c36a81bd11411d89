"""
Google OAuth client integration.

This module handles:
1. Generating OAuth consent URLs
2. Exchanging authorization codes for tokens
3. Refreshing expired access tokens
"""
from typing import Optional
from urllib.parse import urlencode

import httpx

from mindenu.config import Settings
from mindenu.models.credential import Provider, ProviderCredential, credential_from_token_response
from mindenu.utils.errors import AuthError, UpstreamError
from mindenu.utils.logger import get_logger

logger = get_logger(__name__)

# Google OAuth endpoints
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"


def get_oauth_url(settings: Settings, state: str) -> str:
    """
    Generate the Google consent URL.

    access_type=offline plus prompt=consent makes Google issue a refresh token.
    """
    params = {
        "client_id": settings.require("google_client_id"),
        "redirect_uri": settings.google_redirect_uri,
        "response_type": "code",
        "scope": " ".join(settings.google_scope_list),
        "access_type": "offline",
        "prompt": "consent",
        "include_granted_scopes": "true",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def _token_request(
    settings: Settings,
    data: dict,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    data = {
        "client_id": settings.require("google_client_id"),
        "client_secret": settings.require("google_client_secret"),
        **data,
    }

    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds, transport=transport) as client:
        try:
            response = await client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.TimeoutException:
            raise UpstreamError("Google sign-in timed out. Please try again.", status=504, timed_out=True)
        except httpx.RequestError as e:
            logger.error(f"Google token request failed: {e}")
            raise UpstreamError("Couldn't reach Google. Please try again.", status=503)

    if response.status_code != 200:
        try:
            error_data = response.json()
        except ValueError:
            error_data = {}
        error_code = error_data.get("error", "")
        logger.error(f"Google token endpoint error {response.status_code}: {error_code}")

        if error_code == "invalid_grant":
            raise AuthError("Google access was revoked. Reconnect Google in settings.", code="provider_revoked")
        raise UpstreamError(
            f"Google sign-in failed: {error_data.get('error_description', 'unknown error')}",
            status=response.status_code,
            body=response.text[:500],
        )

    return response.json()


async def exchange_code_for_tokens(
    settings: Settings,
    code: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderCredential:
    """
    Exchange an authorization code for tokens.

    Raises:
        AuthError: If Google rejects the code
        UpstreamError: If Google can't be reached
    """
    tokens = await _token_request(
        settings,
        {
            "code": code,
            "grant_type": "authorization_code",
            "redirect_uri": settings.google_redirect_uri,
        },
        transport,
    )
    logger.info("Exchanged Google authorization code for tokens")
    return credential_from_token_response(Provider.GOOGLE, tokens)


async def refresh_access_token(
    settings: Settings,
    refresh_token: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ProviderCredential:
    """
    Refresh an expired access token.

    Google usually omits refresh_token here; the token store keeps the old one.

    Raises:
        AuthError: If the refresh token is revoked or expired
    """
    tokens = await _token_request(
        settings,
        {"refresh_token": refresh_token, "grant_type": "refresh_token"},
        transport,
    )
    logger.info("Refreshed Google access token")
    return credential_from_token_response(Provider.GOOGLE, tokens)
