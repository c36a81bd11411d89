"""
OAuth routes for connecting Google and Microsoft accounts.

OAuth Flow:
1. App calls GET /v1/oauth/{provider}/start (with its ID token) and opens
   the returned consent URL, or follows the redirect
2. User grants access on the provider's page
3. Provider redirects to GET /v1/oauth/{provider}/callback with code + state
4. Backend verifies state, exchanges the code, stores the tokens
5. Backend redirects to the app deep link with ?provider=..&status=connected

The callback carries no ID token; the signed single-use state identifies
the user.
"""
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse

from mindenu.dependencies import get_current_uid, get_oauth_service
from mindenu.services.oauth_service import OAuthService, parse_provider
from mindenu.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


@router.get("/status")
async def oauth_status(
    uid: str = Depends(get_current_uid),
    oauth: OAuthService = Depends(get_oauth_service),
):
    """
    Connected state per provider.

    Returns:
        { ok: true, google: {connected: bool}, microsoft: {connected: bool} }
    """
    status = await oauth.connection_status(uid)
    return {"ok": True, **status}


@router.get("/{provider}/start")
async def oauth_start(
    provider: str,
    deep_link: Optional[str] = None,
    redirect: bool = True,
    uid: str = Depends(get_current_uid),
    oauth: OAuthService = Depends(get_oauth_service),
):
    """
    Begin connecting a provider.

    Query params:
        deep_link: App URL to return to (must use an allowed prefix)
        redirect: false returns {ok, url} instead of a 302
    """
    url = oauth.get_authorization_url(uid, parse_provider(provider), deep_link)
    if redirect:
        return RedirectResponse(url=url, status_code=302)
    return {"ok": True, "url": url}


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    oauth: OAuthService = Depends(get_oauth_service),
):
    """
    Handle the provider redirect.

    Query params:
        code: Authorization code (on success)
        state: Signed state from /start
        error: Provider error (on denial)
    """
    redirect_to = await oauth.handle_callback(parse_provider(provider), code, state, error)
    return RedirectResponse(url=redirect_to, status_code=302)
