"""
FastAPI dependencies.

Process-wide collaborators (token store, adapters, context cache, LLM
gateway) are built once and cached; request-scoped services are cheap
wrappers around them. Tests replace any of these through
app.dependency_overrides.

    @router.get("/protected")
    async def protected_route(uid: str = Depends(get_current_uid)):
        ...
"""
import asyncio
from functools import lru_cache
from typing import Dict

from fastapi import Depends, Request

from mindenu.config import Settings, get_settings
from mindenu.integrations.adapters import ProviderAdapter, build_adapters
from mindenu.integrations.firebase import verify_id_token
from mindenu.integrations.openai_client import LlmToolGateway
from mindenu.models.credential import Provider
from mindenu.services.action_executor import ActionExecutor
from mindenu.services.chat_service import ChatService, UserLocks
from mindenu.services.context_service import ContextService, ProviderContextCache
from mindenu.services.credential_service import CredentialService
from mindenu.services.oauth_service import OAuthService
from mindenu.services.token_store import TokenStore, build_token_store
from mindenu.utils.errors import AuthError


@lru_cache()
def get_token_store() -> TokenStore:
    return build_token_store(get_settings())


@lru_cache()
def get_adapters() -> Dict[Provider, ProviderAdapter]:
    return build_adapters(timeout=get_settings().http_timeout_seconds)


@lru_cache()
def get_context_cache() -> ProviderContextCache:
    return ProviderContextCache(ttl_seconds=get_settings().provider_cache_ttl_seconds)


@lru_cache()
def get_gateway() -> LlmToolGateway:
    return LlmToolGateway(get_settings())


@lru_cache()
def get_user_locks() -> UserLocks:
    return UserLocks()


def get_credential_service(
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
) -> CredentialService:
    return CredentialService(store, settings)


def get_action_executor(
    credentials: CredentialService = Depends(get_credential_service),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    cache: ProviderContextCache = Depends(get_context_cache),
) -> ActionExecutor:
    return ActionExecutor(credentials, adapters, cache)


def get_context_service(
    credentials: CredentialService = Depends(get_credential_service),
    adapters: Dict[Provider, ProviderAdapter] = Depends(get_adapters),
    cache: ProviderContextCache = Depends(get_context_cache),
    settings: Settings = Depends(get_settings),
) -> ContextService:
    return ContextService(credentials, adapters, cache, settings)


def get_chat_service(
    store: TokenStore = Depends(get_token_store),
    gateway: LlmToolGateway = Depends(get_gateway),
    executor: ActionExecutor = Depends(get_action_executor),
    context_service: ContextService = Depends(get_context_service),
    settings: Settings = Depends(get_settings),
    locks: UserLocks = Depends(get_user_locks),
) -> ChatService:
    return ChatService(store, gateway, executor, context_service, settings, locks)


def get_oauth_service(
    store: TokenStore = Depends(get_token_store),
    settings: Settings = Depends(get_settings),
) -> OAuthService:
    return OAuthService(store, settings)


async def get_current_uid(request: Request) -> str:
    """
    Resolve the caller's uid from the Firebase ID token.

    Raises:
        AuthError: If the Authorization header is missing or the token is invalid
    """
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")

    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Sign in to continue.", code="auth_required")

    # firebase_admin verifies synchronously and may fetch signing certificates
    return await asyncio.to_thread(verify_id_token, token.strip())
