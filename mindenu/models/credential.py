"""
OAuth credential models.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Provider(str, Enum):
    """Supported email/calendar providers."""
    GOOGLE = "google"
    MICROSOFT = "microsoft"

    @property
    def display_name(self) -> str:
        return "Google" if self is Provider.GOOGLE else "Microsoft"


# Refresh a little before the real expiry so in-flight calls don't race it
EXPIRY_BUFFER = timedelta(minutes=5)


class ProviderCredential(BaseModel):
    """Stored OAuth tokens for one (uid, provider)."""
    provider: Provider
    access_token: str
    refresh_token: Optional[str] = None
    scope: str = ""
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check if the access token is expired or about to expire."""
        if self.expiry is None:
            return False
        now = now or datetime.now(timezone.utc)
        expiry = self.expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=timezone.utc)
        return now + EXPIRY_BUFFER >= expiry

    def merged_with(self, update: "ProviderCredential") -> "ProviderCredential":
        """
        Apply a newer credential on top of this one.

        Providers don't always reissue the refresh token, so an update
        without one keeps the stored refresh token.
        """
        data = update.model_dump()
        if not data.get("refresh_token"):
            data["refresh_token"] = self.refresh_token
        if not data.get("scope"):
            data["scope"] = self.scope
        return ProviderCredential(**data)


def credential_from_token_response(
    provider: Provider,
    tokens: dict,
    now: Optional[datetime] = None,
) -> ProviderCredential:
    """Build a credential from an OAuth token endpoint response."""
    now = now or datetime.now(timezone.utc)
    expires_in = tokens.get("expires_in")
    expiry = None
    if expires_in is not None:
        try:
            expiry = now + timedelta(seconds=int(expires_in))
        except (TypeError, ValueError):
            expiry = None

    return ProviderCredential(
        provider=provider,
        access_token=tokens["access_token"],
        refresh_token=tokens.get("refresh_token"),
        scope=tokens.get("scope", ""),
        token_type=tokens.get("token_type", "Bearer"),
        expiry=expiry,
    )
