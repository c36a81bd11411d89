"""
Application configuration loaded from environment variables.
"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from mindenu.utils.errors import ConfigurationError

APP_VERSION = "1.0.0"

DEFAULT_GOOGLE_SCOPES = " ".join([
    "openid",
    "email",
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/calendar",
])

DEFAULT_MICROSOFT_SCOPES = " ".join([
    "offline_access",
    "User.Read",
    "Mail.Read",
    "Mail.Send",
    "Calendars.ReadWrite",
])


def _split(raw: str) -> list[str]:
    return [item for item in raw.replace(",", " ").split() if item]


class Settings(BaseSettings):
    """Application settings from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Google OAuth
    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_uri: str = "http://localhost:8000/v1/oauth/google/callback"
    google_scopes: str = DEFAULT_GOOGLE_SCOPES

    # Microsoft identity platform
    microsoft_client_id: str = ""
    microsoft_client_secret: str = ""
    microsoft_redirect_uri: str = "http://localhost:8000/v1/oauth/microsoft/callback"
    microsoft_tenant: str = "common"
    microsoft_scopes: str = DEFAULT_MICROSOFT_SCOPES

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""
    llm_timeout_seconds: float = 12.0
    llm_retry_backoff_seconds: float = 1.0
    llm_temperature: float = 0.2

    # OAuth state
    oauth_state_secret: str = ""
    oauth_state_ttl_seconds: int = 600
    default_deep_link: str = "mindenu://oauth-callback"
    allowed_deep_link_prefixes: str = "mindenu://"

    # Timeouts, TTLs and prompt-size caps
    http_timeout_seconds: float = 10.0
    provider_cache_ttl_seconds: int = 45
    pending_action_ttl_seconds: int = 600
    calendar_window_days: int = 3
    context_max_events: int = 3
    context_max_emails: int = 3
    context_snippet_chars: int = 160
    provider_preference: str = "google,microsoft"

    # Persistence
    token_store_backend: str = "memory"  # memory, firestore
    firebase_service_account_json: str = ""
    firebase_project_id: str = ""

    # HTTP
    cors_origins: str = "*"
    log_level: str = "INFO"
    debug: bool = False

    @property
    def google_scope_list(self) -> list[str]:
        return _split(self.google_scopes)

    @property
    def microsoft_scope_list(self) -> list[str]:
        return _split(self.microsoft_scopes)

    @property
    def deep_link_prefixes(self) -> list[str]:
        return _split(self.allowed_deep_link_prefixes)

    @property
    def cors_origin_list(self) -> list[str]:
        return _split(self.cors_origins)

    @property
    def provider_order(self) -> list[str]:
        return [p.lower() for p in _split(self.provider_preference)]

    def require(self, name: str) -> str:
        """
        Return a secret setting, failing closed when it is empty.

        Raises:
            ConfigurationError: If the setting is not configured
        """
        value = getattr(self, name, "")
        if not value:
            raise ConfigurationError(name.upper())
        return value


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
