"""
Custom error classes for the application.

Every error carries a short machine code and a user-safe message. The
HTTP layer renders them as {"ok": false, "error": code, "details": message}.
"""
from typing import Optional


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        message: str,
        code: str = "internal_error",
        status_code: int = 500,
        details: Optional[dict] = None
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Convert error to the JSON error envelope."""
        return {
            "ok": False,
            "error": self.code,
            "details": self.message,
        }


class AuthError(AppError):
    """Missing or invalid identity token."""

    def __init__(self, message: str = "Please sign in again.", code: str = "invalid_auth"):
        super().__init__(message, code, status_code=401)


class BadRequestError(AppError):
    """Request is missing required fields or doesn't match the schema."""

    def __init__(self, message: str = "Invalid request.", code: str = "bad_request"):
        super().__init__(message, code, status_code=400)


class NotConnectedError(AppError):
    """No stored credential for the requested provider."""

    def __init__(self, provider: Optional[str] = None):
        self.provider = provider
        if provider:
            message = f"{provider.capitalize()} isn't connected. Reconnect it in settings."
        else:
            message = "No email or calendar account is connected. Connect Google or Microsoft in settings."
        super().__init__(message, "not_connected", status_code=400)


class UpstreamError(AppError):
    """Google, Microsoft or OpenAI answered with an error or didn't answer."""

    def __init__(
        self,
        message: str = "The provider couldn't complete the request. Please try again.",
        status: int = 502,
        body: str = "",
        timed_out: bool = False,
        code: str = "upstream_error",
    ):
        self.status = status
        self.body = body
        self.timed_out = timed_out
        # A provider 401/403 is about its token, not the caller's sign-in
        if status in (401, 403) or not 400 <= status < 600:
            status_code = 502
        else:
            status_code = status
        super().__init__(message, code, status_code=status_code, details={"status": status})

    @property
    def retryable(self) -> bool:
        return self.timed_out or self.status == 429 or self.status >= 500


class LlmError(UpstreamError):
    """Chat-completion call failed."""

    def __init__(
        self,
        message: str = "The assistant is unavailable right now. Please try again.",
        status: int = 502,
        body: str = "",
        timed_out: bool = False,
    ):
        super().__init__(message, status=status, body=body, timed_out=timed_out, code="llm_error")


class StorageError(AppError):
    """Token or pending-action persistence failed."""

    def __init__(self, message: str = "Couldn't save your data. Please try again."):
        super().__init__(message, "storage_error", status_code=500)


class ConfigurationError(AppError):
    """A required secret is not configured."""

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__(
            "The server is not configured for this feature.",
            "config_missing",
            status_code=500,
            details={"setting": setting},
        )
