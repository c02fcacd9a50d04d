"""OAuth2-specific exceptions."""

from typing import Any

from core.errors.exceptions import AdsSyncError


class OAuth2Error(AdsSyncError):
    """Base exception for OAuth2 operations."""

    pass


class TokenRefreshError(OAuth2Error):
    """
    Refresh-token grant failed.

    Keeps the token endpoint's status and body so classify() can tell an
    expired/revoked refresh token ("invalid_grant") from anything else.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
        slot: str | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message, cause=cause, context={"slot": slot})
        self.status_code = status_code
        self.body = body
        self.slot = slot


class InvalidConfigurationError(OAuth2Error):
    """OAuth2 provider configuration is invalid."""

    pass


__all__ = [
    "OAuth2Error",
    "TokenRefreshError",
    "InvalidConfigurationError",
]
