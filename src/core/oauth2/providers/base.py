"""Base OAuth2 provider interface."""

import logging
from abc import ABC, abstractmethod

from core.oauth2.models import OAuth2Token

logger = logging.getLogger(__name__)


class BaseOAuth2Provider(ABC):
    """
    Abstract base class for refresh-token providers.

    One provider serves one credential slot. Implementations exchange a
    long-lived refresh token for a short-lived access token.
    """

    def __init__(self, provider_name: str):
        """
        Initialize provider.

        Args:
            provider_name: Credential slot this provider mints tokens for
        """
        self.provider_name = provider_name

    @abstractmethod
    async def refresh_token(self, refresh_token: str) -> OAuth2Token:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: Long-lived refresh token

        Returns:
            New OAuth2Token

        Raises:
            TokenRefreshError: If the token endpoint rejects the request
            TransientNetworkError: If no response was received
        """
        pass

    async def close(self) -> None:
        """Release provider resources."""
        return None


__all__ = ["BaseOAuth2Provider"]
