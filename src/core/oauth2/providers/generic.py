"""Generic OAuth2 provider for the refresh_token grant."""

import asyncio
import json
import logging
from typing import Any

import aiohttp

from core.errors.exceptions import TransientNetworkError
from core.oauth2.exceptions import InvalidConfigurationError, TokenRefreshError
from core.oauth2.models import OAuth2Config, OAuth2Token
from core.oauth2.providers.base import BaseOAuth2Provider

logger = logging.getLogger(__name__)


class GenericOAuth2Provider(BaseOAuth2Provider):
    """
    OAuth2 provider using the refresh_token grant.

    Works with any OAuth2-compliant token endpoint, including Login with
    Amazon (https://api.amazon.com/auth/o2/token) used by both the
    advertising and the seller-data APIs.
    """

    def __init__(self, config: OAuth2Config, timeout_seconds: int = 30):
        """
        Initialize generic OAuth2 provider.

        Args:
            config: OAuth2 configuration
            timeout_seconds: Total timeout for one token request

        Raises:
            InvalidConfigurationError: If required parameters are missing
        """
        super().__init__(config.provider_name)

        if not all([config.client_id, config.client_secret, config.token_url]):
            raise InvalidConfigurationError("client_id, client_secret, and token_url are required")

        self.config = config
        self.timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

        logger.debug(
            f"Initialized OAuth2 provider '{config.provider_name}'",
            extra={"token_url": config.token_url},
        )

    async def _ensure_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP client session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
        return self._session

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        """Read an error body as JSON when possible, else as text."""
        text = await response.text()
        try:
            return json.loads(text)
        except ValueError:
            return text

    def _refresh_error(self, status: int | None, body: Any) -> TokenRefreshError:
        if isinstance(body, dict):
            detail = body.get("error_description") or body.get("error") or "unknown error"
            error_code = body.get("error")
        else:
            detail = str(body)[:200] if body else "empty response"
            error_code = None

        if error_code and error_code not in detail:
            detail = f"{error_code}: {detail}"

        prefix = f"HTTP {status}: " if status is not None else ""
        return TokenRefreshError(
            f"Token refresh failed for '{self.provider_name}': {prefix}{detail}",
            status_code=status,
            body=body,
            slot=self.provider_name,
        )

    async def refresh_token(self, refresh_token: str) -> OAuth2Token:
        """
        Exchange a refresh token for a new access token.

        Args:
            refresh_token: Long-lived refresh token for this slot

        Returns:
            New OAuth2Token

        Raises:
            TokenRefreshError: If the endpoint rejects the request or the
                response has no access_token
            TransientNetworkError: If no response was received
        """
        if not refresh_token:
            raise TokenRefreshError(
                f"Refresh token is missing for '{self.provider_name}'",
                slot=self.provider_name,
            )

        session = await self._ensure_session()

        request_data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret,
        }
        if self.config.additional_params:
            request_data.update(self.config.additional_params)

        try:
            async with session.post(
                self.config.token_url,
                data=request_data,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            ) as response:
                if response.status != 200:
                    body = await self._read_body(response)
                    error = self._refresh_error(response.status, body)
                    logger.error(
                        f"Token refresh failed for '{self.provider_name}': "
                        f"HTTP {response.status}",
                        extra={"http_status": response.status, "error_message": error.message},
                    )
                    raise error

                response_data = await response.json()

        except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
            logger.warning(
                f"No response from token endpoint for '{self.provider_name}': {e}",
                extra={"error_type": type(e).__name__},
            )
            raise TransientNetworkError(
                f"Token endpoint unreachable for '{self.provider_name}'",
                cause=e,
                context={"slot": self.provider_name},
            ) from e

        if not isinstance(response_data, dict) or response_data.get("error"):
            raise self._refresh_error(200, response_data)

        if not response_data.get("access_token"):
            raise TokenRefreshError(
                f"Access token not found in response for '{self.provider_name}'",
                status_code=200,
                slot=self.provider_name,
            )

        logger.debug(
            f"Refreshed token for '{self.provider_name}'",
            extra={"expires_in": response_data.get("expires_in")},
        )
        return OAuth2Token.from_response(response_data)

    async def close(self) -> None:
        """Close HTTP client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            await asyncio.sleep(0)


__all__ = ["GenericOAuth2Provider"]
