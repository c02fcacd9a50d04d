"""Tests for GenericOAuth2Provider - refresh_token grant."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from core.errors.classifiers import classify
from core.errors.exceptions import TransientNetworkError
from core.oauth2.exceptions import InvalidConfigurationError, TokenRefreshError
from core.oauth2.models import OAuth2Config, OAuth2Token
from core.oauth2.providers.generic import GenericOAuth2Provider
from core.types import ErrorCategory


def _make_config(**overrides):
    defaults = {
        "provider_name": "reporting",
        "client_id": "amzn1.application-oa2-client.test",
        "client_secret": "test-cs",
        "token_url": "https://auth.example.com/o2/token",
    }
    defaults.update(overrides)
    return OAuth2Config(**defaults)


def _mock_session_with_response(response_mock):
    """Create a mock session where post() returns the given response context manager."""
    mock_session = MagicMock()
    mock_session.closed = False
    mock_session.post = MagicMock(return_value=response_mock)
    return mock_session


def _ok_response(data):
    """Create a mock async context manager for a 200 response."""
    mock_resp = AsyncMock()
    mock_resp.status = 200
    mock_resp.json = AsyncMock(return_value=data)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


def _error_response(status, text="error"):
    """Create a mock async context manager for an error response."""
    mock_resp = AsyncMock()
    mock_resp.status = status
    mock_resp.text = AsyncMock(return_value=text)
    mock_resp.__aenter__ = AsyncMock(return_value=mock_resp)
    mock_resp.__aexit__ = AsyncMock(return_value=False)
    return mock_resp


# ---------------------------------------------------------------------------
# __init__
# ---------------------------------------------------------------------------


class TestGenericProviderInit:
    def test_creates_provider_with_valid_config(self):
        config = _make_config()
        provider = GenericOAuth2Provider(config)
        assert provider.provider_name == "reporting"
        assert provider.config is config
        assert provider._session is None

    @pytest.mark.parametrize("field", ["client_id", "client_secret", "token_url"])
    def test_raises_when_required_field_missing(self, field):
        with pytest.raises(InvalidConfigurationError, match=field):
            GenericOAuth2Provider(_make_config(**{field: ""}))


# ---------------------------------------------------------------------------
# refresh_token
# ---------------------------------------------------------------------------


class TestRefreshToken:
    async def test_returns_token_on_success(self):
        provider = GenericOAuth2Provider(_make_config())
        provider._session = _mock_session_with_response(
            _ok_response(
                {
                    "access_token": "Atza|new",
                    "token_type": "bearer",
                    "expires_in": 3600,
                    "refresh_token": "Atzr|same",
                }
            )
        )

        token = await provider.refresh_token("Atzr|same")

        assert isinstance(token, OAuth2Token)
        assert token.access_token == "Atza|new"
        assert token.refresh_token == "Atzr|same"

    async def test_sends_refresh_token_grant(self):
        provider = GenericOAuth2Provider(_make_config(additional_params={"scope": "advertising::campaign_management"}))
        session = _mock_session_with_response(_ok_response({"access_token": "tok"}))
        provider._session = session

        await provider.refresh_token("Atzr|abc")

        call = session.post.call_args
        assert call[0][0] == "https://auth.example.com/o2/token"
        data = call[1]["data"]
        assert data == {
            "grant_type": "refresh_token",
            "refresh_token": "Atzr|abc",
            "client_id": "amzn1.application-oa2-client.test",
            "client_secret": "test-cs",
            "scope": "advertising::campaign_management",
        }

    async def test_missing_refresh_token(self):
        provider = GenericOAuth2Provider(_make_config())
        with pytest.raises(TokenRefreshError, match="missing"):
            await provider.refresh_token("")

    async def test_invalid_grant_is_permanent_credential_failure(self):
        provider = GenericOAuth2Provider(_make_config())
        provider._session = _mock_session_with_response(
            _error_response(
                400,
                '{"error": "invalid_grant", "error_description": "The request has an invalid grant parameter"}',
            )
        )

        with pytest.raises(TokenRefreshError) as exc_info:
            await provider.refresh_token("Atzr|revoked")

        error = exc_info.value
        assert error.status_code == 400
        assert error.body["error"] == "invalid_grant"
        assert error.slot == "reporting"
        assert classify(error).kind == ErrorCategory.PERMANENT_INVALID_CREDENTIAL

    async def test_non_json_error_body(self):
        provider = GenericOAuth2Provider(_make_config())
        provider._session = _mock_session_with_response(_error_response(503, "Service Unavailable"))

        with pytest.raises(TokenRefreshError, match="HTTP 503: Service Unavailable"):
            await provider.refresh_token("Atzr|abc")

    async def test_error_in_200_body(self):
        provider = GenericOAuth2Provider(_make_config())
        provider._session = _mock_session_with_response(
            _ok_response({"error": "invalid_client", "error_description": "Client authentication failed"})
        )

        with pytest.raises(TokenRefreshError, match="invalid_client"):
            await provider.refresh_token("Atzr|abc")

    async def test_missing_access_token_in_response(self):
        provider = GenericOAuth2Provider(_make_config())
        provider._session = _mock_session_with_response(_ok_response({"token_type": "bearer"}))

        with pytest.raises(TokenRefreshError, match="Access token not found"):
            await provider.refresh_token("Atzr|abc")

    @pytest.mark.parametrize(
        "error",
        [aiohttp.ClientConnectionError("Connection reset"), asyncio.TimeoutError()],
    )
    async def test_no_response_is_transient(self, error):
        provider = GenericOAuth2Provider(_make_config())
        session = MagicMock()
        session.closed = False
        session.post = MagicMock(side_effect=error)
        provider._session = session

        with pytest.raises(TransientNetworkError) as exc_info:
            await provider.refresh_token("Atzr|abc")

        assert exc_info.value.cause is error
        assert classify(exc_info.value).kind == ErrorCategory.TRANSIENT_NETWORK


# ---------------------------------------------------------------------------
# close
# ---------------------------------------------------------------------------


class TestClose:
    async def test_closes_open_session(self):
        provider = GenericOAuth2Provider(_make_config())
        session = await provider._ensure_session()
        assert not session.closed

        await provider.close()
        assert session.closed

    async def test_no_error_when_no_session(self):
        provider = GenericOAuth2Provider(_make_config())
        await provider.close()  # Should not raise
