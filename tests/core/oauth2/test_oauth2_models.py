"""Tests for OAuth2 models."""

from datetime import UTC, datetime, timedelta

import pytest

from core.oauth2.models import (
    DEFAULT_TOKEN_URL,
    CredentialSet,
    OAuth2Config,
    OAuth2Token,
    PrincipalCredentials,
)


def _creds(slot: str, access: str) -> CredentialSet:
    return CredentialSet(
        principal_id="acct-1",
        slot=slot,
        access_token=access,
        refresh_token=f"{slot}-refresh",
        issued_at=datetime(2024, 5, 1, tzinfo=UTC),
    )


class TestOAuth2Token:
    def test_from_response(self):
        token = OAuth2Token.from_response(
            {
                "access_token": "Atza|abc",
                "token_type": "bearer",
                "expires_in": 3600,
                "refresh_token": "Atzr|xyz",
            }
        )
        assert token.access_token == "Atza|abc"
        assert token.refresh_token == "Atzr|xyz"
        assert token.expires_at - token.issued_at == timedelta(seconds=3600)

    def test_from_response_defaults(self):
        token = OAuth2Token.from_response({"access_token": "Atza|abc"})
        assert token.token_type == "bearer"
        assert token.refresh_token is None
        assert token.expires_at - token.issued_at == timedelta(hours=1)


class TestOAuth2Config:
    def test_default_token_url(self):
        config = OAuth2Config(provider_name="reporting", client_id="id", client_secret="secret")
        assert config.token_url == DEFAULT_TOKEN_URL == "https://api.amazon.com/auth/o2/token"


class TestPrincipalCredentials:
    def test_access_token_by_slot(self):
        creds = PrincipalCredentials(
            principal_id="acct-1",
            slots={"reporting": _creds("reporting", "a"), "seller_data": _creds("seller_data", "b")},
        )
        assert creds.access_token() == "a"
        assert creds.access_token("seller_data") == "b"
        assert creds.tokens() == {"reporting": "a", "seller_data": "b"}

    def test_missing_slot_raises(self):
        creds = PrincipalCredentials(principal_id="acct-1")
        assert not creds.has_slot("reporting")
        with pytest.raises(KeyError, match="No 'reporting' credentials"):
            creds.access_token("reporting")

    def test_snapshot_is_independent(self):
        creds = PrincipalCredentials(principal_id="acct-1", slots={"reporting": _creds("reporting", "a")})
        snapshot = creds.snapshot()

        creds.slots["reporting"].access_token = "b"

        assert snapshot.access_token("reporting") == "a"

    def test_credential_age(self):
        creds = _creds("reporting", "a")
        assert creds.age(datetime(2024, 5, 1, 0, 56, tzinfo=UTC)) == timedelta(minutes=56)
