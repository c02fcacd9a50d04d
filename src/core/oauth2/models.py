"""OAuth2 data models and configuration."""

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

# Named credential slots. One refresh token family per slot.
REPORTING_SLOT = "reporting"
SELLER_DATA_SLOT = "seller_data"

DEFAULT_TOKEN_URL = "https://api.amazon.com/auth/o2/token"


@dataclass
class OAuth2Token:
    """
    OAuth2 access token returned by the token endpoint.

    Attributes:
        access_token: The access token string
        token_type: Token type (typically "bearer")
        issued_at: UTC timestamp when the token was minted
        expires_at: UTC timestamp when token expires
        refresh_token: Refresh token returned alongside (may be rotated)
    """

    access_token: str
    token_type: str
    issued_at: datetime
    expires_at: datetime
    refresh_token: str | None = None

    @classmethod
    def from_response(cls, response: dict, expires_in: int | None = None) -> "OAuth2Token":
        """
        Create token from OAuth2 token response.

        Args:
            response: OAuth2 token response dict
            expires_in: Optional override for expires_in (seconds)

        Returns:
            OAuth2Token instance
        """
        expires_in = expires_in or response.get("expires_in", 3600)
        issued_at = datetime.now(UTC)

        return cls(
            access_token=response["access_token"],
            token_type=response.get("token_type", "bearer"),
            issued_at=issued_at,
            expires_at=issued_at + timedelta(seconds=int(expires_in)),
            refresh_token=response.get("refresh_token"),
        )


@dataclass
class OAuth2Config:
    """
    Refresh-token client configuration for one credential slot.

    Attributes:
        provider_name: Slot this client mints tokens for
        client_id: OAuth2 client ID
        client_secret: OAuth2 client secret
        token_url: Token endpoint URL
        additional_params: Additional parameters for token request
    """

    provider_name: str
    client_id: str
    client_secret: str
    token_url: str = DEFAULT_TOKEN_URL
    additional_params: dict[str, str] | None = None


@dataclass
class CredentialSet:
    """
    Current access token for one slot of one principal.

    Invariant: access_token is the most recent token returned by a refresh
    using refresh_token, and issued_at is the time of that refresh.
    """

    principal_id: str
    slot: str
    access_token: str
    refresh_token: str
    issued_at: datetime

    def age(self, now: datetime | None = None) -> timedelta:
        return (now or datetime.now(UTC)) - self.issued_at


@dataclass
class PrincipalCredentials:
    """Credentials for every slot of one principal, keyed by slot name."""

    principal_id: str
    slots: dict[str, CredentialSet] = field(default_factory=dict)

    def access_token(self, slot: str = REPORTING_SLOT) -> str:
        """
        Get the access token for a slot.

        Raises:
            KeyError: If no credentials are held for the slot
        """
        if slot not in self.slots:
            raise KeyError(
                f"No '{slot}' credentials for principal '{self.principal_id}'. "
                f"Available: {sorted(self.slots)}"
            )
        return self.slots[slot].access_token

    def has_slot(self, slot: str) -> bool:
        return slot in self.slots

    def tokens(self) -> dict[str, str]:
        """Slot name -> access token (for comparing snapshots)."""
        return {slot: creds.access_token for slot, creds in self.slots.items()}

    def snapshot(self) -> "PrincipalCredentials":
        """Copy that later refreshes do not mutate."""
        return PrincipalCredentials(
            principal_id=self.principal_id,
            slots={
                slot: CredentialSet(
                    principal_id=creds.principal_id,
                    slot=creds.slot,
                    access_token=creds.access_token,
                    refresh_token=creds.refresh_token,
                    issued_at=creds.issued_at,
                )
                for slot, creds in self.slots.items()
            },
        )


__all__ = [
    "OAuth2Token",
    "OAuth2Config",
    "CredentialSet",
    "PrincipalCredentials",
    "REPORTING_SLOT",
    "SELLER_DATA_SLOT",
    "DEFAULT_TOKEN_URL",
]
