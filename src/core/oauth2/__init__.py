"""
Per-principal OAuth2 credential caching and coordinated refresh.

Each principal (seller account) holds one refresh token per credential slot
("reporting" for the advertising API, "seller_data" for the seller-data
API). Access tokens live about an hour; the coordinator refreshes them at
55 minutes, and never runs two refreshes for the same principal at once.

Basic Usage:
    from core.oauth2 import (
        CredentialStore,
        GenericOAuth2Provider,
        OAuth2Config,
        RefreshCoordinator,
    )

    coordinator = RefreshCoordinator(CredentialStore())
    coordinator.add_provider(
        GenericOAuth2Provider(
            OAuth2Config(
                provider_name="reporting",
                client_id=os.getenv("ADS_CLIENT_ID"),
                client_secret=os.getenv("ADS_CLIENT_SECRET"),
            )
        )
    )

    creds = await coordinator.ensure_valid("acct-1", {"reporting": refresh_token})
    headers = {"Authorization": f"Bearer {creds.access_token('reporting')}"}
"""

from core.oauth2.coordinator import RefreshCoordinator
from core.oauth2.exceptions import (
    InvalidConfigurationError,
    OAuth2Error,
    TokenRefreshError,
)
from core.oauth2.models import (
    DEFAULT_TOKEN_URL,
    REPORTING_SLOT,
    SELLER_DATA_SLOT,
    CredentialSet,
    OAuth2Config,
    OAuth2Token,
    PrincipalCredentials,
)
from core.oauth2.providers import BaseOAuth2Provider, GenericOAuth2Provider
from core.oauth2.store import DEFAULT_REFRESH_THRESHOLD_SECONDS, CredentialStore

__all__ = [
    # Coordination
    "RefreshCoordinator",
    "CredentialStore",
    "DEFAULT_REFRESH_THRESHOLD_SECONDS",
    # Providers
    "BaseOAuth2Provider",
    "GenericOAuth2Provider",
    # Models
    "OAuth2Token",
    "OAuth2Config",
    "CredentialSet",
    "PrincipalCredentials",
    "REPORTING_SLOT",
    "SELLER_DATA_SLOT",
    "DEFAULT_TOKEN_URL",
    # Exceptions
    "OAuth2Error",
    "TokenRefreshError",
    "InvalidConfigurationError",
]
