"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import TYPE_CHECKING, Mapping, Optional, Protocol, Sequence

if TYPE_CHECKING:
    from core.oauth2.models import PrincipalCredentials


class ErrorCategory(Enum):
    """
    Classification of failures for handling decisions.

    Categories:
        AUTH_EXPIRED: Access token rejected; one coordinated refresh and retry
                      may succeed (401, "invalid token", "access denied", ...)
        RATE_LIMITED: Remote API throttled the request (429). Never retried by
                      the invoker; surfaced for an outer backoff policy.
        TRANSIENT_NETWORK: No HTTP response at all (connection reset, timeout)
        PERMANENT_INVALID_CREDENTIAL: The refresh token itself is invalid or
                      revoked ("invalid_grant"). Only the account owner can fix it.
        UNKNOWN_REPORT_STATUS: Report status endpoint returned a status string
                      this client does not understand (fatal for the job)
        UNCLASSIFIED: Anything else; propagated unchanged
    """

    AUTH_EXPIRED = "auth_expired"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_NETWORK = "transient_network"
    PERMANENT_INVALID_CREDENTIAL = "permanent_invalid_credential"
    UNKNOWN_REPORT_STATUS = "unknown_report_status"
    UNCLASSIFIED = "unclassified"


class TokenRefresher(Protocol):
    """
    Capability that produces valid credentials for a principal.

    Injected once into RetryingInvoker instead of threading a refresh
    callback through every call.
    """

    async def ensure_valid(
        self,
        principal_id: str,
        refresh_tokens: Mapping[str, Optional[str]],
        slots: Optional[Sequence[str]] = None,
        force: bool = False,
        rejected: Optional["PrincipalCredentials"] = None,
    ) -> "PrincipalCredentials":
        """
        Return credentials for every requested slot.

        Args:
            principal_id: Account the credentials belong to
            refresh_tokens: Slot name -> refresh token (empty values skipped)
            slots: Slots the caller needs (default: every slot with a token)
            force: Bypass the freshness check
            rejected: Credentials a remote call just rejected

        Raises:
            TokenRefreshError: If a required slot cannot be refreshed
        """
        ...


__all__ = [
    "ErrorCategory",
    "TokenRefresher",
]
