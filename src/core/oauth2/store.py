"""In-memory per-principal credential cache."""

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from core.oauth2.models import CredentialSet, PrincipalCredentials

logger = logging.getLogger(__name__)

# Tokens live ~60 minutes; refresh proactively at 55
DEFAULT_REFRESH_THRESHOLD_SECONDS = 55 * 60


def _utc_now() -> datetime:
    return datetime.now(UTC)


class CredentialStore:
    """
    Process-lifetime cache of access tokens, keyed by principal and slot.

    Pure bookkeeping: no network calls. Only RefreshCoordinator writes to it.
    Nothing is persisted.

    Usage:
        store = CredentialStore()
        store.set("acct-1", "reporting", "Atza|...", "Atzr|...", issued_at)

        if store.is_near_expiry("acct-1", slots=["reporting"]):
            ...
    """

    def __init__(
        self,
        refresh_threshold: timedelta = timedelta(seconds=DEFAULT_REFRESH_THRESHOLD_SECONDS),
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize store.

        Args:
            refresh_threshold: Age after which a token counts as near expiry
            clock: Returns the current UTC time (injectable for tests)
        """
        self.refresh_threshold = refresh_threshold
        self._clock = clock
        self._entries: dict[str, PrincipalCredentials] = {}

    def now(self) -> datetime:
        return self._clock()

    def get(self, principal_id: str) -> PrincipalCredentials | None:
        """Get cached credentials for a principal, or None."""
        return self._entries.get(principal_id)

    def set(
        self,
        principal_id: str,
        slot: str,
        access_token: str,
        refresh_token: str,
        issued_at: datetime | None = None,
    ) -> CredentialSet:
        """
        Store a freshly minted access token for one slot.

        Existing entries are updated in place.
        """
        issued_at = issued_at or self.now()
        entry = self._entries.setdefault(
            principal_id, PrincipalCredentials(principal_id=principal_id)
        )

        current = entry.slots.get(slot)
        if current is None:
            current = CredentialSet(
                principal_id=principal_id,
                slot=slot,
                access_token=access_token,
                refresh_token=refresh_token,
                issued_at=issued_at,
            )
            entry.slots[slot] = current
        else:
            current.access_token = access_token
            current.refresh_token = refresh_token
            current.issued_at = issued_at

        logger.debug(
            "Stored credentials",
            extra={"principal_id": principal_id, "slot": slot},
        )
        return current

    def is_near_expiry(
        self,
        principal_id: str,
        threshold: timedelta | None = None,
        slots: Iterable[str] | None = None,
    ) -> bool:
        """
        Check whether cached credentials need a refresh.

        Args:
            principal_id: Principal to check
            threshold: Maximum token age (default: store's refresh_threshold)
            slots: Slots that must be present and fresh (default: all cached slots)

        Returns:
            True if no entry exists, a requested slot is missing, or any
            checked token is older than the threshold
        """
        entry = self._entries.get(principal_id)
        if entry is None or not entry.slots:
            return True

        threshold = threshold if threshold is not None else self.refresh_threshold
        now = self.now()
        wanted = list(slots) if slots is not None else list(entry.slots)

        for slot in wanted:
            creds = entry.slots.get(slot)
            if creds is None:
                return True
            if now - creds.issued_at > threshold:
                return True
        return False

    def clear(self, principal_id: str | None = None) -> None:
        """
        Clear cached credentials.

        Args:
            principal_id: Principal to clear. If None, clears everything.
        """
        if principal_id:
            self._entries.pop(principal_id, None)
            logger.debug("Cleared credentials", extra={"principal_id": principal_id})
        else:
            self._entries.clear()
            logger.debug("Cleared all credentials")

    def principals(self) -> list[str]:
        """Get list of principals with cached credentials."""
        return list(self._entries)


__all__ = ["CredentialStore", "DEFAULT_REFRESH_THRESHOLD_SECONDS"]
