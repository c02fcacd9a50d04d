"""Per-principal token refresh coordination with single-flight de-duplication."""

import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence
from functools import partial

from core.oauth2.exceptions import InvalidConfigurationError, TokenRefreshError
from core.oauth2.models import OAuth2Token, PrincipalCredentials
from core.oauth2.providers.base import BaseOAuth2Provider
from core.oauth2.store import CredentialStore

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    """
    Produces valid credentials for a principal, refreshing at most once at a time.

    Fresh cached credentials are served without a network call. Otherwise a
    refresh task is started for the principal, and every concurrent caller
    for that principal awaits the same task instead of starting its own.

    The in-flight marker is recorded synchronously, before the first
    suspension point, and removed by a done-callback whether the refresh
    succeeded, failed or was cancelled.

    Usage:
        store = CredentialStore()
        coordinator = RefreshCoordinator(store)
        coordinator.add_provider(GenericOAuth2Provider(reporting_config))
        coordinator.add_provider(GenericOAuth2Provider(seller_data_config))

        creds = await coordinator.ensure_valid(
            "acct-1",
            {"reporting": ads_refresh_token, "seller_data": sp_refresh_token},
            slots=["reporting"],
        )
        headers = {"Authorization": f"Bearer {creds.access_token('reporting')}"}
    """

    def __init__(
        self,
        store: CredentialStore,
        providers: Iterable[BaseOAuth2Provider] | None = None,
    ):
        self.store = store
        self._providers: dict[str, BaseOAuth2Provider] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self.refresh_calls = 0

        for provider in providers or ():
            self.add_provider(provider)

    def add_provider(self, provider: BaseOAuth2Provider) -> None:
        """
        Register the provider for one credential slot.

        Raises:
            ValueError: If a provider for the same slot already exists
        """
        if provider.provider_name in self._providers:
            raise ValueError(f"Provider '{provider.provider_name}' already exists")

        self._providers[provider.provider_name] = provider
        logger.info(
            f"Registered OAuth2 provider '{provider.provider_name}' "
            f"({provider.__class__.__name__})"
        )

    def get_provider(self, slot: str) -> BaseOAuth2Provider:
        """
        Get provider by slot name.

        Raises:
            KeyError: If provider not found
        """
        if slot not in self._providers:
            raise KeyError(
                f"Provider '{slot}' not found. Available: {list(self._providers.keys())}"
            )
        return self._providers[slot]

    def list_providers(self) -> list[str]:
        """Get list of registered slot names."""
        return list(self._providers.keys())

    def is_refreshing(self, principal_id: str) -> bool:
        task = self._in_flight.get(principal_id)
        return task is not None and not task.done()

    @staticmethod
    def _required_slots(
        refresh_tokens: Mapping[str, str | None], slots: Sequence[str] | None
    ) -> list[str]:
        if slots is not None:
            return list(slots)
        return [slot for slot, token in refresh_tokens.items() if token]

    def _replaced_since(
        self,
        current: PrincipalCredentials,
        rejected: PrincipalCredentials,
        required: list[str],
    ) -> bool:
        """Whether every rejected token of a required slot has already been replaced."""
        compared = False
        for slot in required:
            if not rejected.has_slot(slot):
                continue
            if not current.has_slot(slot):
                return False
            if current.access_token(slot) == rejected.access_token(slot):
                return False
            compared = True
        return compared

    @staticmethod
    def _replaced_any(
        current: PrincipalCredentials,
        rejected: PrincipalCredentials,
        required: list[str],
    ) -> bool:
        """Whether at least one required slot holds a token other than the rejected one."""
        for slot in required:
            if not current.has_slot(slot):
                continue
            if not rejected.has_slot(slot) or current.access_token(slot) != rejected.access_token(slot):
                return True
        return False

    async def ensure_valid(
        self,
        principal_id: str,
        refresh_tokens: Mapping[str, str | None],
        slots: Sequence[str] | None = None,
        force: bool = False,
        rejected: PrincipalCredentials | None = None,
    ) -> PrincipalCredentials:
        """
        Return valid credentials for a principal.

        Args:
            principal_id: Account the credentials belong to
            refresh_tokens: Slot name -> refresh token; empty values are skipped
            slots: Slots the caller needs (default: every slot with a token)
            force: Bypass the freshness check
            rejected: Credentials a remote call just rejected. With force=True,
                if the cache already holds different tokens another caller has
                refreshed them and no new refresh is started. A failed slot never
                falls back when that would return the rejected tokens unchanged.

        Returns:
            Snapshot of the principal's credentials

        Raises:
            ValueError: If no slot is requested
            TokenRefreshError: If a required slot cannot be refreshed and has
                no cached value to fall back to
        """
        required = self._required_slots(refresh_tokens, slots)
        if not required:
            raise ValueError(f"No refresh tokens supplied for principal '{principal_id}'")

        while True:
            cached = self.store.get(principal_id)
            fresh = cached is not None and not self.store.is_near_expiry(
                principal_id, slots=required
            )

            if fresh and not force:
                logger.debug(
                    "Using cached credentials",
                    extra={"principal_id": principal_id, "slots": required},
                )
                return cached.snapshot()

            if fresh and rejected is not None and self._replaced_since(cached, rejected, required):
                logger.debug(
                    "Rejected token already replaced by a concurrent refresh",
                    extra={"principal_id": principal_id},
                )
                return cached.snapshot()

            task = self._in_flight.get(principal_id)
            if task is None or task.done():
                task = asyncio.ensure_future(
                    self._perform_refresh(
                        principal_id, dict(refresh_tokens), required, force, rejected
                    )
                )
                self._in_flight[principal_id] = task
                task.add_done_callback(partial(self._clear_in_flight, principal_id))
                started = True
            else:
                logger.info(
                    "Token refresh already in progress, waiting",
                    extra={"principal_id": principal_id},
                )
                started = False

            result = await asyncio.shield(task)

            if started:
                return result
            # A joined refresh may have covered fewer slots than this caller needs
            if not all(result.has_slot(slot) for slot in required):
                force = False
                continue
            if rejected is None or self._replaced_any(result, rejected, required):
                return result
            # The joined refresh kept the rejected token; run a forced one
            force = True

    def _clear_in_flight(self, principal_id: str, task: asyncio.Task) -> None:
        if self._in_flight.get(principal_id) is task:
            del self._in_flight[principal_id]
        if not task.cancelled() and task.exception() is not None:
            logger.debug(
                "Token refresh finished with error",
                extra={"principal_id": principal_id},
            )

    async def _refresh_slot(self, slot: str, refresh_token: str) -> OAuth2Token:
        if slot not in self._providers:
            raise InvalidConfigurationError(f"No OAuth2 provider registered for slot '{slot}'")
        self.refresh_calls += 1
        return await self._providers[slot].refresh_token(refresh_token)

    async def _perform_refresh(
        self,
        principal_id: str,
        refresh_tokens: dict[str, str | None],
        required: list[str],
        force: bool,
        rejected: PrincipalCredentials | None = None,
    ) -> PrincipalCredentials:
        families = [slot for slot, token in refresh_tokens.items() if token]
        logger.info(
            "Refreshing credentials",
            extra={"principal_id": principal_id, "slots": families, "forced": force},
        )

        results = await asyncio.gather(
            *(self._refresh_slot(slot, refresh_tokens[slot]) for slot in families),
            return_exceptions=True,
        )

        issued_at = self.store.now()
        failures: dict[str, BaseException] = {}
        for slot, result in zip(families, results):
            if isinstance(result, BaseException):
                failures[slot] = result
                continue
            self.store.set(
                principal_id,
                slot,
                result.access_token,
                result.refresh_token or refresh_tokens[slot],
                issued_at=issued_at,
            )

        cached = self.store.get(principal_id)
        # Falling back must not hand the rejected tokens straight back to the caller
        keeps_rejected = (
            cached is not None
            and rejected is not None
            and not self._replaced_any(cached, rejected, required)
        )
        for slot in required:
            if slot in failures:
                error = failures[slot]
                has_fallback = cached is not None and cached.has_slot(slot) and not keeps_rejected
                if not has_fallback:
                    logger.error(
                        "Token refresh failed",
                        extra={
                            "principal_id": principal_id,
                            "slot": slot,
                            "error_type": type(error).__name__,
                            "error_message": str(error)[:200],
                        },
                    )
                    raise error
                logger.warning(
                    "Token refresh failed, keeping cached token",
                    extra={
                        "principal_id": principal_id,
                        "slot": slot,
                        "error_message": str(error)[:200],
                    },
                )
            elif slot not in families and (cached is None or not cached.has_slot(slot)):
                raise TokenRefreshError(
                    f"No refresh token supplied for required slot '{slot}'",
                    slot=slot,
                )

        for slot, error in failures.items():
            if slot not in required:
                logger.warning(
                    "Token refresh failed for optional slot",
                    extra={
                        "principal_id": principal_id,
                        "slot": slot,
                        "error_message": str(error)[:200],
                    },
                )

        if cached is None:
            raise TokenRefreshError(f"No credentials available for principal '{principal_id}'")

        logger.info(
            "Credentials refreshed",
            extra={
                "principal_id": principal_id,
                "slots": [slot for slot in families if slot not in failures],
            },
        )
        return cached.snapshot()

    def invalidate(self, principal_id: str | None = None) -> None:
        """Drop cached credentials so the next call refreshes."""
        self.store.clear(principal_id)

    async def close(self) -> None:
        """Clean up resources (close provider sessions)."""
        for task in list(self._in_flight.values()):
            task.cancel()
        for provider in self._providers.values():
            try:
                await provider.close()
            except Exception as e:
                logger.warning(f"Error closing provider '{provider.provider_name}': {e}")
        logger.info("RefreshCoordinator closed")


__all__ = ["RefreshCoordinator"]
