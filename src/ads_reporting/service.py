"""
Wiring for the report sync: config -> store, coordinator, client, runner.

AdsReportingService owns every long-lived object (HTTP sessions, the
in-memory credential store, in-flight refresh tasks) and closes them
together.
"""

import logging
from collections.abc import Mapping, Sequence
from datetime import timedelta
from typing import Any, TypeVar

from ads_reporting.api_client import AdsApiClient
from ads_reporting.models import ReportJobResult, ReportJobSpec
from ads_reporting.report_job import ReportJobRunner, RowTransform
from config.config import AdsSyncConfig
from core.oauth2.coordinator import RefreshCoordinator
from core.oauth2.models import REPORTING_SLOT
from core.oauth2.providers.generic import GenericOAuth2Provider
from core.oauth2.store import CredentialStore
from core.resilience.invoker import Operation, RetryingInvoker
from core.resilience.retry import RetryConfig, retry_async

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AdsReportingService:
    """
    Entry point for running report jobs for many principals.

    Usage:
        async with AdsReportingService.from_config(load_config()) as service:
            result = await service.run_report_job("acct-1", {"reporting": token}, spec)
    """

    def __init__(
        self,
        client: AdsApiClient,
        coordinator: RefreshCoordinator,
        runner: ReportJobRunner | None = None,
        retry_config: RetryConfig | None = None,
    ):
        self.client = client
        self.coordinator = coordinator
        self.invoker = RetryingInvoker(coordinator)
        self.runner = runner or ReportJobRunner(client, self.invoker)
        self.retry_config = retry_config or RetryConfig()

    @classmethod
    def from_config(cls, config: AdsSyncConfig) -> "AdsReportingService":
        """
        Build a service from validated configuration.

        One OAuth2 provider is registered per configured credential slot.

        Raises:
            ConfigurationError: If required settings are missing
        """
        config.validate()

        store = CredentialStore(
            refresh_threshold=timedelta(seconds=config.refresh_threshold_seconds)
        )
        coordinator = RefreshCoordinator(store)
        for slot in config.configured_slots():
            coordinator.add_provider(
                GenericOAuth2Provider(config.oauth_config(slot), timeout_seconds=config.timeout_seconds)
            )

        client = AdsApiClient(
            client_id=config.client_id,
            region=config.region,
            base_url=config.base_url or None,
            timeout_seconds=config.timeout_seconds,
            max_concurrent=config.max_concurrent,
            download_timeout_seconds=config.download_timeout_seconds,
        )
        service = cls(client, coordinator, retry_config=config.retry_config())
        service.runner = ReportJobRunner(
            client,
            service.invoker,
            poll_interval_seconds=config.poll_interval_seconds,
            max_poll_attempts=config.max_poll_attempts,
            poll_timeout_seconds=config.poll_timeout_seconds,
            chunk_size=config.chunk_size,
        )

        logger.info(
            "Ads reporting service ready",
            extra={
                "slots": coordinator.list_providers(),
                "http_url": client.base_url,
            },
        )
        return service

    async def __aenter__(self) -> "AdsReportingService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def run_report_job(
        self,
        principal_id: str,
        refresh_tokens: Mapping[str, str | None],
        job_spec: ReportJobSpec,
        transform: RowTransform | None = None,
    ) -> ReportJobResult:
        """Create, poll, download and decode one report for one principal."""
        return await self.runner.run(principal_id, refresh_tokens, job_spec, transform)

    async def invoke_once(
        self,
        principal_id: str,
        refresh_tokens: Mapping[str, str | None],
        operation: Operation[T],
        slots: Sequence[str] | None = None,
    ) -> T:
        """
        Run one API call with valid credentials.

        Expired access tokens are handled by one coordinated refresh and
        retry. Throttling and network failures are retried with backoff
        only when retry.max_attempts is above 1.
        """

        async def attempt() -> T:
            return await self.invoker.invoke(operation, principal_id, refresh_tokens, slots=slots)

        if self.retry_config.max_attempts <= 1:
            return await attempt()
        return await retry_async(
            attempt,
            config=self.retry_config,
            operation_name=getattr(operation, "__name__", None),
        )

    async def list_profiles(
        self,
        principal_id: str,
        refresh_tokens: Mapping[str, str | None],
    ) -> list[dict[str, Any]]:
        """Advertising profiles visible to the principal's reporting token."""

        async def list_profiles(creds) -> list[dict[str, Any]]:
            return await self.client.list_profiles(creds.access_token(REPORTING_SLOT))

        return await self.invoke_once(
            principal_id, refresh_tokens, list_profiles, slots=[REPORTING_SLOT]
        )

    async def close(self) -> None:
        await self.coordinator.close()
        await self.client.close()
        logger.debug("Ads reporting service closed")


__all__ = ["AdsReportingService"]
