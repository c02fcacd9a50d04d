"""Single-call wrapper that recovers from one expired access token."""

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import TypeVar

from core.errors.classifiers import ClassifiedError, classify
from core.oauth2.models import PrincipalCredentials
from core.types import TokenRefresher

logger = logging.getLogger(__name__)

T = TypeVar("T")

Operation = Callable[[PrincipalCredentials], Awaitable[T]]


class RetryingInvoker:
    """
    Runs one remote operation with valid credentials.

    The operation is called with fresh credentials. If it fails with
    AUTH_EXPIRED, one coordinated refresh is forced and the operation is
    called exactly once more; that second outcome is final. Any other
    failure is re-raised unchanged.

    Usage:
        invoker = RetryingInvoker(coordinator)

        async def fetch_status(creds):
            return await client.get_report_status(creds.access_token(), profile_id, report_id)

        status = await invoker.invoke(fetch_status, "acct-1", refresh_tokens)
    """

    def __init__(
        self,
        refresher: TokenRefresher,
        classifier: Callable[[BaseException], ClassifiedError] = classify,
    ):
        self.refresher = refresher
        self.classifier = classifier

    async def invoke(
        self,
        operation: Operation[T],
        principal_id: str,
        refresh_tokens: Mapping[str, str | None],
        slots: Sequence[str] | None = None,
    ) -> T:
        """
        Call operation with valid credentials, retrying once on auth expiry.

        Args:
            operation: Async callable receiving PrincipalCredentials
            principal_id: Account to run the operation for
            refresh_tokens: Slot name -> refresh token
            slots: Slots the operation needs (default: every slot with a token)

        Returns:
            The operation's result

        Raises:
            Whatever the operation (or the token refresh) raised
        """
        op_name = getattr(operation, "__name__", "operation")
        credentials = await self.refresher.ensure_valid(principal_id, refresh_tokens, slots=slots)

        try:
            return await operation(credentials)
        except Exception as e:
            classified = self.classifier(e)
            if not classified.is_auth_expired:
                raise
            logger.info(
                "Access token rejected, forcing refresh and retrying once",
                extra={
                    "principal_id": principal_id,
                    "operation": op_name,
                    "http_status": classified.status_code,
                    "error_message": classified.message[:200],
                },
            )

        refreshed = await self.refresher.ensure_valid(
            principal_id,
            refresh_tokens,
            slots=slots,
            force=True,
            rejected=credentials,
        )
        return await operation(refreshed)


__all__ = ["RetryingInvoker", "Operation"]
