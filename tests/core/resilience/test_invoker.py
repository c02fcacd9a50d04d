"""Tests for RetryingInvoker."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from core.errors.exceptions import ApiError, RateLimitError, TransientNetworkError
from core.oauth2.exceptions import TokenRefreshError
from core.resilience.invoker import RetryingInvoker

REPORTING_ONLY = {"reporting": "ads-refresh"}


def _unauthorized():
    return ApiError(
        "HTTP 401 - Unauthorized",
        status_code=401,
        body={"code": "UNAUTHORIZED", "details": "Not authorized to access this advertiser"},
    )


class RecordingOperation:
    """Operation that records the tokens it was called with."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.tokens: list[str] = []

    async def __call__(self, creds):
        self.tokens.append(creds.access_token("reporting"))
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def invoker(coordinator):
    return RetryingInvoker(coordinator)


class TestInvoke:
    async def test_success_without_retry(self, invoker, reporting_provider):
        operation = RecordingOperation("result")

        assert await invoker.invoke(operation, "acct-1", REPORTING_ONLY) == "result"
        assert operation.tokens == ["reporting-access-1"]
        assert reporting_provider.refresh_count == 1

    async def test_auth_expired_refreshes_and_retries_once(self, invoker, reporting_provider):
        operation = RecordingOperation(_unauthorized(), "result")

        result = await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        assert result == "result"
        assert operation.tokens == ["reporting-access-1", "reporting-access-2"]
        assert reporting_provider.refresh_count == 2

    async def test_second_auth_failure_is_final(self, invoker, reporting_provider):
        second = _unauthorized()
        operation = RecordingOperation(_unauthorized(), second, "never reached")

        with pytest.raises(ApiError) as exc_info:
            await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        assert exc_info.value is second
        assert len(operation.tokens) == 2
        assert reporting_provider.refresh_count == 2

    @pytest.mark.parametrize(
        "error",
        [
            ApiError("Internal error", status_code=500, body={"message": "Internal error"}),
            RateLimitError("Too Many Requests", retry_after=3),
            TransientNetworkError("No response received"),
            ValueError("bad payload"),
        ],
    )
    async def test_other_failures_propagate_unchanged(self, invoker, reporting_provider, error):
        operation = RecordingOperation(error)

        with pytest.raises(type(error)) as exc_info:
            await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        assert exc_info.value is error
        assert len(operation.tokens) == 1
        assert reporting_provider.refresh_count == 1

    async def test_refresh_failure_propagates_without_calling_operation(
        self, invoker, reporting_provider
    ):
        reporting_provider.fail_with = TokenRefreshError("invalid_grant", status_code=400)
        operation = RecordingOperation("result")

        with pytest.raises(TokenRefreshError):
            await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        assert operation.tokens == []

    async def test_forced_refresh_failure_propagates(self, invoker, reporting_provider):
        operation = RecordingOperation(_unauthorized(), "result")
        original_refresh = reporting_provider.refresh_token

        async def refresh_then_fail(refresh_token):
            if reporting_provider.refresh_count >= 1:
                reporting_provider.refresh_count += 1
                raise TokenRefreshError("token endpoint down", status_code=503)
            return await original_refresh(refresh_token)

        reporting_provider.refresh_token = refresh_then_fail

        with pytest.raises(TokenRefreshError, match="token endpoint down"):
            await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        assert len(operation.tokens) == 1

    async def test_seller_data_outage_does_not_block_reporting_retry(
        self, invoker, reporting_provider, seller_data_provider
    ):
        tokens = {"reporting": "ads-refresh", "seller_data": "sp-refresh"}
        await invoker.invoke(RecordingOperation("warm"), "acct-1", tokens)
        seller_data_provider.fail_with = TokenRefreshError("seller-data outage", status_code=503)
        operation = RecordingOperation(_unauthorized(), "ok")

        result = await invoker.invoke(operation, "acct-1", tokens)

        assert result == "ok"
        assert operation.tokens == ["reporting-access-1", "reporting-access-2"]

    async def test_proactive_refresh_before_call(self, invoker, clock, reporting_provider):
        """A token older than 55 minutes is refreshed before the call, not after a 401."""
        operation = RecordingOperation("first", "second")
        await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        clock.advance(minutes=56)
        await invoker.invoke(operation, "acct-1", REPORTING_ONLY)

        assert operation.tokens == ["reporting-access-1", "reporting-access-2"]
        assert reporting_provider.refresh_count == 2

    async def test_concurrent_auth_failures_share_one_forced_refresh(
        self, invoker, reporting_provider
    ):
        await invoker.invoke(RecordingOperation("warm"), "acct-1", REPORTING_ONLY)

        async def rejects_first_token(creds):
            await asyncio.sleep(0)
            if creds.access_token("reporting") == "reporting-access-1":
                raise _unauthorized()
            return creds.access_token("reporting")

        results = await asyncio.gather(
            *(invoker.invoke(rejects_first_token, "acct-1", REPORTING_ONLY) for _ in range(20))
        )

        assert set(results) == {"reporting-access-2"}
        assert reporting_provider.refresh_count == 2

    async def test_uses_injected_refresher(self):
        refresher = AsyncMock()
        refresher.ensure_valid = AsyncMock(return_value="creds")
        operation = AsyncMock(return_value="done")

        result = await RetryingInvoker(refresher).invoke(
            operation, "acct-1", REPORTING_ONLY, slots=["reporting"]
        )

        assert result == "done"
        operation.assert_awaited_once_with("creds")
        refresher.ensure_valid.assert_awaited_once_with(
            "acct-1", REPORTING_ONLY, slots=["reporting"]
        )

    async def test_forced_refresh_passes_rejected_credentials(self):
        refresher = AsyncMock()
        refresher.ensure_valid = AsyncMock(side_effect=["stale", "fresh"])
        operation = AsyncMock(side_effect=[_unauthorized(), "done"])

        result = await RetryingInvoker(refresher).invoke(operation, "acct-1", REPORTING_ONLY)

        assert result == "done"
        assert operation.await_count == 2
        _, kwargs = refresher.ensure_valid.await_args
        assert kwargs["force"] is True
        assert kwargs["rejected"] == "stale"
