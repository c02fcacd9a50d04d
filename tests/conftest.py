"""
pytest configuration for ads report sync tests.

Adds src directory to Python path for imports and provides shared fakes.
"""

import asyncio
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add src directory to Python path
src_dir = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

from core.logging.context import clear_log_context  # noqa: E402
from core.oauth2.coordinator import RefreshCoordinator  # noqa: E402
from core.oauth2.models import OAuth2Token  # noqa: E402
from core.oauth2.providers.base import BaseOAuth2Provider  # noqa: E402
from core.oauth2.store import CredentialStore  # noqa: E402


class FakeTokenProvider(BaseOAuth2Provider):
    """
    In-memory refresh-token provider.

    Mints "<slot>-access-<n>" tokens. Set `gate` to hold refreshes open
    until the test releases them, and `fail_with` to make refreshes fail.
    """

    def __init__(self, slot: str = "reporting", rotate_refresh_token: bool = False):
        super().__init__(slot)
        self.refresh_count = 0
        self.received: list[str] = []
        self.gate: asyncio.Event | None = None
        self.fail_with: Exception | None = None
        self.rotate_refresh_token = rotate_refresh_token
        self.closed = False

    async def refresh_token(self, refresh_token: str) -> OAuth2Token:
        self.refresh_count += 1
        self.received.append(refresh_token)
        count = self.refresh_count
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if self.fail_with is not None:
            raise self.fail_with
        now = datetime.now(UTC)
        return OAuth2Token(
            access_token=f"{self.provider_name}-access-{count}",
            token_type="bearer",
            issued_at=now,
            expires_at=now + timedelta(hours=1),
            refresh_token=f"{self.provider_name}-refresh-{count}" if self.rotate_refresh_token else None,
        )

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    """Settable UTC clock for CredentialStore."""

    def __init__(self, start: datetime | None = None):
        self.current = start or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reporting_provider():
    return FakeTokenProvider("reporting")


@pytest.fixture
def seller_data_provider():
    return FakeTokenProvider("seller_data")


@pytest.fixture
def coordinator(clock, reporting_provider, seller_data_provider):
    return RefreshCoordinator(
        CredentialStore(clock=clock),
        providers=[reporting_provider, seller_data_provider],
    )


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_log_context()
    yield
    clear_log_context()
