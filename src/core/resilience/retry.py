"""
Outer retry-with-backoff for throttling and network faults.

Uses classify() to decide what is worth waiting for:
- RATE_LIMITED: retry after the server's Retry-After, else exponential backoff
- TRANSIENT_NETWORK: retry with exponential backoff
- Everything else (auth, invalid credentials, unclassified): fail immediately

Auth expiry is not handled here; RetryingInvoker owns the single
refresh-and-retry for that.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from functools import wraps
from typing import Any, TypeVar

from core.errors.classifiers import ClassifiedError, classify
from core.errors.exceptions import RateLimitError
from core.types import ErrorCategory

logger = logging.getLogger(__name__)

T = TypeVar("T")

BACKOFF_CATEGORIES = frozenset({ErrorCategory.RATE_LIMITED, ErrorCategory.TRANSIENT_NETWORK})


def _log_retry_exhausted(
    func_name: str,
    classified: ClassifiedError,
    config: "RetryConfig",
) -> None:
    if classified.kind not in BACKOFF_CATEGORIES:
        logger.debug(
            "Error for %s not retryable: %s",
            func_name,
            classified.kind.value,
            extra={
                "operation": func_name,
                "error_category": classified.kind.value,
            },
        )
        return

    logger.error(
        "Max retries exhausted for %s: %s",
        func_name,
        classified.message[:200],
        extra={
            "operation": func_name,
            "error_type": type(classified.cause).__name__,
            "error_category": classified.kind.value,
            "max_attempts": config.max_attempts,
            "error_message": classified.message[:200],
        },
    )


def _log_retry_attempt(
    func_name: str,
    attempt: int,
    config: "RetryConfig",
    classified: ClassifiedError,
    delay: float,
) -> None:
    log_extras: dict[str, object] = {
        "operation": func_name,
        "attempt": attempt + 1,
        "max_attempts": config.max_attempts,
        "error_category": classified.kind.value,
        "delay_seconds": round(delay, 2),
        "error_message": classified.message[:200],
    }

    cause = classified.cause
    if (
        config.respect_retry_after
        and isinstance(cause, RateLimitError)
        and cause.retry_after is not None
    ):
        log_extras["server_retry_after"] = cause.retry_after
        log_extras["delay_source"] = "server"
        log_message = "Throttled on %s, will retry (using server-provided delay)"
    else:
        log_extras["delay_source"] = "exponential_backoff"
        log_message = "Retryable error for %s, will retry"

    logger.warning(log_message, func_name, extra=log_extras)


def _safe_invoke_on_retry(
    on_retry: Callable[[Exception, int, float], None],
    error: Exception,
    attempt: int,
    delay: float,
    func_name: str,
) -> None:
    """Call the on_retry callback, logging any errors it raises."""
    try:
        on_retry(error, attempt, delay)
    except Exception as cb_err:
        logger.warning(
            "Error in on_retry callback for %s: %s",
            func_name,
            str(cb_err)[:100],
            extra={
                "operation": func_name,
                "callback_error": str(cb_err)[:100],
            },
        )


@dataclass
class RetryConfig:
    """Configuration for the outer backoff policy."""

    max_attempts: int = 1
    base_delay: float = 1.0
    max_delay: float = 60.0
    exponential_base: float = 2.0

    # If True, use retry_after from RateLimitError when available
    respect_retry_after: bool = True

    # Categories worth waiting for; never includes AUTH_EXPIRED
    retry_on: frozenset[ErrorCategory] = field(default_factory=lambda: BACKOFF_CATEGORIES)

    def __post_init__(self):
        """Ensure proper types from YAML/env vars."""
        self.max_attempts = int(self.max_attempts)
        self.base_delay = float(self.base_delay)
        self.max_delay = float(self.max_delay)
        self.exponential_base = float(self.exponential_base)
        # bool('false') would be True
        if not isinstance(self.respect_retry_after, bool):
            self.respect_retry_after = str(self.respect_retry_after).lower() in (
                "1",
                "true",
                "yes",
            )
        self.retry_on = frozenset(self.retry_on) & BACKOFF_CATEGORIES

    def get_delay(self, attempt: int, error: Exception | None = None) -> float:
        """
        Calculate delay with equal jitter to prevent thundering herd.

        Args:
            attempt: 0-indexed attempt number
            error: Optional exception to check for retry_after

        Returns:
            Delay in seconds
        """
        if (
            self.respect_retry_after
            and isinstance(error, RateLimitError)
            and error.retry_after
        ):
            return min(float(error.retry_after), self.max_delay)

        base_delay = self.base_delay * (self.exponential_base**attempt)

        # Equal jitter: half fixed, half random
        jitter = random.uniform(0, base_delay / 2)
        delay = (base_delay / 2) + jitter

        return min(delay, self.max_delay)

    def should_retry(self, classified: ClassifiedError, attempt: int) -> bool:
        """
        Determine if a classified failure should be retried.

        Args:
            classified: Result of classify() for the failure
            attempt: 0-indexed current attempt
        """
        if attempt >= self.max_attempts - 1:
            return False
        return classified.kind in self.retry_on


# Default configurations
NO_RETRY = RetryConfig(max_attempts=1)
DEFAULT_RETRY = RetryConfig(max_attempts=3, base_delay=2.0)


async def retry_async(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[Exception, int, float], None] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    operation_name: str | None = None,
) -> T:
    """
    Await func(), retrying throttling and network failures with backoff.

    Non-retryable failures and the last failure are re-raised unchanged.
    """
    config = config or DEFAULT_RETRY
    func_name = operation_name or getattr(func, "__name__", "operation")

    attempt = 0
    while True:
        try:
            result = await func()
        except Exception as e:
            classified = classify(e)
            if not config.should_retry(classified, attempt):
                _log_retry_exhausted(func_name, classified, config)
                raise

            delay = config.get_delay(attempt, e)
            _log_retry_attempt(func_name, attempt, config, classified, delay)
            if on_retry:
                _safe_invoke_on_retry(on_retry, e, attempt, delay, func_name)
        else:
            if attempt > 0:
                logger.info(
                    "Retry succeeded for %s after %d attempts",
                    func_name,
                    attempt + 1,
                    extra={
                        "operation": func_name,
                        "attempt": attempt + 1,
                        "total_attempts": config.max_attempts,
                    },
                )
            return result

        await sleep(delay)
        attempt += 1


def with_retry_async(
    config: RetryConfig | None = None,
    on_retry: Callable[[Exception, int, float], None] | None = None,
):
    """
    Decorator form of retry_async.

    Usage:
        @with_retry_async(config=RetryConfig(max_attempts=4))
        async def list_profiles():
            ...
    """

    def decorator(func: Callable[..., Awaitable[T]]):
        @wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            return await retry_async(
                lambda: func(*args, **kwargs),
                config=config,
                on_retry=on_retry,
                operation_name=func.__name__,
            )

        return wrapper

    return decorator


__all__ = [
    "RetryConfig",
    "retry_async",
    "with_retry_async",
    "NO_RETRY",
    "DEFAULT_RETRY",
    "BACKOFF_CATEGORIES",
]
