"""
Resilience patterns module.

Components:
    - RetryingInvoker: one coordinated token refresh and retry on auth expiry
    - RetryConfig: exponential backoff configuration
    - retry_async / @with_retry_async: outer backoff for throttling and
      network faults
"""

from .invoker import RetryingInvoker
from .retry import (
    BACKOFF_CATEGORIES,
    DEFAULT_RETRY,
    NO_RETRY,
    RetryConfig,
    retry_async,
    with_retry_async,
)

__all__ = [
    "RetryingInvoker",
    "RetryConfig",
    "retry_async",
    "with_retry_async",
    "DEFAULT_RETRY",
    "NO_RETRY",
    "BACKOFF_CATEGORIES",
]
