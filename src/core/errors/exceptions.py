"""
Unified exception hierarchy for ads_report_sync.

Provides typed exceptions with an error category so failures can be
classified in one place (see core.errors.classifiers).
"""

from typing import Any

# Import ErrorCategory from canonical source to avoid duplicate enum issues
# (comparing enums from different classes always returns False)
from core.types import ErrorCategory


class AdsSyncError(Exception):
    """
    Base exception for all ads_report_sync errors.

    Attributes:
        message: Human-readable error description
        category: Error classification for retry decisions
        cause: Original exception if wrapping
        context: Additional context dict for debugging
    """

    category: ErrorCategory = ErrorCategory.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        self.message = message
        self.cause = cause
        self.context = context or {}
        super().__init__(message)

    @property
    def should_refresh_auth(self) -> bool:
        return self.category == ErrorCategory.AUTH_EXPIRED

    def __str__(self) -> str:
        parts = [self.message]
        if self.cause:
            parts.append(f"Caused by: {self.cause}")
        return " | ".join(parts)


# =============================================================================
# Remote API Errors
# =============================================================================


class ApiError(AdsSyncError):
    """
    Non-2xx response from a remote API.

    The category is left UNCLASSIFIED on purpose: classify() decides from the
    status code and body, so one 403 with "access denied" and one with an
    unrelated body end up in different buckets.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        body: Any = None,
        url: str | None = None,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message, cause, context)
        self.status_code = status_code
        self.body = body
        self.url = url


class RateLimitError(ApiError):
    """Rate limited (429) - should back off."""

    category = ErrorCategory.RATE_LIMITED

    def __init__(
        self,
        message: str,
        retry_after: float | None = None,
        **kwargs: Any,
    ):
        kwargs.setdefault("status_code", 429)
        super().__init__(message, **kwargs)
        self.retry_after = retry_after  # Seconds to wait if provided


class DuplicateReportRequestError(ApiError):
    """Remote API rejected a create-report call as a duplicate (425)."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("status_code", 425)
        super().__init__(message, **kwargs)


# =============================================================================
# Network Errors
# =============================================================================


class TransientNetworkError(AdsSyncError):
    """No response received (connection reset, DNS failure, timeout)."""

    category = ErrorCategory.TRANSIENT_NETWORK


# =============================================================================
# Configuration Errors
# =============================================================================


class ConfigurationError(AdsSyncError):
    """Invalid or missing configuration detected at construction time."""

    pass


# =============================================================================
# Report Job Errors
# =============================================================================


class UnknownReportStatusError(AdsSyncError):
    """Report status endpoint returned a status this client does not know."""

    category = ErrorCategory.UNKNOWN_REPORT_STATUS

    def __init__(self, status: str, report_id: str | None = None):
        super().__init__(
            f"Unknown report status: {status}",
            context={"report_status": status, "report_id": report_id},
        )
        self.status = status
        self.report_id = report_id


class ReportGenerationFailedError(AdsSyncError):
    """Remote report reached a failure-type status."""

    def __init__(
        self,
        report_id: str,
        status: str,
        failure_reason: str | None = None,
    ):
        message = f"Report {report_id} finished with status {status}"
        if failure_reason:
            message = f"{message}: {failure_reason}"
        super().__init__(
            message,
            context={"report_id": report_id, "report_status": status},
        )
        self.report_id = report_id
        self.status = status
        self.failure_reason = failure_reason


class ReportPollTimeoutError(AdsSyncError):
    """Polling gave up after the configured attempt ceiling or deadline."""

    def __init__(self, report_id: str, attempts: int, reason: str):
        super().__init__(
            f"Gave up polling report {report_id} after {attempts} attempts ({reason})",
            context={"report_id": report_id, "attempt": attempts},
        )
        self.report_id = report_id
        self.attempts = attempts


class PayloadDecodeError(AdsSyncError):
    """Downloaded report body is not valid gzip-compressed JSON."""

    pass
