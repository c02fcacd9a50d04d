"""
Error classification and exception hierarchy.

Provides:
- ErrorCategory enum for classifying errors
- AdsSyncError hierarchy for typed exceptions
- classify() for turning any failure into a ClassifiedError
"""

from core.errors.classifiers import (
    ClassifiedError,
    classify,
    is_auth_expired,
)
from core.errors.exceptions import (
    AdsSyncError,
    ApiError,
    ConfigurationError,
    DuplicateReportRequestError,
    # Enums
    ErrorCategory,
    RateLimitError,
    ReportGenerationFailedError,
    PayloadDecodeError,
    ReportPollTimeoutError,
    TransientNetworkError,
    UnknownReportStatusError,
)

__all__ = [
    # Enums
    "ErrorCategory",
    # Base classes
    "AdsSyncError",
    "ApiError",
    "RateLimitError",
    "DuplicateReportRequestError",
    "TransientNetworkError",
    "ConfigurationError",
    # Report job errors
    "UnknownReportStatusError",
    "ReportGenerationFailedError",
    "ReportPollTimeoutError",
    "PayloadDecodeError",
    # Classification
    "ClassifiedError",
    "classify",
    "is_auth_expired",
]
