"""
Advertising report sync.

Runs async advertising reports (create -> poll -> download -> decode) for
many principals concurrently, sharing one coordinated token refresh per
principal.
"""

from ads_reporting.api_client import AdsApiClient
from ads_reporting.chunking import collect_in_chunks, rename_columns, transform_in_chunks
from ads_reporting.models import (
    JobPhase,
    ReportConfiguration,
    ReportJobError,
    ReportJobResult,
    ReportJobSpec,
    ReportStatusResponse,
)
from ads_reporting.report_job import JobState, ReportJob, ReportJobRunner
from ads_reporting.service import AdsReportingService

__all__ = [
    "AdsApiClient",
    "AdsReportingService",
    "JobPhase",
    "JobState",
    "ReportConfiguration",
    "ReportJob",
    "ReportJobError",
    "ReportJobResult",
    "ReportJobRunner",
    "ReportJobSpec",
    "ReportStatusResponse",
    "collect_in_chunks",
    "rename_columns",
    "transform_in_chunks",
]
