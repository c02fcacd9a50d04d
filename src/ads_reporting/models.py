"""
Report request and result schemas.

Pydantic models for the advertising reporting API (v3 async reports) and
for the structured outcome handed back to callers.
"""

import time
from datetime import date
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.types import ErrorCategory

REPORT_FORMAT = "GZIP_JSON"
TIME_UNITS = ("SUMMARY", "DAILY")


class JobPhase(str, Enum):
    """Step of a report job a failure happened in."""

    CREATE = "create"
    POLL = "poll"
    DOWNLOAD = "download"
    DECODE = "decode"


class ReportConfiguration(BaseModel):
    """Report definition sent as the create-report "configuration" object.

    Serializes with camelCase aliases (adProduct, reportTypeId, groupBy,
    timeUnit). Column sets and report type ids are chosen by the caller.

    Example:
        >>> ReportConfiguration(
        ...     ad_product="SPONSORED_PRODUCTS",
        ...     report_type_id="spSearchTerm",
        ...     group_by=["searchTerm"],
        ...     columns=["campaignId", "searchTerm", "clicks", "cost"],
        ... ).model_dump(by_alias=True, exclude_none=True)["reportTypeId"]
        'spSearchTerm'
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    ad_product: str = Field(..., min_length=1, description="e.g. SPONSORED_PRODUCTS")
    report_type_id: str = Field(..., min_length=1, description="e.g. spSearchTerm")
    columns: list[str] = Field(..., description="Columns to include in each row")
    group_by: list[str] = Field(default_factory=list)
    filters: list[dict[str, Any]] | None = None
    time_unit: str = "SUMMARY"
    format: str = REPORT_FORMAT

    @field_validator("columns")
    @classmethod
    def validate_columns(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("columns cannot be empty")
        if any(not c or not c.strip() for c in v):
            raise ValueError("columns cannot contain empty names")
        return v

    @field_validator("time_unit")
    @classmethod
    def validate_time_unit(cls, v: str) -> str:
        v = v.upper()
        if v not in TIME_UNITS:
            raise ValueError(f"time_unit must be one of {TIME_UNITS}, got '{v}'")
        return v


class ReportJobSpec(BaseModel):
    """Everything needed to create one report for one advertising profile."""

    profile_id: str = Field(..., min_length=1)
    name: str | None = None
    start_date: date
    end_date: date
    configuration: ReportConfiguration

    @field_validator("profile_id", mode="before")
    @classmethod
    def coerce_profile_id(cls, v: Any) -> Any:
        # Profile ids come back from /v2/profiles as integers
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @model_validator(mode="after")
    def validate_dates_and_name(self) -> "ReportJobSpec":
        if self.start_date > self.end_date:
            raise ValueError(
                f"start_date ({self.start_date}) must not be after end_date ({self.end_date})"
            )
        if not self.name:
            # Unique name keeps repeated requests from being rejected as duplicates
            self.name = f"{self.configuration.report_type_id} report - {int(time.time() * 1000)}"
        return self

    def to_request_body(self) -> dict[str, Any]:
        """Create-report request body."""
        return {
            "name": self.name,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "configuration": self.configuration.model_dump(by_alias=True, exclude_none=True),
        }


class ReportStatusResponse(BaseModel):
    """Body of GET /reporting/reports/{reportId}."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    report_id: str
    status: str
    url: str | None = None
    failure_reason: str | None = None
    file_size: int | None = None

    @field_validator("report_id", mode="before")
    @classmethod
    def coerce_report_id(cls, v: Any) -> Any:
        return str(v) if v is not None else v


class ReportJobError(BaseModel):
    """Structured failure of a report job: which phase failed and how."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    phase: JobPhase
    kind: ErrorCategory
    message: str
    job_id: str | None = None
    cause: BaseException | None = Field(default=None, exclude=True, repr=False)


class ReportJobResult(BaseModel):
    """Outcome of ReportJobRunner.run(): either data or a single error."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    data: list[Any] | None = None
    error: ReportJobError | None = None
    job_id: str | None = None
    poll_attempt_count: int = 0
    job: Any = Field(default=None, exclude=True, repr=False)

    @model_validator(mode="after")
    def validate_outcome(self) -> "ReportJobResult":
        if self.success and self.error is not None:
            raise ValueError("successful result cannot carry an error")
        if not self.success and self.error is None:
            raise ValueError("failed result requires an error")
        return self

    @property
    def row_count(self) -> int:
        return len(self.data) if self.data is not None else 0

    def summary(self) -> dict[str, Any]:
        """JSON-friendly summary without the rows."""
        return {
            "success": self.success,
            "job_id": self.job_id,
            "rows": self.row_count,
            "poll_attempt_count": self.poll_attempt_count,
            "error": self.error.model_dump(mode="json") if self.error else None,
        }


__all__ = [
    "JobPhase",
    "ReportConfiguration",
    "ReportJobSpec",
    "ReportStatusResponse",
    "ReportJobError",
    "ReportJobResult",
    "REPORT_FORMAT",
]
