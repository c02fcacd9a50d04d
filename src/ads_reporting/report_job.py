"""
Report job state machine: create -> poll -> download -> decode.

Every network step goes through RetryingInvoker, so an access token that
expires in the middle of a long poll is refreshed and the step retried
once without aborting the job.

States:
    CREATING  -> POLLING    report created, job_id assigned
    POLLING   -> POLLING    remote PENDING / PROCESSING, sleep and poll again
    POLLING   -> COMPLETED  remote COMPLETED with a download url
    any       -> FAILED     any unresolved failure (terminal, no retry)
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from ads_reporting.api_client import AdsApiClient
from ads_reporting.chunking import DEFAULT_CHUNK_SIZE, collect_in_chunks
from ads_reporting.models import (
    JobPhase,
    ReportJobError,
    ReportJobResult,
    ReportJobSpec,
    ReportStatusResponse,
)
from core.download.http_client import decode_gzip_json
from core.errors.classifiers import classify
from core.errors.exceptions import (
    PayloadDecodeError,
    ReportGenerationFailedError,
    ReportPollTimeoutError,
    UnknownReportStatusError,
)
from core.logging.context_managers import LogContext, log_phase
from core.oauth2.models import REPORTING_SLOT, PrincipalCredentials
from core.resilience.invoker import RetryingInvoker

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 60.0

COMPLETED_STATUS = "COMPLETED"
FAILURE_STATUSES = frozenset({"FAILURE", "FAILED", "CANCELLED"})
PENDING_STATUSES = frozenset({"PENDING", "PROCESSING"})

RowTransform = Callable[[Any], Any]


class JobState(str, Enum):
    CREATING = "CREATING"
    POLLING = "POLLING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass
class ReportJob:
    """
    One create/poll/download cycle for one principal.

    Owned by ReportJobRunner while running; handed to the caller (inside
    ReportJobResult) once it reaches COMPLETED or FAILED. Never persisted.
    """

    principal_id: str
    spec: ReportJobSpec
    state: JobState = JobState.CREATING
    job_id: str | None = None
    download_location: str | None = None
    poll_attempt_count: int = 0
    remote_status: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    history: list[JobState] = field(default_factory=lambda: [JobState.CREATING])
    error: ReportJobError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in (JobState.COMPLETED, JobState.FAILED)

    def transition(self, new_state: JobState) -> None:
        """Move to new_state; staying in the same state is not recorded."""
        if new_state == self.state:
            return
        previous = self.state
        self.state = new_state
        self.history.append(new_state)
        logger.info(
            f"Report job {previous.value} -> {new_state.value}",
            extra={
                "job_id": self.job_id,
                "job_state": new_state.value,
                "previous_state": previous.value,
                "poll_attempt": self.poll_attempt_count,
            },
        )


class ReportJobRunner:
    """
    Drives ReportJobs to a terminal state.

    Polling has no attempt ceiling unless max_poll_attempts or
    poll_timeout_seconds is set. The sleep and clock are injectable so tests
    do not wait.

    Usage:
        runner = ReportJobRunner(client, RetryingInvoker(coordinator))
        result = await runner.run("acct-1", {"reporting": refresh_token}, spec)
        if result.success:
            rows = result.data
    """

    def __init__(
        self,
        client: AdsApiClient,
        invoker: RetryingInvoker,
        poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        max_poll_attempts: int | None = None,
        poll_timeout_seconds: float | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_poll_attempts is not None and max_poll_attempts < 1:
            raise ValueError(f"max_poll_attempts must be >= 1, got {max_poll_attempts}")
        self.client = client
        self.invoker = invoker
        self.poll_interval_seconds = poll_interval_seconds
        self.max_poll_attempts = max_poll_attempts
        self.poll_timeout_seconds = poll_timeout_seconds
        self.chunk_size = chunk_size
        self._sleep = sleep
        self._clock = clock

    async def run(
        self,
        principal_id: str,
        refresh_tokens: Mapping[str, str | None],
        spec: ReportJobSpec,
        transform: RowTransform | None = None,
    ) -> ReportJobResult:
        """
        Run one report job to completion.

        Returns:
            ReportJobResult with the transformed rows, or with a single
            ReportJobError naming the failed phase. Cancellation is not
            turned into a result; CancelledError propagates.
        """
        job = ReportJob(principal_id=principal_id, spec=spec)

        with LogContext(principal_id=principal_id):
            try:
                with log_phase(logger, JobPhase.CREATE.value, report_type=spec.configuration.report_type_id):
                    job.job_id = await self._create(job, refresh_tokens)
            except Exception as e:
                return self._fail(job, JobPhase.CREATE, e)

            with LogContext(job_id=job.job_id):
                job.transition(JobState.POLLING)
                try:
                    with log_phase(logger, JobPhase.POLL.value, report_id=job.job_id):
                        await self._poll(job, refresh_tokens)
                except Exception as e:
                    return self._fail(job, JobPhase.POLL, e)

                try:
                    with log_phase(logger, JobPhase.DOWNLOAD.value, report_id=job.job_id):
                        payload = await self._download(job, refresh_tokens)
                except Exception as e:
                    return self._fail(job, JobPhase.DOWNLOAD, e)

                try:
                    with log_phase(logger, JobPhase.DECODE.value, report_id=job.job_id):
                        rows = await self._decode(payload, transform)
                except Exception as e:
                    return self._fail(job, JobPhase.DECODE, e)

                logger.info(
                    "Report job finished",
                    extra={
                        "report_id": job.job_id,
                        "rows": len(rows),
                        "poll_attempt": job.poll_attempt_count,
                    },
                )
                return ReportJobResult(
                    success=True,
                    data=rows,
                    job_id=job.job_id,
                    poll_attempt_count=job.poll_attempt_count,
                    job=job,
                )

    async def _create(self, job: ReportJob, refresh_tokens: Mapping[str, str | None]) -> str:
        spec = job.spec

        async def create_report(creds: PrincipalCredentials) -> str:
            return await self.client.create_report(
                creds.access_token(REPORTING_SLOT), spec.profile_id, spec
            )

        return await self.invoker.invoke(
            create_report, job.principal_id, refresh_tokens, slots=[REPORTING_SLOT]
        )

    async def _check_status(
        self, job: ReportJob, refresh_tokens: Mapping[str, str | None]
    ) -> ReportStatusResponse:
        async def get_report_status(creds: PrincipalCredentials) -> ReportStatusResponse:
            return await self.client.get_report_status(
                creds.access_token(REPORTING_SLOT), job.spec.profile_id, job.job_id
            )

        return await self.invoker.invoke(
            get_report_status, job.principal_id, refresh_tokens, slots=[REPORTING_SLOT]
        )

    async def _poll(self, job: ReportJob, refresh_tokens: Mapping[str, str | None]) -> None:
        deadline = (
            self._clock() + self.poll_timeout_seconds
            if self.poll_timeout_seconds is not None
            else None
        )

        while True:
            response = await self._check_status(job, refresh_tokens)
            status = (response.status or "").upper()
            job.remote_status = status

            if status == COMPLETED_STATUS:
                if not response.url:
                    raise ReportGenerationFailedError(
                        job.job_id, status, "completed without a download url"
                    )
                job.download_location = response.url
                job.transition(JobState.COMPLETED)
                return

            if status in FAILURE_STATUSES:
                raise ReportGenerationFailedError(job.job_id, status, response.failure_reason)

            if status not in PENDING_STATUSES:
                raise UnknownReportStatusError(response.status, job.job_id)

            job.poll_attempt_count += 1
            logger.debug(
                f"Report {job.job_id} status: {status}",
                extra={
                    "report_status": status,
                    "poll_attempt": job.poll_attempt_count,
                    "poll_interval_seconds": self.poll_interval_seconds,
                },
            )

            if self.max_poll_attempts is not None and job.poll_attempt_count >= self.max_poll_attempts:
                raise ReportPollTimeoutError(
                    job.job_id, job.poll_attempt_count, "max_poll_attempts reached"
                )
            if deadline is not None and self._clock() + self.poll_interval_seconds > deadline:
                raise ReportPollTimeoutError(
                    job.job_id, job.poll_attempt_count, "poll_timeout_seconds exceeded"
                )

            await self._sleep(self.poll_interval_seconds)

    async def _download(self, job: ReportJob, refresh_tokens: Mapping[str, str | None]) -> bytes:
        location = job.download_location

        # Presigned url: credentials are only needed to keep the invoker contract
        async def download_report(creds: PrincipalCredentials) -> bytes:
            return await self.client.download_report(location)

        return await self.invoker.invoke(
            download_report, job.principal_id, refresh_tokens, slots=[REPORTING_SLOT]
        )

    async def _decode(self, payload: bytes, transform: RowTransform | None) -> list[Any]:
        decoded = decode_gzip_json(payload)
        if not isinstance(decoded, list):
            raise PayloadDecodeError(
                f"Report payload is a JSON {type(decoded).__name__}, expected an array"
            )
        return await collect_in_chunks(decoded, transform or _identity, self.chunk_size)

    def _fail(self, job: ReportJob, phase: JobPhase, error: Exception) -> ReportJobResult:
        classified = classify(error)
        job.error = ReportJobError(
            phase=phase,
            kind=classified.kind,
            message=str(error)[:500],
            job_id=job.job_id,
            cause=error,
        )
        job.transition(JobState.FAILED)
        logger.warning(
            f"Report job failed in {phase.value} phase",
            extra={
                "phase": phase.value,
                "report_id": job.job_id,
                "error_category": classified.kind.value,
                "error_type": type(error).__name__,
                "error_message": job.error.message[:200],
                "http_status": classified.status_code,
            },
        )
        return ReportJobResult(
            success=False,
            error=job.error,
            job_id=job.job_id,
            poll_attempt_count=job.poll_attempt_count,
            job=job,
        )


def _identity(item: Any) -> Any:
    return item


__all__ = [
    "JobState",
    "ReportJob",
    "ReportJobRunner",
    "DEFAULT_POLL_INTERVAL_SECONDS",
    "COMPLETED_STATUS",
    "FAILURE_STATUSES",
    "PENDING_STATUSES",
]
