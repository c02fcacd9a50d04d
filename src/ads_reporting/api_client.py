"""Advertising API client for async (v3) reports and profiles."""

import asyncio
import json
import logging
import re
from typing import Any

import aiohttp

from config.config import REGION_BASE_URLS
from core.download.http_client import create_session, download_bytes
from core.errors.exceptions import (
    ApiError,
    ConfigurationError,
    DuplicateReportRequestError,
    RateLimitError,
    TransientNetworkError,
)
from core.logging.context import get_log_context
from ads_reporting.models import ReportJobSpec, ReportStatusResponse

logger = logging.getLogger(__name__)

CREATE_REPORT_CONTENT_TYPE = "application/vnd.createasyncreportrequest.v3+json"
REPORTS_PATH = "/reporting/reports"
PROFILES_PATH = "/v2/profiles"

_DUPLICATE_ID_PATTERN = re.compile(r"duplicate of\s*:?\s*([\w-]+)", re.IGNORECASE)


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _error_detail(body: Any) -> str:
    """Short human-readable detail from an error body."""
    if isinstance(body, dict):
        errors = body.get("errors")
        if isinstance(errors, list) and errors and isinstance(errors[0], dict):
            first = errors[0]
            return str(first.get("message") or first.get("code") or first)[:300]
        for key in ("details", "detail", "message", "code"):
            if body.get(key):
                return str(body[key])[:300]
    if body:
        return str(body)[:300]
    return "no response body"


class AdsApiClient:
    """
    Async client for the advertising reporting API.

    One client serves all principals: access tokens and profile ids are
    passed per call, so it can sit behind RetryingInvoker.

    Usage:
        async with AdsApiClient(client_id, region="EU") as client:
            report_id = await client.create_report(token, profile_id, spec)
            status = await client.get_report_status(token, profile_id, report_id)
            payload = await client.download_report(status.url)
    """

    def __init__(
        self,
        client_id: str,
        region: str = "NA",
        base_url: str | None = None,
        timeout_seconds: int = 30,
        max_concurrent: int = 10,
        download_timeout_seconds: int = 300,
    ):
        if not client_id:
            raise ConfigurationError("AdsApiClient requires 'client_id' (set ADS_CLIENT_ID)")

        if base_url:
            self.base_url = base_url.rstrip("/")
        else:
            region = (region or "").upper()
            if region not in REGION_BASE_URLS:
                raise ConfigurationError(
                    f"Invalid region: {region}. Valid regions are: {', '.join(REGION_BASE_URLS)}"
                )
            self.base_url = REGION_BASE_URLS[region]

        if not self.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(
                f"AdsApiClient base_url must start with http:// or https://, got: {self.base_url!r}"
            )

        self.client_id = client_id
        self.region = region
        self.timeout_seconds = timeout_seconds
        self.max_concurrent = max_concurrent
        self.download_timeout_seconds = download_timeout_seconds

        self._session: aiohttp.ClientSession | None = None
        self._download_session: aiohttp.ClientSession | None = None
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._closed = False

        logger.info(
            "AdsApiClient initialized",
            extra={
                "http_url": self.base_url,
                "max_concurrent": self.max_concurrent,
            },
        )

    async def __aenter__(self) -> "AdsApiClient":
        await self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("AdsApiClient is closed, cannot create new session")
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.max_concurrent,
                limit_per_host=self.max_concurrent,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={"Accept": "application/json"},
            )
        return self._session

    async def _ensure_download_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("AdsApiClient is closed, cannot create new session")
        if self._download_session is None or self._download_session.closed:
            self._download_session = create_session(
                max_connections=self.max_concurrent,
                max_connections_per_host=self.max_concurrent,
                timeout_total=self.download_timeout_seconds,
                auto_decompress=False,
            )
        return self._download_session

    async def close(self) -> None:
        self._closed = True
        for session in (self._session, self._download_session):
            if session and not session.closed:
                await session.close()
        self._session = None
        self._download_session = None
        await asyncio.sleep(0)

    @staticmethod
    def _get_context_ids() -> dict[str, str]:
        """Non-empty log context ids (principal_id, job_id, ...) for log enrichment."""
        return {k: v for k, v in get_log_context().items() if v}

    def _headers(
        self,
        access_token: str,
        profile_id: str | None = None,
        content_type: str | None = None,
    ) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Amazon-Advertising-API-ClientId": self.client_id,
        }
        if profile_id:
            headers["Amazon-Advertising-API-Scope"] = str(profile_id)
        if content_type:
            headers["Content-Type"] = content_type
        return headers

    @staticmethod
    async def _read_body(response: aiohttp.ClientResponse) -> Any:
        try:
            text = await response.text()
        except (aiohttp.ClientError, UnicodeDecodeError):
            return None
        if not text:
            return None
        try:
            return json.loads(text)
        except ValueError:
            return text

    async def _raise_for_status(
        self,
        response: aiohttp.ClientResponse,
        url: str,
        endpoint: str,
        method: str,
        duration: float,
    ) -> None:
        """Read error body, log, and raise the matching ApiError subclass."""
        body = await self._read_body(response)
        status = response.status
        detail = _error_detail(body)
        message = f"Ads API {method} {endpoint} failed: HTTP {status} - {detail}"

        logger.warning(
            "API request failed",
            extra={
                **self._get_context_ids(),
                "api_endpoint": endpoint,
                "http_method": method,
                "http_status": status,
                "error_message": detail,
                "duration_ms": round(duration * 1000, 2),
            },
        )

        if status == 429:
            raise RateLimitError(
                message,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                body=body,
                url=url,
            )
        if status == 425:
            error = DuplicateReportRequestError(message, body=body, url=url)
            match = _DUPLICATE_ID_PATTERN.search(detail)
            if match:
                error.context["duplicate_report_id"] = match.group(1)
            raise error
        raise ApiError(message, status_code=status, body=body, url=url)

    async def _request(
        self,
        method: str,
        endpoint: str,
        access_token: str,
        profile_id: str | None = None,
        json_body: dict[str, Any] | None = None,
        content_type: str | None = None,
    ) -> Any:
        session = await self._ensure_session()
        url = f"{self.base_url}{endpoint}"
        headers = self._headers(access_token, profile_id, content_type)
        data = None
        if json_body is not None:
            data = json.dumps(json_body)
            headers.setdefault("Content-Type", "application/json")

        ctx = self._get_context_ids()
        logger.debug(
            "API request starting",
            extra={**ctx, "api_endpoint": endpoint, "http_method": method},
        )

        async with self._semaphore:
            loop = asyncio.get_running_loop()
            start_time = loop.time()
            try:
                async with session.request(
                    method,
                    url,
                    data=data,
                    headers=headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                ) as response:
                    duration = loop.time() - start_time
                    if response.status >= 300:
                        await self._raise_for_status(response, url, endpoint, method, duration)

                    result = await self._read_body(response)

                    log_level = logging.INFO if duration > 2.0 else logging.DEBUG
                    logger.log(
                        log_level,
                        "Slow API request" if duration > 2.0 else "API request succeeded",
                        extra={
                            **ctx,
                            "api_endpoint": endpoint,
                            "http_method": method,
                            "http_status": response.status,
                            "duration_ms": round(duration * 1000, 2),
                        },
                    )
                    return result

            except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
                duration = loop.time() - start_time
                logger.warning(
                    "API request got no response",
                    extra={
                        **ctx,
                        "api_endpoint": endpoint,
                        "http_method": method,
                        "error_type": type(e).__name__,
                        "duration_ms": round(duration * 1000, 2),
                    },
                )
                raise TransientNetworkError(
                    f"No response received from Ads API ({method} {endpoint})",
                    cause=e,
                    context={"api_endpoint": endpoint},
                ) from e

    async def create_report(
        self,
        access_token: str,
        profile_id: str,
        spec: ReportJobSpec,
    ) -> str:
        """
        Create an async report.

        Returns:
            Report id assigned by the API

        Raises:
            DuplicateReportRequestError: HTTP 425, an identical request is in progress
            ApiError: Any other non-2xx response, or no reportId in the response
        """
        body = await self._request(
            "POST",
            REPORTS_PATH,
            access_token,
            profile_id=profile_id,
            json_body=spec.to_request_body(),
            content_type=CREATE_REPORT_CONTENT_TYPE,
        )
        report_id = body.get("reportId") if isinstance(body, dict) else None
        if not report_id:
            raise ApiError(
                "Create report response has no reportId",
                status_code=200,
                body=body,
                url=f"{self.base_url}{REPORTS_PATH}",
            )

        logger.info(
            "Report created",
            extra={
                "report_id": report_id,
                "profile_id": profile_id,
                "report_type": spec.configuration.report_type_id,
            },
        )
        return str(report_id)

    async def get_report_status(
        self,
        access_token: str,
        profile_id: str,
        report_id: str,
    ) -> ReportStatusResponse:
        """Fetch the current status (and download url, once completed) of a report."""
        body = await self._request(
            "GET",
            f"{REPORTS_PATH}/{report_id}",
            access_token,
            profile_id=profile_id,
            content_type=CREATE_REPORT_CONTENT_TYPE,
        )
        if not isinstance(body, dict) or "status" not in body:
            raise ApiError(
                f"Report status response for {report_id} has no status",
                status_code=200,
                body=body,
            )
        body.setdefault("reportId", report_id)
        return ReportStatusResponse.model_validate(body)

    async def download_report(self, url: str) -> bytes:
        """
        Download a completed report's gzip payload.

        The url is presigned, so no auth headers are sent, and the body is
        returned still compressed.
        """
        session = await self._ensure_download_session()
        async with self._semaphore:
            response = await download_bytes(
                url,
                session,
                timeout=self.download_timeout_seconds,
            )
        return response.content

    async def list_profiles(self, access_token: str) -> list[dict[str, Any]]:
        """List advertising profiles (one per marketplace) visible to the token."""
        body = await self._request("GET", PROFILES_PATH, access_token)
        if not isinstance(body, list):
            raise ApiError("Profiles response is not a list", status_code=200, body=body)
        return body

    @staticmethod
    def find_profile_id(profiles: list[dict[str, Any]], country_code: str) -> str | None:
        """Pick the profile id for a marketplace country code (e.g. "US", "DE")."""
        wanted = country_code.upper()
        for profile in profiles:
            if str(profile.get("countryCode", "")).upper() == wanted:
                profile_id = profile.get("profileId")
                return str(profile_id) if profile_id is not None else None
        return None


__all__ = [
    "AdsApiClient",
    "CREATE_REPORT_CONTENT_TYPE",
    "REPORTS_PATH",
    "PROFILES_PATH",
]
