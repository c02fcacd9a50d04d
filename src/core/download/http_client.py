"""
Core HTTP download client using aiohttp.

Report payloads arrive as gzip-compressed JSON behind presigned URLs. The
session used here must not decompress responses itself: the body is the
gzip file, and it is decompressed explicitly by decode_gzip_json().

No retries happen here; callers wrap downloads in RetryingInvoker (and
optionally the outer backoff policy).
"""

import asyncio
import gzip
import json
import logging
import zlib
from dataclasses import dataclass
from typing import Any

import aiohttp

from core.errors.exceptions import (
    ApiError,
    PayloadDecodeError,
    RateLimitError,
    TransientNetworkError,
)

logger = logging.getLogger(__name__)

GZIP_MAGIC = b"\x1f\x8b"


@dataclass
class DownloadResponse:
    """Response from HTTP download operation with content and metadata."""

    content: bytes
    status_code: int
    content_length: int | None = None
    content_type: str | None = None


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


def _strip_query(url: str) -> str:
    # Presigned URLs carry credentials in the query string
    return url.split("?", 1)[0]


async def download_bytes(
    url: str,
    session: aiohttp.ClientSession,
    timeout: int = 300,
    sock_read_timeout: int = 60,
    allow_redirects: bool = True,
) -> DownloadResponse:
    """
    Download a URL into memory without decompressing it.

    Args:
        url: URL to download (typically a presigned S3 URL)
        session: aiohttp ClientSession created with auto_decompress=False
        timeout: Total timeout in seconds
        sock_read_timeout: Socket read timeout to prevent hanging on stalled connections
        allow_redirects: Whether to follow redirects

    Returns:
        DownloadResponse with the raw body

    Raises:
        RateLimitError: HTTP 429
        ApiError: Any other non-200 status
        TransientNetworkError: Connection failure or timeout
    """
    safe_url = _strip_query(url)
    try:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout, sock_read=sock_read_timeout),
            allow_redirects=allow_redirects,
        ) as response:
            if response.status != 200:
                body = await response.text()
                if response.status == 429:
                    raise RateLimitError(
                        f"Download throttled: HTTP 429 for {safe_url}",
                        retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                        body=body[:1000],
                        url=safe_url,
                    )
                raise ApiError(
                    f"Download failed: HTTP {response.status} for {safe_url}",
                    status_code=response.status,
                    body=body[:1000],
                    url=safe_url,
                )

            content = await response.read()
            logger.debug(
                "Downloaded report payload",
                extra={
                    "download_url": safe_url,
                    "bytes_downloaded": len(content),
                },
            )
            return DownloadResponse(
                content=content,
                status_code=response.status,
                content_length=response.content_length,
                content_type=response.headers.get("Content-Type"),
            )

    except (aiohttp.ClientConnectionError, asyncio.TimeoutError) as e:
        raise TransientNetworkError(
            f"Download failed, no response: {type(e).__name__}",
            cause=e,
            context={"download_url": safe_url},
        ) from e


def decode_gzip_json(content: bytes) -> Any:
    """
    Decompress a gzip payload and parse it as UTF-8 JSON.

    A body without the gzip magic number is parsed as plain JSON, which
    covers payloads a proxy already decompressed.

    Raises:
        PayloadDecodeError: If the body is not valid gzip or JSON
    """
    try:
        raw = gzip.decompress(content) if content[:2] == GZIP_MAGIC else content
    except (OSError, EOFError, zlib.error) as e:
        raise PayloadDecodeError("Report payload is not valid gzip", cause=e) from e

    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise PayloadDecodeError("Report payload is not valid JSON", cause=e) from e


def create_session(
    max_connections: int = 100,
    max_connections_per_host: int = 10,
    enable_ssl: bool = True,
    timeout_total: int = 300,
    timeout_connect: int = 30,
    timeout_sock_read: int = 60,
    auto_decompress: bool = False,
) -> aiohttp.ClientSession:
    """
    Create aiohttp ClientSession for payload downloads.

    Args:
        max_connections: Total connection pool size (default: 100)
        max_connections_per_host: Per-host connection limit (default: 10)
        enable_ssl: Enable SSL verification (default: True)
        timeout_total: Total timeout in seconds (default: 300)
        timeout_connect: Connection timeout in seconds (default: 30)
        timeout_sock_read: Socket read timeout in seconds (default: 60)
        auto_decompress: Let aiohttp decode Content-Encoding (default: False,
            report bodies are gzip files and are decompressed explicitly)

    Note:
        Caller is responsible for session lifecycle management:

        async with create_session() as session:
            response = await download_bytes(url, session)
    """
    connector = aiohttp.TCPConnector(
        limit=max_connections,
        limit_per_host=max_connections_per_host,
        ssl=enable_ssl,
    )
    timeout = aiohttp.ClientTimeout(
        total=timeout_total,
        connect=timeout_connect,
        sock_read=timeout_sock_read,
    )
    return aiohttp.ClientSession(
        connector=connector,
        timeout=timeout,
        auto_decompress=auto_decompress,
    )


__all__ = [
    "DownloadResponse",
    "download_bytes",
    "decode_gzip_json",
    "create_session",
    "GZIP_MAGIC",
]
