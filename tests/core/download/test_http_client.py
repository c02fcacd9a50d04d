"""
Tests for core.download.http_client module.

Tests cover:
- Successful downloads (raw body, no decompression)
- HTTP error status codes
- Timeouts and connection errors
- Gzip JSON decoding
- Session creation
"""

import asyncio
import gzip
import json
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from core.download.http_client import (
    DownloadResponse,
    create_session,
    decode_gzip_json,
    download_bytes,
)
from core.errors.exceptions import (
    ApiError,
    PayloadDecodeError,
    RateLimitError,
    TransientNetworkError,
)

PRESIGNED_URL = "https://reports.s3.amazonaws.com/r-1.json.gz?X-Amz-Signature=abc123&X-Amz-Expires=3600"


def _response(status=200, body=b"", text="", headers=None):
    mock_response = AsyncMock()
    mock_response.status = status
    mock_response.content_length = len(body)
    mock_response.headers = headers or {"Content-Type": "application/x-gzip"}
    mock_response.read = AsyncMock(return_value=body)
    mock_response.text = AsyncMock(return_value=text)
    mock_response.__aenter__ = AsyncMock(return_value=mock_response)
    mock_response.__aexit__ = AsyncMock(return_value=None)
    return mock_response


def _session(response=None, side_effect=None):
    mock_session = AsyncMock()
    mock_session.get = MagicMock(return_value=response, side_effect=side_effect)
    return mock_session


class TestDownloadBytes:
    """Tests for download_bytes function."""

    @pytest.mark.asyncio
    async def test_successful_download_returns_raw_body(self):
        payload = gzip.compress(b'[{"clicks": 1}]')
        session = _session(_response(body=payload))

        response = await download_bytes(PRESIGNED_URL, session, timeout=30)

        assert isinstance(response, DownloadResponse)
        assert response.content == payload
        assert response.status_code == 200
        assert response.content_type == "application/x-gzip"

        call_args = session.get.call_args
        assert call_args[0][0] == PRESIGNED_URL
        assert call_args[1]["allow_redirects"] is True
        assert "headers" not in call_args[1]

    @pytest.mark.asyncio
    async def test_http_error_hides_query_string(self):
        session = _session(_response(status=403, text="<Error>AccessDenied</Error>"))

        with pytest.raises(ApiError) as exc_info:
            await download_bytes(PRESIGNED_URL, session)

        error = exc_info.value
        assert error.status_code == 403
        assert error.url == "https://reports.s3.amazonaws.com/r-1.json.gz"
        assert "X-Amz-Signature" not in str(error)

    @pytest.mark.asyncio
    async def test_http_429_is_rate_limited(self):
        session = _session(_response(status=429, text="SlowDown", headers={"Retry-After": "5"}))

        with pytest.raises(RateLimitError) as exc_info:
            await download_bytes(PRESIGNED_URL, session)

        assert exc_info.value.retry_after == 5.0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [asyncio.TimeoutError(), aiohttp.ClientConnectionError("Connection reset by peer")],
    )
    async def test_no_response_is_transient(self, error):
        session = _session(side_effect=error)

        with pytest.raises(TransientNetworkError) as exc_info:
            await download_bytes(PRESIGNED_URL, session)

        assert exc_info.value.cause is error
        assert exc_info.value.context["download_url"] == "https://reports.s3.amazonaws.com/r-1.json.gz"


class TestDecodeGzipJson:
    def test_decodes_gzip_json_array(self):
        rows = [{"campaignId": 1, "clicks": 10}, {"campaignId": 2, "clicks": 0}]
        assert decode_gzip_json(gzip.compress(json.dumps(rows).encode("utf-8"))) == rows

    def test_utf8_content(self):
        rows = [{"searchTerm": "bücher für kinder"}]
        payload = gzip.compress(json.dumps(rows, ensure_ascii=False).encode("utf-8"))
        assert decode_gzip_json(payload) == rows

    def test_plain_json_without_gzip_magic(self):
        assert decode_gzip_json(b'[{"clicks": 3}]') == [{"clicks": 3}]

    def test_empty_array(self):
        assert decode_gzip_json(gzip.compress(b"[]")) == []

    def test_truncated_gzip(self):
        payload = gzip.compress(b'[{"clicks": 3}]' * 100)
        with pytest.raises(PayloadDecodeError, match="not valid gzip"):
            decode_gzip_json(payload[: len(payload) // 2])

    def test_invalid_json(self):
        with pytest.raises(PayloadDecodeError, match="not valid JSON"):
            decode_gzip_json(gzip.compress(b"{not json"))

    def test_invalid_utf8(self):
        with pytest.raises(PayloadDecodeError):
            decode_gzip_json(gzip.compress(b"\xff\xfe\x00"))


class TestCreateSession:
    @pytest.mark.asyncio
    async def test_session_does_not_auto_decompress(self):
        session = create_session()
        try:
            assert isinstance(session, aiohttp.ClientSession)
            assert session.auto_decompress is False
        finally:
            await session.close()
