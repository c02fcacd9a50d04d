"""
Async download of gzip-compressed JSON report payloads.

Example usage:
    from core.download import create_session, decode_gzip_json, download_bytes

    async with create_session() as session:
        response = await download_bytes(url, session)
    rows = decode_gzip_json(response.content)
"""

from core.download.http_client import (
    GZIP_MAGIC,
    DownloadResponse,
    create_session,
    decode_gzip_json,
    download_bytes,
)

__all__ = [
    "download_bytes",
    "decode_gzip_json",
    "create_session",
    "DownloadResponse",
    "GZIP_MAGIC",
]
