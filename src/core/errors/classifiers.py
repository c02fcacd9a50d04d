"""
Centralized failure classification for remote API calls.

Every failure surfaced from the advertising API, the seller-data API, or the
token endpoint goes through classify(). Error shapes vary a lot:

- HTTP status on the exception (status_code / status / response.status)
- Amazon-style body: {"errors": [{"code": "Unauthorized", "message": "..."}]}
- Flat body: {"code": "...", "message": "..."}
- OAuth body: {"error": "invalid_grant", "error_description": "..."}
- Only a message string (or an errno-style code such as ECONNRESET)

All pattern matching lives here so that retry decisions are auditable in one
place.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional

import aiohttp

from core.errors.exceptions import AdsSyncError
from core.types import ErrorCategory

logger = logging.getLogger(__name__)


# Checked before AUTH_EXPIRED: "refresh token expired" also contains "token expired"
INVALID_CREDENTIAL_PATTERNS = (
    re.compile(r"invalid_grant"),
    re.compile(r"refresh[ _]token (?:is |has )?(?:invalid|expired|revoked|been revoked)"),
    re.compile(r"(?:invalid|expired|revoked) refresh[ _]token"),
)

AUTH_EXPIRED_PATTERNS = (
    re.compile(r"unauthorized"),
    re.compile(r"invalid[ _]token"),
    re.compile(r"invalid access token"),
    re.compile(r"token[ _]expired"),
    re.compile(r"access denied"),
    re.compile(r"access to requested resource is denied"),
    re.compile(r"authentication failed"),
    re.compile(r"authenticating\b.*\btoken"),
)

NETWORK_ERROR_MARKERS = frozenset(
    {
        "econnreset",
        "etimedout",
        "econnrefused",
        "econnaborted",
        "epipe",
        "enotfound",
        "eai_again",
        "socket hang up",
        "connection reset",
        "connection refused",
        "connection aborted",
        "timed out",
        "no response received",
    }
)

NETWORK_ERROR_TYPES: tuple[type[BaseException], ...] = (
    aiohttp.ClientConnectionError,
    aiohttp.ServerTimeoutError,
    asyncio.TimeoutError,
    TimeoutError,
    ConnectionError,
)


@dataclass(frozen=True)
class ClassifiedError:
    """
    Result of classifying one failure. Derived and never stored.

    Attributes:
        kind: Error category deciding how the failure is handled
        cause: The original exception
        status_code: HTTP status if one was found
        message: Short description (first 500 chars of str(cause))
    """

    kind: ErrorCategory
    cause: Optional[BaseException]
    status_code: Optional[int] = None
    message: str = ""

    @property
    def is_auth_expired(self) -> bool:
        return self.kind == ErrorCategory.AUTH_EXPIRED

    @property
    def is_backoff_candidate(self) -> bool:
        """Whether an outer retry-with-backoff policy may retry this failure."""
        return self.kind in (ErrorCategory.RATE_LIMITED, ErrorCategory.TRANSIENT_NETWORK)


def _extract_status(error: BaseException) -> Optional[int]:
    """Find an HTTP status on the exception or its response object."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status", "status_code"):
            value = getattr(response, attr, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
    return None


def _extract_body(error: BaseException) -> Any:
    """Find a structured response body on the exception."""
    for attr in ("body", "response_body"):
        value = getattr(error, attr, None)
        if value is not None:
            return value

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("data", "body"):
            value = getattr(response, attr, None)
            if value is not None:
                return value
    return None


def _body_texts(body: Any) -> list[str]:
    """Collect lower-cased code/message strings from a response body."""
    texts: list[str] = []
    if isinstance(body, (str, bytes)):
        text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
        texts.append(text.lower())
        return texts

    if not isinstance(body, dict):
        return texts

    errors = body.get("errors")
    if isinstance(errors, list):
        for entry in errors:
            if not isinstance(entry, dict):
                continue
            for key in ("code", "message", "details"):
                value = entry.get(key)
                if isinstance(value, str):
                    texts.append(value.lower())

    for key in ("code", "message", "error", "error_description", "details"):
        value = body.get(key)
        if isinstance(value, str):
            texts.append(value.lower())
    return texts


def _matches(patterns: Iterable[re.Pattern], texts: Iterable[str]) -> bool:
    return any(pattern.search(text) for text in texts for pattern in patterns)


def _is_network_error(error: BaseException, texts: list[str]) -> bool:
    if isinstance(error, aiohttp.ClientResponseError):
        # A response was received, so this is not a network fault
        return False
    if isinstance(error, NETWORK_ERROR_TYPES):
        return True

    code = getattr(error, "code", None)
    if isinstance(code, str) and code.lower() in NETWORK_ERROR_MARKERS:
        return True

    return any(marker in text for text in texts for marker in NETWORK_ERROR_MARKERS)


def _classify(error: BaseException) -> ClassifiedError:
    message = str(error)[:500]

    # Already classified at the raise site
    if isinstance(error, AdsSyncError) and error.category != ErrorCategory.UNCLASSIFIED:
        return ClassifiedError(
            kind=error.category,
            cause=error,
            status_code=_extract_status(error),
            message=message,
        )

    status = _extract_status(error)
    texts = _body_texts(_extract_body(error))
    texts.append(message.lower())

    if _matches(INVALID_CREDENTIAL_PATTERNS, texts):
        kind = ErrorCategory.PERMANENT_INVALID_CREDENTIAL
    elif status == 401 or _matches(AUTH_EXPIRED_PATTERNS, texts):
        kind = ErrorCategory.AUTH_EXPIRED
    elif status == 429:
        kind = ErrorCategory.RATE_LIMITED
    elif status is None and _is_network_error(error, texts):
        kind = ErrorCategory.TRANSIENT_NETWORK
    else:
        kind = ErrorCategory.UNCLASSIFIED

    return ClassifiedError(kind=kind, cause=error, status_code=status, message=message)


def classify(error: BaseException) -> ClassifiedError:
    """
    Classify a failure into an ErrorCategory.

    Never raises: a malformed error object degrades to UNCLASSIFIED.

    Args:
        error: Any exception surfaced from an HTTP call

    Returns:
        ClassifiedError with the category and the original cause
    """
    try:
        return _classify(error)
    except Exception as e:
        logger.debug(
            "Error classifier failed, treating as unclassified",
            extra={"error_type": type(error).__name__, "error_message": str(e)[:200]},
        )
        return ClassifiedError(kind=ErrorCategory.UNCLASSIFIED, cause=error)


def is_auth_expired(error: BaseException) -> bool:
    """Check if a failure should trigger one coordinated token refresh."""
    return classify(error).is_auth_expired


__all__ = [
    "ClassifiedError",
    "classify",
    "is_auth_expired",
    "AUTH_EXPIRED_PATTERNS",
    "INVALID_CREDENTIAL_PATTERNS",
    "NETWORK_ERROR_MARKERS",
]
