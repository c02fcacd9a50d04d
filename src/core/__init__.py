"""
Core library: reusable, API-agnostic components.

Modules:
    oauth2      - Per-principal credential cache and coordinated token refresh
    resilience  - Auth-aware retrying invoker, retry with backoff
    logging     - Structured JSON logging with principal/job context
    errors      - Error classification and exception hierarchy
    download    - Async HTTP download and gzip JSON decoding

Design Principles:
    - No knowledge of specific report types or endpoints
    - All modules are independently testable
    - Async-first where applicable
    - Type hints throughout
"""

from .types import ErrorCategory, TokenRefresher

__version__ = "0.1.0"

__all__ = [
    "ErrorCategory",
    "TokenRefresher",
]
