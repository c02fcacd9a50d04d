"""Context managers for structured logging."""

import logging
import time
from contextlib import contextmanager
from typing import Any, Dict, Optional

from core.logging.context import get_log_context, set_log_context
from core.logging.utilities import log_exception, log_with_context


class LogContext:
    """
    Context manager for temporary log context.

    Usage:
        with LogContext(principal_id="acct-1", job_id=report_id):
            # All logs in this block carry principal_id and job_id
            await run_job()
    """

    def __init__(
        self,
        principal_id: Optional[str] = None,
        job_id: Optional[str] = None,
        phase: Optional[str] = None,
        trace_id: Optional[str] = None,
    ):
        self.new_context = {
            "principal_id": principal_id,
            "job_id": job_id,
            "phase": phase,
            "trace_id": trace_id,
        }
        self.old_context: Dict[str, str] = {}

    def __enter__(self) -> "LogContext":
        self.old_context = get_log_context()
        set_log_context(**self.new_context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        set_log_context(**self.old_context)
        return False


@contextmanager
def log_phase(
    logger: logging.Logger,
    phase: str,
    level: int = logging.DEBUG,
    **context: Any,
):
    """
    Context manager for timing one phase of a report job.

    Sets the phase log context for the duration of the block. Failures are
    logged at WARNING without traceback and re-raised.

    Example:
        with log_phase(logger, "download", report_id=report_id):
            payload = await download()
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    previous = get_log_context()["phase"]
    set_log_context(phase=phase)
    start = time.perf_counter()
    try:
        yield
    except Exception as e:
        log_exception(
            logger,
            e,
            f"Phase failed: {phase}",
            level=logging.WARNING,
            include_traceback=False,
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **context,
        )
        raise
    else:
        log_with_context(
            logger,
            level,
            f"Phase complete: {phase}",
            duration_ms=round((time.perf_counter() - start) * 1000, 2),
            **context,
        )
    finally:
        set_log_context(phase=previous)
