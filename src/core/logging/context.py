"""Context variables for structured logging."""

from contextvars import ContextVar
from typing import Dict, Optional

_principal_id: ContextVar[str] = ContextVar("principal_id", default="")
_job_id: ContextVar[str] = ContextVar("job_id", default="")
_phase: ContextVar[str] = ContextVar("phase", default="")
_trace_id: ContextVar[str] = ContextVar("trace_id", default="")


def set_log_context(
    principal_id: Optional[str] = None,
    job_id: Optional[str] = None,
    phase: Optional[str] = None,
    trace_id: Optional[str] = None,
) -> None:
    if principal_id is not None:
        _principal_id.set(principal_id)
    if job_id is not None:
        _job_id.set(job_id)
    if phase is not None:
        _phase.set(phase)
    if trace_id is not None:
        _trace_id.set(trace_id)


def get_log_context() -> Dict[str, str]:
    return {
        "principal_id": _principal_id.get(),
        "job_id": _job_id.get(),
        "phase": _phase.get(),
        "trace_id": _trace_id.get(),
    }


def clear_log_context() -> None:
    _principal_id.set("")
    _job_id.set("")
    _phase.set("")
    _trace_id.set("")
