"""Shared JSON serialization for log lines and CLI output."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any


def _serialize_known_type(obj: Any) -> tuple[bool, Any]:
    """Try to serialize by known type. Returns (handled, result)."""
    if isinstance(obj, (datetime, date)):
        return True, obj.isoformat()
    if isinstance(obj, Decimal):
        return True, float(obj)
    if isinstance(obj, Path):
        return True, str(obj)
    if isinstance(obj, Enum):
        return True, obj.value
    if isinstance(obj, (set, frozenset)):
        return True, sorted(obj, key=str)
    if isinstance(obj, BaseException):
        return True, f"{type(obj).__name__}: {obj}"
    return False, None


def json_serializer(obj: Any) -> Any:
    """
    Type-safe fallback for json.dumps(default=...).

    - datetime/date -> ISO 8601 string
    - Decimal -> float (report metrics such as cost)
    - Enum -> value
    - pydantic models -> model_dump()
    - Everything else -> string
    """
    handled, result = _serialize_known_type(obj)
    if handled:
        return result
    model_dump = getattr(obj, "model_dump", None)
    if callable(model_dump):
        return model_dump(mode="json")
    return str(obj)


__all__ = ["json_serializer"]
