"""Cooperative, fixed-size chunked processing of decoded report rows."""

import asyncio
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any, TypeVar

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_CHUNK_SIZE = 500


async def transform_in_chunks(
    items: Sequence[T],
    fn: Callable[[T], R],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> AsyncIterator[R]:
    """
    Apply fn to every item, yielding to the event loop between slices.

    Items are processed synchronously within a slice of chunk_size, then
    control returns to the scheduler once before the next slice (never
    after the last one), so a large decode does not starve other tasks.
    Order is preserved and every item is produced exactly once.

    Args:
        items: Decoded rows
        fn: Per-item transform
        chunk_size: Items per slice (must be positive)

    Raises:
        ValueError: If chunk_size is not positive
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    total = len(items)
    for start in range(0, total, chunk_size):
        for item in items[start : start + chunk_size]:
            yield fn(item)
        if start + chunk_size < total:
            await asyncio.sleep(0)


async def collect_in_chunks(
    items: Sequence[T],
    fn: Callable[[T], R],
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> list[R]:
    """Run transform_in_chunks to completion and return the results."""
    return [item async for item in transform_in_chunks(items, fn, chunk_size)]


def rename_columns(mapping: Mapping[str, str]) -> Callable[[dict[str, Any]], dict[str, Any]]:
    """
    Build a row transform that renames keys.

    Keys not in mapping are kept as-is.

    Example:
        >>> rename_columns({"sales30d": "sales"})({"sales30d": 12.5, "cost": 3})
        {'sales': 12.5, 'cost': 3}
    """

    def _rename(row: dict[str, Any]) -> dict[str, Any]:
        return {mapping.get(key, key): value for key, value in row.items()}

    return _rename


__all__ = [
    "transform_in_chunks",
    "collect_in_chunks",
    "rename_columns",
    "DEFAULT_CHUNK_SIZE",
]
