"""Helpers shared by the importers."""

from __future__ import annotations

import math
from collections.abc import Awaitable, Callable, Iterator, Mapping, Sequence
from typing import Any, TypeVar

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[list[T]]:
    """Yield consecutive lists of at most *size* items."""
    if size < 1:
        raise ValueError(f"chunk size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def batch_count(total: int, size: int) -> int:
    """Number of batches of *size* needed for *total* items (ceiling division)."""
    return math.ceil(total / size) if total > 0 else 0


async def chunk_requests(
    items: Sequence[T],
    size: int,
    request: Callable[[list[T]], Awaitable[Mapping[Any, Any] | Sequence[Any] | None]],
) -> list[Any]:
    """Call *request* once per chunk of *items* and concatenate the results.

    Mapping results contribute their ``(key, value)`` pairs, sequences their
    elements; ``None`` (a failed request) contributes nothing.
    """
    results: list[Any] = []
    for block in chunked(items, size):
        response = await request(block)
        if not response:
            continue
        if isinstance(response, Mapping):
            results.extend(response.items())
        else:
            results.extend(response)
    return results
