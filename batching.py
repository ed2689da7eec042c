"""Fixed-size chunking for bulk embedding and upsert calls."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from itertools import islice
from typing import TypeVar

from errors import InvalidArgumentError

T = TypeVar("T")


def batched(source: Iterable[T], size: int) -> Iterator[list[T]]:
    """Split ``source`` into consecutive lists of ``size`` items.

    Only the last chunk may be shorter; an empty source yields nothing. The
    size is validated here, at call time, rather than on first ``next()``.
    """
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise InvalidArgumentError(f"Batch size must be a positive integer, got {size!r}")
    return _iter_batches(iter(source), size)


def _iter_batches(iterator: Iterator[T], size: int) -> Iterator[list[T]]:
    while True:
        chunk = list(islice(iterator, size))
        if not chunk:
            return
        yield chunk
