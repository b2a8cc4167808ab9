"""Chunk planning for checkpointed execution.

This module splits a schedule of ``n`` positions into contiguous, near-equal
batches. Each batch is dispatched, awaited and checkpointed as a unit.
"""

from __future__ import annotations

from typing import List

import numpy as np

from .config import ConfigurationError, _is_int

__all__ = ["plan_chunks"]


def plan_chunks(n: int, chunk_count: int) -> List[range]:
    """Partition ``range(n)`` into at most ``chunk_count`` contiguous ranges.

    Parameters
    ----------
    n : int
        Schedule length. Must be ``>= 1``.
    chunk_count : int
        Desired number of chunks, ``1 <= chunk_count <= n``.

    Returns
    -------
    list of range
        Ranges of 0-based schedule positions covering ``range(n)`` exactly
        once, in order. Sizes differ by at most one.

    Raises
    ------
    ConfigurationError
        If ``n`` or ``chunk_count`` is not an integer in its valid range.

    Notes
    -----
    Boundaries are ``round(linspace(0, n, chunk_count + 1))`` with
    round-half-to-even, deduplicated. A single chunk is returned in the same
    ``list[range]`` shape as any other plan.
    """
    if not _is_int(n) or n < 1:
        raise ConfigurationError(f"schedule length must be a positive int, got {n!r}")
    if not _is_int(chunk_count) or chunk_count <= 0:
        raise ConfigurationError(f"chunk_count must be a positive int, got {chunk_count!r}")
    if chunk_count > n:
        raise ConfigurationError(f"chunk_count={chunk_count} exceeds schedule length {n}")

    bounds = np.unique(np.rint(np.linspace(0, n, chunk_count + 1)).astype(np.int64))
    return [range(int(lo), int(hi)) for lo, hi in zip(bounds[:-1], bounds[1:])]
