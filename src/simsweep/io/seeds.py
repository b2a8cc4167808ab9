# src/simsweep/io/seeds.py
from __future__ import annotations

import random
from contextlib import contextmanager
from typing import Iterator

import numpy as np


def rng_for_trial(trial: int) -> np.random.Generator:
    """Fresh generator keyed by the trial id alone.

    Every setting run under the same trial gets an identical stream, which is
    what makes paired comparisons across settings possible.
    """
    if not isinstance(trial, (int, np.integer)) or isinstance(trial, bool):
        raise TypeError(f"trial must be an int, got {trial!r}")
    return np.random.default_rng(np.random.SeedSequence(int(trial)))


def set_seed(seed: int) -> int:
    """Pin the global ``random`` and ``numpy.random`` state; returns the seed."""
    s = int(seed)
    random.seed(s)
    np.random.seed(s)
    return s


@contextmanager
def trial_random_state(trial: int) -> Iterator[np.random.Generator]:
    """Seed the global RNGs from ``trial`` for the block, then restore them.

    Yields the explicit per-trial generator as well. Global state is process
    wide, so concurrent threads must not enter this block; use
    :func:`rng_for_trial` alone there.
    """
    py_state = random.getstate()
    np_state = np.random.get_state()
    try:
        set_seed(trial)
        yield rng_for_trial(trial)
    finally:
        random.setstate(py_state)
        np.random.set_state(np_state)
