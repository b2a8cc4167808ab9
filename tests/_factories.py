"""Shared generator/executor callbacks for engine tests.

Module-level so the process backend can pickle them by reference.
"""

from __future__ import annotations

import os
import random
from typing import Any

import numpy as np


def trial_of_global_stream(candidates: range = range(1, 101)) -> int:
    """Recover the trial id from the global ``random`` state.

    The engine seeds the global stream with the trial id, so the first draw
    identifies it. Only valid before the callback draws anything else.
    """
    state = random.getstate()
    first = random.random()
    random.setstate(state)
    for t in candidates:
        if random.Random(t).random() == first:
            return t
    raise LookupError("global stream does not match any candidate trial")


def gen_global_normal(row: Any, state: Any) -> np.ndarray:
    return np.random.normal(size=int(row["n"]))


def gen_rng_normal(row: Any, state: Any, rng: np.random.Generator) -> np.ndarray:
    return rng.normal(size=int(row["n"]))


def gen_shift(row: Any, state: Any) -> np.ndarray:
    return np.random.normal(loc=float(row["mu"]), size=int(row["n"]))


def gen_fail_on(row: Any, state: Any) -> np.ndarray:
    """Raise for the (setting, trial) named in ``state['fail']``."""
    setting, trial = state["fail"]
    if int(row["id"]) == setting and trial_of_global_stream() == trial:
        raise RuntimeError(f"generator failure at setting={setting}, trial={trial}")
    return np.random.normal(size=int(row["n"]))


def exec_mean(data: Any, row: Any, trial: int, state: Any) -> float:
    return float(np.mean(data))


def exec_summary(data: Any, row: Any, trial: int, state: Any) -> dict:
    return {"id": int(row["id"]), "trial": int(trial), "mean": float(np.mean(data))}


def exec_fail_on(data: Any, row: Any, trial: int, state: Any) -> float:
    setting, bad_trial = state["fail"]
    if int(row["id"]) == setting and trial == bad_trial:
        raise ValueError(f"executor failure at setting={setting}, trial={trial}")
    return float(np.mean(data))


def exec_identity(data: Any, row: Any, trial: int, state: Any) -> np.ndarray:
    return np.asarray(data)


def exec_pid(data: Any, row: Any, trial: int, state: Any) -> int:
    return os.getpid()


def exec_unpicklable(data: Any, row: Any, trial: int, state: Any) -> Any:
    if int(row["id"]) == 1:
        return lambda: None
    return float(np.mean(data))


def settings_rows(n_settings: int, n: int = 5) -> list[dict]:
    return [{"id": i, "n": n, "mu": float(i)} for i in range(1, n_settings + 1)]
