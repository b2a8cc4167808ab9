"""
core.shuffle
============

Group-scoped execution-order shuffling.

Within a shuffle group, the tasks that share a trial id are run in a random
order across the group's settings. Which (setting, trial) pairs exist, and
the slot each result lands in, never change; only schedule positions move.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence

import numpy as np

from .config import ConfigurationError, _is_int
from .models import Task

__all__ = ["shuffle_schedule", "validate_shuffle_groups"]


def validate_shuffle_groups(groups: Sequence[Iterable[int]], n_settings: int) -> List[List[int]]:
    """Check groups against ``[1, n_settings]`` and return them as lists.

    The flattened union of all groups may not repeat an index, which rules
    out both duplicates inside a group and overlap between groups.
    """
    if isinstance(groups, (str, bytes)) or not isinstance(groups, Sequence):
        raise ConfigurationError(f"shuffle groups must be a list of groups, got {type(groups).__name__}")

    out: List[List[int]] = []
    seen: set[int] = set()
    for gi, group in enumerate(groups):
        if isinstance(group, (str, bytes)):
            raise ConfigurationError(f"shuffle group {gi} must be a collection of ints, got {group!r}")
        members = list(group)
        if not members:
            raise ConfigurationError(f"shuffle group {gi} is empty")
        for idx in members:
            if not _is_int(idx):
                raise ConfigurationError(f"shuffle group {gi} has non-integer index {idx!r}")
            if not (1 <= idx <= n_settings):
                raise ConfigurationError(
                    f"shuffle group {gi} index {idx} outside settings range [1, {n_settings}]"
                )
            if idx in seen:
                raise ConfigurationError(f"setting index {idx} appears more than once across shuffle groups")
            seen.add(idx)
        out.append(members)
    return out


def shuffle_schedule(
    schedule: Sequence[Task],
    groups: Optional[Sequence[Iterable[int]]],
    rng: Optional[np.random.Generator] = None,
    *,
    n_settings: Optional[int] = None,
) -> List[Task]:
    """Randomize per-trial execution order inside each shuffle group.

    For each group: the positions holding the group's settings are re-sorted
    (stably) by trial, then for every trial the positions now holding it are
    permuted uniformly at random. ``groups`` empty or None returns a copy.
    Group indices are checked against ``n_settings`` (default: the largest
    setting in the schedule).
    """
    out = list(schedule)
    if not groups:
        return out

    if n_settings is None:
        n_settings = max((task.setting for task in out), default=0)
    checked = validate_shuffle_groups(groups, n_settings)
    gen = rng if rng is not None else np.random.default_rng()

    for members in checked:
        member_set = set(members)
        idx = [pos for pos, task in enumerate(out) if task.setting in member_set]
        if len(idx) < 2:
            continue

        # canonicalize the group's positions by trial ascending (stable)
        ordered = sorted((out[pos] for pos in idx), key=lambda task: task.trial)
        for pos, task in zip(idx, ordered):
            out[pos] = task

        by_trial: dict[int, List[int]] = {}
        for pos in idx:
            by_trial.setdefault(out[pos].trial, []).append(pos)

        for positions in by_trial.values():
            if len(positions) > 1:
                perm = gen.permutation(len(positions))
                tasks = [out[p] for p in positions]
                for p, k in zip(positions, perm):
                    out[p] = tasks[int(k)]

    return out
