"""Task schedule construction.

The schedule lists every (setting, trial) pair once, ordered by setting and,
within a setting, by the order of the active trial set.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from .config import MAX_TRIAL_ID, ConfigurationError, _is_int
from .models import Task

__all__ = ["build_schedule", "trial_set"]


def trial_set(ntrials: Optional[int] = None, specific_trials: Optional[Sequence[int]] = None) -> List[int]:
    """Resolve the active trial ids.

    Exactly one of ``ntrials`` (trials ``1..ntrials``) and ``specific_trials``
    (the given ids, in the given order) must be supplied.
    """
    if ntrials is not None and specific_trials is not None:
        raise ConfigurationError("ntrials and specific_trials are mutually exclusive")
    if ntrials is None and specific_trials is None:
        raise ConfigurationError("one of ntrials or specific_trials is required")

    if ntrials is not None:
        if not _is_int(ntrials) or not 0 < ntrials <= MAX_TRIAL_ID:
            raise ConfigurationError(f"ntrials must be an int in [1, {MAX_TRIAL_ID}], got {ntrials!r}")
        return list(range(1, ntrials + 1))

    trials = list(specific_trials)  # type: ignore[arg-type]
    if not trials:
        raise ConfigurationError("specific_trials must be non-empty")
    for i, t in enumerate(trials):
        if not _is_int(t) or not 0 < t <= MAX_TRIAL_ID:
            raise ConfigurationError(f"specific_trials[{i}] must be an int in [1, {MAX_TRIAL_ID}], got {t!r}")
    if len(set(trials)) != len(trials):
        raise ConfigurationError(f"specific_trials contains duplicates: {trials!r}")
    return trials


def build_schedule(
    n_settings: int,
    ntrials: Optional[int] = None,
    specific_trials: Optional[Sequence[int]] = None,
) -> List[Task]:
    """Return the ordered task list for ``n_settings`` settings.

    >>> [t.as_tuple() for t in build_schedule(2, ntrials=2)]
    [(1, 1), (1, 2), (2, 1), (2, 2)]
    """
    if not _is_int(n_settings) or n_settings < 1:
        raise ConfigurationError(f"n_settings must be a positive int, got {n_settings!r}")
    trials = trial_set(ntrials, specific_trials)
    return [Task(setting=i, trial=t) for i in range(1, n_settings + 1) for t in trials]
