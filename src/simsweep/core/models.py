"""
Module: core.models
Purpose: data types shared by the scheduler, the engine and the reporting layer.

- Task: one (setting, trial) pair of the schedule.
- TaskResult / TaskFailure: the two terminal outcomes of a task.
- ResultAccumulator: setting -> trial -> outcome, filled chunk by chunk.

Settings rows, synthetic data and result values are opaque: the models carry
them without validation (``arbitrary_types_allowed``).
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Sequence, Tuple, Union

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, field_validator


@dataclass(frozen=True, order=True)
class Task:
    """One unit of work: run the pipeline for ``setting`` under ``trial``."""

    setting: int
    trial: int

    def as_tuple(self) -> Tuple[int, int]:
        return (self.setting, self.trial)


class ModelBase(BaseModel):
    """Frozen pydantic base; values are opaque so arbitrary types are allowed."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        arbitrary_types_allowed=True,
    )


class TaskResult(ModelBase):
    """Successful task outcome."""

    ok: ClassVar[bool] = True

    value: Any = None
    elapsed_time: float = Field(ge=0.0, description="Wall-clock seconds spent in the executor.")
    cpu_time: float = Field(default=0.0, ge=0.0, description="Process CPU seconds spent in the executor.")

    @field_validator("elapsed_time", "cpu_time", mode="before")
    @classmethod
    def _finite_time(cls, v: Any) -> float:
        f = float(v)
        if not math.isfinite(f):
            raise ValueError(f"timings must be finite, got {v!r}")
        # clocks can step backwards by a few ns on some platforms
        return max(0.0, f)


class TaskFailure(ModelBase):
    """Failure marker stored in a slot whose generator or executor raised.

    The marker does not record which of the two stages failed.
    """

    ok: ClassVar[bool] = False

    error_type: str = ""
    error: str = ""

    @classmethod
    def from_exception(cls, exc: BaseException) -> "TaskFailure":
        return cls(error_type=type(exc).__name__, error=str(exc))


Outcome = Union[TaskResult, TaskFailure]


def values_equal(a: Any, b: Any) -> bool:
    """Equality for opaque result values.

    Plain ``==`` is ambiguous for numpy arrays and pandas objects, so those
    are compared elementwise (NaN equal to NaN), and dicts, lists and tuples
    are walked recursively. Values whose comparison raises are unequal.
    """
    if a is b:
        return True
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        if not (isinstance(a, np.ndarray) and isinstance(b, np.ndarray)) or a.shape != b.shape:
            return False
        try:
            return bool(np.array_equal(a, b, equal_nan=True))
        except TypeError:
            # equal_nan is undefined for object and string dtypes
            return bool(np.array_equal(a, b))
    if type(a) is type(b) and callable(getattr(a, "equals", None)):
        return bool(a.equals(b))
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(values_equal(v, b[k]) for k, v in a.items())
    if isinstance(a, (list, tuple)) and type(a) is type(b):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, float) and isinstance(b, float) and math.isnan(a) and math.isnan(b):
        return True
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        return False


def outcomes_equal(x: Optional[Outcome], y: Optional[Outcome]) -> bool:
    """Slot equality; TaskResult values go through :func:`values_equal`."""
    if x is None or y is None:
        return x is y
    if type(x) is not type(y):
        return False
    if isinstance(x, TaskFailure):
        return x == y
    return (
        x.elapsed_time == y.elapsed_time
        and x.cpu_time == y.cpu_time
        and values_equal(x.value, y.value)
    )


class ResultAccumulator:
    """Mapping ``setting -> trial -> outcome`` with every slot pre-created.

    Slots start unset (``None``). Only the orchestrating engine writes to it.
    """

    def __init__(self, n_settings: int, trials: Sequence[int]):
        if int(n_settings) < 1:
            raise ValueError(f"n_settings must be >= 1, got {n_settings!r}")
        if len(trials) == 0:
            raise ValueError("trials must be non-empty")
        self._trials: List[int] = [int(t) for t in trials]
        self._slots: Dict[int, Dict[int, Optional[Outcome]]] = {
            i: {t: None for t in self._trials} for i in range(1, int(n_settings) + 1)
        }

    # --- shape ---
    @property
    def n_settings(self) -> int:
        return len(self._slots)

    @property
    def trials(self) -> List[int]:
        return list(self._trials)

    def same_shape(self, other: "ResultAccumulator") -> bool:
        return self.n_settings == other.n_settings and self._trials == other._trials

    # --- slot access ---
    def record(self, setting: int, trial: int, outcome: Outcome) -> None:
        if not isinstance(outcome, (TaskResult, TaskFailure)):
            raise TypeError(f"outcome must be TaskResult or TaskFailure, got {type(outcome).__name__}")
        try:
            row = self._slots[setting]
        except KeyError as e:
            raise KeyError(f"setting {setting!r} outside [1, {self.n_settings}]") from e
        if trial not in row:
            raise KeyError(f"trial {trial!r} not in the active trial set")
        row[trial] = outcome

    def get(self, setting: int, trial: int) -> Optional[Outcome]:
        return self._slots[setting][trial]

    def is_set(self, setting: int, trial: int) -> bool:
        return self._slots[setting][trial] is not None

    def __getitem__(self, setting: int) -> Dict[int, Optional[Outcome]]:
        return self._slots[setting]

    def __iter__(self) -> Iterator[int]:
        return iter(self._slots)

    def __len__(self) -> int:
        return len(self._slots)

    def items(self) -> Iterator[Tuple[int, Dict[int, Optional[Outcome]]]]:
        return iter(self._slots.items())

    def slots(self) -> Iterator[Tuple[int, int, Optional[Outcome]]]:
        for i, row in self._slots.items():
            for t, outcome in row.items():
                yield i, t, outcome

    # --- summaries ---
    def n_pending(self) -> int:
        return sum(1 for _, _, o in self.slots() if o is None)

    def n_failed(self) -> int:
        return sum(1 for _, _, o in self.slots() if isinstance(o, TaskFailure))

    def is_complete(self) -> bool:
        return self.n_pending() == 0

    def to_dict(self) -> Dict[int, Dict[int, Optional[Outcome]]]:
        """Plain nested-dict copy (outcomes are immutable, rows are copied)."""
        return {i: dict(row) for i, row in self._slots.items()}

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ResultAccumulator):
            return NotImplemented
        if self._trials != other._trials or self._slots.keys() != other._slots.keys():
            return False
        return all(
            outcomes_equal(outcome, other._slots[i][t]) for i, t, outcome in self.slots()
        )

    def __repr__(self) -> str:
        total = self.n_settings * len(self._trials)
        return (
            f"ResultAccumulator(n_settings={self.n_settings}, trials={len(self._trials)}, "
            f"filled={total - self.n_pending()}/{total})"
        )


__all__ = [
    "ModelBase",
    "Outcome",
    "ResultAccumulator",
    "Task",
    "TaskFailure",
    "TaskResult",
    "outcomes_equal",
    "values_equal",
]
