"""Scheduling and execution engine."""

from .chunks import plan_chunks
from .config import ConfigurationError, SweepConfig, cfg_from_dict, load_config, validate_cfg
from .engine import prepare_schedule, run_sweep, run_task
from .models import ResultAccumulator, Task, TaskFailure, TaskResult
from .schedule import build_schedule, trial_set
from .shuffle import shuffle_schedule, validate_shuffle_groups

__all__ = [
    "ConfigurationError",
    "ResultAccumulator",
    "SweepConfig",
    "Task",
    "TaskFailure",
    "TaskResult",
    "build_schedule",
    "cfg_from_dict",
    "load_config",
    "plan_chunks",
    "prepare_schedule",
    "run_sweep",
    "run_task",
    "shuffle_schedule",
    "trial_set",
    "validate_cfg",
    "validate_shuffle_groups",
]
