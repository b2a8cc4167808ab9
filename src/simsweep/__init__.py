"""Top-level package for simsweep, a parameter-sweep experiment driver."""

from importlib import metadata as _metadata

try:
    __version__ = _metadata.version("simsweep")
except _metadata.PackageNotFoundError:  # pragma: no cover - during local usage
    __version__ = "0.0.0"

from . import analysis, core, io
from .core.config import ConfigurationError, SweepConfig, load_config
from .core.engine import run_sweep, run_task
from .core.models import ResultAccumulator, Task, TaskFailure, TaskResult
from .io.checkpoint import PersistenceError, load_checkpoint

__all__ = [
    "__version__",
    "analysis",
    "core",
    "io",
    "ConfigurationError",
    "PersistenceError",
    "ResultAccumulator",
    "SweepConfig",
    "Task",
    "TaskFailure",
    "TaskResult",
    "load_checkpoint",
    "load_config",
    "run_sweep",
    "run_task",
]
