# src/simsweep/core/config.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence, Union

import logging

LOG = logging.getLogger(__name__)

Backend = Literal["process", "thread"]

DEFAULT_NTRIALS = 10

# trial ids seed numpy.random, which accepts 0 <= seed < 2**32
MAX_TRIAL_ID = 2**32 - 1


class ConfigurationError(ValueError):
    """User-fixable configuration error, raised before any task executes."""


def _is_int(x: Any) -> bool:
    # bool is an int subclass; a flag is never a count
    return isinstance(x, int) and not isinstance(x, bool)


@dataclass
class SweepConfig:
    ntrials: Optional[int] = None
    specific_trials: Optional[List[int]] = None
    cores: int = 1

    shuffle_groups: Optional[List[List[int]]] = None
    shuffle_seed: Optional[int] = None

    chunk_count: Optional[int] = None

    required_modules: List[str] = field(default_factory=list)
    worker_state: Any = None

    checkpoint_path: Optional[Union[str, Path]] = None
    resume: bool = False

    verbose: bool = True
    backend: Backend = "process"

    def __post_init__(self) -> None:
        if isinstance(self.backend, str):
            self.backend = self.backend.lower()  # type: ignore[assignment]
        if self.specific_trials is not None and not isinstance(self.specific_trials, list):
            self.specific_trials = list(self.specific_trials)
        if self.ntrials is None and self.specific_trials is None:
            self.ntrials = DEFAULT_NTRIALS
        if self.shuffle_groups is not None:
            self.shuffle_groups = [list(g) for g in self.shuffle_groups]
        if self.required_modules is None:
            self.required_modules = []
        if self.checkpoint_path is not None:
            self.checkpoint_path = Path(self.checkpoint_path).expanduser()
        validate_cfg(self)

    @property
    def parallel(self) -> bool:
        return self.cores > 1


def validate_cfg(cfg: SweepConfig) -> None:
    # --- trial ids ---
    if cfg.ntrials is not None and cfg.specific_trials is not None:
        raise ConfigurationError(
            "ntrials and specific_trials are mutually exclusive; "
            f"got ntrials={cfg.ntrials!r}, specific_trials={cfg.specific_trials!r}"
        )
    if cfg.ntrials is not None and (not _is_int(cfg.ntrials) or not 0 < cfg.ntrials <= MAX_TRIAL_ID):
        raise ConfigurationError(f"ntrials must be an int in [1, {MAX_TRIAL_ID}], got {cfg.ntrials!r}")
    if cfg.specific_trials is not None:
        if len(cfg.specific_trials) == 0:
            raise ConfigurationError("specific_trials must be non-empty")
        for i, t in enumerate(cfg.specific_trials):
            if not _is_int(t) or not 0 < t <= MAX_TRIAL_ID:
                raise ConfigurationError(f"specific_trials[{i}] must be an int in [1, {MAX_TRIAL_ID}], got {t!r}")
        if len(set(cfg.specific_trials)) != len(cfg.specific_trials):
            raise ConfigurationError(f"specific_trials contains duplicates: {cfg.specific_trials!r}")

    # --- execution ---
    if not _is_int(cfg.cores) or cfg.cores <= 0:
        raise ConfigurationError(f"cores must be a positive int, got {cfg.cores!r}")
    if cfg.backend not in ("process", "thread"):
        raise ConfigurationError(f"backend must be 'process' or 'thread', got {cfg.backend!r}")
    if cfg.chunk_count is not None and (not _is_int(cfg.chunk_count) or cfg.chunk_count <= 0):
        raise ConfigurationError(f"chunk_count must be a positive int, got {cfg.chunk_count!r}")
    if cfg.shuffle_seed is not None and (not _is_int(cfg.shuffle_seed) or cfg.shuffle_seed < 0):
        raise ConfigurationError(f"shuffle_seed must be int >= 0, got {cfg.shuffle_seed!r}")

    if not isinstance(cfg.required_modules, list) or not all(
        isinstance(m, str) and m for m in cfg.required_modules
    ):
        raise ConfigurationError(f"required_modules must be a list of module names, got {cfg.required_modules!r}")
    if cfg.required_modules and not cfg.parallel:
        LOG.debug("required_modules ignored for sequential runs: %s", cfg.required_modules)

    if not isinstance(cfg.verbose, bool):
        raise ConfigurationError(f"verbose must be bool, got {cfg.verbose!r}")
    if not isinstance(cfg.resume, bool):
        raise ConfigurationError(f"resume must be bool, got {cfg.resume!r}")
    if cfg.resume and cfg.checkpoint_path is None:
        raise ConfigurationError("resume=True requires checkpoint_path")

    # shuffle groups are range-checked against N by core.shuffle; here only the shape
    if cfg.shuffle_groups is not None:
        for i, g in enumerate(cfg.shuffle_groups):
            if len(g) == 0:
                raise ConfigurationError(f"shuffle_groups[{i}] is empty")


# ---------------------------------------------------------------------
# Mapping / YAML front-end
# ---------------------------------------------------------------------
_ALIASES: Dict[str, str] = {
    "specificTrials": "specific_trials",
    "shuffleGroups": "shuffle_groups",
    "shuffle_group": "shuffle_groups",
    "shuffleSeed": "shuffle_seed",
    "chunkCount": "chunk_count",
    "chunking_num": "chunk_count",
    "requiredModules": "required_modules",
    "required_packages": "required_modules",
    "sharedWorkerState": "worker_state",
    "worker_variables": "worker_state",
    "checkpointPath": "checkpoint_path",
    "filepath": "checkpoint_path",
}

_FIELDS = (
    "ntrials",
    "specific_trials",
    "cores",
    "shuffle_groups",
    "shuffle_seed",
    "chunk_count",
    "required_modules",
    "worker_state",
    "checkpoint_path",
    "resume",
    "verbose",
    "backend",
)


def cfg_from_dict(d: Dict[str, Any]) -> SweepConfig:
    """Build a SweepConfig from a plain mapping (YAML/JSON shaped).

    Unknown keys are ignored (logged at debug level) so one YAML file can also carry
    CLI-level entries (settings, generator, executor).
    """
    if not isinstance(d, dict):
        raise ConfigurationError(f"config must be a mapping, got {type(d).__name__}")

    kwargs: Dict[str, Any] = {}
    for key, value in d.items():
        name = _ALIASES.get(key, key)
        if name not in _FIELDS:
            continue
        if name in kwargs:
            raise ConfigurationError(f"config key {name!r} given twice (via alias {key!r})")
        kwargs[name] = value

    unknown = sorted(k for k in d if _ALIASES.get(k, k) not in _FIELDS)
    if unknown:
        LOG.debug("cfg_from_dict: ignoring non-engine keys %s", unknown)

    def _seq(x: Any, name: str) -> Optional[List[Any]]:
        if x is None:
            return None
        if isinstance(x, (str, bytes)) or not isinstance(x, Sequence):
            raise ConfigurationError(f"{name} must be a list, got {type(x).__name__}")
        return list(x)

    if "specific_trials" in kwargs:
        kwargs["specific_trials"] = _seq(kwargs["specific_trials"], "specific_trials")
    if "required_modules" in kwargs:
        kwargs["required_modules"] = _seq(kwargs["required_modules"], "required_modules") or []
    if "shuffle_groups" in kwargs:
        groups = _seq(kwargs["shuffle_groups"], "shuffle_groups")
        kwargs["shuffle_groups"] = (
            None if groups is None else [_seq(g, f"shuffle_groups[{i}]") for i, g in enumerate(groups)]
        )

    try:
        return SweepConfig(**kwargs)
    except TypeError as e:
        raise ConfigurationError(f"invalid config: {e}") from e


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    import yaml

    try:
        with open(path, encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigurationError(f"Could not read YAML config at path={str(path)!r}: {e}") from e

    try:
        obj = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            loc = f"line={getattr(mark, 'line', '?')}, column={getattr(mark, 'column', '?')}"
            raise ConfigurationError(f"YAML parse error in {str(path)!r} ({loc}): {e}") from e
        raise ConfigurationError(f"YAML parse error in {str(path)!r}: {e}") from e

    if obj is None:
        return {}
    if not isinstance(obj, dict):
        raise ConfigurationError(f"YAML config must parse to a mapping, got {type(obj).__name__}")
    return dict(obj)


def load_config(path: Union[str, Path]) -> SweepConfig:
    return cfg_from_dict(load_yaml(path))


__all__ = [
    "Backend",
    "ConfigurationError",
    "DEFAULT_NTRIALS",
    "MAX_TRIAL_ID",
    "SweepConfig",
    "cfg_from_dict",
    "load_config",
    "load_yaml",
    "validate_cfg",
]
