"""
core.engine
===========

Dispatch and aggregation for a parameter sweep.

run_sweep() builds the schedule, optionally shuffles it, plans chunks and then
runs one chunk at a time, either in-process or on a worker pool created once
for the whole run. After every chunk the results are written into the
accumulator by (setting, trial) and, when configured, the whole accumulator
is checkpointed.

run_task() is the per-task contract: seed from the trial id, generate, time
the executor, and turn any exception into a TaskFailure.
"""

from __future__ import annotations

import dataclasses
import importlib
import importlib.util
import inspect
import logging
import time
from concurrent.futures import BrokenExecutor, Executor, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from tqdm.auto import tqdm

from simsweep.io.checkpoint import load_checkpoint, save_checkpoint
from simsweep.io.seeds import rng_for_trial, trial_random_state

from .chunks import plan_chunks
from .config import ConfigurationError, SweepConfig
from .models import Outcome, ResultAccumulator, Task, TaskFailure, TaskResult
from .schedule import build_schedule, trial_set
from .shuffle import shuffle_schedule

LOG = logging.getLogger(__name__)

GeneratorFn = Callable[..., Any]
ExecutorFn = Callable[..., Any]


# ---------------------------------------------------------------------
# Per-task contract
# ---------------------------------------------------------------------
def accepts_rng(fn: Callable[..., Any]) -> bool:
    """True if ``fn`` can take the per-trial generator as keyword ``rng``."""
    try:
        params = inspect.signature(fn).parameters
    except (TypeError, ValueError):
        return False
    p = params.get("rng")
    return p is not None and p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)


def run_task(
    generator: GeneratorFn,
    executor: ExecutorFn,
    setting_row: Any,
    trial: int,
    worker_state: Any = None,
    *,
    pass_rng: Optional[Tuple[bool, bool]] = None,
    pin_globals: bool = True,
) -> Outcome:
    """Run generator then executor for one (setting, trial) pair.

    Randomness is seeded from ``trial`` only, so every setting run under the
    same trial sees the same stream. With ``pin_globals=False`` the global
    ``random``/``numpy.random`` state is left alone and only ``rng`` is
    seeded. Any ``Exception`` from seeding or either callback yields a
    TaskFailure; nothing propagates.
    """
    gen_rng, exe_rng = pass_rng if pass_rng is not None else (accepts_rng(generator), accepts_rng(executor))

    try:
        streams = trial_random_state(trial) if pin_globals else nullcontext(rng_for_trial(trial))
        with streams as rng:
            if gen_rng:
                data = generator(setting_row, worker_state, rng=rng)
            else:
                data = generator(setting_row, worker_state)

            wall0 = time.perf_counter()
            cpu0 = time.process_time()
            if exe_rng:
                value = executor(data, setting_row, trial, worker_state, rng=rng)
            else:
                value = executor(data, setting_row, trial, worker_state)
            wall1 = time.perf_counter()
            cpu1 = time.process_time()
    except Exception as e:
        return TaskFailure.from_exception(e)

    return TaskResult(value=value, elapsed_time=wall1 - wall0, cpu_time=cpu1 - cpu0)


def setting_row(settings: Any, index: int) -> Any:
    """Row ``index`` (1-based) of a DataFrame or any sequence."""
    if hasattr(settings, "iloc"):
        return settings.iloc[index - 1]
    return settings[index - 1]


# ---------------------------------------------------------------------
# Worker-side state (broadcast once per worker)
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class _WorkerPayload:
    generator: GeneratorFn
    executor: ExecutorFn
    settings: Any
    schedule: Tuple[Task, ...]
    worker_state: Any
    pass_rng: Tuple[bool, bool]
    pin_globals: bool = True

    def run(self, position: int) -> Outcome:
        task = self.schedule[position]
        return run_task(
            self.generator,
            self.executor,
            setting_row(self.settings, task.setting),
            task.trial,
            self.worker_state,
            pass_rng=self.pass_rng,
            pin_globals=self.pin_globals,
        )


_PAYLOAD: Optional[_WorkerPayload] = None


def _init_worker(payload: _WorkerPayload, required_modules: Tuple[str, ...]) -> None:
    global _PAYLOAD
    for name in required_modules:
        importlib.import_module(name)
    _PAYLOAD = payload


def _run_position(position: int) -> Outcome:
    # must be top-level for ProcessPool pickling
    if _PAYLOAD is None:
        raise RuntimeError("worker process was not initialized with a sweep payload")
    return _PAYLOAD.run(position)


@contextmanager
def _worker_pool(
    cfg: SweepConfig, payload: _WorkerPayload
) -> Iterator[Optional[Tuple[Executor, Callable[[int], Outcome]]]]:
    """One pool for the whole run; shut down on every exit path."""
    if not cfg.parallel:
        yield None
        return

    pool: Executor
    if cfg.backend == "thread":
        for name in cfg.required_modules:
            importlib.import_module(name)
        pool = ThreadPoolExecutor(max_workers=cfg.cores, thread_name_prefix="simsweep")
        submit_fn: Callable[[int], Outcome] = payload.run
    else:
        pool = ProcessPoolExecutor(
            max_workers=cfg.cores,
            initializer=_init_worker,
            initargs=(payload, tuple(cfg.required_modules)),
        )
        submit_fn = _run_position

    LOG.debug("started %s pool with %d workers", cfg.backend, cfg.cores)
    try:
        yield pool, submit_fn
    finally:
        pool.shutdown(wait=True, cancel_futures=True)
        LOG.debug("%s pool shut down", cfg.backend)


# ---------------------------------------------------------------------
# Chunk dispatch
# ---------------------------------------------------------------------
def _run_chunk_sequential(payload: _WorkerPayload, positions: Sequence[int], progress: tqdm) -> Dict[int, Outcome]:
    out: Dict[int, Outcome] = {}
    for pos in positions:
        out[pos] = payload.run(pos)
        progress.update(1)
    return out


def _run_chunk_parallel(
    pool: Executor,
    submit_fn: Callable[[int], Outcome],
    positions: Sequence[int],
    progress: tqdm,
) -> Dict[int, Outcome]:
    futures = {pool.submit(submit_fn, pos): pos for pos in positions}
    out: Dict[int, Outcome] = {}
    # barrier: every future of the chunk is collected before returning
    for fut in as_completed(futures):
        pos = futures[fut]
        try:
            out[pos] = fut.result()
        except BrokenExecutor:
            raise
        except Exception as e:
            # e.g. a result value that cannot be pickled back to the parent
            out[pos] = TaskFailure.from_exception(e)
        progress.update(1)
    return out


# ---------------------------------------------------------------------
# Run setup
# ---------------------------------------------------------------------
def _resolve_cfg(cfg: Optional[SweepConfig], overrides: Dict[str, Any]) -> SweepConfig:
    if not overrides:
        return cfg if cfg is not None else SweepConfig()
    # choosing one trial mode clears the other
    if overrides.get("specific_trials") is not None and "ntrials" not in overrides:
        overrides = {**overrides, "ntrials": None}
    elif overrides.get("ntrials") is not None and "specific_trials" not in overrides:
        overrides = {**overrides, "specific_trials": None}
    try:
        if cfg is None:
            return SweepConfig(**overrides)
        return dataclasses.replace(cfg, **overrides)
    except TypeError as e:
        raise ConfigurationError(f"invalid override: {e}") from e


def _check_required_modules(names: Sequence[str]) -> None:
    for name in names:
        try:
            found = importlib.util.find_spec(name) is not None
        except (ImportError, ValueError):
            found = False
        if not found:
            raise ConfigurationError(f"required module {name!r} cannot be imported")


def _initial_accumulator(cfg: SweepConfig, n_settings: int, trials: List[int]) -> ResultAccumulator:
    fresh = ResultAccumulator(n_settings, trials)
    if not cfg.resume or cfg.checkpoint_path is None or not cfg.checkpoint_path.exists():
        return fresh

    acc = load_checkpoint(cfg.checkpoint_path)
    if not acc.same_shape(fresh):
        raise ConfigurationError(
            f"checkpoint {str(cfg.checkpoint_path)!r} has shape "
            f"(settings={acc.n_settings}, trials={acc.trials}) but this run expects "
            f"(settings={n_settings}, trials={trials})"
        )
    LOG.info(
        "resuming from %s: %d of %d slots already filled",
        cfg.checkpoint_path,
        n_settings * len(trials) - acc.n_pending(),
        n_settings * len(trials),
    )
    return acc


def prepare_schedule(n_settings: int, cfg: SweepConfig) -> Tuple[List[Task], List[range]]:
    """Build, shuffle (if configured) and chunk the schedule for ``cfg``."""
    schedule = build_schedule(n_settings, cfg.ntrials, cfg.specific_trials)
    if cfg.shuffle_groups:
        rng = np.random.default_rng(cfg.shuffle_seed)
        schedule = shuffle_schedule(schedule, cfg.shuffle_groups, rng, n_settings=n_settings)
    chunk_count = cfg.chunk_count if cfg.chunk_count is not None else n_settings
    chunks = plan_chunks(len(schedule), chunk_count)
    return schedule, chunks


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------
def run_sweep(
    generator: GeneratorFn,
    executor: ExecutorFn,
    settings: Any,
    cfg: Optional[SweepConfig] = None,
    **overrides: Any,
) -> ResultAccumulator:
    """Run ``generator`` and ``executor`` for every (setting, trial) pair.

    ``settings`` is a pandas DataFrame or any sequence of rows; setting
    indices are 1-based. Options come from ``cfg`` and/or keyword overrides
    (see SweepConfig). Configuration problems raise ConfigurationError before
    any task runs; task failures are recorded as TaskFailure; checkpoint
    write failures raise PersistenceError.
    """
    if not callable(generator) or not callable(executor):
        raise TypeError("generator and executor must be callable")
    cfg = _resolve_cfg(cfg, overrides)

    try:
        n_settings = len(settings)
    except TypeError as e:
        raise ConfigurationError(f"settings must be a DataFrame or a sequence, got {type(settings).__name__}") from e
    if n_settings < 1:
        raise ConfigurationError("settings table is empty")

    schedule, chunks = prepare_schedule(n_settings, cfg)
    trials = trial_set(cfg.ntrials, cfg.specific_trials)
    if cfg.parallel:
        _check_required_modules(cfg.required_modules)
    acc = _initial_accumulator(cfg, n_settings, trials)

    payload = _WorkerPayload(
        generator=generator,
        executor=executor,
        settings=settings,
        schedule=tuple(schedule),
        worker_state=cfg.worker_state,
        pass_rng=(accepts_rng(generator), accepts_rng(executor)),
        # threads share the global streams; only the explicit rng is seeded there
        pin_globals=not (cfg.parallel and cfg.backend == "thread"),
    )

    LOG.info(
        "sweep: settings=%d trials=%d tasks=%d chunks=%d cores=%d%s",
        n_settings,
        len(trials),
        len(schedule),
        len(chunks),
        cfg.cores,
        f" backend={cfg.backend}" if cfg.parallel else "",
    )
    t0 = time.perf_counter()
    n_run = 0
    n_failed = 0

    with _worker_pool(cfg, payload) as handle:
        for k, chunk in enumerate(chunks, start=1):
            positions = [pos for pos in chunk if not acc.is_set(*schedule[pos].as_tuple())]
            if not positions:
                LOG.debug("chunk %d of %d already complete, skipping", k, len(chunks))
                continue

            LOG.log(
                logging.INFO if cfg.verbose else logging.DEBUG,
                "Chunk %d of %d started (%d tasks)",
                k,
                len(chunks),
                len(positions),
            )
            with tqdm(
                total=len(positions),
                desc=f"chunk {k}/{len(chunks)}",
                unit="task",
                disable=not cfg.verbose,
            ) as progress:
                if handle is None:
                    outcomes = _run_chunk_sequential(payload, positions, progress)
                else:
                    outcomes = _run_chunk_parallel(*handle, positions, progress)

            n_run += len(positions)
            for pos in positions:
                task = schedule[pos]
                outcome = outcomes[pos]
                if isinstance(outcome, TaskFailure):
                    n_failed += 1
                    LOG.debug(
                        "task (setting=%d, trial=%d) failed: %s: %s",
                        task.setting,
                        task.trial,
                        outcome.error_type,
                        outcome.error,
                    )
                acc.record(task.setting, task.trial, outcome)

            if cfg.checkpoint_path is not None:
                save_checkpoint(acc, cfg.checkpoint_path)

    LOG.info(
        "sweep finished in %.2fs: %d tasks run, %d failed",
        time.perf_counter() - t0,
        n_run,
        n_failed,
    )
    return acc


__all__ = [
    "accepts_rng",
    "prepare_schedule",
    "run_sweep",
    "run_task",
    "setting_row",
]
