"""Worker-pool backends: results must match the in-process path."""

from __future__ import annotations

import os
import random
from pathlib import Path

import numpy as np
import pytest

from simsweep.core.engine import run_sweep
from simsweep.core.models import ResultAccumulator, TaskFailure, TaskResult
from simsweep.io.checkpoint import load_checkpoint
from tests import _factories as fx


def _values(acc: ResultAccumulator) -> dict:
    return {(i, t): (o.value if isinstance(o, TaskResult) else o) for i, t, o in acc.slots()}


# --- thread backend: only the explicit rng is reproducible under threads ---


def test_thread_pool_matches_sequential() -> None:
    rows = fx.settings_rows(4)
    seq = run_sweep(fx.gen_rng_normal, fx.exec_mean, rows, ntrials=3, verbose=False)
    par = run_sweep(fx.gen_rng_normal, fx.exec_mean, rows, ntrials=3, cores=3, backend="thread", verbose=False)
    assert _values(par) == _values(seq)


def test_thread_pool_runs_in_this_process() -> None:
    acc = run_sweep(fx.gen_rng_normal, fx.exec_pid, fx.settings_rows(2), ntrials=2, cores=2, backend="thread", verbose=False)
    assert {o.value for _, _, o in acc.slots()} == {os.getpid()}


def test_thread_pool_isolates_failures_and_checkpoints(tmp_path: Path) -> None:
    ck = tmp_path / "ck.pkl"
    acc = run_sweep(
        fx.gen_rng_normal,
        fx.exec_fail_on,
        fx.settings_rows(3),
        ntrials=2,
        cores=2,
        backend="thread",
        worker_state={"fail": (3, 2)},
        shuffle_groups=[[1, 2, 3]],
        shuffle_seed=0,
        chunk_count=4,
        checkpoint_path=ck,
        verbose=False,
    )
    failed = [(i, t) for i, t, o in acc.slots() if isinstance(o, TaskFailure)]
    assert failed == [(3, 2)]
    assert acc.is_complete()
    assert load_checkpoint(ck) == acc


# --- process backend ---


@pytest.mark.slow
def test_process_pool_matches_sequential() -> None:
    rows = fx.settings_rows(3)
    seq = run_sweep(fx.gen_global_normal, fx.exec_mean, rows, ntrials=3, verbose=False)
    par = run_sweep(fx.gen_global_normal, fx.exec_mean, rows, ntrials=3, cores=2, verbose=False)
    assert _values(par) == _values(seq)


@pytest.mark.slow
def test_process_pool_uses_worker_processes() -> None:
    acc = run_sweep(
        fx.gen_global_normal,
        fx.exec_pid,
        fx.settings_rows(2),
        ntrials=2,
        cores=2,
        required_modules=["json"],
        verbose=False,
    )
    pids = {o.value for _, _, o in acc.slots()}
    assert os.getpid() not in pids
    assert 1 <= len(pids) <= 2


@pytest.mark.slow
def test_process_pool_isolates_generator_failure() -> None:
    acc = run_sweep(
        fx.gen_fail_on,
        fx.exec_mean,
        fx.settings_rows(3),
        ntrials=2,
        cores=2,
        worker_state={"fail": (1, 2)},
        verbose=False,
    )
    failed = [(i, t) for i, t, o in acc.slots() if isinstance(o, TaskFailure)]
    assert failed == [(1, 2)]


@pytest.mark.slow
def test_unreturnable_value_becomes_failure() -> None:
    acc = run_sweep(fx.gen_global_normal, fx.exec_unpicklable, fx.settings_rows(2), ntrials=2, cores=2, verbose=False)
    assert all(isinstance(acc.get(1, t), TaskFailure) for t in (1, 2))
    assert all(isinstance(acc.get(2, t), TaskResult) for t in (1, 2))


def test_thread_pool_leaves_caller_global_streams_alone() -> None:
    random.seed(99)
    np.random.seed(99)
    acc = run_sweep(fx.gen_rng_normal, fx.exec_mean, fx.settings_rows(8), ntrials=20, cores=4, backend="thread", verbose=False)
    assert acc.is_complete() and acc.n_failed() == 0
    assert random.random() == random.Random(99).random()
    assert np.random.random_sample() == np.random.RandomState(99).random_sample()
