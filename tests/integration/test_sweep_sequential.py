"""End-to-end sweeps on the in-process path (cores=1)."""

from __future__ import annotations

import logging
from pathlib import Path

import pandas as pd
import pytest

from simsweep.core.config import ConfigurationError, SweepConfig
from simsweep.core.engine import run_sweep
from simsweep.core.models import ResultAccumulator, TaskFailure, TaskResult
from simsweep.io.checkpoint import PersistenceError, load_checkpoint, save_checkpoint
from tests import _factories as fx


def _values(acc: ResultAccumulator) -> dict:
    return {(i, t): (o.value if isinstance(o, TaskResult) else o) for i, t, o in acc.slots()}


def test_every_slot_filled_in_setting_trial_shape() -> None:
    acc = run_sweep(fx.gen_global_normal, fx.exec_summary, fx.settings_rows(3), ntrials=2, verbose=False)
    assert acc.n_settings == 3
    assert acc.trials == [1, 2]
    assert acc.is_complete()
    for i, t, outcome in acc.slots():
        assert isinstance(outcome, TaskResult)
        assert outcome.value["id"] == i
        assert outcome.value["trial"] == t


def test_dataframe_settings_and_specific_trials() -> None:
    df = pd.DataFrame(fx.settings_rows(2))
    acc = run_sweep(fx.gen_global_normal, fx.exec_summary, df, specific_trials=[9, 4], verbose=False)
    assert acc.trials == [9, 4]
    assert acc.get(2, 9).value["trial"] == 9


def test_failure_is_isolated_to_its_slot() -> None:
    cfg = SweepConfig(ntrials=3, worker_state={"fail": (2, 1)}, verbose=False)
    acc = run_sweep(fx.gen_fail_on, fx.exec_mean, fx.settings_rows(3), cfg)
    failed = [(i, t) for i, t, o in acc.slots() if isinstance(o, TaskFailure)]
    assert failed == [(2, 1)]
    assert acc.get(2, 1).error_type == "RuntimeError"
    assert acc.n_failed() == 1
    assert acc.is_complete()


def test_executor_failure_is_isolated_to_its_slot() -> None:
    cfg = SweepConfig(ntrials=2, worker_state={"fail": (1, 2)}, verbose=False)
    acc = run_sweep(fx.gen_global_normal, fx.exec_fail_on, fx.settings_rows(2), cfg)
    assert isinstance(acc.get(1, 2), TaskFailure)
    assert acc.get(1, 2).error_type == "ValueError"
    baseline = run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(2), ntrials=2, verbose=False)
    expected = _values(baseline)
    del expected[(1, 2)]
    got = _values(acc)
    del got[(1, 2)]
    assert got == expected


@pytest.mark.parametrize("gen", [fx.gen_global_normal, fx.gen_rng_normal])
def test_same_trial_same_data_across_settings(gen) -> None:
    acc = run_sweep(gen, fx.exec_mean, fx.settings_rows(3), ntrials=3, verbose=False)
    for t in acc.trials:
        assert acc.get(1, t).value == acc.get(2, t).value == acc.get(3, t).value
    assert len({acc.get(1, t).value for t in acc.trials}) == 3


def test_rerun_is_reproducible() -> None:
    a = run_sweep(fx.gen_shift, fx.exec_mean, fx.settings_rows(3), ntrials=4, verbose=False)
    b = run_sweep(fx.gen_shift, fx.exec_mean, fx.settings_rows(3), ntrials=4, verbose=False)
    assert _values(a) == _values(b)


def test_shuffling_and_chunking_do_not_change_results() -> None:
    rows = fx.settings_rows(4)
    plain = run_sweep(fx.gen_shift, fx.exec_mean, rows, ntrials=3, verbose=False)
    shuffled = run_sweep(
        fx.gen_shift,
        fx.exec_mean,
        rows,
        ntrials=3,
        shuffle_groups=[[1, 3], [2, 4]],
        shuffle_seed=5,
        chunk_count=5,
        verbose=False,
    )
    assert _values(plain) == _values(shuffled)


def test_checkpoint_matches_final_result(tmp_path: Path) -> None:
    ck = tmp_path / "sweep.pkl"
    acc = run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(3), ntrials=2, checkpoint_path=ck, verbose=False)
    assert load_checkpoint(ck) == acc


def test_resume_runs_only_pending_slots(tmp_path: Path) -> None:
    ck = tmp_path / "sweep.pkl"
    partial = ResultAccumulator(2, [1, 2])
    partial.record(1, 1, TaskResult(value="kept", elapsed_time=0.0))
    partial.record(2, 2, TaskFailure(error_type="X", error="kept"))
    save_checkpoint(partial, ck)

    calls: list = []

    def executor(data, row, trial, state):
        calls.append((row["id"], trial))
        return float(data.mean())

    acc = run_sweep(fx.gen_global_normal, executor, fx.settings_rows(2), ntrials=2, checkpoint_path=ck, resume=True, verbose=False)
    assert sorted(calls) == [(1, 2), (2, 1)]
    assert acc.get(1, 1).value == "kept"
    assert acc.get(2, 2) == TaskFailure(error_type="X", error="kept")
    assert acc.is_complete()
    assert load_checkpoint(ck) == acc


def test_resume_without_checkpoint_file_starts_fresh(tmp_path: Path) -> None:
    ck = tmp_path / "missing.pkl"
    acc = run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(2), ntrials=2, checkpoint_path=ck, resume=True, verbose=False)
    assert acc.is_complete()
    assert ck.exists()


def test_resume_rejects_shape_mismatch(tmp_path: Path) -> None:
    ck = tmp_path / "sweep.pkl"
    save_checkpoint(ResultAccumulator(2, [1, 2, 3]), ck)
    with pytest.raises(ConfigurationError, match="shape"):
        run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(2), ntrials=2, checkpoint_path=ck, resume=True)


@pytest.mark.parametrize(
    "overrides",
    [
        {"shuffle_groups": [[1, 4]]},
        {"shuffle_groups": [[1, 2], [2, 3]]},
        {"chunk_count": 100},
        {"ntrials": 2, "specific_trials": [1, 2]},
        {"cores": 0},
        {"cores": 2, "backend": "thread", "required_modules": ["simsweep_no_such_module"]},
        {"not_an_option": 1},
        {"specific_trials": [1, 2**32]},
        {"specific_trials": [1, 2**32], "cores": 2, "backend": "thread"},
        {"specific_trials": [1, 2**32], "cores": 2},
    ],
)
def test_config_errors_raised_before_any_task(overrides: dict) -> None:
    calls: list = []

    def generator(row, state):
        calls.append(row["id"])
        return [0.0]

    with pytest.raises(ConfigurationError):
        run_sweep(generator, fx.exec_mean, fx.settings_rows(3), **overrides)
    assert calls == []


def test_empty_settings_and_bad_callables() -> None:
    with pytest.raises(ConfigurationError):
        run_sweep(fx.gen_global_normal, fx.exec_mean, [], ntrials=1)
    with pytest.raises(ConfigurationError):
        run_sweep(fx.gen_global_normal, fx.exec_mean, 3, ntrials=1)
    with pytest.raises(TypeError):
        run_sweep("gen", fx.exec_mean, fx.settings_rows(1))


def test_checkpoint_write_failure_is_fatal(tmp_path: Path) -> None:
    target = tmp_path / "is_a_directory"
    target.mkdir()
    with pytest.raises(PersistenceError):
        run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(2), ntrials=1, checkpoint_path=target, verbose=False)


def test_override_on_top_of_config() -> None:
    cfg = SweepConfig(ntrials=5, verbose=False)
    acc = run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(1), cfg, specific_trials=[3])
    assert acc.trials == [3]
    assert cfg.ntrials == 5


def test_chunk_notices_follow_verbose(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.INFO, logger="simsweep"):
        run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(3), ntrials=1, verbose=True)
    notices = [r.getMessage() for r in caplog.records if "started" in r.getMessage()]
    assert notices == [f"Chunk {k} of 3 started (1 tasks)" for k in (1, 2, 3)]

    caplog.clear()
    with caplog.at_level(logging.INFO, logger="simsweep"):
        run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(3), ntrials=1, verbose=False)
    assert not [r for r in caplog.records if "started" in r.getMessage()]


def test_ntrials_override_replaces_specific_trials() -> None:
    cfg = SweepConfig(specific_trials=[1], verbose=False)
    acc = run_sweep(fx.gen_global_normal, fx.exec_mean, fx.settings_rows(1), cfg, ntrials=3)
    assert acc.trials == [1, 2, 3]
    assert cfg.specific_trials == [1]


def test_checkpoint_matches_final_result_for_array_values(tmp_path: Path) -> None:
    ck = tmp_path / "arrays.pkl"
    acc = run_sweep(fx.gen_global_normal, fx.exec_identity, fx.settings_rows(3), ntrials=2, checkpoint_path=ck, verbose=False)
    assert load_checkpoint(ck) == acc
    assert acc.get(1, 1).value.shape == (5,)
