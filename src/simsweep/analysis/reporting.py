"""
Presentation helpers for a finished (or checkpointed) sweep.

The engine keys results by integer setting index and trial id. These helpers
flatten that into pandas frames or relabel it for printing; none of them
interpret result values.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from simsweep.core.models import ResultAccumulator, TaskFailure, TaskResult

__all__ = ["labelled_results", "results_frame", "summarize_results"]

_LONG_COLUMNS = ["setting", "trial", "status", "value", "elapsed_time", "cpu_time", "error"]


def results_frame(acc: ResultAccumulator) -> pd.DataFrame:
    """One row per (setting, trial) slot, in setting then trial-set order."""
    rows: List[Dict[str, Any]] = []
    values: List[Any] = []
    for i, t, outcome in acc.slots():
        row: Dict[str, Any] = {
            "setting": int(i),
            "trial": int(t),
            "status": "pending",
            "elapsed_time": float("nan"),
            "cpu_time": float("nan"),
            "error": "",
        }
        value = None
        if isinstance(outcome, TaskResult):
            value = outcome.value
            row.update(
                status="ok",
                elapsed_time=float(outcome.elapsed_time),
                cpu_time=float(outcome.cpu_time),
            )
        elif isinstance(outcome, TaskFailure):
            row.update(status="failed", error=f"{outcome.error_type}: {outcome.error}")
        rows.append(row)
        values.append(value)
    df = pd.DataFrame.from_records(rows, columns=[c for c in _LONG_COLUMNS if c != "value"])
    # values are opaque: an object column, so None stays None and arrays stay whole
    df.insert(_LONG_COLUMNS.index("value"), "value", pd.Series(values, index=df.index, dtype=object))
    return df


def labelled_results(acc: ResultAccumulator) -> Dict[str, Dict[str, Optional[Any]]]:
    """Relabel keys as ``row_<i>`` / ``trial_<t>``; outcomes are passed through."""
    return {
        f"row_{i}": {f"trial_{t}": outcome for t, outcome in row.items()}
        for i, row in acc.items()
    }


def summarize_results(acc: ResultAccumulator) -> pd.DataFrame:
    """Per-setting counts and executor timing."""
    df = results_frame(acc)
    groups: List[Dict[str, Any]] = []
    for setting, g in df.groupby("setting", sort=True):
        ok = g["status"] == "ok"
        elapsed = pd.to_numeric(g.loc[ok, "elapsed_time"], errors="coerce")
        groups.append(
            {
                "setting": int(setting),
                "n_trials": int(len(g)),
                "n_ok": int(ok.sum()),
                "n_failed": int((g["status"] == "failed").sum()),
                "n_pending": int((g["status"] == "pending").sum()),
                "elapsed_mean": float(elapsed.mean()) if not elapsed.empty else float(np.nan),
                "elapsed_total": float(elapsed.sum()),
            }
        )
    return pd.DataFrame(groups)
