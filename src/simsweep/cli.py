from __future__ import annotations

"""
simsweep.cli
============

Command-line entry point.

    python -m simsweep.cli --config sweep.yaml --settings settings.csv \
        --generator mypkg.sim:generate --executor mypkg.sim:estimate --out_dir runs/demo

The YAML file carries the engine options (see SweepConfig) and may also name
``settings`` (a list of rows or a CSV path), ``generator`` and ``executor``;
command-line flags win over YAML entries.
"""

import argparse
import json
import logging
import pickle
import platform
import sys
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from importlib import import_module
from pathlib import Path
from typing import Any, Callable

import blake3
import numpy as np
import pandas as pd

from simsweep import __version__
from simsweep.analysis.reporting import results_frame, summarize_results
from simsweep.core.config import ConfigurationError, cfg_from_dict, load_yaml
from simsweep.core.engine import run_sweep
from simsweep.core.models import ResultAccumulator

LOG = logging.getLogger(__name__)


def load_callable(spec: str) -> Callable[..., Any]:
    """Resolve ``"package.module:attr"`` to a callable."""
    mod_name, sep, attr = str(spec).partition(":")
    if not sep or not mod_name or not attr:
        raise ConfigurationError(f"callable must be given as 'module:attr', got {spec!r}")
    try:
        mod = import_module(mod_name)
    except ImportError as e:
        raise ConfigurationError(f"cannot import module {mod_name!r} for {spec!r}: {e}") from e
    obj: Any = mod
    for part in attr.split("."):
        try:
            obj = getattr(obj, part)
        except AttributeError as e:
            raise ConfigurationError(f"{mod_name!r} has no attribute {attr!r}") from e
    if not callable(obj):
        raise ConfigurationError(f"{spec!r} resolved to a non-callable {type(obj).__name__}")
    return obj


def load_settings(source: Any, *, base_dir: Path | None = None) -> pd.DataFrame:
    """Settings table from a CSV path or an inline list of mappings."""
    if isinstance(source, (str, Path)):
        path = Path(source).expanduser()
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        try:
            df = pd.read_csv(path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
            raise ConfigurationError(f"could not read settings CSV {str(path)!r}: {e}") from e
    elif isinstance(source, list):
        df = pd.DataFrame.from_records(source)
    else:
        raise ConfigurationError(f"settings must be a CSV path or a list of rows, got {type(source).__name__}")
    if df.empty:
        raise ConfigurationError("settings table has no rows")
    return df.reset_index(drop=True)


def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
    tmp.replace(path)


def _atomic_write_csv(df: pd.DataFrame, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    df.to_csv(tmp, index=False)
    tmp.replace(path)


def _config_hash(raw: dict[str, Any]) -> str:
    data = json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)
    return blake3.blake3(data.encode("utf-8")).hexdigest()


def write_bundle(acc: ResultAccumulator, out_dir: Path, *, manifest: dict[str, Any]) -> dict[str, str]:
    """Write results.pkl, results_long.csv, summary.csv and manifest.json."""
    out_dir.mkdir(parents=True, exist_ok=True)
    outputs: dict[str, str] = {}

    pkl = out_dir / "results.pkl"
    tmp = pkl.with_suffix(".pkl.tmp")
    with open(tmp, "wb") as f:
        pickle.dump(acc, f, protocol=pickle.HIGHEST_PROTOCOL)
    tmp.replace(pkl)
    outputs["results.pkl"] = str(pkl)

    long_df = results_frame(acc)
    # values are opaque; the CSV keeps their repr
    long_df["value"] = long_df["value"].map(lambda v: "" if v is None else repr(v))
    _atomic_write_csv(long_df, out_dir / "results_long.csv")
    outputs["results_long.csv"] = str(out_dir / "results_long.csv")

    _atomic_write_csv(summarize_results(acc), out_dir / "summary.csv")
    outputs["summary.csv"] = str(out_dir / "summary.csv")

    payload = {**manifest, "outputs": outputs}
    _atomic_write_text(out_dir / "manifest.json", json.dumps(payload, indent=2, sort_keys=True, default=str) + "\n")
    outputs["manifest.json"] = str(out_dir / "manifest.json")
    return outputs


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Run a generator/executor parameter sweep.")
    ap.add_argument("--config", type=str, required=True, help="Path to YAML config.")
    ap.add_argument("--settings", type=str, default=None, help="CSV file with one parameter setting per row.")
    ap.add_argument("--generator", type=str, default=None, help="Generator as module:attr.")
    ap.add_argument("--executor", type=str, default=None, help="Executor as module:attr.")
    ap.add_argument("--cores", type=int, default=None, help="Override the configured worker count.")
    ap.add_argument("--checkpoint", type=str, default=None, help="Override the checkpoint path.")
    ap.add_argument("--resume", action="store_true", help="Resume from an existing checkpoint.")
    ap.add_argument("--out_dir", type=str, default=None, help="Write the artifact bundle to this directory.")
    ap.add_argument("--quiet", action="store_true", help="Disable progress bars and chunk notices.")
    ap.add_argument("--log_level", type=str, default="INFO", help="Logging level.")
    return ap.parse_args(list(argv) if argv is not None else None)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )

    started = datetime.now(timezone.utc).isoformat()
    t0 = time.time()
    config_path = Path(args.config).expanduser()

    try:
        raw = load_yaml(config_path)
        overrides = dict(raw)
        if args.cores is not None:
            overrides["cores"] = args.cores
        if args.checkpoint is not None:
            for alias in ("checkpointPath", "filepath"):
                overrides.pop(alias, None)
            overrides["checkpoint_path"] = args.checkpoint
        if args.resume:
            overrides["resume"] = True
        if args.quiet:
            overrides["verbose"] = False
        cfg = cfg_from_dict(overrides)

        gen_spec = args.generator or raw.get("generator")
        exe_spec = args.executor or raw.get("executor")
        if not gen_spec or not exe_spec:
            raise ConfigurationError("both a generator and an executor are required (flags or YAML keys)")
        generator = load_callable(gen_spec)
        executor = load_callable(exe_spec)

        settings_src = args.settings if args.settings is not None else raw.get("settings")
        if settings_src is None:
            raise ConfigurationError("no settings given (--settings or a 'settings' YAML key)")
        settings = load_settings(settings_src, base_dir=config_path.parent)
    except ConfigurationError as e:
        LOG.exception("Config loading/validation failed.")
        print(f"ERROR: config loading/validation failed: {e}", file=sys.stderr)
        return 2

    try:
        acc = run_sweep(generator, executor, settings, cfg)
    except ConfigurationError as e:
        LOG.exception("Sweep configuration rejected.")
        print(f"ERROR: sweep configuration rejected: {e}", file=sys.stderr)
        return 2
    except Exception as e:
        LOG.exception("Sweep failed.")
        print(f"ERROR: sweep failed: {e}", file=sys.stderr)
        return 1

    diag = {
        "settings": int(acc.n_settings),
        "trials": len(acc.trials),
        "failed": int(acc.n_failed()),
        "pending": int(acc.n_pending()),
        "elapsed_seconds": float(time.time() - t0),
    }
    print(json.dumps(diag, sort_keys=True))

    if args.out_dir:
        manifest = {
            "run_started_utc": started,
            "run_finished_utc": datetime.now(timezone.utc).isoformat(),
            "simsweep": __version__,
            "python": sys.version,
            "platform": platform.platform(),
            "numpy": getattr(np, "__version__", None),
            "pandas": getattr(pd, "__version__", None),
            "config_path": str(config_path),
            "config_blake3": _config_hash(raw),
            "diagnostics": diag,
        }
        try:
            write_bundle(acc, Path(args.out_dir).expanduser(), manifest=manifest)
        except (OSError, pickle.PicklingError, TypeError, AttributeError) as e:
            LOG.exception("Writing outputs failed.")
            print(f"ERROR: writing outputs failed: {e}", file=sys.stderr)
            return 1
        print(f"[simsweep] outputs written to: {args.out_dir}", file=sys.stderr)

    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
