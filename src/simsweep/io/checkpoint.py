"""Checkpoint snapshots of the result accumulator.

A snapshot is the whole accumulator, pickled and written atomically (temp
file in the same directory, then ``replace``), so a reader never sees a
half-written file and the previous snapshot survives a failed write.
"""

from __future__ import annotations

import logging
import os
import pickle
from pathlib import Path
from typing import Union

from simsweep.core.models import ResultAccumulator

LOG = logging.getLogger(__name__)

_SNAPSHOT_FORMAT = "simsweep/checkpoint.v1"


class PersistenceError(OSError):
    """Raised when a checkpoint cannot be written or read back."""


def save_checkpoint(acc: ResultAccumulator, path: Union[str, Path]) -> Path:
    """Serialize ``acc`` to ``path``, overwriting any previous snapshot."""
    target = Path(path)
    tmp = target.with_name(target.name + ".tmp")
    payload = {"format": _SNAPSHOT_FORMAT, "results": acc}
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "wb") as f:
            pickle.dump(payload, f, protocol=pickle.HIGHEST_PROTOCOL)
            f.flush()
            os.fsync(f.fileno())
        tmp.replace(target)
    except (OSError, pickle.PicklingError, TypeError, AttributeError) as e:
        try:
            tmp.unlink()
        except OSError:
            pass
        raise PersistenceError(f"could not write checkpoint to {str(target)!r}: {e}") from e
    LOG.debug("checkpoint written: %s (%r)", target, acc)
    return target


def load_checkpoint(path: Union[str, Path]) -> ResultAccumulator:
    """Read a snapshot written by :func:`save_checkpoint`."""
    source = Path(path)
    try:
        with open(source, "rb") as f:
            payload = pickle.load(f)
    except (OSError, pickle.UnpicklingError, EOFError, AttributeError, ImportError) as e:
        raise PersistenceError(f"could not read checkpoint {str(source)!r}: {e}") from e

    if not isinstance(payload, dict) or payload.get("format") != _SNAPSHOT_FORMAT:
        raise PersistenceError(f"{str(source)!r} is not a simsweep checkpoint")
    acc = payload.get("results")
    if not isinstance(acc, ResultAccumulator):
        raise PersistenceError(f"{str(source)!r} holds {type(acc).__name__}, expected ResultAccumulator")
    return acc


__all__ = ["PersistenceError", "load_checkpoint", "save_checkpoint"]
