"""Seeding and checkpoint persistence."""

from .checkpoint import PersistenceError, load_checkpoint, save_checkpoint
from .seeds import rng_for_trial, set_seed, trial_random_state

__all__ = [
    "PersistenceError",
    "load_checkpoint",
    "rng_for_trial",
    "save_checkpoint",
    "set_seed",
    "trial_random_state",
]
