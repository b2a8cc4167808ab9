"""
Pytest bootstrap for src/ layout.

Why:
- Repo uses ./src for packages.
- Worker processes started by the process backend import test callbacks by
  module name, so both ./src and the repo root must be on sys.path.

This ensures ./src is always on sys.path for any pytest invocation.
"""
from __future__ import annotations

import sys
from pathlib import Path

repo_root = Path(__file__).resolve().parents[1]
src = repo_root / "src"
for p in (src, repo_root):
    p_str = str(p)
    if p.is_dir() and p_str not in sys.path:
        # Put first so local src wins over any installed package named `simsweep`.
        sys.path.insert(0, p_str)
