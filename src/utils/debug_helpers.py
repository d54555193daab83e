from __future__ import annotations

import numpy as np

from . import debug

_seen: set[str] = set()


def log_once(key: str, message: str) -> None:
    if debug.is_verbose() and key not in _seen:
        _seen.add(key)
        debug.log(message)


def warn_once(key: str, message: str) -> None:
    if key not in _seen:
        _seen.add(key)
        debug.warn(message)


def log_points(name: str, arr: np.ndarray) -> None:
    """Summarise an (N,3) point array: count, bounding box and finiteness."""
    if not debug.is_verbose():
        return
    if arr.size == 0:
        debug.log(f"{name}: empty")
        return
    finite_all = bool(np.isfinite(arr).all())
    lo = arr.min(axis=0)
    hi = arr.max(axis=0)
    debug.log(
        f"{name}: n={arr.shape[0]} finite_all={finite_all} "
        f"min=({lo[0]:.6g},{lo[1]:.6g},{lo[2]:.6g}) "
        f"max=({hi[0]:.6g},{hi[1]:.6g},{hi[2]:.6g})"
    )


def clear_seen() -> None:
    """Forget which once-only messages were printed, e.g. before loading a new dataset."""
    _seen.clear()
