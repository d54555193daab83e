from __future__ import annotations

import numpy as np


def hermite(t: float | np.ndarray) -> float | np.ndarray:
    """Smoothstep on [0,1]: 3t^2 - 2t^3."""
    return t * t * (3 - 2 * t)


def multi_hermite_lerp(
    x: float | np.ndarray,
    y: float | np.ndarray,
    t: float | np.ndarray,
    n: int,
) -> float | np.ndarray:
    """Lerp from x to y with t passed through `n` nested smoothstep passes.

    Works elementwise on arrays. Each pass flattens the ends further, so
    n=2 concentrates samples near t=0 and t=1 much more than a single pass.
    """
    for _ in range(n):
        t = hermite(t)
    return x - t * (x - y)


def safe_lerp(start: float, end: float, amount: float) -> float:
    """Lerp clamped to [start, end] (assumes start <= end)."""
    result = (1 - amount) * start + amount * end
    if result < start:
        return start
    if result > end:
        return end
    return result
