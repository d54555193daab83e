from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from beartype import beartype
from jaxtyping import Float, jaxtyped

from .types import NpBasisMatrix, NpPoints, NpTimes, Vec3


class CurveConstructionError(ValueError):
    """Raised when curve inputs are degenerate (NaN, too few points, bad kind)."""


@jaxtyped(typechecker=beartype)
def chord_length_times(points: NpPoints, min_step: float = 0.01) -> NpTimes:
    """
    Parameters in [0,1] proportional to cumulative chord length.
    Each chord is floored at `min_step` so coincident points still get
    distinct, increasing parameters.
    """
    P = np.asarray(points, dtype=np.float64)
    if P.shape[0] < 2:
        raise CurveConstructionError("need at least 2 points")
    if not np.isfinite(P).all():
        raise CurveConstructionError("points contains non-finite coordinates")
    steps = np.maximum(np.linalg.norm(P[1:] - P[:-1], axis=1), min_step)
    times = np.zeros(P.shape[0], dtype=np.float64)
    times[1:] = np.cumsum(steps) / steps.sum()
    times[-1] = 1.0
    return times


def window_start(times: np.ndarray, t: float, n_points: int) -> int:
    """
    First index of the `n_points` controls used to evaluate at `t`.
    The window is centred so that `t` sits between its two middle controls.
    """
    N = times.shape[0]
    index = int(np.searchsorted(times, t, side="right"))
    first = index - n_points // 2
    return max(0, min(first, N - n_points))


def lagrange_weights(nodes: np.ndarray, t: float) -> np.ndarray:
    k = nodes.shape[0]
    w = np.ones(k, dtype=np.float64)
    for j in range(k):
        for m in range(k):
            if m != j:
                w[j] *= (t - nodes[m]) / (nodes[j] - nodes[m])
    return w


@jaxtyped(typechecker=beartype)
def make_basis_matrix(
    times: NpTimes,
    degree: int,
    ts: Float[np.ndarray, "M"],
) -> NpBasisMatrix:
    """
    Returns B: (M, N) such that X = B @ P evaluates the curve at every `ts`.
    Rows are local: only `degree + 1` neighbouring controls are non-zero.
    """
    N = times.shape[0]
    n_points = min(degree + 1, N)
    B_mat = np.zeros((ts.shape[0], N), dtype=np.float64)
    for row, t in enumerate(ts):
        t = float(np.clip(t, times[0], times[-1]))
        exact = np.nonzero(times == t)[0]
        if exact.size > 0:
            B_mat[row, exact[0]] = 1.0
            continue
        first = window_start(times, t, n_points)
        B_mat[row, first : first + n_points] = lagrange_weights(
            times[first : first + n_points], t
        )
    return B_mat


@dataclass(frozen=True)
class Curve:
    """
    Ordered (time, point) controls plus an evaluation degree.

    degree 1 is piecewise linear; higher degrees interpolate a polynomial
    through the `degree + 1` controls nearest to the query time. Queries
    outside [times[0], times[-1]] are clamped.
    """

    times: np.ndarray
    points: np.ndarray
    degree: int = 1

    def __post_init__(self) -> None:
        times = np.asarray(self.times, dtype=np.float64)
        points = np.asarray(self.points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise CurveConstructionError("points must have shape (N,3)")
        if times.shape != (points.shape[0],):
            raise CurveConstructionError("times must have shape (N,)")
        if points.shape[0] < 2:
            raise CurveConstructionError("a curve needs at least 2 controls")
        if not np.isfinite(points).all() or not np.isfinite(times).all():
            raise CurveConstructionError("curve controls contain NaN")
        if np.any(np.diff(times) <= 0.0):
            raise CurveConstructionError("times must be strictly increasing")
        if self.degree < 1:
            raise CurveConstructionError("degree must be >= 1")
        times.setflags(write=False)
        points.setflags(write=False)
        object.__setattr__(self, "times", times)
        object.__setattr__(self, "points", points)

    @property
    def start_time(self) -> float:
        return float(self.times[0])

    @property
    def end_time(self) -> float:
        return float(self.times[-1])

    def __len__(self) -> int:
        return int(self.points.shape[0])

    def evaluate(self, t: float) -> Vec3:
        B = make_basis_matrix(self.times, self.degree, np.array([t], dtype=np.float64))
        return B[0] @ self.points

    def evaluate_many(self, ts: Float[np.ndarray, "M"]) -> Float[np.ndarray, "M 3"]:
        B = make_basis_matrix(self.times, self.degree, np.asarray(ts, dtype=np.float64))
        return B @ self.points

    def with_points(self, points: NpPoints) -> Curve:
        return Curve(self.times, points, self.degree)

    def chord_length(self) -> float:
        return float(np.linalg.norm(self.points[-1] - self.points[0]))
