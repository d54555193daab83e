from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np
from beartype import beartype
from jaxtyping import Float, jaxtyped

from .types import Vec3


@dataclass
class Trajectory:
    """
    Time-ordered (seconds, point) samples of one package.

    Samples are appended in emission order, which the synthesizer keeps
    non-decreasing in time. `position` interpolates linearly between them
    and clamps to the first/last sample outside the covered interval.
    """

    times: list[float] = field(default_factory=list)
    points: list[np.ndarray] = field(default_factory=list)

    def add(self, time: float, point: np.ndarray) -> None:
        self.times.append(float(time))
        self.points.append(np.asarray(point, dtype=np.float64))

    def clear(self) -> None:
        self.times.clear()
        self.points.clear()

    def sort(self) -> None:
        """Stable sort by time; samples emitted at equal times keep their order."""
        order = sorted(range(len(self.times)), key=self.times.__getitem__)
        self.times[:] = [self.times[i] for i in order]
        self.points[:] = [self.points[i] for i in order]

    def __len__(self) -> int:
        return len(self.times)

    @property
    def start_time(self) -> float | None:
        return self.times[0] if self.times else None

    @property
    def end_time(self) -> float | None:
        return self.times[-1] if self.times else None

    def samples(self) -> list[tuple[float, np.ndarray]]:
        return list(zip(self.times, self.points))

    def samples_between(self, start: float, end: float) -> list[tuple[float, np.ndarray]]:
        """Samples with start <= time <= end, in order."""
        result = []
        for t, p in zip(self.times, self.points):
            if t < start:
                continue
            if t > end:
                break
            result.append((t, p))
        return result

    def as_arrays(self) -> tuple[Float[np.ndarray, "N"], Float[np.ndarray, "N 3"]]:
        if not self.times:
            return np.zeros(0), np.zeros((0, 3))
        return np.asarray(self.times, dtype=np.float64), np.stack(self.points)

    def position(self, time: float) -> Vec3 | None:
        """Position at `time`, or None when there are no samples."""
        if not self.times:
            return None
        return interpolate_samples(*self.as_arrays(), float(time))


@jaxtyped(typechecker=beartype)
def interpolate_samples(
    times: Float[np.ndarray, "N"],
    points: Float[np.ndarray, "N 3"],
    t: float,
) -> Vec3:
    """Degree-1 interpolation; repeated times resolve to the later sample."""
    if t <= times[0]:
        return points[0].copy()
    if t >= times[-1]:
        return points[-1].copy()
    i = int(np.searchsorted(times, t, side="right"))
    t0, t1 = times[i - 1], times[i]
    if t1 <= t0:
        return points[i].copy()
    a = (t - t0) / (t1 - t0)
    return (1.0 - a) * points[i - 1] + a * points[i]
