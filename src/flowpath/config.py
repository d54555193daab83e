from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CurveConfig:
    """Tunables for building pipe curves."""

    # Arc midpoint height as a fraction of the great-circle surface distance.
    arc_height_fraction: float = 1.0 / 8.0
    # Peak lateral offset as a fraction of the endpoint distance.
    offset_fraction: float = 1.0 / 50.0
    resample_points: int = 129
    ease_passes: int = 2
    # Floor on each chord when assigning explicit-path knot parameters.
    min_knot_spacing: float = 0.01

    def __post_init__(self) -> None:
        if self.resample_points < 3:
            raise ValueError("resample_points must be >= 3")
        if self.ease_passes < 0:
            raise ValueError("ease_passes must be >= 0")
        if self.min_knot_spacing <= 0:
            raise ValueError("min_knot_spacing must be positive")


@dataclass(frozen=True)
class TessellationConfig:
    """Pipe polyline tolerances: `length * ratio + epsilon` at ends and middle."""

    end_ratio: float = 1.0 / 50000.0
    mid_ratio: float = 1.0 / 1000.0
    epsilon: float = 0.01
    ease_passes: int = 2

    def tolerances(self, length: float) -> tuple[float, float]:
        return (
            length * self.end_ratio + self.epsilon,
            length * self.mid_ratio + self.epsilon,
        )
