from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

import numpy as np
from beartype import beartype
from jaxtyping import Float, jaxtyped

from ..utils import debug, debug_helpers
from . import geodesy
from . import transform as tf
from .config import CurveConfig, TessellationConfig
from .curve import Curve, CurveConstructionError, chord_length_times
from .easing import multi_hermite_lerp
from .geometry import max_deviation, polyline_length_np
from .spatial import InterpolationType, Pipe, PipeKind, SpatialNode, iter_dfs
from .types import NpPoints, Vec3

_DEGENERATE_EPS = 1e-8


class PipeDirection(Enum):
    FORWARD = 0
    BACKWARD = 1


@dataclass(frozen=True, eq=False)
class PipePolyline:
    pipe: Pipe
    direction: PipeDirection
    points: np.ndarray
    width: float
    length: float


def degree_of(interpolation_type: str) -> int:
    if interpolation_type == InterpolationType.LINEAR:
        return 1
    if interpolation_type == InterpolationType.QUADRATIC:
        return 2
    if interpolation_type == InterpolationType.CUBIC:
        return 3
    debug_helpers.warn_once(
        f"interp:{interpolation_type}",
        f"unknown interpolation type {interpolation_type!r}; using linear",
    )
    return 1


@jaxtyped(typechecker=beartype)
def build_arc_curve(p_from: Vec3, p_to: Vec3, height_fraction: float) -> Curve:
    """
    Three-control degree-2 curve from `p_from` to `p_to`.

    The middle control sits above the great-circle midpoint at
    `height_fraction * surface_distance`. A zero fraction gives a straight
    line through the chord midpoint.
    """
    if not (np.isfinite(p_from).all() and np.isfinite(p_to).all()):
        raise CurveConstructionError("arc endpoints contain NaN")
    if height_fraction == 0.0:
        mid = 0.5 * (p_from + p_to)
    else:
        try:
            lon1, lat1, _ = geodesy.to_cartographic(p_from)
            lon3, lat3, _ = geodesy.to_cartographic(p_to)
        except ValueError as exc:
            raise CurveConstructionError(f"arc endpoint has no geodetic position: {exc}") from exc
        dist = geodesy.surface_distance(lon1, lat1, lon3, lat3)
        mid_lon, mid_lat = geodesy.great_circle_midpoint(lon1, lat1, lon3, lat3)
        mid = geodesy.from_radians(mid_lon, mid_lat, dist * height_fraction)
    return Curve(np.array([0.0, 0.5, 1.0]), np.stack([p_from, mid, p_to]), degree=2)


@jaxtyped(typechecker=beartype)
def build_explicit_curve(points: NpPoints, degree: int, min_step: float = 0.01) -> Curve:
    if not np.isfinite(points).all():
        raise CurveConstructionError("explicit path contains NaN")
    return Curve(chord_length_times(points, min_step), points, degree)


def resample_curve(curve: Curve, num_points: int, ease_passes: int) -> Curve:
    """
    Evaluate `curve` at `num_points` eased parameters and rebuild a degree-2
    curve through them. Easing packs the new controls towards both ends.
    """
    amounts = np.linspace(0.0, 1.0, num_points)
    eased = multi_hermite_lerp(0.0, 1.0, amounts, ease_passes)
    times = curve.start_time + eased * (curve.end_time - curve.start_time)
    return Curve(times, curve.evaluate_many(times), degree=2)


def _normalized(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v, axis=-1, keepdims=True)
    return np.divide(v, norm, out=np.zeros_like(v), where=norm > 0)


def offset_curve(curve: Curve, offset_amount: float) -> Curve:
    """
    Push interior controls sideways by `offset_amount * sin(pi * t)`.

    Sideways is the averaged normalized (segment x up) of the two adjacent
    segments, with up taken as the radial direction of the control. Where
    that average vanishes the incoming segment direction is used instead.
    """
    if offset_amount == 0.0 or len(curve) < 3:
        return curve
    P = curve.points
    p1, p2, p3 = P[:-2], P[1:-1], P[2:]
    up = _normalized(p2)
    v1 = p2 - p1
    v2 = p3 - p2
    r_avg = 0.5 * (_normalized(np.cross(v1, up)) + _normalized(np.cross(v2, up)))
    degenerate = np.sum(r_avg * r_avg, axis=1) <= _DEGENERATE_EPS
    if degenerate.any():
        debug_helpers.log_once(
            "offset:degenerate",
            f"offset: {int(degenerate.sum())} controls run along their up axis; "
            "using the segment direction",
        )
    side = np.where(degenerate[:, None], _normalized(v1), _normalized(r_avg))

    span = curve.end_time - curve.start_time
    t = (curve.times[1:-1] - curve.start_time) / span
    amount = offset_amount * np.sin(math.pi * t)

    new_points = P.copy()
    new_points[1:-1] = p2 + side * amount[:, None]
    return curve.with_points(new_points)


class PipeCurveBuilder:
    """
    Builds and memoizes one curve per (pipe, direction).

    The cache is keyed by pipe id and owned here; pipes stay immutable.
    Call `clear()` before rebinding to a new tree.
    """

    def __init__(
        self,
        config: CurveConfig | None = None,
        tessellation: TessellationConfig | None = None,
    ) -> None:
        self.config = config or CurveConfig()
        self.tessellation = tessellation or TessellationConfig()
        self._cache: dict[tuple[int, PipeDirection], Curve] = {}

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def get_curve(self, pipe: Pipe, direction: PipeDirection) -> Curve:
        key = (pipe.pipe_id, direction)
        curve = self._cache.get(key)
        if curve is None:
            curve = self.build_curve(pipe, direction)
            self._cache[key] = curve
        return curve

    def build_curve(self, pipe: Pipe, direction: PipeDirection) -> Curve:
        cfg = self.config
        backwards = direction is PipeDirection.BACKWARD
        start = pipe.to_node if backwards else pipe.from_node
        end = pipe.from_node if backwards else pipe.to_node
        pos_from = np.array(start.position)
        pos_to = np.array(end.position)

        if pipe.kind == PipeKind.ARC:
            curve = build_arc_curve(pos_from, pos_to, cfg.arc_height_fraction)
        elif pipe.kind == PipeKind.LINE:
            curve = build_arc_curve(pos_from, pos_to, 0.0)
        elif pipe.kind == PipeKind.EXPLICIT:
            if pipe.explicit_path is None:
                raise CurveConstructionError("an EXPLICIT pipe must have an explicit path")
            components = pipe.explicit_path.components
            if backwards:
                components = tuple(reversed(components))
            chunks = [pos_from[None, :]]
            for component in components:
                pts = component.points[::-1] if backwards else component.points
                if len(pts) > 0:
                    chunks.append(tf.apply_many(pts, component.node.absolute))
            chunks.append(pos_to[None, :])
            degree = degree_of(pipe.explicit_path.interpolation_type)
            curve = build_explicit_curve(np.concatenate(chunks), degree, cfg.min_knot_spacing)
        else:
            raise CurveConstructionError(f"invalid pipe kind {pipe.kind!r}")

        distance = curve.chord_length()
        curve = resample_curve(curve, cfg.resample_points, cfg.ease_passes)
        curve = offset_curve(curve, distance * cfg.offset_fraction)
        debug.log(
            f"pipe {pipe.pipe_id} {start.id}->{end.id} {direction.name.lower()}: "
            f"kind={pipe.kind} controls={len(curve)} chord={distance:.6g}"
        )
        return curve

    def pipe_polyline(self, pipe: Pipe, direction: PipeDirection) -> PipePolyline:
        curve = self.get_curve(pipe, direction)
        length = curve.chord_length()
        end_tol, mid_tol = self.tessellation.tolerances(length)
        points = curve_to_polyline(curve, end_tol, mid_tol, self.tessellation.ease_passes)
        debug_helpers.log_points(f"polyline pipe={pipe.pipe_id}", points)
        if debug.is_verbose():
            dense = curve.evaluate_many(np.linspace(curve.start_time, curve.end_time, 4 * len(curve)))
            debug.log(
                f"polyline pipe={pipe.pipe_id}: max_dev={max_deviation(dense, points):.4g} "
                f"end_tol={end_tol:.4g} mid_tol={mid_tol:.4g}"
            )
        return PipePolyline(
            pipe=pipe,
            direction=direction,
            points=points,
            width=pipe.width,
            length=polyline_length_np(points),
        )

    def polylines_for_tree(self, root: SpatialNode) -> list[PipePolyline]:
        result = []
        for node in iter_dfs(root):
            for pipe in node.pipes:
                result.append(self.pipe_polyline(pipe, PipeDirection.FORWARD))
                if pipe.bidirectional:
                    result.append(self.pipe_polyline(pipe, PipeDirection.BACKWARD))
        return result


def curve_to_polyline(
    curve: Curve,
    end_tolerance: float,
    mid_tolerance: float,
    ease_passes: int = 2,
    max_depth: int = 30,
) -> Float[np.ndarray, "M 3"]:
    """
    Adaptive bisection of `curve` into a polyline.

    The allowed error blends from `mid_tolerance` at the middle of the
    parameter range to `end_tolerance` at both ends (eased). An interval is
    split while the chord midpoint is farther than the tolerance from the
    curve's own midpoint. Both exact endpoints are always included.
    """
    if math.isnan(end_tolerance) or math.isnan(mid_tolerance):
        raise ValueError("tolerance is NaN")

    start_time = curve.start_time
    end_time = curve.end_time
    mid_time = 0.5 * (start_time + end_time)
    half = mid_time - start_time
    out: list[np.ndarray] = []

    def tolerance_at(t: float) -> float:
        return float(
            multi_hermite_lerp(mid_tolerance, end_tolerance, abs(t - mid_time) / half, ease_passes)
        )

    def subdivide(p1: np.ndarray, t1: float, p2: np.ndarray, t2: float, depth: int) -> None:
        if depth >= max_depth:
            return
        t_mid = 0.5 * (t1 + t2)
        approx = 0.5 * (p1 + p2)
        real = curve.evaluate(t_mid)
        tol = tolerance_at(t_mid)
        d = approx - real
        if float(np.dot(d, d)) <= tol * tol:
            return
        subdivide(p1, t1, real, t_mid, depth + 1)
        out.append(real)
        subdivide(real, t_mid, p2, t2, depth + 1)

    start = curve.evaluate(start_time)
    end = curve.evaluate(end_time)
    out.append(start)
    subdivide(start, start_time, end, end_time, 0)
    out.append(end)
    return np.stack(out)
