from __future__ import annotations

import numpy as np
import svgwrite  # type: ignore[reportMissingTypeStubs]
from beartype import beartype
from jaxtyping import Float, jaxtyped

from . import transform as tf
from .transform import Transform


@jaxtyped(typechecker=beartype)
def project_to_plane(
    points: Float[np.ndarray, "N 3"],
    frame: Transform,
) -> Float[np.ndarray, "N 2"]:
    """
    Local (east, north) coordinates of earth-fixed points in `frame`,
    with north flipped to match SVG's downward y axis.
    """
    local = tf.apply_many(points, tf.invert(frame))
    out = local[:, :2].copy()
    out[:, 1] *= -1.0
    return out


def export_polylines_svg(
    out_path: str,
    polylines: list[np.ndarray],
    frame: Transform,
    widths: list[float] | None = None,
    tracks: list[np.ndarray] | None = None,
    stroke: str = "#1f4e79",
    track_stroke: str = "#c0392b",
    stroke_width_scale: float = 1.0,
    pad: float = 10.0,
) -> None:
    """
    Top-down preview of pipe polylines (and optional package tracks) in the
    tangent plane of `frame`. Each polyline is an (N,3) earth-fixed array.
    """
    if widths is None:
        widths = [1.0] * len(polylines)
    kept = [(p, w) for p, w in zip(polylines, widths) if p.shape[0] >= 2]
    projected = [project_to_plane(p, frame) for p, _ in kept]
    projected_tracks = [project_to_plane(p, frame) for p in (tracks or []) if p.shape[0] >= 2]
    allp = projected + projected_tracks
    if allp:
        stacked = np.vstack(allp)
        minx, miny = stacked.min(axis=0)
        maxx, maxy = stacked.max(axis=0)
    else:
        minx = miny = 0.0
        maxx = maxy = 1.0
    viewbox = (
        float(minx - pad),
        float(miny - pad),
        float((maxx - minx) + 2 * pad),
        float((maxy - miny) + 2 * pad),
    )

    dwg = svgwrite.Drawing(out_path, profile="tiny")
    dwg.attribs["viewBox"] = f"{viewbox[0]} {viewbox[1]} {viewbox[2]} {viewbox[3]}"

    def to_point_list(points: np.ndarray) -> list[tuple[float, float]]:
        return [(float(p[0]), float(p[1])) for p in points]

    for pts, (_, width) in zip(projected, kept):
        dwg.add(
            dwg.polyline(
                points=to_point_list(pts),
                stroke=stroke,
                fill="none",
                stroke_width=float(width) * stroke_width_scale,
            )
        )
    for pts in projected_tracks:
        dwg.add(
            dwg.polyline(
                points=to_point_list(pts),
                stroke=track_stroke,
                fill="none",
                stroke_width=0.5 * stroke_width_scale,
            )
        )
    dwg.save()
