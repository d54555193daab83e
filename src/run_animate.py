from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Protocol, cast

from .flowpath.config import CurveConfig, TessellationConfig
from .flowpath.export_svg import export_polylines_svg
from .flowpath.geometry import polyline_length_np
from .flowpath.provider import InMemoryDataProvider, load_dataset
from .flowpath.session import TransportSession
from .utils import debug, debug_helpers


class CliArgs(Protocol):
    input: str
    output: str | None
    svg: str | None
    at: list[float]
    arc_height: float
    offset_fraction: float
    resample_points: int
    ease_passes: int
    min_knot_spacing: float
    end_ratio: float
    mid_ratio: float
    tol_eps: float
    verbose: bool


def main() -> None:
    ap = argparse.ArgumentParser(
        description="Build pipe polylines and package trajectories from a JSON dataset"
    )
    ap.add_argument("--input", required=True, help="Dataset JSON (meta, tree, events)")
    ap.add_argument("--output", default=None, help="Write pipe polylines and a summary as JSON")
    ap.add_argument("--svg", default=None, help="Write a top-down SVG preview")
    ap.add_argument(
        "--at",
        type=float,
        nargs="*",
        default=[],
        help="Print every package position at these times (seconds since start)",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable debug logs")

    # Curves
    ap.add_argument(
        "--arc_height",
        type=float,
        default=1.0 / 8.0,
        help="Arc mid height as a fraction of surface distance",
    )
    ap.add_argument(
        "--offset_fraction",
        type=float,
        default=1.0 / 50.0,
        help="Lateral offset as a fraction of endpoint distance",
    )
    ap.add_argument("--resample_points", type=int, default=129)
    ap.add_argument("--ease_passes", type=int, default=2)
    ap.add_argument("--min_knot_spacing", type=float, default=0.01)

    # Tessellation
    ap.add_argument("--end_ratio", type=float, default=1.0 / 50000.0)
    ap.add_argument("--mid_ratio", type=float, default=1.0 / 1000.0)
    ap.add_argument("--tol_eps", type=float, default=0.01)

    args = cast(CliArgs, ap.parse_args())
    debug.set_verbose(args.verbose)

    curve_config = CurveConfig(
        arc_height_fraction=args.arc_height,
        offset_fraction=args.offset_fraction,
        resample_points=args.resample_points,
        ease_passes=args.ease_passes,
        min_knot_spacing=args.min_knot_spacing,
    )
    tessellation = TessellationConfig(
        end_ratio=args.end_ratio,
        mid_ratio=args.mid_ratio,
        epsilon=args.tol_eps,
        ease_passes=args.ease_passes,
    )

    dataset = load_dataset(args.input)
    provider = InMemoryDataProvider.from_dataset(dataset)
    session = TransportSession(curve_config, tessellation)
    session.bind(provider)

    packages = sorted(session.packages(), key=lambda s: s.id)
    for state in packages:
        _, pts = state.trajectory.as_arrays()
        debug_helpers.log_points(f"package {state.id} {state.name!r}", pts)

    print(
        f"nodes={len(session.graph.in_dfs_order()) if session.graph else 0} "
        f"polylines={len(session.polylines)} packages={len(packages)}"
    )
    for t in args.at:
        for state in packages:
            pos = state.trajectory.position(t)
            if pos is None:
                continue
            print(f"t={t:.3f} package={state.id} pos=({pos[0]:.3f},{pos[1]:.3f},{pos[2]:.3f})")

    if args.output is not None:
        summary: dict[str, Any] = {
            "pipes": [
                {
                    "pipeId": p.pipe.pipe_id,
                    "fromNodeId": p.pipe.from_node.id,
                    "toNodeId": p.pipe.to_node.id,
                    "direction": p.direction.name,
                    "width": p.width,
                    "length": p.length,
                    "points": p.points.tolist(),
                }
                for p in session.polylines
            ],
            "packages": [
                {
                    "id": s.id,
                    "name": s.name,
                    "samples": len(s.trajectory),
                    "startTime": s.trajectory.start_time,
                    "endTime": s.trajectory.end_time,
                    "pathLength": polyline_length_np(s.trajectory.as_arrays()[1]),
                }
                for s in packages
            ],
        }
        Path(args.output).write_text(json.dumps(summary, indent=2), encoding="utf-8")
        print(f"Saved: {args.output}")

    if args.svg is not None and session.root is not None:
        tracks = [s.trajectory.as_arrays()[1] for s in packages]
        export_polylines_svg(
            args.svg,
            [p.points for p in session.polylines],
            frame=session.root.absolute,
            widths=[p.width for p in session.polylines],
            tracks=tracks,
        )
        print(f"Saved: {args.svg}")


if __name__ == "__main__":
    main()
