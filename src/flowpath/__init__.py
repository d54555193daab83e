from . import (
    curve,
    easing,
    export_svg,
    geodesy,
    geometry,
    graph,
    pipe_curves,
    provider,
    session,
    spatial,
    synthesizer,
    trajectory,
    transform,
)

__all__ = [
    "transform",
    "geodesy",
    "easing",
    "curve",
    "geometry",
    "spatial",
    "graph",
    "pipe_curves",
    "trajectory",
    "synthesizer",
    "provider",
    "session",
    "export_svg",
]
