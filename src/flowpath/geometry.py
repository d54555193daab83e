from __future__ import annotations

import jax.numpy as jnp
import numpy as np
from beartype import beartype
from jax import Array
from jaxtyping import Float, jaxtyped


@jaxtyped(typechecker=beartype)
def polyline_dist2(
    samples: Float[Array, "Q 3"],
    polyline: Float[Array, "M 3"],
) -> Float[Array, "Q"]:
    """Squared distance from each sample to the nearest polyline segment."""
    a = polyline[None, :-1, :]
    ab = polyline[None, 1:, :] - a
    p = samples[:, None, :]
    t = jnp.sum((p - a) * ab, axis=-1) / (jnp.sum(ab * ab, axis=-1) + 1e-12)
    q = a + jnp.clip(t, 0.0, 1.0)[..., None] * ab
    d2 = jnp.sum((p - q) * (p - q), axis=-1)
    return jnp.min(d2, axis=-1)


def centred(points: np.ndarray, origin: np.ndarray | None = None) -> Array:
    """
    Shift points next to the origin before handing them to jax.
    Earth-fixed coordinates are ~6e6 m and jax defaults to float32.
    """
    P = np.asarray(points, dtype=np.float64)
    o = P[0] if origin is None else np.asarray(origin, dtype=np.float64)
    return jnp.asarray(P - o, dtype=jnp.float32)


@jaxtyped(typechecker=beartype)
def polyline_length_np(points: Float[np.ndarray, "M 3"]) -> float:
    """Polyline length in world units, accumulated in float64."""
    if points.shape[0] < 2:
        return 0.0
    seg = np.diff(np.asarray(points, dtype=np.float64), axis=0)
    return float(np.sum(np.linalg.norm(seg, axis=-1)))


def max_deviation(samples: np.ndarray, polyline: np.ndarray) -> float:
    """
    Largest distance from any sample to the polyline. Runs in float32 after
    centring, so it is good to roughly 1e-7 of the polyline's extent.
    """
    origin = np.asarray(polyline, dtype=np.float64)[0]
    d2 = polyline_dist2(centred(samples, origin), centred(polyline, origin))
    return float(jnp.sqrt(jnp.max(d2)))
