"""Scale + rotation + offset transforms.

A transform maps a vector by scaling it, rotating it and then adding the
offset, always in that order. Rotations are assumed orthonormal; `invert`
relies on that and does not check it.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np
from beartype import beartype
from jaxtyping import Float, jaxtyped

from . import geodesy
from .types import Mat3, Vec3


def _identity_rotation() -> np.ndarray:
    return np.eye(3, dtype=np.float64)


def _zero_offset() -> np.ndarray:
    return np.zeros(3, dtype=np.float64)


@dataclass(frozen=True)
class Transform:
    scale: float = 1.0
    rotation: np.ndarray = field(default_factory=_identity_rotation)
    offset: np.ndarray = field(default_factory=_zero_offset)

    def __post_init__(self) -> None:
        rotation = np.asarray(self.rotation, dtype=np.float64)
        offset = np.asarray(self.offset, dtype=np.float64)
        if rotation.shape != (3, 3):
            raise ValueError("rotation must have shape (3,3)")
        if offset.shape != (3,):
            raise ValueError("offset must have shape (3,)")
        rotation.setflags(write=False)
        offset.setflags(write=False)
        object.__setattr__(self, "scale", float(self.scale))
        object.__setattr__(self, "rotation", rotation)
        object.__setattr__(self, "offset", offset)


@jaxtyped(typechecker=beartype)
def apply(vector: Vec3, transform: Transform) -> Vec3:
    v = np.asarray(vector, dtype=np.float64) * transform.scale
    return transform.rotation @ v + transform.offset


@jaxtyped(typechecker=beartype)
def apply_many(points: Float[np.ndarray, "N 3"], transform: Transform) -> Float[np.ndarray, "N 3"]:
    """Row-wise `apply` for an (N,3) array."""
    P = np.asarray(points, dtype=np.float64) * transform.scale
    return P @ transform.rotation.T + transform.offset


def combine(first: Transform, second: Transform) -> Transform:
    """Transform equivalent to applying `first` and then `second`."""
    return Transform(
        scale=first.scale * second.scale,
        rotation=second.rotation @ first.rotation,
        offset=apply(first.offset, second),
    )


def combine_many(*transforms: Transform) -> Transform:
    result = transforms[0]
    for t in transforms[1:]:
        result = combine(result, t)
    return result


def invert(transform: Transform) -> Transform:
    inv_scale = 1.0 / transform.scale
    rotation_t = transform.rotation.T
    return Transform(
        scale=inv_scale,
        rotation=rotation_t,
        offset=-inv_scale * (rotation_t @ transform.offset),
    )


def identity() -> Transform:
    return Transform()


def scaling(scale: float) -> Transform:
    return Transform(scale=scale)


def translation(offset: Vec3) -> Transform:
    return Transform(offset=offset)


def _rotation(matrix: list[list[float]]) -> Transform:
    return Transform(rotation=np.array(matrix, dtype=np.float64))


def rotation_x(angle: float) -> Transform:
    c, s = math.cos(angle), math.sin(angle)
    return _rotation([[1.0, 0.0, 0.0], [0.0, c, -s], [0.0, s, c]])


def rotation_y(angle: float) -> Transform:
    c, s = math.cos(angle), math.sin(angle)
    return _rotation([[c, 0.0, s], [0.0, 1.0, 0.0], [-s, 0.0, c]])


def rotation_z(angle: float) -> Transform:
    c, s = math.cos(angle), math.sin(angle)
    return _rotation([[c, -s, 0.0], [s, c, 0.0], [0.0, 0.0, 1.0]])


@jaxtyped(typechecker=beartype)
def east_north_up(origin: Vec3) -> Transform:
    """Local tangent frame at an earth-fixed point (east, north, up axes)."""
    rotation: Mat3 = geodesy.east_north_up_rotation(origin)
    return Transform(scale=1.0, rotation=rotation, offset=origin)
