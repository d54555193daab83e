"""WGS84 helpers: geodetic <-> earth-fixed Cartesian, local ENU frames and
great-circle measures used to lift long arcs off the surface."""

from __future__ import annotations

import math

import numpy as np
from beartype import beartype
from jaxtyping import jaxtyped

from .types import Mat3, Vec3

WGS84_A = 6378137.0
WGS84_B = 6356752.3142451793
WGS84_E2 = 1.0 - (WGS84_B * WGS84_B) / (WGS84_A * WGS84_A)
MEAN_RADIUS = (2.0 * WGS84_A + WGS84_B) / 3.0

# Points closer than this to the centre have no meaningful geodetic position.
_CENTER_EPS = 1.0


def from_radians(longitude: float, latitude: float, height: float = 0.0) -> Vec3:
    sin_lat = math.sin(latitude)
    cos_lat = math.cos(latitude)
    n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    return np.array(
        [
            (n + height) * cos_lat * math.cos(longitude),
            (n + height) * cos_lat * math.sin(longitude),
            (n * (1.0 - WGS84_E2) + height) * sin_lat,
        ],
        dtype=np.float64,
    )


def from_degrees(longitude: float, latitude: float, height: float = 0.0) -> Vec3:
    return from_radians(math.radians(longitude), math.radians(latitude), height)


@jaxtyped(typechecker=beartype)
def to_cartographic(p: Vec3, iterations: int = 8) -> tuple[float, float, float]:
    """Earth-fixed point -> (longitude rad, latitude rad, height m)."""
    x, y, z = (float(v) for v in p)
    if not math.isfinite(x + y + z):
        raise ValueError("point contains non-finite coordinates")
    if math.sqrt(x * x + y * y + z * z) < _CENTER_EPS:
        raise ValueError("point is too close to the ellipsoid centre")
    lon = math.atan2(y, x)
    r_xy = math.hypot(x, y)
    lat = math.atan2(z, r_xy * (1.0 - WGS84_E2))
    n = WGS84_A
    for _ in range(iterations):
        sin_lat = math.sin(lat)
        n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
        lat = math.atan2(z + WGS84_E2 * n * sin_lat, r_xy)
    sin_lat = math.sin(lat)
    n = WGS84_A / math.sqrt(1.0 - WGS84_E2 * sin_lat * sin_lat)
    height = r_xy * math.cos(lat) + z * sin_lat - WGS84_A * WGS84_A / n
    return lon, lat, height


@jaxtyped(typechecker=beartype)
def surface_normal(p: Vec3) -> Vec3:
    v = np.array(
        [p[0] / (WGS84_A**2), p[1] / (WGS84_A**2), p[2] / (WGS84_B**2)],
        dtype=np.float64,
    )
    norm = float(np.linalg.norm(v))
    if norm <= 0.0:
        return np.array([0.0, 0.0, 1.0], dtype=np.float64)
    return v / norm


@jaxtyped(typechecker=beartype)
def east_north_up_rotation(origin: Vec3) -> Mat3:
    """Columns are the local east, north and up axes at `origin`."""
    x, y, z = (float(v) for v in origin)
    if abs(x) < 1e-9 and abs(y) < 1e-9:
        # Pole or centre: longitude is undefined, pick a fixed east.
        sign = -1.0 if z < 0 else 1.0
        east = np.array([0.0, 1.0, 0.0], dtype=np.float64)
        north = np.array([-sign, 0.0, 0.0], dtype=np.float64)
        up = np.array([0.0, 0.0, sign], dtype=np.float64)
    else:
        up = surface_normal(origin)
        east = np.array([-y, x, 0.0], dtype=np.float64)
        east /= np.linalg.norm(east)
        north = np.cross(up, east)
    return np.stack([east, north, up], axis=1)


def _unit_vector(lon: float, lat: float) -> np.ndarray:
    return np.array(
        [math.cos(lat) * math.cos(lon), math.cos(lat) * math.sin(lon), math.sin(lat)],
        dtype=np.float64,
    )


def central_angle(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    a = _unit_vector(lon1, lat1)
    b = _unit_vector(lon2, lat2)
    return math.atan2(float(np.linalg.norm(np.cross(a, b))), float(np.dot(a, b)))


def surface_distance(lon1: float, lat1: float, lon2: float, lat2: float) -> float:
    """Great-circle distance (m) on the mean-radius sphere."""
    return MEAN_RADIUS * central_angle(lon1, lat1, lon2, lat2)


def great_circle_midpoint(
    lon1: float, lat1: float, lon2: float, lat2: float
) -> tuple[float, float]:
    """(longitude, latitude) in radians halfway along the great circle."""
    a = _unit_vector(lon1, lat1)
    b = _unit_vector(lon2, lat2)
    m = a + b
    norm = float(np.linalg.norm(m))
    if norm < 1e-12:
        # Antipodal: every great circle qualifies, go through the pole side.
        m = np.cross(a, np.array([0.0, 0.0, 1.0]))
        if float(np.linalg.norm(m)) < 1e-12:
            m = np.array([1.0, 0.0, 0.0])
        m = np.cross(m, a)
        norm = float(np.linalg.norm(m))
    m = m / norm
    return math.atan2(m[1], m[0]), math.asin(max(-1.0, min(1.0, float(m[2]))))
