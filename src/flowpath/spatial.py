"""Spatial node tree with resolved absolute transforms and pipes.

The `*Info` records describe a dataset as delivered by a data provider
(node ids, raw positions). `SpatialNode` is the resolved form: absolute
transforms are computed once at construction and pipes hold node
references instead of ids. A tree is rebuilt from scratch on every bind.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np

from ..utils import debug
from . import geodesy
from . import transform as tf
from .transform import Transform


class CoordinateType(str, Enum):
    CARTOGRAPHIC = "CARTOGRAPHIC"
    CARTESIAN = "CARTESIAN"


class PipeKind(str, Enum):
    ARC = "ARC"
    LINE = "LINE"
    EXPLICIT = "EXPLICIT"


class InterpolationType(str, Enum):
    LINEAR = "LINEAR"
    QUADRATIC = "QUADRATIC"
    CUBIC = "CUBIC"


@dataclass(frozen=True)
class CartographicPosition:
    """Degrees and metres above the ellipsoid."""

    longitude: float
    latitude: float
    height: float = 0.0

    def to_cartesian(self) -> np.ndarray:
        return geodesy.from_degrees(self.longitude, self.latitude, self.height)


@dataclass(frozen=True)
class TransformInfo:
    coordinate_type: str
    position: CartographicPosition | np.ndarray
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    relative: bool = True


@dataclass(frozen=True)
class SiteInfo:
    name: str
    description: str | None = None
    custom_props: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class GeoPathComponentInfo:
    node_id: int
    points: np.ndarray


@dataclass(frozen=True)
class GeoPathInfo:
    interpolation_type: str
    components: tuple[GeoPathComponentInfo, ...]


@dataclass(frozen=True)
class PipeInfo:
    from_node_id: int
    to_node_id: int
    kind: str = PipeKind.ARC
    bidirectional: bool = False
    width: float = 1.0
    explicit_path: GeoPathInfo | None = None
    custom_props: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class SpatialNodeInfo:
    id: int
    name: str
    transform: TransformInfo
    children: tuple[SpatialNodeInfo, ...] = ()
    site: SiteInfo | None = None
    pipes: tuple[PipeInfo, ...] = ()
    collapsed_visuals: tuple[dict[str, Any], ...] = ()
    expanded_visuals: tuple[dict[str, Any], ...] = ()
    expand_distance: float = 0.0
    details_on_request: bool = False
    custom_props: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Site:
    name: str
    description: str | None
    custom_props: dict[str, Any]


@dataclass(frozen=True, eq=False)
class GeoPathComponent:
    node: SpatialNode
    points: np.ndarray


@dataclass(frozen=True, eq=False)
class GeoPath:
    interpolation_type: str
    components: tuple[GeoPathComponent, ...]


@dataclass(frozen=True, eq=False)
class Pipe:
    pipe_id: int
    from_node: SpatialNode
    to_node: SpatialNode
    kind: str
    bidirectional: bool
    width: float
    explicit_path: GeoPath | None
    custom_props: dict[str, Any]


def absolute_transform(info: TransformInfo, parent_absolute: Transform | None) -> Transform:
    parent = parent_absolute if parent_absolute is not None else tf.identity()
    rotation = np.asarray(info.rotation, dtype=np.float64)
    if info.coordinate_type == CoordinateType.CARTOGRAPHIC:
        if info.relative:
            debug.warn("cartographic transform cannot be relative; treating as absolute")
        if not isinstance(info.position, CartographicPosition):
            raise TypeError("cartographic transform needs a CartographicPosition")
        frame = tf.east_north_up(info.position.to_cartesian())
        return tf.combine(Transform(1.0, rotation), frame)
    if info.coordinate_type == CoordinateType.CARTESIAN:
        own = Transform(1.0, rotation, np.asarray(info.position, dtype=np.float64))
        return tf.combine(own, parent) if info.relative else own
    debug.warn(f"unknown coordinate type {info.coordinate_type!r}")
    return tf.identity()


class SpatialNode:
    def __init__(
        self,
        parent: SpatialNode | None,
        info: SpatialNodeInfo,
        next_pipe_id: Callable[[], int] | None = None,
    ) -> None:
        if next_pipe_id is None:
            next_pipe_id = itertools.count().__next__
        self.id = info.id
        self.name = info.name
        self.parent = parent
        self.transform_info = info.transform
        self.absolute = absolute_transform(
            info.transform, parent.absolute if parent is not None else None
        )
        self.expand_distance = info.expand_distance
        self.details_on_request = info.details_on_request
        self.children: tuple[SpatialNode, ...] = tuple(
            SpatialNode(self, child, next_pipe_id) for child in info.children
        )
        self.site = (
            Site(info.site.name, info.site.description, dict(info.site.custom_props))
            if info.site is not None
            else None
        )
        self.pipes: tuple[Pipe, ...] = tuple(
            pipe
            for pipe in (self._resolve_pipe(p, next_pipe_id) for p in info.pipes)
            if pipe is not None
        )
        self.collapsed_visuals = info.collapsed_visuals
        self.expanded_visuals = info.expanded_visuals
        self.custom_props = info.custom_props

    @property
    def position(self) -> np.ndarray:
        return self.absolute.offset

    def __repr__(self) -> str:
        return f"SpatialNode(id={self.id}, name={self.name!r})"

    def _resolve_pipe(self, info: PipeInfo, next_pipe_id: Callable[[], int]) -> Pipe | None:
        ids = [info.from_node_id, info.to_node_id]
        if info.explicit_path is not None:
            ids.extend(c.node_id for c in info.explicit_path.components)
        resolved: dict[int, SpatialNode] = {}
        for node_id in ids:
            node = find_node(self, node_id)
            if node is None:
                debug.warn(
                    f"pipe {info.from_node_id}->{info.to_node_id} on node {self.id} "
                    f"refers to missing node {node_id}; dropped"
                )
                return None
            resolved[node_id] = node

        path = None
        if info.explicit_path is not None:
            path = GeoPath(
                info.explicit_path.interpolation_type,
                tuple(
                    GeoPathComponent(
                        resolved[c.node_id], np.asarray(c.points, dtype=np.float64)
                    )
                    for c in info.explicit_path.components
                ),
            )
        return Pipe(
            pipe_id=next_pipe_id(),
            from_node=resolved[info.from_node_id],
            to_node=resolved[info.to_node_id],
            kind=info.kind,
            bidirectional=info.bidirectional,
            width=float(info.width),
            explicit_path=path,
            custom_props=info.custom_props,
        )


def build_tree(info: SpatialNodeInfo) -> SpatialNode:
    return SpatialNode(None, info, itertools.count().__next__)


def find_node(subtree_root: SpatialNode, node_id: int) -> SpatialNode | None:
    if subtree_root.id == node_id:
        return subtree_root
    for child in subtree_root.children:
        found = find_node(child, node_id)
        if found is not None:
            return found
    return None


def iter_dfs(root: SpatialNode) -> Iterator[SpatialNode]:
    yield root
    for child in root.children:
        yield from iter_dfs(child)
