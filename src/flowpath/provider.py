"""Data provider boundary and the JSON dataset format.

A provider hands over the dataset metadata, the spatial tree and a stream
of package events. Anything asynchronous (network fetches) is the
provider's business; the calls here return ready values.

Dataset JSON (camelCase keys):

    {"meta": {"rootNodeId": 1, "startTime": "...", "endTime": "..."},
     "tree": {node},
     "events": [{"type": "CREATED" | "INFO_MODIFIED" | "MOVED" | "DESTROYED",
                 "packageId": 7, "time": "...", "package": {...},
                 "newPosition": {"type": "SITE", "siteNodeId": 3}}, ...]}

Node rotations are 9 numbers in column-major order.
"""

from __future__ import annotations

import itertools
import json
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import numpy as np

from .events import (
    AbsolutePosition,
    PackageCreated,
    PackageDestroyed,
    PackageEvent,
    PackageInfo,
    PackageInfoModified,
    PackageMoved,
    ParentPackagePosition,
    PipePosition,
    Position,
    SitePosition,
)
from .spatial import (
    CartographicPosition,
    CoordinateType,
    GeoPathComponentInfo,
    GeoPathInfo,
    PipeInfo,
    SiteInfo,
    SpatialNodeInfo,
    TransformInfo,
)

EventCallback = Callable[[PackageEvent], None]


@dataclass(frozen=True)
class MetaInfo:
    root_node_id: int
    start_time: datetime
    end_time: datetime


@dataclass(frozen=True)
class SubscriptionToken:
    token_id: int


class DataProvider(Protocol):
    def get_meta(self) -> MetaInfo: ...

    def get_spatial_subtree(self, root_id: int) -> SpatialNodeInfo: ...

    def subscribe(self, on_event: EventCallback) -> SubscriptionToken: ...

    def unsubscribe(self, token: SubscriptionToken) -> None: ...


@dataclass(frozen=True)
class Dataset:
    meta: MetaInfo
    tree: SpatialNodeInfo
    events: tuple[PackageEvent, ...]


class InMemoryDataProvider:
    """
    Serves a fixed dataset. A new subscriber first receives every stored
    event in list order, then anything passed to `publish` until it
    unsubscribes.
    """

    def __init__(self, meta: MetaInfo, tree: SpatialNodeInfo, events: list[PackageEvent] | None = None) -> None:
        self._meta = meta
        self._tree = tree
        self._events = list(events or [])
        self._subscribers: dict[int, EventCallback] = {}
        self._ids = itertools.count(1)

    @classmethod
    def from_dataset(cls, dataset: Dataset) -> InMemoryDataProvider:
        return cls(dataset.meta, dataset.tree, list(dataset.events))

    def get_meta(self) -> MetaInfo:
        return self._meta

    def get_spatial_subtree(self, root_id: int) -> SpatialNodeInfo:
        found = _find_info(self._tree, root_id)
        if found is None:
            raise KeyError(f"no spatial node with id {root_id}")
        return found

    def subscribe(self, on_event: EventCallback) -> SubscriptionToken:
        token = SubscriptionToken(next(self._ids))
        self._subscribers[token.token_id] = on_event
        for event in list(self._events):
            if token.token_id not in self._subscribers:
                break
            on_event(event)
        return token

    def unsubscribe(self, token: SubscriptionToken) -> None:
        self._subscribers.pop(token.token_id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: PackageEvent) -> None:
        self._events.append(event)
        for callback in list(self._subscribers.values()):
            callback(event)


def _find_info(info: SpatialNodeInfo, node_id: int) -> SpatialNodeInfo | None:
    if info.id == node_id:
        return info
    for child in info.children:
        found = _find_info(child, node_id)
        if found is not None:
            return found
    return None


def _vec3(d: dict[str, Any]) -> np.ndarray:
    return np.array([float(d["x"]), float(d["y"]), float(d["z"])], dtype=np.float64)


def _rotation(raw: Any) -> np.ndarray:
    if raw is None:
        return np.eye(3)
    flat = np.asarray(raw, dtype=np.float64).reshape(-1)
    if flat.shape != (9,):
        raise ValueError("rotation must have 9 entries")
    return flat.reshape(3, 3, order="F")


def parse_time(raw: str) -> datetime:
    return datetime.fromisoformat(raw)


def parse_transform(d: dict[str, Any]) -> TransformInfo:
    coordinate_type = d.get("coordinateType", CoordinateType.CARTESIAN.value)
    pos = d["position"]
    position: CartographicPosition | np.ndarray
    if coordinate_type == CoordinateType.CARTOGRAPHIC:
        position = CartographicPosition(
            float(pos["longitude"]), float(pos["latitude"]), float(pos.get("height", 0.0))
        )
    else:
        position = _vec3(pos)
    return TransformInfo(
        coordinate_type=coordinate_type,
        position=position,
        rotation=_rotation(d.get("rotation")),
        relative=bool(d.get("relative", True)),
    )


def parse_pipe(d: dict[str, Any]) -> PipeInfo:
    path = None
    raw_path = d.get("explicitPath")
    if raw_path is not None:
        path = GeoPathInfo(
            interpolation_type=raw_path.get("interpolationType", "LINEAR"),
            components=tuple(
                GeoPathComponentInfo(
                    node_id=int(c["nodeId"]),
                    points=np.array([_vec3(p) for p in c["points"]]).reshape(-1, 3),
                )
                for c in raw_path.get("components", [])
            ),
        )
    return PipeInfo(
        from_node_id=int(d["fromNodeId"]),
        to_node_id=int(d["toNodeId"]),
        kind=d.get("type", "ARC"),
        bidirectional=bool(d.get("biDirectional", False)),
        width=float(d.get("width", 1.0)),
        explicit_path=path,
        custom_props=dict(d.get("customProps", {})),
    )


def parse_node(d: dict[str, Any]) -> SpatialNodeInfo:
    site = d.get("site")
    return SpatialNodeInfo(
        id=int(d["id"]),
        name=d.get("name", ""),
        transform=parse_transform(d["transform"]),
        children=tuple(parse_node(c) for c in d.get("children", [])),
        site=SiteInfo(site["name"], site.get("description"), dict(site.get("customProps", {})))
        if site is not None
        else None,
        pipes=tuple(parse_pipe(p) for p in d.get("pipes", [])),
        collapsed_visuals=tuple(d.get("collapsedVisuals", [])),
        expanded_visuals=tuple(d.get("expandedVisuals", [])),
        expand_distance=float(d.get("expandDistance", 0.0)),
        details_on_request=bool(d.get("detailsOnRequest", False)),
        custom_props=dict(d.get("customProps", {})),
    )


def parse_position(d: dict[str, Any]) -> Position:
    kind = d["type"]
    if kind == "PARENT_PACKAGE":
        return ParentPackagePosition(int(d["parentPackageId"]))
    if kind == "SITE":
        return SitePosition(int(d["siteNodeId"]))
    if kind == "PIPE":
        return PipePosition(
            int(d["fromSiteNodeId"]),
            int(d["toSiteNodeId"]),
            float(d["interpolationAmount"]),
        )
    if kind == "ABSOLUTE":
        carto = d["carto"]
        return AbsolutePosition(
            float(carto["longitude"]), float(carto["latitude"]), float(carto.get("height", 0.0))
        )
    raise ValueError(f"unknown position type {kind!r}")


def _package_info(d: dict[str, Any]) -> PackageInfo:
    return PackageInfo(
        name=d.get("name", ""),
        description=d.get("description"),
        visual=dict(d.get("visual", {})),
        custom_props=dict(d.get("customProps", {})),
    )


def parse_event(d: dict[str, Any]) -> PackageEvent:
    kind = d["type"]
    package_id = int(d["packageId"])
    time = parse_time(d["time"])
    if kind == "CREATED":
        raw_pos = d.get("position")
        return PackageCreated(
            package_id,
            time,
            _package_info(d.get("package", {})),
            parse_position(raw_pos) if raw_pos is not None else None,
        )
    if kind == "INFO_MODIFIED":
        return PackageInfoModified(package_id, time, _package_info(d.get("package", {})))
    if kind == "MOVED":
        return PackageMoved(package_id, time, parse_position(d["newPosition"]))
    if kind == "DESTROYED":
        return PackageDestroyed(package_id, time)
    raise ValueError(f"unknown event type {kind!r}")


def parse_dataset(raw: dict[str, Any]) -> Dataset:
    meta = raw["meta"]
    return Dataset(
        meta=MetaInfo(
            root_node_id=int(meta["rootNodeId"]),
            start_time=parse_time(meta["startTime"]),
            end_time=parse_time(meta["endTime"]),
        ),
        tree=parse_node(raw["tree"]),
        events=tuple(parse_event(e) for e in raw.get("events", [])),
    )


def load_dataset(path: str | Path) -> Dataset:
    return parse_dataset(json.loads(Path(path).read_text(encoding="utf-8")))
