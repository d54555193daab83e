"""Package events and the closed set of position kinds they can carry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeAlias


@dataclass(frozen=True)
class PackageInfo:
    name: str
    description: str | None = None
    visual: dict[str, Any] = field(default_factory=dict)
    custom_props: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ParentPackagePosition:
    """Riding along with another package."""

    parent_package_id: int


@dataclass(frozen=True)
class SitePosition:
    site_node_id: int


@dataclass(frozen=True)
class PipePosition:
    """`interpolation_amount` is the progress along the pipe, 0 at `from`, 1 at `to`."""

    from_site_node_id: int
    to_site_node_id: int
    interpolation_amount: float


@dataclass(frozen=True)
class AbsolutePosition:
    """Geographic degrees / metres."""

    longitude: float
    latitude: float
    height: float = 0.0


Position: TypeAlias = ParentPackagePosition | SitePosition | PipePosition | AbsolutePosition


@dataclass(frozen=True)
class PackageCreated:
    """Without a `position` the package is placed at the tree root."""

    package_id: int
    time: datetime
    package: PackageInfo
    position: Position | None = None


@dataclass(frozen=True)
class PackageInfoModified:
    package_id: int
    time: datetime
    package: PackageInfo


@dataclass(frozen=True)
class PackageMoved:
    package_id: int
    time: datetime
    new_position: Position


@dataclass(frozen=True)
class PackageDestroyed:
    package_id: int
    time: datetime


PackageEvent: TypeAlias = PackageCreated | PackageInfoModified | PackageMoved | PackageDestroyed


def insert_event(events: list[PackageEvent], event: PackageEvent) -> None:
    """Insert keeping `events` time-ordered; ties go after existing entries."""
    for i, existing in enumerate(events):
        if event.time < existing.time:
            events.insert(i, event)
            return
    events.append(event)
