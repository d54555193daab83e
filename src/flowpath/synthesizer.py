"""Event-log replay into dense package trajectories.

Every update replays a package's whole event log from empty state. Moves
onto a parent package or along a pipe are not emitted immediately: they
open a pending run that is flushed into samples when the next move (or the
end of the log) closes it.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, TypeAlias, assert_never

import numpy as np

from ..utils import debug, debug_helpers
from . import geodesy
from .easing import multi_hermite_lerp, safe_lerp
from .events import (
    AbsolutePosition,
    PackageCreated,
    PackageDestroyed,
    PackageEvent,
    PackageInfoModified,
    PackageMoved,
    ParentPackagePosition,
    PipePosition,
    Position,
    SitePosition,
    insert_event,
)
from .graph import SpatialGraph
from .pipe_curves import PipeCurveBuilder, PipeDirection
from .trajectory import Trajectory


@dataclass
class ObjectState:
    id: int
    name: str = ""
    description: str | None = None
    visual: dict[str, Any] = field(default_factory=dict)
    custom_props: dict[str, Any] = field(default_factory=dict)
    events: list[PackageEvent] = field(default_factory=list)
    trajectory: Trajectory = field(default_factory=Trajectory)
    destroyed_at: float | None = None
    # Opaque handle owned by the renderer; never touched here.
    renderable: Any = None


@dataclass
class _Idle:
    pass


@dataclass
class _PendingParentRun:
    parent_id: int
    since: float


@dataclass
class _PipeSample:
    time: float
    amount: float


@dataclass
class _PendingPipeRun:
    from_id: int
    to_id: int
    samples: list[_PipeSample] = field(default_factory=list)


_RunState: TypeAlias = _Idle | _PendingParentRun | _PendingPipeRun

_DEFAULT_COLORS = (
    (1.0, 0.0, 0.5),
    (0.5, 1.0, 0.0),
    (0.0, 0.5, 1.0),
    (1.0, 0.5, 0.0),
    (0.0, 1.0, 0.5),
    (0.5, 0.0, 1.0),
)


def default_visual(package_id: int) -> dict[str, Any]:
    """Billboard used until a creation event supplies a real visual."""
    r, g, b = _DEFAULT_COLORS[package_id % len(_DEFAULT_COLORS)]
    return {
        "billboard": {
            "color": {"red": r, "green": g, "blue": b, "alpha": 1.0},
            "image": "./images/packet2.png",
            "width": 16,
            "height": 16,
            "eyeOffset": {"x": 0.0, "y": 0.0, "z": -2.0},
        }
    }


class TrajectorySynthesizer:
    """
    Owns the per-package state registry and the parent -> child attachment
    graph. Parent updates cascade eagerly: after a package is re-synthesized,
    every package riding on it is re-synthesized too, parents before
    children (see `cascade_order`).
    """

    def __init__(self, builder: PipeCurveBuilder) -> None:
        self.builder = builder
        self._states: dict[int, ObjectState] = {}
        self._dependents: dict[int, list[int]] = {}
        self._graph: SpatialGraph | None = None
        self._start_time: datetime | None = None

    def prepare(self, start_time: datetime, graph: SpatialGraph) -> None:
        self._start_time = start_time
        self._graph = graph

    def reset(self) -> None:
        self._states.clear()
        self._dependents.clear()
        self._graph = None
        self._start_time = None

    @property
    def is_prepared(self) -> bool:
        return self._graph is not None and self._start_time is not None

    def state(self, package_id: int) -> ObjectState:
        state = self._states.get(package_id)
        if state is None:
            state = ObjectState(id=package_id, visual=default_visual(package_id))
            state.name = f"packet {package_id}"
            self._states[package_id] = state
        return state

    def states(self) -> list[ObjectState]:
        return list(self._states.values())

    def dependents(self, parent_id: int) -> tuple[int, ...]:
        return tuple(self._dependents.get(parent_id, ()))

    def to_seconds(self, time: datetime) -> float:
        if self._start_time is None:
            raise RuntimeError("prepare() must be called before events are processed")
        return (time - self._start_time).total_seconds()

    def on_event(self, event: PackageEvent) -> list[int]:
        """Record `event`, re-synthesize its package and dependents; returns updated ids."""
        if not self.is_prepared:
            raise RuntimeError("prepare() must be called before on_event()")
        state = self.state(event.package_id)
        insert_event(state.events, event)
        self.synthesize(state)
        updated = [event.package_id]
        for package_id in self.cascade_order(event.package_id)[1:]:
            self.synthesize(self.state(package_id))
            updated.append(package_id)
        return updated

    def cascade_order(self, package_id: int) -> list[int]:
        """
        `package_id` followed by every package riding on it, directly or
        through others, each after all of its parents in the closure. Inside
        an attachment cycle the earliest discovered package goes first.
        """
        closure = [package_id]
        reached = {package_id}
        for current in closure:
            for child in self._dependents.get(current, ()):
                if child not in reached:
                    reached.add(child)
                    closure.append(child)

        indegree = dict.fromkeys(closure, 0)
        for current in closure:
            for child in self._dependents.get(current, ()):
                if child != package_id:
                    indegree[child] += 1

        order: list[int] = []
        done: set[int] = set()
        ready = deque([package_id])
        while len(order) < len(closure):
            if not ready:
                ready.append(next(p for p in closure if p not in done))
            current = ready.popleft()
            if current in done:
                continue
            done.add(current)
            order.append(current)
            for child in self._dependents.get(current, ()):
                if child in done or child == package_id:
                    continue
                indegree[child] -= 1
                if indegree[child] == 0:
                    ready.append(child)
        return order

    def synthesize(self, state: ObjectState) -> Trajectory:
        _Replay(self, state).run()
        debug.log(f"package {state.id}: events={len(state.events)} samples={len(state.trajectory)}")
        return state.trajectory

    def add_dependency(self, parent_id: int, child_id: int) -> None:
        children = self._dependents.setdefault(parent_id, [])
        if child_id not in children:
            children.append(child_id)

    @property
    def graph(self) -> SpatialGraph:
        if self._graph is None:
            raise RuntimeError("prepare() must be called first")
        return self._graph


class _Replay:
    """One replay of a package's event log into fresh samples."""

    def __init__(self, synth: TrajectorySynthesizer, state: ObjectState) -> None:
        self.synth = synth
        self.state = state
        self.run_state: _RunState = _Idle()
        self.last_emitted_time = 0.0
        self.last_decoded_time = 0.0

    def run(self) -> None:
        state = self.state
        state.trajectory.clear()
        state.destroyed_at = None
        self._adopt_info()

        for event in state.events:
            self.last_decoded_time = self.synth.to_seconds(event.time)
            if isinstance(event, PackageMoved):
                self._flush_parent()
                self._move(event.new_position)
            elif isinstance(event, PackageCreated):
                self._created(event)
            elif isinstance(event, PackageInfoModified):
                pass
            elif isinstance(event, PackageDestroyed):
                self._flush()
                state.destroyed_at = self.last_decoded_time
            else:
                assert_never(event)
        self._flush()
        state.trajectory.sort()

    def _adopt_info(self) -> None:
        state = self.state
        info_events = [
            e for e in state.events if isinstance(e, (PackageCreated, PackageInfoModified))
        ]
        if not info_events:
            state.name = f"packet {state.id}"
            state.description = None
            state.visual = default_visual(state.id)
            state.custom_props = {}
            return
        info = info_events[-1].package
        state.name = info.name
        state.description = info.description
        state.visual = dict(info.visual)
        state.custom_props = dict(info.custom_props)

    def _created(self, event: PackageCreated) -> None:
        """Restart the samples with one placement at the creation time."""
        self.run_state = _Idle()
        self.state.trajectory.clear()
        if event.position is None:
            self._emit(self.last_decoded_time, self.synth.graph.root.position)
        else:
            self._move(event.position)

    def _emit(self, time: float, point: np.ndarray) -> None:
        self.state.trajectory.add(time, point)
        self.last_emitted_time = time

    def _flush(self) -> None:
        self._flush_parent()
        self._flush_pipe()

    def _move(self, position: Position) -> None:
        t = self.last_decoded_time
        if isinstance(position, ParentPackagePosition):
            self._flush_pipe()
            self.synth.add_dependency(position.parent_package_id, self.state.id)
            self.run_state = _PendingParentRun(position.parent_package_id, t)
        elif isinstance(position, SitePosition):
            self._flush_pipe()
            node = self.synth.graph.node(position.site_node_id)
            if node is None:
                debug_helpers.warn_once(
                    f"site:{position.site_node_id}",
                    f"package {self.state.id} moved to unknown site {position.site_node_id}",
                )
                return
            self._emit(t, node.position)
        elif isinstance(position, PipePosition):
            run = self.run_state
            if not (
                isinstance(run, _PendingPipeRun)
                and run.from_id == position.from_site_node_id
                and run.to_id == position.to_site_node_id
            ):
                self._flush_pipe()
                run = _PendingPipeRun(position.from_site_node_id, position.to_site_node_id)
                self.run_state = run
            amount = safe_lerp(0.0, 1.0, float(position.interpolation_amount))
            run.samples.append(_PipeSample(t, amount))
        elif isinstance(position, AbsolutePosition):
            self._flush_pipe()
            self._emit(
                t,
                geodesy.from_degrees(position.longitude, position.latitude, position.height),
            )
        else:
            assert_never(position)

    def _flush_parent(self) -> None:
        run = self.run_state
        if not isinstance(run, _PendingParentRun):
            return
        self.run_state = _Idle()
        parent = self.synth.state(run.parent_id)
        for time, point in parent.trajectory.samples_between(run.since, self.last_decoded_time):
            self._emit(time, point)

    def _flush_pipe(self) -> None:
        run = self.run_state
        if not isinstance(run, _PendingPipeRun):
            return
        self.run_state = _Idle()
        if not run.samples:
            return
        pipe = self.synth.graph.pipe_between(run.from_id, run.to_id)
        if pipe is None:
            return

        forward = pipe.from_node.id == run.from_id and pipe.to_node.id == run.to_id
        direction = PipeDirection.FORWARD if forward else PipeDirection.BACKWARD
        builder = self.synth.builder
        curve = builder.get_curve(pipe, direction)
        points = curve.points
        n = points.shape[0]

        samples = list(run.samples)
        if len(samples) == 1:
            single = samples[0]
            eased = float(multi_hermite_lerp(0.0, 1.0, single.amount, builder.config.ease_passes))
            t = curve.start_time + eased * (curve.end_time - curve.start_time)
            self._emit(single.time, curve.evaluate(t))
            return

        samples = self._pad_ends(samples)
        fractions = np.arange(n) / (n - 1)
        for s1, s2 in zip(samples[:-1], samples[1:]):
            mask = (fractions >= s1.amount) & (fractions <= s2.amount)
            relevant = points[mask]
            if relevant.shape[0] == 0:
                mid = 0.5 * (s1.amount + s2.amount)
                relevant = points[int(round(mid * (n - 1)))][None, :]
            k = relevant.shape[0]
            for j in range(k):
                a = j / (k - 1) if k > 1 else 0.5
                self._emit(s1.time + a * (s2.time - s1.time), relevant[j])

    def _pad_ends(self, samples: list[_PipeSample]) -> list[_PipeSample]:
        """
        Add progress-0 and progress-1 samples when the run does not start or end
        exactly at a pipe end. Times come from linear extrapolation at the
        observed speed; if that would cross the neighbouring known time, the
        gap to it is bisected instead.
        """
        first, last = samples[0], samples[-1]
        dt = last.time - first.time
        speed = (last.amount - first.amount) / dt if dt > 0 else 0.0
        if first.amount != 0.0:
            zero_time = first.time - first.amount / speed if speed > 0 else -np.inf
            if zero_time > self.last_emitted_time:
                samples.insert(0, _PipeSample(zero_time, 0.0))
            else:
                samples.insert(0, _PipeSample(0.5 * (self.last_emitted_time + first.time), 0.0))
        if last.amount != 1.0:
            one_time = last.time + (1.0 - last.amount) / speed if speed > 0 else np.inf
            if one_time < self.last_decoded_time:
                samples.append(_PipeSample(one_time, 1.0))
            else:
                samples.append(_PipeSample(0.5 * (last.time + self.last_decoded_time), 1.0))
        return samples
