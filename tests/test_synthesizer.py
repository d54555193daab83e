from datetime import datetime, timedelta, timezone

import numpy as np
import pytest

from src.flowpath.config import CurveConfig
from src.flowpath.events import (
    AbsolutePosition,
    PackageCreated,
    PackageDestroyed,
    PackageInfo,
    PackageInfoModified,
    PackageMoved,
    ParentPackagePosition,
    PipePosition,
    SitePosition,
)
from src.flowpath.geodesy import from_degrees
from src.flowpath.graph import SpatialGraph
from src.flowpath.pipe_curves import PipeCurveBuilder, PipeDirection
from src.flowpath.spatial import CoordinateType, PipeInfo, SpatialNodeInfo, TransformInfo, build_tree
from src.flowpath.synthesizer import TrajectorySynthesizer, default_visual

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def _site(node_id: int, x: float, y: float = 0.0) -> SpatialNodeInfo:
    return SpatialNodeInfo(
        id=node_id,
        name=f"site {node_id}",
        transform=TransformInfo(CoordinateType.CARTESIAN, np.array([x, y, 0.0])),
    )


def _synth() -> TrajectorySynthesizer:
    """Root at (5,5,0); sites 2 (0,0,0), 3 (100,0,0), 4 (0,50,0), 5 (0,80,0); LINE pipe 2->3."""
    info = SpatialNodeInfo(
        id=1,
        name="root",
        transform=TransformInfo(CoordinateType.CARTESIAN, np.array([5.0, 5.0, 0.0]), relative=False),
        children=(
            _site(2, -5.0, -5.0),
            _site(3, 95.0, -5.0),
            _site(4, -5.0, 45.0),
            _site(5, -5.0, 75.0),
        ),
        pipes=(PipeInfo(2, 3, "LINE"),),
    )
    synth = TrajectorySynthesizer(PipeCurveBuilder(CurveConfig(offset_fraction=0.0)))
    synth.prepare(T0, SpatialGraph.from_tree(build_tree(info)))
    return synth


def _times(synth: TrajectorySynthesizer, package_id: int) -> list[float]:
    return [t for t, _ in synth.state(package_id).trajectory.samples()]


def test_pipe_run_spans_the_whole_pipe() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), PipePosition(2, 3, 0.0)))
    synth.on_event(PackageMoved(7, at(10), PipePosition(2, 3, 1.0)))
    traj = synth.state(7).trajectory
    times, points = traj.as_arrays()
    assert len(traj) == 129
    assert times[0] == 0.0 and times[-1] == 10.0
    assert np.all(np.diff(times) >= 0.0)
    np.testing.assert_allclose(points[0], [0.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(points[-1], [100.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(points[:, 1:], 0.0, atol=1e-9)
    np.testing.assert_allclose(traj.position(5.0), [50.0, 0.0, 0.0], atol=1e-9)


def test_single_pipe_sample_is_evaluated_on_curve() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(5), PipePosition(2, 3, 0.5)))
    samples = synth.state(7).trajectory.samples()
    assert len(samples) == 1
    t, p = samples[0]
    assert t == 5.0
    pipe = synth.graph.pipe_between(2, 3)
    curve = synth.builder.get_curve(pipe, PipeDirection.FORWARD)
    np.testing.assert_allclose(p, curve.evaluate(0.5))
    np.testing.assert_allclose(p, [50.0, 0.0, 0.0], atol=1e-9)


def test_created_without_position_sits_at_root() -> None:
    synth = _synth()
    updated = synth.on_event(PackageCreated(7, at(0), PackageInfo("crate", "fragile")))
    assert updated == [7]
    state = synth.state(7)
    assert state.name == "crate"
    assert state.description == "fragile"
    samples = state.trajectory.samples()
    assert len(samples) == 1
    assert samples[0][0] == 0.0
    np.testing.assert_allclose(samples[0][1], [5.0, 5.0, 0.0])


def test_created_at_site() -> None:
    synth = _synth()
    synth.on_event(PackageCreated(7, at(3), PackageInfo("crate"), SitePosition(3)))
    samples = synth.state(7).trajectory.samples()
    assert len(samples) == 1
    assert samples[0][0] == 3.0
    np.testing.assert_allclose(samples[0][1], [100.0, 0.0, 0.0])


def test_child_copies_parent_window_until_destroyed() -> None:
    synth = _synth()
    for i, site in enumerate([2, 3, 4, 5], start=1):
        synth.on_event(PackageMoved(1, at(i), SitePosition(site)))
    synth.on_event(PackageMoved(2, at(2), ParentPackagePosition(1)))
    synth.on_event(PackageDestroyed(2, at(4)))
    child = synth.state(2)
    assert _times(synth, 2) == [2.0, 3.0, 4.0]
    parent_points = [p for _, p in synth.state(1).trajectory.samples()]
    for (_, p), q in zip(child.trajectory.samples(), parent_points[1:]):
        np.testing.assert_allclose(p, q)
    assert child.destroyed_at == 4.0


def test_parent_updates_cascade_to_children() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(2, at(2), ParentPackagePosition(1)))
    synth.on_event(PackageDestroyed(2, at(4)))
    assert _times(synth, 2) == []
    assert synth.dependents(1) == (2,)
    updated = []
    for i, site in enumerate([2, 3, 4, 5], start=1):
        updated = synth.on_event(PackageMoved(1, at(i), SitePosition(site)))
    assert updated == [1, 2]
    assert _times(synth, 2) == [2.0, 3.0, 4.0]


def test_cascade_reaches_grandchildren() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(3, at(0), ParentPackagePosition(2)))
    synth.on_event(PackageMoved(2, at(0), ParentPackagePosition(1)))
    updated = synth.on_event(PackageMoved(1, at(0), SitePosition(4)))
    assert updated == [1, 2, 3]
    np.testing.assert_allclose(synth.state(3).trajectory.position(0.0), [0.0, 50.0, 0.0])


def test_out_of_order_events_replay_in_time_order() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(10), SitePosition(3)))
    synth.on_event(PackageMoved(7, at(0), SitePosition(2)))
    assert _times(synth, 7) == [0.0, 10.0]
    np.testing.assert_allclose(synth.state(7).trajectory.position(5.0), [50.0, 0.0, 0.0])


def test_pipe_run_pads_missing_ends() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), SitePosition(2)))
    synth.on_event(PackageMoved(7, at(2), PipePosition(2, 3, 0.25)))
    synth.on_event(PackageMoved(7, at(4), PipePosition(2, 3, 0.75)))
    synth.on_event(PackageMoved(7, at(10), SitePosition(3)))
    traj = synth.state(7).trajectory
    times = _times(synth, 7)
    assert times[0] == 0.0 and times[-1] == 10.0
    # speed 0.25/s puts progress 0 at t=1 and progress 1 at t=5
    assert times[1] == 1.0
    assert times[-2] == 5.0
    np.testing.assert_allclose(traj.position(1.0), [0.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(traj.position(3.0), [50.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(traj.position(5.0), [100.0, 0.0, 0.0], atol=1e-9)


def test_backward_pipe_run_starts_at_far_end() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), PipePosition(3, 2, 0.0)))
    synth.on_event(PackageMoved(7, at(4), PipePosition(3, 2, 1.0)))
    _, points = synth.state(7).trajectory.as_arrays()
    np.testing.assert_allclose(points[0], [100.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(points[-1], [0.0, 0.0, 0.0], atol=1e-9)


def test_unknown_site_is_skipped() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), SitePosition(2)))
    synth.on_event(PackageMoved(7, at(1), SitePosition(404)))
    assert _times(synth, 7) == [0.0]


def test_absolute_position() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(1), AbsolutePosition(13.4, 52.5, 100.0)))
    np.testing.assert_allclose(
        synth.state(7).trajectory.position(1.0), from_degrees(13.4, 52.5, 100.0)
    )


def test_info_modified_updates_metadata_only() -> None:
    synth = _synth()
    synth.on_event(PackageCreated(7, at(0), PackageInfo("crate")))
    synth.on_event(PackageInfoModified(7, at(1), PackageInfo("pallet", visual={"point": {}})))
    state = synth.state(7)
    assert state.name == "pallet"
    assert state.visual == {"point": {}}
    assert len(state.trajectory) == 1


def test_default_state_and_visual() -> None:
    synth = _synth()
    state = synth.state(9)
    assert state.name == "packet 9"
    assert state.visual == default_visual(9)
    assert synth.state(9) is state
    assert default_visual(9) == default_visual(9)


def test_unprepared_synthesizer_rejects_events() -> None:
    synth = TrajectorySynthesizer(PipeCurveBuilder())
    with pytest.raises(RuntimeError):
        synth.on_event(PackageMoved(1, at(0), SitePosition(2)))


def test_cascade_updates_parents_before_children() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(3, at(0), ParentPackagePosition(1)))
    synth.on_event(PackageMoved(3, at(2), ParentPackagePosition(2)))
    synth.on_event(PackageMoved(2, at(0), ParentPackagePosition(1)))
    synth.on_event(PackageDestroyed(2, at(10)))
    synth.on_event(PackageDestroyed(3, at(10)))
    updated = []
    for i, site in enumerate([2, 3, 4, 5]):
        updated = synth.on_event(PackageMoved(1, at(i), SitePosition(site)))
    assert updated == [1, 2, 3]
    assert _times(synth, 2) == [0.0, 1.0, 2.0, 3.0]
    assert _times(synth, 3) == [0.0, 1.0, 2.0, 2.0, 3.0]


def test_cascade_order_survives_attachment_cycles() -> None:
    synth = _synth()
    synth.add_dependency(1, 2)
    synth.add_dependency(2, 3)
    synth.add_dependency(3, 2)
    synth.add_dependency(1, 3)
    order = synth.cascade_order(1)
    assert order[0] == 1
    assert sorted(order) == [1, 2, 3]
    assert synth.cascade_order(4) == [4]


def test_pipe_run_bisects_when_extrapolation_overshoots() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), SitePosition(2)))
    synth.on_event(PackageMoved(7, at(1), PipePosition(2, 3, 0.5)))
    synth.on_event(PackageMoved(7, at(2), PipePosition(2, 3, 0.75)))
    synth.on_event(PackageMoved(7, at(2.5), SitePosition(3)))
    traj = synth.state(7).trajectory
    times = _times(synth, 7)
    # extrapolation gives -1 and 3, outside (0, 2.5): both ends bisect instead
    assert times[1] == 0.5
    assert times[-2] == 2.25
    np.testing.assert_allclose(traj.position(0.5), [0.0, 0.0, 0.0], atol=1e-9)
    np.testing.assert_allclose(traj.position(2.25), [100.0, 0.0, 0.0], atol=1e-9)


def test_short_progress_window_uses_nearest_control() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), PipePosition(2, 3, 0.0)))
    synth.on_event(PackageMoved(7, at(10), PipePosition(2, 3, 0.501)))
    synth.on_event(PackageMoved(7, at(12), PipePosition(2, 3, 0.505)))
    synth.on_event(PackageMoved(7, at(20), PipePosition(2, 3, 1.0)))
    traj = synth.state(7).trajectory
    times = _times(synth, 7)
    # no control sits at j/128 in [0.501, 0.505]; the one nearest 0.503 is emitted mid-window
    assert len(times) == 65 + 1 + 64
    assert 11.0 in times
    np.testing.assert_allclose(traj.position(11.0), [50.0, 0.0, 0.0], atol=1e-9)


def test_pipe_run_without_physical_pipe_is_dropped() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(0), SitePosition(2)))
    synth.on_event(PackageMoved(7, at(1), PipePosition(4, 5, 0.2)))
    synth.on_event(PackageMoved(7, at(2), PipePosition(4, 5, 0.8)))
    assert _times(synth, 7) == [0.0]
    synth.on_event(PackageMoved(7, at(3), SitePosition(3)))
    assert _times(synth, 7) == [0.0, 3.0]


def test_pipe_progress_is_clamped_to_pipe_ends() -> None:
    synth = _synth()
    synth.on_event(PackageMoved(7, at(5), PipePosition(2, 3, 1.7)))
    np.testing.assert_allclose(
        synth.state(7).trajectory.position(5.0), [100.0, 0.0, 0.0], atol=1e-9
    )
