from datetime import datetime, timedelta

import numpy as np

from src.flowpath.events import PackageDestroyed, PackageMoved, SitePosition, insert_event
from src.flowpath.trajectory import Trajectory, interpolate_samples


def test_insert_event_keeps_time_order_and_ties_stable() -> None:
    t0 = datetime(2024, 1, 1)
    a = PackageMoved(1, t0 + timedelta(seconds=5), SitePosition(2))
    b = PackageMoved(1, t0, SitePosition(3))
    c = PackageDestroyed(1, t0 + timedelta(seconds=5))
    events: list = []
    for e in (a, b, c):
        insert_event(events, e)
    assert events == [b, a, c]


def test_position_interpolates_and_clamps() -> None:
    traj = Trajectory()
    traj.add(0.0, np.array([0.0, 0.0, 0.0]))
    traj.add(10.0, np.array([10.0, 20.0, 0.0]))
    np.testing.assert_allclose(traj.position(2.5), [2.5, 5.0, 0.0])
    np.testing.assert_allclose(traj.position(-1.0), [0.0, 0.0, 0.0])
    np.testing.assert_allclose(traj.position(99.0), [10.0, 20.0, 0.0])
    assert Trajectory().position(0.0) is None


def test_sort_is_stable() -> None:
    traj = Trajectory()
    traj.add(2.0, np.array([2.0, 0.0, 0.0]))
    traj.add(1.0, np.array([1.0, 0.0, 0.0]))
    traj.add(2.0, np.array([3.0, 0.0, 0.0]))
    traj.sort()
    assert traj.times == [1.0, 2.0, 2.0]
    np.testing.assert_allclose(traj.points[1], [2.0, 0.0, 0.0])
    np.testing.assert_allclose(traj.points[2], [3.0, 0.0, 0.0])


def test_samples_between_is_inclusive() -> None:
    traj = Trajectory()
    for t in (0.0, 1.0, 2.0, 3.0):
        traj.add(t, np.array([t, 0.0, 0.0]))
    assert [t for t, _ in traj.samples_between(1.0, 2.0)] == [1.0, 2.0]
    assert traj.samples_between(5.0, 6.0) == []
    assert traj.start_time == 0.0 and traj.end_time == 3.0


def test_repeated_time_resolves_to_later_sample() -> None:
    times = np.array([0.0, 1.0, 1.0, 2.0])
    points = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [5.0, 0.0, 0.0], [6.0, 0.0, 0.0]])
    np.testing.assert_allclose(interpolate_samples(times, points, 1.0), [5.0, 0.0, 0.0])
    np.testing.assert_allclose(interpolate_samples(times, points, 1.5), [5.5, 0.0, 0.0])
