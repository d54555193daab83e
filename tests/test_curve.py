import numpy as np
import pytest

from src.flowpath.curve import Curve, CurveConstructionError, chord_length_times
from src.flowpath.easing import hermite, multi_hermite_lerp, safe_lerp


def test_chord_length_times_proportional() -> None:
    pts = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [1.0, 3.0, 0.0]])
    np.testing.assert_allclose(chord_length_times(pts), [0.0, 0.25, 1.0])


def test_chord_length_times_floors_coincident_points() -> None:
    pts = np.array([[0.0, 0.0, 0.0], [0.0, 0.0, 0.0], [1.0, 0.0, 0.0]])
    times = chord_length_times(pts, 0.01)
    np.testing.assert_allclose(times, [0.0, 0.01 / 1.01, 1.0])
    assert np.all(np.diff(times) > 0)


def test_chord_length_times_needs_two_points() -> None:
    with pytest.raises(CurveConstructionError):
        chord_length_times(np.zeros((1, 3)))


def test_linear_curve_evaluation() -> None:
    c = Curve(np.array([0.0, 1.0, 3.0]), np.array([[0.0, 0.0, 0.0], [2.0, 0.0, 0.0], [2.0, 4.0, 0.0]]))
    np.testing.assert_allclose(c.evaluate(0.5), [1.0, 0.0, 0.0])
    np.testing.assert_allclose(c.evaluate(2.0), [2.0, 2.0, 0.0])
    np.testing.assert_allclose(c.evaluate(1.0), [2.0, 0.0, 0.0])


def test_curve_clamps_outside_range() -> None:
    c = Curve(np.array([0.0, 1.0]), np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]))
    np.testing.assert_allclose(c.evaluate(-5.0), [0.0, 0.0, 0.0])
    np.testing.assert_allclose(c.evaluate(7.0), [1.0, 1.0, 1.0])


def test_quadratic_curve_is_parabola() -> None:
    c = Curve(
        np.array([0.0, 0.5, 1.0]),
        np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 0.0], [2.0, 0.0, 0.0]]),
        degree=2,
    )
    np.testing.assert_allclose(c.evaluate(0.25), [0.5, 0.75, 0.0], atol=1e-12)
    ts = np.linspace(0.0, 1.0, 11)
    np.testing.assert_allclose(c.evaluate_many(ts)[:, 1], 4.0 * ts * (1.0 - ts), atol=1e-12)


def test_curve_rejects_nan_and_unordered_times() -> None:
    with pytest.raises(CurveConstructionError):
        Curve(np.array([0.0, 1.0]), np.array([[0.0, 0.0, 0.0], [np.nan, 0.0, 0.0]]))
    with pytest.raises(CurveConstructionError):
        Curve(np.array([0.0, 0.0]), np.zeros((2, 3)))
    with pytest.raises(CurveConstructionError):
        Curve(np.array([0.0, 1.0]), np.zeros((2, 3)), degree=0)


def test_chord_length() -> None:
    c = Curve(np.array([0.0, 1.0, 2.0]), np.array([[0.0, 0.0, 0.0], [5.0, 5.0, 0.0], [3.0, 4.0, 0.0]]))
    assert np.isclose(c.chord_length(), 5.0)


def test_hermite_easing() -> None:
    assert hermite(0.0) == 0.0
    assert hermite(1.0) == 1.0
    assert np.isclose(hermite(0.5), 0.5)
    assert np.isclose(multi_hermite_lerp(2.0, 4.0, 0.5, 2), 3.0)
    eased = multi_hermite_lerp(0.0, 1.0, np.array([0.1, 0.9]), 2)
    assert eased[0] < hermite(0.1) < 0.1
    assert eased[1] > hermite(0.9) > 0.9


def test_safe_lerp_clamps() -> None:
    assert safe_lerp(1.0, 2.0, 0.5) == 1.5
    assert safe_lerp(1.0, 2.0, -1.0) == 1.0
    assert safe_lerp(1.0, 2.0, 3.0) == 2.0
