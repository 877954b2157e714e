from __future__ import annotations

import pytest
from hypothesis import given, strategies as st

from mirror_testing.tools.coordinates import (
    Bounds,
    CoordinateError,
    Point,
    clamp_fraction,
    contains,
    distance,
    interpolate,
    scale_bounds,
    to_absolute,
    to_relative,
)

coords = st.floats(min_value=-3000, max_value=3000, allow_nan=False, allow_infinity=False)
sizes = st.floats(min_value=1, max_value=5000, allow_nan=False, allow_infinity=False)


@given(coords, coords, sizes, sizes, coords, coords)
def test_relative_absolute_round_trip(x: float, y: float, w: float, h: float, px: float, py: float) -> None:
    bounds = Bounds(x, y, w, h)
    point = Point(px, py)
    back = to_absolute(to_relative(point, bounds), bounds)
    assert back.x == pytest.approx(px, abs=1e-6)
    assert back.y == pytest.approx(py, abs=1e-6)


@given(
    st.floats(min_value=0, max_value=1),
    st.floats(min_value=0, max_value=1),
    sizes,
    sizes,
    sizes,
    sizes,
)
def test_fraction_survives_resize(fx: float, fy: float, w1: float, h1: float, w2: float, h2: float) -> None:
    original = Bounds(10, 20, w1, h1)
    moved = Bounds(-40, 300, w2, h2)
    point = to_absolute(Point(fx, fy), original)
    fraction = to_relative(point, original)
    projected = to_absolute(fraction, moved)
    assert to_relative(projected, moved).x == pytest.approx(fx, abs=1e-6)
    assert to_relative(projected, moved).y == pytest.approx(fy, abs=1e-6)


@pytest.mark.parametrize("width,height", [(0, 824), (372, 0), (-1, 824), (372, -5)])
def test_degenerate_bounds_raise(width: float, height: float) -> None:
    with pytest.raises(CoordinateError):
        to_relative(Point(1, 1), Bounds(0, 0, width, height))


def test_mirrored_click_reprojects_after_move_and_resize() -> None:
    recorded = Bounds(0, 0, 372, 824)
    fraction = to_relative(Point(316, 16), recorded)
    assert fraction.x == pytest.approx(0.849, abs=1e-3)
    assert fraction.y == pytest.approx(0.019, abs=1e-3)

    moved = to_absolute(fraction, Bounds(100, 50, 372, 824))
    assert moved.x == pytest.approx(416)
    assert moved.y == pytest.approx(66)

    resized = to_absolute(fraction, Bounds(0, 0, 500, 1000))
    assert resized.x == pytest.approx(424.73, abs=0.01)
    assert resized.y == pytest.approx(19.42, abs=0.01)


def test_to_absolute_allows_out_of_range_fractions() -> None:
    bounds = Bounds(100, 100, 200, 400)
    assert to_absolute(Point(-0.5, 1.5), bounds) == Point(0, 700)


def test_contains_is_half_open() -> None:
    bounds = Bounds(10, 10, 100, 50)
    assert contains(bounds, Point(10, 10))
    assert contains(bounds, Point(109.9, 59.9))
    assert not contains(bounds, Point(110, 30))
    assert not contains(bounds, Point(50, 60))
    assert not contains(bounds, Point(9.9, 30))


def test_clamp_fraction() -> None:
    assert clamp_fraction(Point(-0.2, 1.7)) == Point(0.0, 1.0)
    assert clamp_fraction(Point(0.25, 0.75)) == Point(0.25, 0.75)


def test_interpolate_ends_at_target() -> None:
    path = interpolate(Point(0, 0), Point(100, 50), 5)
    assert len(path) == 5
    assert path[0] == Point(20, 10)
    assert path[-1] == Point(100, 50)
    assert len(interpolate(Point(0, 0), Point(1, 1), 0)) == 1


def test_distance_and_scale() -> None:
    assert distance(Point(0, 0), Point(3, 4)) == pytest.approx(5)
    assert scale_bounds(Bounds(5, 6, 100, 200), 1.5) == Bounds(5, 6, 150, 300)
