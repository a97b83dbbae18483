"""Tests for NURBS surfaces."""

import math

import pytest

from brepcore.geom import dist
from brepcore.surfaces import NurbsSurface, Plane, issurface, planar_patch


def _dome():
    grid = [
        [(0, 0, 0), (0, 1, 0), (0, 2, 0)],
        [(1, 0, 0), (1, 1, 2), (1, 2, 0)],
        [(2, 0, 0), (2, 1, 0), (2, 2, 0)],
    ]
    return NurbsSurface(grid, 2, 2)


def test_planar_patch_is_bilinear():
    patch = planar_patch((0, 0, 0), (2, 0, 0), (0, 3, 0), (2, 3, 0))
    assert issurface(patch)
    assert patch.degree() == (1, 1)
    assert patch.evaluate_at(0.5, 0.5) == pytest.approx((1.0, 1.5, 0.0))
    assert patch.evaluate_at(1.0, 1.0) == pytest.approx((2.0, 3.0, 0.0))
    assert patch.normal_at(0.3, 0.6) == pytest.approx((0.0, 0.0, 1.0))


def test_corners_interpolated_and_clamped():
    s = _dome()
    assert s.parameter_range() == ((0.0, 1.0), (0.0, 1.0))
    assert s.evaluate_at(0.0, 0.0) == pytest.approx((0.0, 0.0, 0.0))
    assert s.evaluate_at(1.0, 1.0) == pytest.approx((2.0, 2.0, 0.0))
    assert s.evaluate_at(5.0, -2.0) == pytest.approx(s.evaluate_at(1.0, 0.0))


def test_dome_peak():
    s = _dome()
    peak = s.evaluate_at(0.5, 0.5)
    assert peak == pytest.approx((1.0, 1.0, 0.5))
    # the normal at the apex points straight up
    assert s.normal_at(0.5, 0.5) == pytest.approx((0.0, 0.0, 1.0))


def test_bounding_box_from_control_grid():
    lo, hi = _dome().bounding_box()
    assert lo == (0.0, 0.0, 0.0)
    assert hi == (2.0, 2.0, 2.0)


def test_rejects_bad_grids():
    with pytest.raises(ValueError):
        NurbsSurface([[(0, 0, 0), (1, 0, 0)], [(0, 1, 0)]], 1, 1)
    with pytest.raises(ValueError):
        NurbsSurface([[(0, 0), (1, 0)], [(0, 1), (1, 1)]], 1, 1)


def test_periodic_direction_closes():
    ring = [
        [(1, 0, 0), (1, 0, 1)],
        [(0, 1, 0), (0, 1, 1)],
        [(-1, 0, 0), (-1, 0, 1)],
        [(0, -1, 0), (0, -1, 1)],
    ]
    s = NurbsSurface(ring, 2, 1, periodic_u=True)
    assert s.periodic_u
    assert s.is_closed_u()
    assert not s.is_closed_v()
    (u0, u1), _ = s.parameter_range()
    assert dist(s.evaluate_at(u0, 0.5), s.evaluate_at(u1, 0.5)) < 1e-9


def test_immutable():
    s = _dome()
    with pytest.raises(AttributeError):
        s._degree_u = 3
    assert s == _dome()


class TestPlane:
    """Unbounded analytic planes."""

    def test_point_normal(self):
        plane = Plane.from_point_normal((0, 0, 2), (0, 0, 5))
        assert plane.normal == pytest.approx((0.0, 0.0, 1.0))
        assert plane.d == pytest.approx(-2.0)
        assert plane.distance((1, 1, 5)) == pytest.approx(3.0)
        assert plane.distance((0, 0, 0)) == pytest.approx(-2.0)
        shifted = Plane.from_point_normal((0, 0, 2), (0, 0, 1), offset=1.0)
        assert shifted.distance((0, 0, 3)) == pytest.approx(0.0)

    def test_from_points(self):
        plane = Plane.from_points((0, 0, 1), (1, 0, 1), (0, 1, 1))
        assert plane.normal == pytest.approx((0.0, 0.0, 1.0))
        assert plane.distance((4, -3, 1)) == pytest.approx(0.0)
        # clockwise order points the other way
        assert Plane.from_points((0, 0, 1), (0, 1, 1), (1, 0, 1)).normal == pytest.approx(
            (0.0, 0.0, -1.0))

    def test_collinear_points(self):
        assert Plane.from_points((0, 0, 0), (1, 1, 1), (2, 2, 2)) is None
        assert Plane.from_points((0, 0, 0), (1, 0, 0), (1, 0, 0)) is None

    def test_from_line_angle(self):
        along = Plane.from_line_angle((0, 0, 0), (0, 0, 1), 0.0)
        assert along.normal == pytest.approx((0.0, 0.0, 1.0))
        turned = Plane.from_line_angle((0, 0, 0), (0, 0, 1), math.pi / 2)
        assert turned.normal[2] == pytest.approx(0.0, abs=1e-12)
        assert turned.distance((0, 0, 7)) == pytest.approx(0.0, abs=1e-12)

    def test_standard_planes(self):
        assert Plane.xy().normal == (0.0, 0.0, 1.0)
        assert Plane.yz().distance((3, 1, 1)) == 3.0
        assert Plane.zx().distance((1, -2, 1)) == -2.0
        assert Plane.xy().origin() == pytest.approx((0.0, 0.0, 0.0))

    def test_flip_normal(self):
        plane = Plane.from_point_normal((0, 0, 2), (0, 0, 1))
        flipped = plane.flip_normal()
        assert flipped.normal == pytest.approx((0.0, 0.0, -1.0))
        assert not flipped.facing
        assert flipped.distance((0, 0, 5)) == pytest.approx(-3.0)
        assert flipped.flip_normal().facing
        assert flipped.origin() == pytest.approx((0.0, 0.0, 2.0))

    def test_project_and_frame(self):
        plane = Plane.from_point_normal((0, 0, 1), (1, 1, 0))
        p = plane.project((3, 1, 5))
        assert plane.distance(p) == pytest.approx(0.0, abs=1e-12)
        ex, ey = plane.frame()
        assert dist(ex, (0, 0, 0)) == pytest.approx(1.0)
        assert sum(a * b for a, b in zip(ex, ey)) == pytest.approx(0.0, abs=1e-12)
        assert sum(a * b for a, b in zip(ey, plane.normal)) == pytest.approx(0.0, abs=1e-12)

    def test_zero_normal_rejected(self):
        with pytest.raises(ValueError):
            Plane((0, 0, 0))
