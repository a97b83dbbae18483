"""NURBS surface definitions.

A :class:`NurbsSurface` is a grid of weighted control points with an
independent degree, knot vector and periodic flag in each parametric
direction.  Row ``i`` of the grid runs along ``v`` at the ``i``-th ``u``
control index, so ``control_points[i][j]`` pairs with basis functions
``N_i(u) * M_j(v)``.

Parameters outside the active domain are clamped, as for curves.

:class:`Plane` is the unbounded analytic plane used for sketch placement
and for projecting planar faces.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import cos, sin
from typing import List, Optional, Sequence, Tuple

from brepcore import spline as _sp
from brepcore.geom import (
    BBox,
    Point,
    Point3D,
    WeightedPoint,
    bbox_of,
    cross,
    dot,
    mag,
    normalize,
    point,
    points_close,
    scale,
    sub,
    to_3d,
    weighted,
)

ParamRange = Tuple[Tuple[float, float], Tuple[float, float]]


class NurbsSurface:
    """Tensor product rational B-spline surface."""

    __slots__ = ("_grid", "_degree_u", "_degree_v", "_knots_u", "_knots_v",
                 "_periodic_u", "_periodic_v")

    def __init__(self, control_points: Sequence[Sequence], degree_u: int = 3, degree_v: int = 3,
                 knots_u: Optional[Sequence[float]] = None, knots_v: Optional[Sequence[float]] = None,
                 periodic_u: bool = False, periodic_v: bool = False) -> None:
        grid = [weighted(row) for row in control_points]
        if not grid or not grid[0]:
            raise ValueError("NURBS surface needs a non-empty control grid")
        width = len(grid[0])
        if any(len(row) != width for row in grid):
            raise ValueError("control grid rows must all have the same length")
        dims = {c.dimension for row in grid for c in row}
        if dims != {3}:
            raise ValueError("NURBS surface control points must be 3D")
        degree_u = int(degree_u)
        degree_v = int(degree_v)

        if knots_u is None:
            if periodic_u:
                grid = grid + grid[:degree_u]
                knots_u = _sp.uniform_knots(len(grid), degree_u)
            else:
                knots_u = _sp.open_uniform_knots(len(grid), degree_u)
        if knots_v is None:
            if periodic_v:
                grid = [row + row[:degree_v] for row in grid]
                knots_v = _sp.uniform_knots(len(grid[0]), degree_v)
            else:
                knots_v = _sp.open_uniform_knots(len(grid[0]), degree_v)

        knots_u = tuple(float(k) for k in knots_u)
        knots_v = tuple(float(k) for k in knots_v)
        _sp.check_knots(knots_u, len(grid), degree_u)
        _sp.check_knots(knots_v, len(grid[0]), degree_v)

        object.__setattr__(self, "_grid", tuple(tuple(row) for row in grid))
        object.__setattr__(self, "_degree_u", degree_u)
        object.__setattr__(self, "_degree_v", degree_v)
        object.__setattr__(self, "_knots_u", knots_u)
        object.__setattr__(self, "_knots_v", knots_v)
        object.__setattr__(self, "_periodic_u", bool(periodic_u))
        object.__setattr__(self, "_periodic_v", bool(periodic_v))

    def __setattr__(self, name, value):
        raise AttributeError("NurbsSurface is immutable")

    def __eq__(self, other) -> bool:
        if not isinstance(other, NurbsSurface):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __repr__(self) -> str:
        return (f"NurbsSurface({len(self._grid)}x{len(self._grid[0])} control points, "
                f"degree=({self._degree_u}, {self._degree_v}))")

    def _key(self):
        return (self._grid, self._degree_u, self._degree_v, self._knots_u, self._knots_v,
                self._periodic_u, self._periodic_v)

    @property
    def control_points(self) -> Tuple[Tuple[WeightedPoint, ...], ...]:
        return self._grid

    @property
    def knots_u(self) -> Tuple[float, ...]:
        return self._knots_u

    @property
    def knots_v(self) -> Tuple[float, ...]:
        return self._knots_v

    @property
    def periodic_u(self) -> bool:
        return self._periodic_u

    @property
    def periodic_v(self) -> bool:
        return self._periodic_v

    @property
    def dimension(self) -> int:
        return 3

    def degree(self) -> Tuple[int, int]:
        """``(degree_u, degree_v)``"""
        return self._degree_u, self._degree_v

    def parameter_range(self) -> ParamRange:
        return (_sp.active_range(self._knots_u, self._degree_u),
                _sp.active_range(self._knots_v, self._degree_v))

    def _clamp(self, u: float, v: float) -> Tuple[float, float]:
        (u0, u1), (v0, v1) = self.parameter_range()
        return _sp.clamp_parameter(u, u0, u1), _sp.clamp_parameter(v, v0, v1)

    def derivatives(self, u: float, v: float) -> Tuple[Point, Point, Point]:
        """Return ``(S, dS/du, dS/dv)`` at ``(u, v)``."""
        u, v = self._clamp(u, v)
        bu = _sp.basis_functions(self._knots_u, self._degree_u, u, 1)
        bv = _sp.basis_functions(self._knots_v, self._degree_v, v, 1)
        a = [0.0, 0.0, 0.0]
        au = [0.0, 0.0, 0.0]
        av = [0.0, 0.0, 0.0]
        w = wu = wv = 0.0
        for i, (n, dn) in bu:
            row = self._grid[i]
            for j, (m, dm) in bv:
                cp = row[j]
                pw = cp.weight
                for k in range(3):
                    c = cp.point[k] * pw
                    a[k] += n * m * c
                    au[k] += dn * m * c
                    av[k] += n * dm * c
                w += n * m * pw
                wu += dn * m * pw
                wv += n * dm * pw
        if w == 0.0:
            zero = (0.0, 0.0, 0.0)
            return self._grid[0][0].point, zero, zero
        s = tuple(x / w for x in a)
        su = scale(sub(tuple(au), scale(s, wu)), 1.0 / w)
        sv = scale(sub(tuple(av), scale(s, wv)), 1.0 / w)
        return s, su, sv

    def evaluate_at(self, u: float, v: float) -> Point:
        return self.derivatives(u, v)[0]

    def normal_at(self, u: float, v: float) -> Optional[Point]:
        """Unit normal ``dS/du x dS/dv`` or ``None`` at a degenerate point."""
        _, su, sv = self.derivatives(u, v)
        return normalize(cross(su, sv))

    def bounding_box(self) -> BBox:
        return bbox_of([c.point for row in self._grid for c in row])

    def is_closed_u(self, samples: int = 5) -> bool:
        """Do the ``u`` boundaries coincide along the whole ``v`` range?"""
        (u0, u1), (v0, v1) = self.parameter_range()
        return all(points_close(self.evaluate_at(u0, v), self.evaluate_at(u1, v))
                   for v in _samples(v0, v1, samples))

    def is_closed_v(self, samples: int = 5) -> bool:
        (u0, u1), (v0, v1) = self.parameter_range()
        return all(points_close(self.evaluate_at(u, v0), self.evaluate_at(u, v1))
                   for u in _samples(u0, u1, samples))

    def tessellate(self, tolerance: Optional[float] = None):
        from brepcore.tessellation import tessellate_surface
        return tessellate_surface(self, tolerance)

    def adaptive_tessellate(self, max_chordal_error: Optional[float] = None, *,
                            max_divisions: Optional[int] = None):
        from brepcore.tessellation import adaptive_tessellate_surface
        return adaptive_tessellate_surface(self, max_chordal_error, max_divisions=max_divisions)


def _samples(a: float, b: float, count: int) -> List[float]:
    if count < 2:
        return [a]
    return [a + (b - a) * i / (count - 1) for i in range(count)]


def planar_patch(p00: Sequence[float], p10: Sequence[float],
                 p01: Sequence[float], p11: Sequence[float]) -> NurbsSurface:
    """Bilinear patch through four corners, ``pUV`` at ``(u, v)``."""

    return NurbsSurface([[point(p00), point(p01)], [point(p10), point(p11)]], 1, 1)


# -----------------------------------------------------------------------------
# Plane
# -----------------------------------------------------------------------------

## cross products shorter than this make three points collinear
collinear_tolerance = 1e-10


@dataclass(frozen=True)
class Plane:
    """Unbounded plane ``normal . p + d = 0`` with a unit normal.

    ``facing`` is True while the normal points the way it was constructed
    and toggles with every :meth:`flip_normal`.
    """

    normal: Point3D
    d: float = 0.0
    facing: bool = True

    def __post_init__(self) -> None:
        n = normalize(to_3d(point(self.normal)))
        if n is None:
            raise ValueError("plane normal must not be zero")
        object.__setattr__(self, "normal", n)
        object.__setattr__(self, "d", float(self.d))
        object.__setattr__(self, "facing", bool(self.facing))

    @classmethod
    def from_point_normal(cls, origin: Sequence[float], normal: Sequence[float],
                          offset: float = 0.0) -> "Plane":
        """Plane through ``origin``, moved ``offset`` along ``normal``."""
        n = normalize(to_3d(point(normal)))
        if n is None:
            raise ValueError("plane normal must not be zero")
        return cls(n, -dot(n, to_3d(point(origin))) - offset)

    @classmethod
    def from_points(cls, a: Sequence[float], b: Sequence[float],
                    c: Sequence[float]) -> Optional["Plane"]:
        """Plane through three points, normal by the right-hand rule.

        Returns ``None`` when the points are collinear.
        """
        a, b, c = (to_3d(point(p)) for p in (a, b, c))
        n = cross(sub(b, a), sub(c, a))
        if mag(n) < collinear_tolerance:
            return None
        return cls.from_point_normal(a, n)

    @classmethod
    def from_line_angle(cls, origin: Sequence[float], direction: Sequence[float],
                        angle: float) -> "Plane":
        """Plane through a line, its normal turned ``angle`` radians off the line."""
        u = normalize(to_3d(point(direction)))
        if u is None:
            raise ValueError("line direction must not be zero")
        helper = (1.0, 0.0, 0.0) if abs(u[0]) < 0.9 else (0.0, 1.0, 0.0)
        perp = normalize(cross(u, helper))
        n = tuple(cos(angle) * x + sin(angle) * y for x, y in zip(u, perp))
        return cls.from_point_normal(origin, n)

    @classmethod
    def xy(cls) -> "Plane":
        return cls((0.0, 0.0, 1.0))

    @classmethod
    def yz(cls) -> "Plane":
        return cls((1.0, 0.0, 0.0))

    @classmethod
    def zx(cls) -> "Plane":
        return cls((0.0, 1.0, 0.0))

    def flip_normal(self) -> "Plane":
        return Plane(scale(self.normal, -1.0), -self.d, not self.facing)

    def distance(self, p: Sequence[float]) -> float:
        """Signed distance of ``p``; positive on the side the normal points to."""
        return dot(self.normal, to_3d(p)) + self.d

    def project(self, p: Sequence[float]) -> Point3D:
        return sub(to_3d(p), scale(self.normal, self.distance(p)))

    def origin(self) -> Point3D:
        """Point of the plane closest to the world origin."""
        return scale(self.normal, -self.d)

    def frame(self) -> Tuple[Point3D, Point3D]:
        """Orthonormal in-plane axes ``(ex, ey)`` with ``ex x ey = normal``."""
        n = self.normal
        helper = (1.0, 0.0, 0.0) if abs(n[0]) < 0.9 else (0.0, 1.0, 0.0)
        ex = normalize(cross(helper, n))
        return ex, cross(n, ex)


def issurface(obj) -> bool:
    return isinstance(obj, NurbsSurface)


__all__ = [
    "NurbsSurface",
    "planar_patch",
    "Plane",
    "issurface",
]
