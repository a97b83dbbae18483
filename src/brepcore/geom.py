"""Points, weighted points and small vector helpers.

Points are plain tuples of floats, either ``(x, y)`` or ``(x, y, z)``.
Every helper here is dimension generic: it works on whatever number of
components its arguments carry, provided both arguments agree.
"""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from typing import Iterable, Optional, Sequence, Tuple

Point2D = Tuple[float, float]
Point3D = Tuple[float, float, float]
Point = Tuple[float, ...]
BBox = Tuple[Point, Point]

## absolute per-axis tolerance used for closure and coincidence tests
closure_tolerance = 1e-10

## general purpose tolerance for degenerate lengths
epsilon = 1e-12


def point(*coords) -> Point:
    """Make a 2D or 3D point from numbers or from a single sequence."""
    if len(coords) == 1 and isinstance(coords[0], (list, tuple)):
        coords = tuple(coords[0])
    if len(coords) not in (2, 3):
        raise ValueError(f"points must have 2 or 3 components, got {len(coords)}")
    return tuple(float(c) for c in coords)


def ispoint(p) -> bool:
    """is ``p`` a 2D or 3D point tuple?"""
    return (isinstance(p, tuple) and len(p) in (2, 3)
            and all(isinstance(c, (int, float)) and not isinstance(c, bool) for c in p))


def dimension_of(points: Iterable[Sequence[float]]) -> int:
    """Return the shared dimension of ``points`` or raise ``ValueError``."""
    dims = {len(p) for p in points}
    if not dims:
        raise ValueError("no points given")
    if len(dims) != 1:
        raise ValueError(f"points mix dimensions {sorted(dims)}")
    dim = dims.pop()
    if dim not in (2, 3):
        raise ValueError(f"unsupported dimension {dim}")
    return dim


def add(a: Sequence[float], b: Sequence[float]) -> Point:
    """ vector ``a + b``"""
    return tuple(x + y for x, y in zip(a, b))


def sub(a: Sequence[float], b: Sequence[float]) -> Point:
    """ vector ``a - b``"""
    return tuple(x - y for x, y in zip(a, b))


def scale(a: Sequence[float], c: float) -> Point:
    """ vector ``a`` times scalar ``c``"""
    return tuple(x * c for x in a)


def dot(a: Sequence[float], b: Sequence[float]) -> float:
    return sum(x * y for x, y in zip(a, b))


def mag(a: Sequence[float]) -> float:
    return sqrt(dot(a, a))


def dist(a: Sequence[float], b: Sequence[float]) -> float:
    """ euclidean distance between points ``a`` and ``b``"""
    return mag(sub(a, b))


def cross(a: Sequence[float], b: Sequence[float]) -> Point3D:
    """3D cross product; 2D inputs are treated as lying in z=0."""
    ax, ay, az = _as3(a)
    bx, by, bz = _as3(b)
    return (ay * bz - az * by,
            az * bx - ax * bz,
            ax * by - ay * bx)


def cross2(a: Sequence[float], b: Sequence[float]) -> float:
    """scalar z component of the 2D cross product"""
    return a[0] * b[1] - a[1] * b[0]


def normalize(a: Sequence[float]) -> Optional[Point]:
    """Return ``a`` scaled to unit length, or ``None`` if degenerate."""
    length = mag(a)
    if length <= epsilon:
        return None
    return scale(a, 1.0 / length)


def active_closure_tolerance() -> float:
    """closure tolerance of the process-wide kernel configuration"""
    from brepcore.config import get_config
    return get_config().closure_tolerance


def points_close(a: Sequence[float], b: Sequence[float],
                 tol: Optional[float] = None) -> bool:
    """do ``a`` and ``b`` agree within ``tol`` on every axis?

    ``tol`` defaults to the configured closure tolerance.
    """
    if tol is None:
        tol = active_closure_tolerance()
    if len(a) != len(b):
        return False
    return all(abs(x - y) < tol for x, y in zip(a, b))


def bbox_of(points: Iterable[Sequence[float]]) -> BBox:
    """Axis-aligned ``(min, max)`` box of ``points``."""
    pts = list(points)
    if not pts:
        raise ValueError("cannot take the bounding box of no points")
    dim = len(pts[0])
    lo = tuple(min(p[i] for p in pts) for i in range(dim))
    hi = tuple(max(p[i] for p in pts) for i in range(dim))
    return lo, hi


def bbox_union(a: BBox, b: BBox) -> BBox:
    return (tuple(min(x, y) for x, y in zip(a[0], b[0])),
            tuple(max(x, y) for x, y in zip(a[1], b[1])))


def bbox_contains(outer: BBox, inner: BBox, *, strict: bool = True) -> bool:
    """is box ``inner`` inside box ``outer``?"""
    if strict:
        return (all(o < i for o, i in zip(outer[0], inner[0]))
                and all(i < o for o, i in zip(outer[1], inner[1])))
    return (all(o <= i for o, i in zip(outer[0], inner[0]))
            and all(i <= o for o, i in zip(outer[1], inner[1])))


def bbox_overlaps(a: BBox, b: BBox) -> bool:
    return all(a[0][i] <= b[1][i] and b[0][i] <= a[1][i] for i in range(len(a[0])))


def _as3(a: Sequence[float]) -> Point3D:
    if len(a) == 2:
        return float(a[0]), float(a[1]), 0.0
    return float(a[0]), float(a[1]), float(a[2])


def to_3d(a: Sequence[float]) -> Point3D:
    """Lift a 2D point into the z=0 plane; 3D points pass through."""
    return _as3(a)


@dataclass(frozen=True)
class WeightedPoint:
    """A NURBS control point: coordinates plus homogeneous weight."""

    point: Point
    weight: float = 1.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "point", point(self.point))
        object.__setattr__(self, "weight", float(self.weight))
        if self.weight <= 0.0:
            raise ValueError("NURBS weights must be positive")

    @property
    def dimension(self) -> int:
        return len(self.point)

    def homogeneous(self) -> Tuple[float, ...]:
        """Return ``(w*x, w*y[, w*z], w)``."""
        return tuple(c * self.weight for c in self.point) + (self.weight,)


WeightedPoint2D = WeightedPoint
WeightedPoint3D = WeightedPoint


def weighted(points: Iterable, weights: Optional[Sequence[float]] = None):
    """Coerce points (or existing weighted points) to ``WeightedPoint``."""
    pts = list(points)
    if weights is not None and len(weights) != len(pts):
        raise ValueError("weights and control points differ in length")
    result = []
    for i, p in enumerate(pts):
        if isinstance(p, WeightedPoint):
            result.append(p if weights is None else WeightedPoint(p.point, weights[i]))
        else:
            result.append(WeightedPoint(point(p), 1.0 if weights is None else weights[i]))
    return result


__all__ = [
    "Point",
    "Point2D",
    "Point3D",
    "BBox",
    "WeightedPoint",
    "WeightedPoint2D",
    "WeightedPoint3D",
    "closure_tolerance",
    "active_closure_tolerance",
    "epsilon",
    "point",
    "ispoint",
    "dimension_of",
    "add",
    "sub",
    "scale",
    "dot",
    "mag",
    "dist",
    "cross",
    "cross2",
    "normalize",
    "points_close",
    "bbox_of",
    "bbox_union",
    "bbox_contains",
    "bbox_overlaps",
    "to_3d",
    "weighted",
]
