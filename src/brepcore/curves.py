"""Parametric curve primitives.

Five curve variants share one capability set::

    start_point, end_point, is_closed, parameter_range, evaluate_at,
    tangent_at, degree, arc_length, curvature_at, bounding_box,
    tessellate, adaptive_tessellate

- :class:`Line` -- two endpoints, closed form evaluation.
- :class:`Spline` -- non-rational B-spline (control points, degree, knots).
- :class:`BezierCurve` -- endpoints plus interior handles.
- :class:`BezierSpline` -- chain of Bezier segments with a continuity
  requirement between neighbours.
- :class:`NurbsCurve` -- rational B-spline with weighted control points.

The variant set is closed.  Topology stores any of them as an
:data:`Edge2D` / :data:`Edge3D` value and callers branch on
:func:`curve_kind` when they need variant specific behaviour.

All variants are immutable and dimension generic: they hold either 2D or 3D
points and report which through ``dimension``.  Parameters outside
``parameter_range()`` are clamped onto the range.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from math import sqrt
from typing import List, Optional, Sequence, Tuple, Union

from brepcore import spline as _sp
from brepcore.geom import (
    BBox,
    Point,
    WeightedPoint,
    bbox_of,
    bbox_union,
    cross,
    cross2,
    dimension_of,
    dist,
    dot,
    epsilon,
    mag,
    normalize,
    point,
    points_close,
    scale,
    sub,
    weighted,
)


class CurveKind(Enum):
    """Tag identifying a curve variant."""

    LINE = "line"
    SPLINE = "spline"
    BEZIER = "bezier"
    BEZIER_SPLINE = "bezier_spline"
    NURBS = "nurbs"


class Continuity(Enum):
    """Continuity required between consecutive segments of a composite curve."""

    POSITION = "position"
    TANGENT = "tangent"
    CURVATURE = "curvature"
    GEOMETRIC_TANGENT = "geometric_tangent"
    GEOMETRIC_CURVATURE = "geometric_curvature"


def _quadrature_points() -> int:
    from brepcore.config import get_config
    return get_config().quadrature_points


class _CurveOps:
    """Capability defaults shared by every curve variant.

    Variants provide ``kind``, ``dimension``, ``start_point``,
    ``end_point``, ``parameter_range``, ``degree``, ``_derivatives`` and
    ``_length_spans``.
    """

    def is_closed(self) -> bool:
        return points_close(self.start_point(), self.end_point())

    def evaluate_at(self, t: float) -> Point:
        return self._derivatives(self._clamp(t), 0)[0]

    def tangent_at(self, t: float) -> Point:
        """First derivative at ``t``; not normalized."""
        return self._derivatives(self._clamp(t), 1)[1]

    def curvature_at(self, t: float) -> float:
        _, d1, d2 = self._derivatives(self._clamp(t), 2)
        speed = mag(d1)
        if speed <= epsilon:
            return 0.0
        if self.dimension == 2:
            return abs(cross2(d1, d2)) / speed ** 3
        return mag(cross(d1, d2)) / speed ** 3

    def arc_length(self) -> float:
        """Gauss-Legendre approximation of the curve length."""
        n = _quadrature_points()
        total = 0.0
        for a, b in self._length_spans():
            total += _sp.integrate(lambda u: mag(self._derivatives(u, 1)[1]), a, b, n)
        return total

    def bounding_box(self) -> BBox:
        """Box of the endpoints; curved variants override this."""
        return bbox_of([self.start_point(), self.end_point()])

    def tessellate(self, tolerance: Optional[float] = None) -> List[Point]:
        from brepcore.tessellation import tessellate_curve
        return tessellate_curve(self, tolerance)

    def adaptive_tessellate(self, tolerance: Optional[float] = None, *,
                            min_segments: Optional[int] = None,
                            max_segments: Optional[int] = None) -> List[Point]:
        from brepcore.tessellation import adaptive_tessellate_curve
        return adaptive_tessellate_curve(self, tolerance, min_segments=min_segments,
                                         max_segments=max_segments)

    def _clamp(self, t: float) -> float:
        lo, hi = self.parameter_range()
        return _sp.clamp_parameter(t, lo, hi)

    def _length_spans(self) -> List[Tuple[float, float]]:
        lo, hi = self.parameter_range()
        return _subdivide(lo, hi, 4)


def _subdivide(a: float, b: float, pieces: int) -> List[Tuple[float, float]]:
    step = (b - a) / pieces
    return [(a + i * step, a + (i + 1) * step) for i in range(pieces)]


# -----------------------------------------------------------------------------
# Line
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Line(_CurveOps):
    """Straight segment from ``start`` to ``end``."""

    start: Point
    end: Point

    kind = CurveKind.LINE

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", point(self.start))
        object.__setattr__(self, "end", point(self.end))
        dimension_of([self.start, self.end])

    @property
    def dimension(self) -> int:
        return len(self.start)

    def start_point(self) -> Point:
        return self.start

    def end_point(self) -> Point:
        return self.end

    def parameter_range(self) -> Tuple[float, float]:
        return 0.0, 1.0

    def degree(self) -> int:
        return 1

    def evaluate_at(self, t: float) -> Point:
        t = self._clamp(t)
        # (1-t)*a + t*b reproduces both endpoints exactly
        return tuple((1.0 - t) * a + t * b for a, b in zip(self.start, self.end))

    def arc_length(self) -> float:
        return dist(self.start, self.end)

    def curvature_at(self, t: float) -> float:
        return 0.0

    def reversed(self) -> "Line":
        return Line(self.end, self.start)

    def _derivatives(self, t: float, order: int) -> List[Point]:
        out = [self.evaluate_at(t)]
        if order >= 1:
            out.append(sub(self.end, self.start))
        if order >= 2:
            out.append(tuple([0.0] * self.dimension))
        return out

    def _length_spans(self) -> List[Tuple[float, float]]:
        return [(0.0, 1.0)]


# -----------------------------------------------------------------------------
# Spline (non-rational B-spline)
# -----------------------------------------------------------------------------

class _KnotCurve(_CurveOps):
    """Shared machinery for the knot-based variants."""

    __slots__ = ("_ctrl", "_degree", "_knots", "_wrapped")

    def __init__(self, ctrl: List[WeightedPoint], degree: int,
                 knots: Optional[Sequence[float]], wrap: bool) -> None:
        dimension_of([c.point for c in ctrl])
        degree = int(degree)
        if knots is None:
            if wrap:
                ctrl = ctrl + ctrl[:degree]
                knots = _sp.uniform_knots(len(ctrl), degree)
            else:
                knots = _sp.open_uniform_knots(len(ctrl), degree)
        knots = tuple(float(k) for k in knots)
        _sp.check_knots(knots, len(ctrl), degree)
        self._ctrl = tuple(ctrl)
        self._degree = degree
        self._knots = knots
        self._wrapped = bool(wrap)

    def __setattr__(self, name, value):
        if hasattr(self, "_wrapped"):
            raise AttributeError(f"{type(self).__name__} is immutable")
        object.__setattr__(self, name, value)

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self._ctrl == other._ctrl and self._degree == other._degree
                and self._knots == other._knots and self._wrapped == other._wrapped)

    def __hash__(self) -> int:
        return hash((type(self).__name__, self._ctrl, self._degree, self._knots, self._wrapped))

    @property
    def knots(self) -> Tuple[float, ...]:
        return self._knots

    @property
    def dimension(self) -> int:
        return self._ctrl[0].dimension

    def start_point(self) -> Point:
        return self.evaluate_at(self.parameter_range()[0])

    def end_point(self) -> Point:
        return self.evaluate_at(self.parameter_range()[1])

    def parameter_range(self) -> Tuple[float, float]:
        return _sp.active_range(self._knots, self._degree)

    def degree(self) -> int:
        return self._degree

    def bounding_box(self) -> BBox:
        return bbox_of([c.point for c in self._ctrl])

    def _derivatives(self, t: float, order: int) -> List[Point]:
        return _sp.rational_derivatives(self._ctrl, self._knots, self._degree, t, order)

    def _length_spans(self) -> List[Tuple[float, float]]:
        spans = []
        for a, b in _sp.distinct_spans(self._knots, self._degree):
            spans.extend(_subdivide(a, b, 2))
        return spans


class Spline(_KnotCurve):
    """Piecewise polynomial (non-rational) B-spline.

    When ``knots`` is omitted an open uniform vector is generated.  With
    ``closed=True`` and no explicit knots the first ``degree`` control
    points are repeated and a uniform unclamped vector is used, which makes
    the curve periodic.
    """

    __slots__ = ()
    kind = CurveKind.SPLINE

    def __init__(self, control_points: Sequence[Sequence[float]], degree: int = 3,
                 knots: Optional[Sequence[float]] = None, closed: bool = False) -> None:
        super().__init__(weighted(point(p) for p in control_points), degree, knots, closed)

    @property
    def control_points(self) -> Tuple[Point, ...]:
        return tuple(c.point for c in self._ctrl)

    @property
    def closed(self) -> bool:
        return self._wrapped

    def reversed(self) -> "Spline":
        return Spline(tuple(reversed(self.control_points)), self._degree,
                      _reverse_knots(self._knots), self.closed)

    def __repr__(self) -> str:
        return (f"Spline(control_points={self.control_points!r}, degree={self._degree}, "
                f"knots={self._knots!r}, closed={self.closed})")


def _reverse_knots(knots: Sequence[float]) -> Tuple[float, ...]:
    a, b = knots[0], knots[-1]
    return tuple(a + b - k for k in reversed(knots))


# -----------------------------------------------------------------------------
# Bezier curves
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class BezierCurve(_CurveOps):
    """Bezier curve given by its endpoints and interior control handles.

    The degree is ``len(handles) + 1``; no handles gives a straight
    segment.
    """

    start: Point
    end: Point
    handles: Tuple[Point, ...] = ()

    kind = CurveKind.BEZIER

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", point(self.start))
        object.__setattr__(self, "end", point(self.end))
        object.__setattr__(self, "handles", tuple(point(h) for h in self.handles))
        dimension_of(self.control_polygon())

    @property
    def dimension(self) -> int:
        return len(self.start)

    def control_polygon(self) -> List[Point]:
        return [self.start, *self.handles, self.end]

    def start_point(self) -> Point:
        return self.start

    def end_point(self) -> Point:
        return self.end

    def parameter_range(self) -> Tuple[float, float]:
        return 0.0, 1.0

    def degree(self) -> int:
        return len(self.handles) + 1

    def bounding_box(self) -> BBox:
        return bbox_of(self.control_polygon())

    def split(self, t: float) -> Tuple["BezierCurve", "BezierCurve"]:
        left, right = _sp.split_bezier(self.control_polygon(), self._clamp(t))
        return (BezierCurve(left[0], left[-1], tuple(left[1:-1])),
                BezierCurve(right[0], right[-1], tuple(right[1:-1])))

    def reversed(self) -> "BezierCurve":
        return BezierCurve(self.end, self.start, tuple(reversed(self.handles)))

    def _derivatives(self, t: float, order: int) -> List[Point]:
        out = _sp.bezier_derivatives(self.control_polygon(), t, order)
        if t <= 0.0:
            out[0] = self.start
        elif t >= 1.0:
            out[0] = self.end
        return out


@dataclass(frozen=True)
class BezierSpline(_CurveOps):
    """Composite curve made of Bezier segments.

    The global parameter ``t`` in ``[0, 1]`` is split evenly across the
    segments: segment ``i`` of ``n`` covers ``[i/n, (i+1)/n]``.  Pass
    ``by_arc_length=True`` to :meth:`evaluate_at` to parameterize by
    fraction of arc length instead.
    """

    segments: Tuple[BezierCurve, ...]
    continuity: Continuity = Continuity.POSITION

    kind = CurveKind.BEZIER_SPLINE

    def __post_init__(self) -> None:
        segs = tuple(self.segments)
        if not segs:
            raise ValueError("a Bezier spline needs at least one segment")
        for seg in segs:
            if not isinstance(seg, BezierCurve):
                raise ValueError(f"Bezier spline segments must be BezierCurve, got {type(seg).__name__}")
        dimension_of([s.start for s in segs])
        object.__setattr__(self, "segments", segs)
        object.__setattr__(self, "continuity", Continuity(self.continuity))

    @property
    def dimension(self) -> int:
        return self.segments[0].dimension

    def start_point(self) -> Point:
        return self.segments[0].start_point()

    def end_point(self) -> Point:
        return self.segments[-1].end_point()

    def parameter_range(self) -> Tuple[float, float]:
        return 0.0, 1.0

    def degree(self) -> int:
        return max(seg.degree() for seg in self.segments)

    def segment_parameter(self, t: float) -> Tuple[int, float]:
        """Map global ``t`` onto ``(segment index, local parameter)``."""
        t = self._clamp(t)
        n = len(self.segments)
        scaled = t * n
        index = min(int(scaled), n - 1)
        return index, scaled - index

    def arc_length_parameter(self, fraction: float) -> float:
        """Global parameter at which ``fraction`` of the arc length is reached."""
        fraction = _sp.clamp_parameter(fraction, 0.0, 1.0)
        lengths = [seg.arc_length() for seg in self.segments]
        total = sum(lengths)
        if total <= epsilon:
            return fraction
        target = fraction * total
        n = len(self.segments)
        for index, (seg, length) in enumerate(zip(self.segments, lengths)):
            if target <= length or index == n - 1:
                local = _invert_length(seg, min(target, length))
                return (index + local) / n
            target -= length
        return 1.0

    def evaluate_at(self, t: float, *, by_arc_length: bool = False) -> Point:
        if by_arc_length:
            t = self.arc_length_parameter(t)
        return self._derivatives(self._clamp(t), 0)[0]

    def arc_length(self) -> float:
        return sum(seg.arc_length() for seg in self.segments)

    def bounding_box(self) -> BBox:
        box = self.segments[0].bounding_box()
        for seg in self.segments[1:]:
            box = bbox_union(box, seg.bounding_box())
        return box

    def continuity_satisfied(self, tolerance: float = 1e-9) -> bool:
        """Check the continuity requirement at every interior joint."""
        for a, b in zip(self.segments, self.segments[1:]):
            if not _joint_ok(a, b, self.continuity, tolerance):
                return False
        return True

    def reversed(self) -> "BezierSpline":
        return BezierSpline(tuple(seg.reversed() for seg in reversed(self.segments)),
                            self.continuity)

    def _derivatives(self, t: float, order: int) -> List[Point]:
        index, local = self.segment_parameter(t)
        out = self.segments[index]._derivatives(local, order)
        n = float(len(self.segments))
        # chain rule for the linear global-to-local mapping
        return [out[0]] + [scale(d, n ** k) for k, d in enumerate(out[1:], start=1)]

    def _length_spans(self) -> List[Tuple[float, float]]:
        n = len(self.segments)
        spans = []
        for i in range(n):
            spans.extend(_subdivide(i / n, (i + 1) / n, 4))
        return spans


def _invert_length(seg: BezierCurve, target: float) -> float:
    """Local parameter of ``seg`` at which its partial length equals ``target``."""
    n = _quadrature_points()
    speed = lambda u: mag(seg._derivatives(u, 1)[1])
    lo, hi = 0.0, 1.0
    for _ in range(60):
        mid = 0.5 * (lo + hi)
        if _sp.integrate(speed, 0.0, mid, n) < target:
            lo = mid
        else:
            hi = mid
    return 0.5 * (lo + hi)


def _joint_ok(a: BezierCurve, b: BezierCurve, continuity: Continuity, tol: float) -> bool:
    if not points_close(a.end_point(), b.start_point(), tol):
        return False
    if continuity is Continuity.POSITION:
        return True
    _, da1, da2 = a._derivatives(1.0, 2)
    _, db1, db2 = b._derivatives(0.0, 2)
    if continuity in (Continuity.TANGENT, Continuity.CURVATURE):
        if not points_close(da1, db1, tol * max(1.0, mag(da1))):
            return False
        if continuity is Continuity.CURVATURE:
            return points_close(da2, db2, tol * max(1.0, mag(da2)))
        return True
    ta = normalize(da1)
    tb = normalize(db1)
    if ta is None or tb is None or dot(ta, tb) < 1.0 - tol:
        return False
    if continuity is Continuity.GEOMETRIC_CURVATURE:
        return abs(a.curvature_at(1.0) - b.curvature_at(0.0)) <= tol * max(1.0, a.curvature_at(1.0))
    return True


# -----------------------------------------------------------------------------
# NURBS curve
# -----------------------------------------------------------------------------

class NurbsCurve(_KnotCurve):
    """Non-uniform rational B-spline curve.

    ``control_points`` accepts :class:`~brepcore.geom.WeightedPoint`
    values or bare points (weight 1).  With ``periodic=True`` and no
    explicit knots the curve is wrapped the same way as :class:`Spline`.
    """

    __slots__ = ()
    kind = CurveKind.NURBS

    def __init__(self, control_points: Sequence, degree: int = 3,
                 knots: Optional[Sequence[float]] = None, periodic: bool = False,
                 weights: Optional[Sequence[float]] = None) -> None:
        super().__init__(weighted(control_points, weights), degree, knots, periodic)

    @property
    def control_points(self) -> Tuple[WeightedPoint, ...]:
        return self._ctrl

    @property
    def weights(self) -> Tuple[float, ...]:
        return tuple(c.weight for c in self._ctrl)

    @property
    def periodic(self) -> bool:
        return self._wrapped

    def reversed(self) -> "NurbsCurve":
        return NurbsCurve(tuple(reversed(self._ctrl)), self._degree,
                          _reverse_knots(self._knots), self.periodic)

    def __repr__(self) -> str:
        return (f"NurbsCurve(control_points={self._ctrl!r}, degree={self._degree}, "
                f"knots={self._knots!r}, periodic={self.periodic})")


def nurbs_circle(center: Sequence[float], radius: float) -> NurbsCurve:
    """Exact full circle as a rational quadratic NURBS in the XY plane.

    A 3D ``center`` places the circle in the plane ``z = center[2]``.
    """

    if radius <= 0:
        raise ValueError("radius must be positive")
    c = point(center)
    r = float(radius)
    offsets = [(r, 0), (r, r), (0, r), (-r, r), (-r, 0), (-r, -r), (0, -r), (r, -r), (r, 0)]
    half = sqrt(2.0) / 2.0
    ctrl = []
    for i, (dx, dy) in enumerate(offsets):
        p = (c[0] + dx, c[1] + dy) + tuple(c[2:])
        ctrl.append(WeightedPoint(p, 1.0 if i % 2 == 0 else half))
    knots = (0.0, 0.0, 0.0, 0.25, 0.25, 0.5, 0.5, 0.75, 0.75, 1.0, 1.0, 1.0)
    return NurbsCurve(tuple(ctrl), 2, knots)


# -----------------------------------------------------------------------------
# Curve union and operations
# -----------------------------------------------------------------------------

Curve = Union[Line, Spline, BezierCurve, BezierSpline, NurbsCurve]
Edge2D = Curve
Edge3D = Curve

CURVE_TYPES = (Line, Spline, BezierCurve, BezierSpline, NurbsCurve)


def iscurve(obj) -> bool:
    """is ``obj`` one of the curve variants?"""
    return isinstance(obj, CURVE_TYPES)


def curve_kind(curve: Curve) -> CurveKind:
    if not iscurve(curve):
        raise ValueError(f"not a curve: {curve!r}")
    return curve.kind


def line(a: Sequence[float], b: Sequence[float]) -> Line:
    """Construct a :class:`Line` from two points."""
    return Line(point(a), point(b))


def linearize(curve: Curve) -> Line:
    """Replace any curve by its chord, the coarsest tessellation."""
    return Line(curve.start_point(), curve.end_point())


def _homogeneous_segments(curve: Curve) -> List[List[Point]]:
    """Exact Bezier pieces of ``curve`` as homogeneous control polygons."""
    kind = curve_kind(curve)
    if kind is CurveKind.LINE:
        polygons = [[curve.start, curve.end]]
    elif kind is CurveKind.BEZIER:
        polygons = [curve.control_polygon()]
    elif kind is CurveKind.BEZIER_SPLINE:
        polygons = [seg.control_polygon() for seg in curve.segments]
    else:
        ctrl = [c.homogeneous() for c in curve._ctrl]
        return _sp.bezier_decompose(ctrl, curve.knots, curve.degree())
    return [[tuple(p) + (1.0,) for p in poly] for poly in polygons]


def _bezier_segments(curve: Curve) -> List[BezierCurve]:
    if curve.kind is CurveKind.BEZIER_SPLINE:
        return list(curve.segments)
    segments = []
    for poly in _homogeneous_segments(curve):
        pts = [tuple(c / p[-1] for c in p[:-1]) for p in poly]
        segments.append(BezierCurve(pts[0], pts[-1], tuple(pts[1:-1])))
    return segments


def _nurbs_join(first: Curve, second: Curve) -> NurbsCurve:
    head = _homogeneous_segments(first)
    tail = _homogeneous_segments(second)
    # a uniform weight scale leaves the tail unchanged and matches the joint weights
    ratio = head[-1][-1][-1] / tail[0][0][-1]
    tail = [[scale(p, ratio) for p in poly] for poly in tail]
    tail[0][0] = head[-1][-1]
    degree = max(len(poly) - 1 for poly in head + tail)
    polys = [_sp.elevate_bezier(poly, degree) for poly in head + tail]
    hom = list(polys[0])
    for poly in polys[1:]:
        hom.extend(poly[1:])
    n = len(polys)
    knots = [0.0] * (degree + 1)
    for i in range(1, n):
        knots.extend([i / n] * degree)
    knots.extend([1.0] * (degree + 1))
    ctrl = [WeightedPoint(tuple(c / p[-1] for c in p[:-1]), p[-1]) for p in hom]
    return NurbsCurve(ctrl, degree, knots)


def connect(first: Curve, second: Curve, tolerance: Optional[float] = None,
            continuity: Continuity = Continuity.POSITION) -> Optional[Curve]:
    """Join ``second`` onto the end of ``first``.

    Returns ``None`` when the end of ``first`` and the start of ``second``
    are further apart than ``tolerance``.  Otherwise the joint is snapped to
    the end of ``first``.  Splines are split exactly into Bezier segments
    by knot insertion, so polynomial inputs give a :class:`BezierSpline`
    with the requested ``continuity``.  When either input is a
    :class:`NurbsCurve` the result is an exact rational composite: a
    clamped :class:`NurbsCurve` whose pieces are raised to a common degree,
    one uniform knot span per piece.
    """

    if tolerance is None:
        from brepcore.config import get_config
        tolerance = get_config().connect_tolerance
    if first.dimension != second.dimension:
        raise ValueError("cannot connect curves of different dimension")
    if dist(first.end_point(), second.start_point()) > tolerance:
        return None
    if CurveKind.NURBS in (curve_kind(first), curve_kind(second)):
        return _nurbs_join(first, second)
    head = _bezier_segments(first)
    tail = _bezier_segments(second)
    joint = head[-1].end
    tail[0] = BezierCurve(joint, tail[0].end, tail[0].handles)
    return BezierSpline(tuple(head + tail), continuity)


__all__ = [
    "CurveKind",
    "Continuity",
    "Line",
    "Spline",
    "BezierCurve",
    "BezierSpline",
    "NurbsCurve",
    "Curve",
    "Edge2D",
    "Edge3D",
    "CURVE_TYPES",
    "iscurve",
    "curve_kind",
    "line",
    "linearize",
    "connect",
    "nurbs_circle",
]
