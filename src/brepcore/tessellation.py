"""Tessellation of curves, surfaces and faces.

Curves become polylines and surfaces become triangle meshes.  Two
strategies exist for each:

- uniform sampling, with the segment count derived from how much the
  geometry bends (a chord of parameter length ``h`` across a region with
  second derivative ``C''`` deviates by roughly ``|C''| h^2 / 8``);
- adaptive bisection, which splits an interval whenever the midpoint is
  further than the tolerance from the chord, working depth first from
  left to right.

Planar faces with holes are triangulated with ``mapbox-earcut``.  All
routines are deterministic: the same input always gives the same output.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from math import ceil, sqrt
from typing import List, Optional, Sequence, Tuple

import numpy as np

try:
    import mapbox_earcut as _earcut
except ImportError as exc:  # pragma: no cover - import guard
    raise ImportError(
        "mapbox-earcut must be installed to triangulate faces with holes"
    ) from exc

from brepcore import spline as _sp
from brepcore.curves import CurveKind
from brepcore.errors import TopologyError
from brepcore.surfaces import Plane
from brepcore.geom import (
    Point,
    Point3D,
    add,
    cross,
    dist,
    dot,
    epsilon,
    mag,
    normalize,
    scale,
    sub,
    to_3d,
)

logger = logging.getLogger(__name__)

Triangle = Tuple[int, int, int]

## parameter samples per knot span used to estimate bending
_PROBES_PER_SPAN = 8


@dataclass
class Mesh:
    """Indexed triangle mesh with optional per-vertex normals."""

    vertices: List[Point3D] = field(default_factory=list)
    triangles: List[Triangle] = field(default_factory=list)
    normals: List[Point3D] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.triangles)

    def area(self) -> float:
        total = 0.0
        for a, b, c in self.triangles:
            p0, p1, p2 = self.vertices[a], self.vertices[b], self.vertices[c]
            total += 0.5 * mag(cross(sub(p1, p0), sub(p2, p0)))
        return total

    def bounding_box(self):
        if not self.vertices:
            return None
        arr = np.asarray(self.vertices, dtype=float)
        return tuple(arr.min(axis=0).tolist()), tuple(arr.max(axis=0).tolist())

    def as_arrays(self) -> Tuple[np.ndarray, np.ndarray]:
        """``(vertices, triangles)`` as ``float64`` / ``uint32`` arrays."""
        verts = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        tris = np.asarray(self.triangles, dtype=np.uint32).reshape(-1, 3)
        return verts, tris

    def extend(self, other: "Mesh") -> None:
        """Append ``other``, re-indexing its triangles."""
        base = len(self.vertices)
        self.vertices.extend(other.vertices)
        self.normals.extend(other.normals)
        self.triangles.extend((a + base, b + base, c + base) for a, b, c in other.triangles)


def _settings():
    from brepcore.config import get_config
    return get_config().tessellation


def _point_segment_distance(p: Sequence[float], a: Sequence[float], b: Sequence[float]) -> float:
    ab = sub(b, a)
    denom = dot(ab, ab)
    if denom <= epsilon:
        return dist(p, a)
    t = max(0.0, min(1.0, dot(sub(p, a), ab) / denom))
    return dist(p, add(a, scale(ab, t)))


def _spans(lo: float, hi: float, knots: Optional[Sequence[float]], degree: int) -> List[Tuple[float, float]]:
    if knots is None:
        return [(lo, hi)]
    return _sp.distinct_spans(knots, degree) or [(lo, hi)]


def _divisions(evaluate, spans: Sequence[Tuple[float, float]], tolerance: float,
               lo: int, hi: int) -> int:
    """Uniform division count so the chordal deviation stays under ``tolerance``.

    Bending is estimated from second differences of ``evaluate`` sampled
    on every span.
    """
    total = spans[-1][1] - spans[0][0]
    if total <= 0.0:
        return lo
    worst = 0.0
    for a, b in spans:
        h = (b - a) / _PROBES_PER_SPAN
        pts = [evaluate(a + i * h) for i in range(_PROBES_PER_SPAN + 1)]
        for p0, p1, p2 in zip(pts, pts[1:], pts[2:]):
            # |C''| ~ |p0 - 2 p1 + p2| / h^2
            second = mag(add(sub(p0, scale(p1, 2.0)), p2)) / (h * h)
            worst = max(worst, second)
    if worst <= epsilon:
        count = len(spans)
    else:
        step = sqrt(8.0 * tolerance / worst)
        count = max(len(spans), int(ceil(total / step)))
    return max(lo, min(hi, count))


# -----------------------------------------------------------------------------
# Curves
# -----------------------------------------------------------------------------

def _curve_knots(curve):
    if curve.kind in (CurveKind.SPLINE, CurveKind.NURBS):
        return curve.knots
    return None


def tessellate_curve(curve, tolerance: Optional[float] = None, *,
                     min_segments: Optional[int] = None,
                     max_segments: Optional[int] = None) -> List[Point]:
    """Sample ``curve`` at uniformly spaced parameters.

    Lines give their two endpoints.  Other curves get enough segments to
    keep the chordal deviation under ``tolerance``, bounded by
    ``min_segments`` and ``max_segments``.
    """

    cfg = _settings()
    tolerance = cfg.tolerance if tolerance is None else tolerance
    lo_n = cfg.min_segments if min_segments is None else min_segments
    hi_n = cfg.max_segments if max_segments is None else max_segments
    if tolerance <= 0:
        raise ValueError("tolerance must be positive")
    if curve.kind is CurveKind.LINE:
        return [curve.start_point(), curve.end_point()]

    t0, t1 = curve.parameter_range()
    spans = _spans(t0, t1, _curve_knots(curve), curve.degree())
    if curve.kind is CurveKind.BEZIER_SPLINE:
        n = len(curve.segments)
        spans = [(i / n, (i + 1) / n) for i in range(n)]
    count = _divisions(curve.evaluate_at, spans, tolerance, max(1, lo_n), max(1, hi_n))
    points = [curve.evaluate_at(t0 + (t1 - t0) * i / count) for i in range(count)]
    points.append(curve.end_point())
    return points


def adaptive_tessellate_curve(curve, tolerance: Optional[float] = None, *,
                              min_segments: Optional[int] = None,
                              max_segments: Optional[int] = None) -> List[Point]:
    """Polyline refined by recursive bisection.

    Starts from ``min_segments`` uniform segments and bisects any segment
    whose midpoint lies further than ``tolerance`` from its chord, until
    the segment count reaches ``max_segments``.
    """

    cfg = _settings()
    tolerance = cfg.tolerance if tolerance is None else tolerance
    lo_n = max(1, cfg.min_segments if min_segments is None else min_segments)
    hi_n = max(lo_n, cfg.max_segments if max_segments is None else max_segments)
    if tolerance <= 0:
        raise ValueError("tolerance must be positive")
    if curve.kind is CurveKind.LINE:
        return [curve.start_point(), curve.end_point()]

    t0, t1 = curve.parameter_range()
    params = [t0 + (t1 - t0) * i / lo_n for i in range(lo_n + 1)]
    values = [curve.evaluate_at(t) for t in params]
    values[-1] = curve.end_point()
    budget = hi_n - lo_n

    out = [values[0]]
    for i in range(lo_n):
        # depth first, left to right
        stack = [(params[i], values[i], params[i + 1], values[i + 1])]
        while stack:
            a, pa, b, pb = stack.pop()
            mid = 0.5 * (a + b)
            pm = curve.evaluate_at(mid)
            if budget > 0 and _point_segment_distance(pm, pa, pb) > tolerance:
                budget -= 1
                stack.append((mid, pm, b, pb))
                stack.append((a, pa, mid, pm))
            else:
                out.append(pb)
    if budget == 0 and hi_n > lo_n:
        logger.debug("adaptive curve tessellation hit the %d segment limit", hi_n)
    return out


# -----------------------------------------------------------------------------
# Surfaces
# -----------------------------------------------------------------------------

def _grid_mesh(surface, us: Sequence[float], vs: Sequence[float]) -> Mesh:
    mesh = Mesh()
    nv = len(vs)
    for u in us:
        for v in vs:
            s, su, sv = surface.derivatives(u, v)
            mesh.vertices.append(to_3d(s))
            n = normalize(cross(su, sv))
            mesh.normals.append(n if n is not None else (0.0, 0.0, 0.0))
    for i in range(len(us) - 1):
        for j in range(nv - 1):
            a = i * nv + j
            b = (i + 1) * nv + j
            c = (i + 1) * nv + j + 1
            d = i * nv + j + 1
            # counter-clockwise about dS/du x dS/dv
            mesh.triangles.append((a, b, c))
            mesh.triangles.append((a, c, d))
    return mesh


def _uniform(lo: float, hi: float, count: int) -> List[float]:
    return [lo + (hi - lo) * i / count for i in range(count)] + [hi]


def tessellate_surface(surface, tolerance: Optional[float] = None, *,
                       max_divisions: Optional[int] = None) -> Mesh:
    """Triangulate ``surface`` on a uniform parameter grid.

    Each direction gets at least one division per knot span and enough to
    keep the chordal deviation of its iso-curves under ``tolerance``.
    """

    cfg = _settings()
    tolerance = cfg.tolerance if tolerance is None else tolerance
    limit = cfg.max_divisions if max_divisions is None else max_divisions
    if tolerance <= 0:
        raise ValueError("tolerance must be positive")
    (u0, u1), (v0, v1) = surface.parameter_range()
    du, dv = surface.degree()
    spans_u = _spans(u0, u1, surface.knots_u, du)
    spans_v = _spans(v0, v1, surface.knots_v, dv)
    iso_v = [0.5 * (a + b) for a, b in spans_v] + [v0, v1]
    iso_u = [0.5 * (a + b) for a, b in spans_u] + [u0, u1]
    nu = max(_divisions(lambda u, v=v: surface.evaluate_at(u, v), spans_u, tolerance, 1, limit)
             for v in iso_v)
    nv = max(_divisions(lambda v, u=u: surface.evaluate_at(u, v), spans_v, tolerance, 1, limit)
             for u in iso_u)
    return _grid_mesh(surface, _uniform(u0, u1, nu), _uniform(v0, v1, nv))


def _refine_parameters(evaluate_iso, start: Sequence[float], probes: Sequence[float],
                       tolerance: float, limit: int) -> List[float]:
    """Bisect the intervals of ``start`` until every iso-curve chord is within ``tolerance``.

    ``evaluate_iso(t, w)`` evaluates the iso-curve at fixed ``w``; each
    interval is checked against the iso-curves at every value in ``probes``.
    No more than ``limit`` intervals are produced.
    """

    params = list(start)
    while True:
        segments = len(params) - 1
        refined = [params[0]]
        for a, b in zip(params, params[1:]):
            if segments < limit:
                mid = 0.5 * (a + b)
                worst = 0.0
                for w in probes:
                    pa, pb, pm = evaluate_iso(a, w), evaluate_iso(b, w), evaluate_iso(mid, w)
                    worst = max(worst, _point_segment_distance(pm, pa, pb))
                if worst > tolerance:
                    refined.append(mid)
                    segments += 1
            refined.append(b)
        if len(refined) == len(params):
            return params
        params = refined


def adaptive_tessellate_surface(surface, max_chordal_error: Optional[float] = None, *,
                                max_divisions: Optional[int] = None) -> Mesh:
    """Triangulate ``surface`` on a grid refined where it bends.

    Parameter lines are bisected independently in ``u`` and ``v`` until
    every cell's iso-curve midpoints lie within ``max_chordal_error`` of
    their chords, or a direction reaches ``max_divisions``.  Refining whole
    parameter lines keeps the mesh free of cracks.
    """

    cfg = _settings()
    tol = cfg.max_chordal_error if max_chordal_error is None else max_chordal_error
    limit = cfg.max_divisions if max_divisions is None else max_divisions
    if tol <= 0:
        raise ValueError("max_chordal_error must be positive")
    (u0, u1), (v0, v1) = surface.parameter_range()
    du, dv = surface.degree()
    spans_u = _spans(u0, u1, surface.knots_u, du)
    spans_v = _spans(v0, v1, surface.knots_v, dv)
    probes_v = _uniform(v0, v1, max(2, 2 * len(spans_v)))
    probes_u = _uniform(u0, u1, max(2, 2 * len(spans_u)))
    # begin at the distinct knot values
    start_u = [a for a, _ in spans_u] + [spans_u[-1][1]]
    start_v = [a for a, _ in spans_v] + [spans_v[-1][1]]
    us = _refine_parameters(lambda u, v: surface.evaluate_at(u, v), start_u, probes_v, tol, limit)
    vs = _refine_parameters(lambda v, u: surface.evaluate_at(u, v), start_v, probes_u, tol, limit)
    return _grid_mesh(surface, us, vs)


# -----------------------------------------------------------------------------
# Faces
# -----------------------------------------------------------------------------

def _edge_polyline(edge, resolver, forward: bool, tolerance: float) -> List[Point3D]:
    curve = edge.curve()
    if curve is not None:
        pts = [to_3d(p) for p in tessellate_curve(curve, tolerance)]
    else:
        pts = []
        for vid in (edge.start, edge.end):
            loc = resolver.vertex(vid).location() if vid else None
            if loc is None:
                raise TopologyError(f"edge {edge.id} has no geometry to tessellate",
                                    {"edge": edge.id})
            pts.append(to_3d(loc))
    if not forward:
        pts.reverse()
    return pts


def loop_polygon(uses, resolver, tolerance: Optional[float] = None) -> List[Point3D]:
    """Points around a closed chain of edge uses, without the closing repeat."""

    tolerance = _settings().tolerance if tolerance is None else tolerance
    ring: List[Point3D] = []
    for use in uses:
        pts = _edge_polyline(resolver.edge(use.edge_id), resolver, use.forward, tolerance)
        if ring and dist(ring[-1], pts[0]) <= epsilon:
            pts = pts[1:]
        ring.extend(pts)
    if len(ring) > 1 and dist(ring[0], ring[-1]) <= epsilon:
        ring.pop()
    return ring


def newell_normal(ring: Sequence[Sequence[float]]) -> Optional[Point3D]:
    """Area-weighted normal of a closed polygon (right-hand rule)."""

    nx = ny = nz = 0.0
    for i, p in enumerate(ring):
        q = ring[(i + 1) % len(ring)]
        nx += (p[1] - q[1]) * (p[2] + q[2])
        ny += (p[2] - q[2]) * (p[0] + q[0])
        nz += (p[0] - q[0]) * (p[1] + q[1])
    return normalize((nx, ny, nz))


def _signed_area(loop: Sequence[Sequence[float]]) -> float:
    total = 0.0
    for i, (x0, y0) in enumerate(loop):
        x1, y1 = loop[(i + 1) % len(loop)]
        total += x0 * y1 - x1 * y0
    return total / 2.0


def tessellate_face(face, resolver, tolerance: Optional[float] = None) -> Mesh:
    """Triangulate a planar face, holes included.

    Boundary edges are sampled with :func:`tessellate_curve`, the loops are
    projected onto the plane of the outer loop and handed to earcut.
    Triangles wind counter-clockwise about the face normal, which follows
    the outer loop (right-hand rule) and is reversed when ``face.sense`` is
    False.  A non-planar face is tessellated through its surface instead,
    provided it has one and no holes.
    """

    tolerance = _settings().tolerance if tolerance is None else tolerance
    if face.outer_loop is None:
        raise TopologyError(f"face {face.id} has no outer loop", {"face": face.id})
    outer = loop_polygon(face.loop_uses[face.outer_loop], resolver, tolerance)
    holes = [loop_polygon(face.loop_uses[lid], resolver, tolerance) for lid in face.inner_loops]
    normal = newell_normal(outer) if len(outer) >= 3 else None
    if normal is None:
        raise TopologyError(f"face {face.id} has a degenerate outer loop", {"face": face.id})

    origin = outer[0]
    plane = Plane.from_point_normal(origin, normal)
    planar = all(abs(plane.distance(p)) <= tolerance
                 for ring in [outer] + holes for p in ring)
    if not planar:
        if face.surface is not None and not holes:
            mesh = tessellate_surface(face.surface, tolerance)
            if not face.sense:
                mesh.triangles = [(a, c, b) for a, b, c in mesh.triangles]
                mesh.normals = [scale(n, -1.0) for n in mesh.normals]
            return mesh
        raise TopologyError(f"face {face.id} is not planar", {"face": face.id})

    if not face.sense:
        plane = plane.flip_normal()
    normal = plane.normal
    ex, ey = plane.frame()

    mesh = Mesh()
    flat: List[Tuple[float, float]] = []
    ring_ends: List[int] = []
    for k, ring in enumerate([outer] + holes):
        if len(ring) < 3:
            continue
        proj = [(dot(sub(p, origin), ex), dot(sub(p, origin), ey)) for p in ring]
        area = _signed_area(proj)
        # earcut wants the outer ring counter-clockwise and holes clockwise
        if (k == 0 and area < 0) or (k > 0 and area > 0):
            proj.reverse()
            ring = list(reversed(ring))
        mesh.vertices.extend(to_3d(p) for p in ring)
        flat.extend(proj)
        ring_ends.append(len(flat))

    vertices = np.asarray(flat, dtype=np.float64).reshape(-1, 2)
    indices = _earcut.triangulate_float64(vertices, np.asarray(ring_ends, dtype=np.uint32))
    for i in range(0, len(indices), 3):
        a, b, c = int(indices[i]), int(indices[i + 1]), int(indices[i + 2])
        if _signed_area([flat[a], flat[b], flat[c]]) < 0:
            b, c = c, b
        mesh.triangles.append((a, b, c))
    mesh.normals = [normal] * len(mesh.vertices)
    return mesh


__all__ = [
    "Mesh",
    "tessellate_curve",
    "adaptive_tessellate_curve",
    "tessellate_surface",
    "adaptive_tessellate_surface",
    "tessellate_face",
    "loop_polygon",
    "newell_normal",
]
