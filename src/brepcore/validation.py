"""Validation and repair of topology.

Every entity reports its own structural problems through
``validation_errors()``.  The functions here add the checks that need
geometry or neighbouring entities, looked up through a resolver:

- edge curves must start and end on their vertices;
- edge curves and face boundaries must not cross themselves;
- the holes of a face must wind against its outer loop;
- inner shells of a solid must lie strictly inside the outer shell
  and apart from each other (decided by a :class:`ContainmentTester`).

Results are gathered in a :class:`ValidationReport` of :class:`Issue`
records.  :func:`repair` fixes what it has a strategy for and raises
:class:`~brepcore.errors.RepairError` otherwise.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence

from brepcore.curves import CurveKind
from brepcore.errors import RepairError, TopologyError, ValidationError
from brepcore.geom import (
    BBox,
    Point,
    bbox_contains,
    bbox_of,
    bbox_overlaps,
    bbox_union,
    dot,
    epsilon,
    points_close,
    sub,
    to_3d,
)
from brepcore.ids import EntityId
from brepcore.tessellation import loop_polygon, newell_normal, tessellate_curve
from brepcore.topology import Edge, Face, Loop, Shell, Solid, TopologyEntity, Wire

logger = logging.getLogger(__name__)


@dataclass
class Issue:
    """One problem found on one entity."""

    entity_id: EntityId
    error: ValidationError
    message: str
    severity: str = "error"  # "error" or "warning"

    def __str__(self) -> str:
        prefix = "WARNING" if self.severity == "warning" else "ERROR"
        return f"{prefix} {self.error.value} at {self.entity_id}: {self.message}"


@dataclass
class ValidationReport:
    """Outcome of validating one entity or a whole store."""

    issues: List[Issue] = field(default_factory=list)
    checked: int = 0

    @property
    def valid(self) -> bool:
        return not any(i.severity == "error" for i in self.issues)

    def errors_for(self, entity_id: EntityId) -> List[ValidationError]:
        return [i.error for i in self.issues if i.entity_id == entity_id]

    def by_entity(self) -> Dict[EntityId, List[Issue]]:
        grouped: Dict[EntityId, List[Issue]] = {}
        for issue in self.issues:
            grouped.setdefault(issue.entity_id, []).append(issue)
        return grouped

    def __str__(self) -> str:
        if self.valid:
            return f"Validation passed ({self.checked} entities)"
        lines = [f"Validation failed ({self.checked} entities):"]
        for issue in self.issues:
            lines.append(f"  - {issue}")
        return "\n".join(lines)


# -----------------------------------------------------------------------------
# Containment
# -----------------------------------------------------------------------------

class ContainmentTester(Protocol):
    """Decides spatial relations between shells."""

    def contains(self, outer: Shell, inner: Shell, resolver) -> bool: ...

    def disjoint(self, first: Shell, second: Shell, resolver) -> bool: ...


def shell_bounds(shell: Shell, resolver) -> Optional[BBox]:
    """Box around the vertices and edge curves used by ``shell``."""

    box = None
    for uses in shell.face_uses.values():
        for use in uses:
            edge = resolver.edge(use.edge_id)
            pts = []
            curve = edge.curve()
            if curve is not None:
                pts.extend(to_3d(p) for p in curve.bounding_box())
            for vid in edge.vertices:
                loc = resolver.vertex(vid).location() if vid else None
                if loc is not None:
                    pts.append(to_3d(loc))
            if not pts:
                continue
            b = bbox_of(pts)
            box = b if box is None else bbox_union(box, b)
    return box


class BoundingBoxContainment:
    """Conservative containment by axis-aligned boxes."""

    def contains(self, outer: Shell, inner: Shell, resolver) -> bool:
        a = shell_bounds(outer, resolver)
        b = shell_bounds(inner, resolver)
        return a is not None and b is not None and bbox_contains(a, b, strict=True)

    def disjoint(self, first: Shell, second: Shell, resolver) -> bool:
        a = shell_bounds(first, resolver)
        b = shell_bounds(second, resolver)
        return a is None or b is None or not bbox_overlaps(a, b)


# -----------------------------------------------------------------------------
# Geometric checks
# -----------------------------------------------------------------------------

def _segment_distance(p1: Point, q1: Point, p2: Point, q2: Point) -> float:
    """Shortest distance between 3D segments ``p1q1`` and ``p2q2``."""

    d1 = sub(q1, p1)
    d2 = sub(q2, p2)
    r = sub(p1, p2)
    a = dot(d1, d1)
    e = dot(d2, d2)
    f = dot(d2, r)
    if a <= epsilon and e <= epsilon:
        return dot(r, r) ** 0.5
    if a <= epsilon:
        s, t = 0.0, max(0.0, min(1.0, f / e))
    else:
        c = dot(d1, r)
        if e <= epsilon:
            s, t = max(0.0, min(1.0, -c / a)), 0.0
        else:
            b = dot(d1, d2)
            denom = a * e - b * b
            s = max(0.0, min(1.0, (b * f - c * e) / denom)) if denom > epsilon else 0.0
            t = (b * s + f) / e
            if t < 0.0:
                s, t = max(0.0, min(1.0, -c / a)), 0.0
            elif t > 1.0:
                s, t = max(0.0, min(1.0, (b - c) / a)), 1.0
    gap = sub(tuple(x + s * dx for x, dx in zip(p1, d1)),
              tuple(x + t * dx for x, dx in zip(p2, d2)))
    return dot(gap, gap) ** 0.5


def polyline_self_intersects(points: Sequence[Point], *, closed: bool,
                             tolerance: float = 1e-9) -> bool:
    """Do two non-adjacent segments of the polyline touch?"""

    pts = [to_3d(p) for p in points]
    segs = list(zip(pts, pts[1:]))
    if closed and len(pts) > 2:
        segs.append((pts[-1], pts[0]))
    n = len(segs)
    for i in range(n):
        for j in range(i + 2, n):
            if closed and i == 0 and j == n - 1:
                continue
            if _segment_distance(segs[i][0], segs[i][1], segs[j][0], segs[j][1]) <= tolerance:
                return True
    return False


def _connect_tolerance() -> float:
    from brepcore.config import get_config
    return get_config().connect_tolerance


def _check_edge(edge: Edge, resolver, issues: List[Issue]) -> None:
    tol = _connect_tolerance()
    for curve in (edge.curve2d, edge.curve3d):
        if curve is None:
            continue
        for vid, end in ((edge.start, curve.start_point()), (edge.end, curve.end_point())):
            if not vid:
                continue
            v = resolver.vertex(vid)
            loc = v.point2d if curve.dimension == 2 else v.point3d
            if loc is not None and not points_close(loc, end, tol):
                issues.append(Issue(edge.id, ValidationError.DISCONNECTED_EDGES,
                                    f"curve end {end} is away from vertex {vid}"))
        if curve.kind is not CurveKind.LINE:
            closed = curve.is_closed()
            pts = tessellate_curve(curve)
            if closed:
                pts = pts[:-1]
            if polyline_self_intersects(pts, closed=closed):
                issues.append(Issue(edge.id, ValidationError.SELF_INTERSECTION,
                                    f"{curve.kind.value} curve crosses itself"))


def _face_rings(face: Face, resolver) -> Optional[Dict[EntityId, List[Point]]]:
    """Boundary polygons of every loop, or None when one cannot be sampled."""

    try:
        return {lid: loop_polygon(face.loop_uses[lid], resolver) for lid in face.loops()}
    except TopologyError as err:
        # the edges and vertices report MISSING_GEOMETRY themselves
        logger.debug("skipping geometric checks of face %s: %s", face.id, err)
        return None


def _face_winding(face: Face, resolver,
                  rings: Optional[Dict[EntityId, List[Point]]] = None) -> List[EntityId]:
    """Inner loops that wind the same way as the outer loop."""

    if face.outer_loop is None or not face.inner_loops:
        return []
    if rings is None:
        rings = _face_rings(face, resolver)
        if rings is None:
            return []
    outer = newell_normal(rings[face.outer_loop])
    if outer is None:
        return []
    wrong = []
    for lid in face.inner_loops:
        n = newell_normal(rings[lid])
        if n is not None and dot(n, outer) > 0.0:
            wrong.append(lid)
    return wrong


def _check_face(face: Face, resolver, issues: List[Issue]) -> None:
    rings = _face_rings(face, resolver)
    if rings is None:
        return
    for lid in _face_winding(face, resolver, rings):
        issues.append(Issue(lid, ValidationError.INVALID_WINDING,
                            f"hole of face {face.id} winds the same way as its outer loop"))
    for lid, ring in rings.items():
        if len(ring) > 3 and polyline_self_intersects(ring, closed=True):
            issues.append(Issue(lid, ValidationError.SELF_INTERSECTION,
                                f"boundary of face {face.id} crosses itself"))


def _check_solid(solid: Solid, resolver, containment: ContainmentTester,
                 issues: List[Issue]) -> None:
    if not solid.outer_shell:
        return
    outer = resolver.shell(solid.outer_shell)
    inner = [resolver.shell(sid) for sid in solid.inner_shells]
    for shell in inner:
        if not containment.contains(outer, shell, resolver):
            issues.append(Issue(solid.id, ValidationError.SELF_INTERSECTION,
                                f"inner shell {shell.id} is not strictly inside the outer shell"))
    for i, a in enumerate(inner):
        for b in inner[i + 1:]:
            if not containment.disjoint(a, b, resolver):
                issues.append(Issue(solid.id, ValidationError.SELF_INTERSECTION,
                                    f"inner shells {a.id} and {b.id} overlap"))


def validate_entity(entity: TopologyEntity, resolver=None, *,
                    containment: Optional[ContainmentTester] = None) -> ValidationReport:
    """Validate one entity; geometric checks run only with a resolver."""

    report = ValidationReport(checked=1)
    for err in entity.validation_errors():
        report.issues.append(Issue(entity.id, err, f"{entity.kind} is structurally invalid"))
    if resolver is None:
        return report
    if isinstance(entity, Edge):
        _check_edge(entity, resolver, report.issues)
    elif isinstance(entity, Face) and entity.is_topologically_valid():
        _check_face(entity, resolver, report.issues)
    elif isinstance(entity, Solid):
        _check_solid(entity, resolver, containment or BoundingBoxContainment(), report.issues)
    return report


def validate_graph(graph, *, containment: Optional[ContainmentTester] = None) -> ValidationReport:
    """Validate every entity in ``graph`` (constraints excluded)."""

    report = ValidationReport()
    containment = containment or BoundingBoxContainment()
    for entity in graph.entities():
        if not isinstance(entity, TopologyEntity):
            continue
        sub_report = validate_entity(entity, graph, containment=containment)
        report.issues.extend(sub_report.issues)
        report.checked += 1
    if not report.valid:
        logger.info("validation found %d issues in %d entities",
                    len(report.issues), report.checked)
    return report


# -----------------------------------------------------------------------------
# Repair
# -----------------------------------------------------------------------------

def _propagate(entity, resolver) -> None:
    touch = getattr(resolver, "touch", None)
    if touch is not None:
        touch(entity)


def repair(entity: TopologyEntity, resolver=None) -> List[ValidationError]:
    """Fix ``entity`` in place and return the errors that were fixed.

    - loops and wires: edge uses are reordered and flipped into one chain;
    - faces: holes winding with the outer loop are reversed;
    - shells: faces are flipped until shared edges run in opposite
      directions.

    Anything else raises :class:`RepairError` carrying the remaining errors.
    """

    fixed: List[ValidationError] = []
    if isinstance(entity, (Loop, Wire)):
        fixed = entity.repair()
    elif isinstance(entity, Face):
        if not entity.is_topologically_valid():
            raise RepairError(f"face {entity.id} has broken loops; repair them first",
                              entity.validation_errors())
        if resolver is None:
            raise RepairError(f"face {entity.id} needs a resolver to check winding",
                              [ValidationError.INVALID_WINDING])
        for lid in _face_winding(entity, resolver):
            loop = resolver.loop(lid)
            loop.reverse()
            entity.refresh_loop(loop)
            fixed.append(ValidationError.INVALID_WINDING)
    elif isinstance(entity, Shell):
        fixed = entity.repair(resolver)
    else:
        fixed = entity.repair()

    if fixed:
        logger.info("repaired %s %s: %s", entity.kind, entity.id,
                    ", ".join(sorted({e.value for e in fixed})))
        if resolver is not None:
            _propagate(entity, resolver)
    return fixed


__all__ = [
    "Issue",
    "ValidationReport",
    "ContainmentTester",
    "BoundingBoxContainment",
    "shell_bounds",
    "polyline_self_intersects",
    "validate_entity",
    "validate_graph",
    "repair",
]
