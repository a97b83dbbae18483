"""Geometric constraints on topology entities.

Constraints describe relations a solver should establish; the kernel only
measures them.  Every constraint reports a signed ``error`` (zero when
satisfied) computed from the current vertex positions, which it looks up
through an entity resolver.  No numerical solving happens here.

Example::

    graph = TopologyGraph()
    a = graph.add_vertex(point3d=(0, 0, 0))
    b = graph.add_vertex(point3d=(3, 4, 0))
    c = graph.add_constraint(LengthConstraint(graph.new_id('constraint'), a.id, b.id, 5.0))
    assert c.is_satisfied(graph)
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from brepcore.errors import TopologyError
from brepcore.geom import Point, dist, dot, normalize, point, sub
from brepcore.ids import EntityId

logger = logging.getLogger(__name__)


class LengthKind(Enum):
    """How a :class:`LengthConstraint` measures its two points.

    ``DIRECT`` is the straight distance; ``ALIGNED`` is the distance
    projected onto the constraint's direction.
    """

    DIRECT = "direct"
    ALIGNED = "aligned"


def _location(resolver, vertex_id: EntityId) -> Point:
    loc = resolver.vertex(vertex_id).location()
    if loc is None:
        raise TopologyError(f"vertex {vertex_id} has no geometry to measure",
                            {"vertex": vertex_id})
    return loc


def _tolerance(tolerance: Optional[float]) -> float:
    if tolerance is not None:
        return tolerance
    from brepcore.config import get_config
    return get_config().constraint_tolerance


class Constraint:
    """Base class: identity, constrained entities and a priority."""

    kind = "constraint"

    def __init__(self, constraint_id: EntityId, entities: Sequence[EntityId],
                 priority: float = 1.0):
        if not constraint_id:
            raise TopologyError("constraints need a non-empty identifier")
        self._id = constraint_id
        self._entities: Tuple[EntityId, ...] = tuple(entities)
        self.priority = float(priority)

    @property
    def id(self) -> EntityId:
        return self._id

    @property
    def entities(self) -> List[EntityId]:
        return list(self._entities)

    def error(self, resolver) -> float:
        """Signed deviation from the satisfied state."""
        raise NotImplementedError

    def is_satisfied(self, resolver, tolerance: Optional[float] = None) -> bool:
        return abs(self.error(resolver)) <= _tolerance(tolerance)

    def conflicts_with(self, other: "Constraint") -> bool:
        """Can ``self`` and ``other`` never hold at the same time?

        Only conflicts that are decidable without geometry are detected.
        """
        return False

    def _params(self) -> tuple:
        return ()

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return (self._id, self._entities, self.priority, self._params()) == \
            (other._id, other._entities, other.priority, other._params())

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._id!r}, {list(self._entities)!r})"


class FixedConstraint(Constraint):
    """Pin a vertex at ``position``."""

    kind = "fixed"

    def __init__(self, constraint_id: EntityId, vertex: EntityId, position: Sequence[float],
                 priority: float = 1.0):
        super().__init__(constraint_id, [vertex], priority)
        self.position = point(position)

    def error(self, resolver) -> float:
        loc = _location(resolver, self._entities[0])
        if len(loc) != len(self.position):
            raise TopologyError("fixed position and vertex differ in dimension",
                                {"constraint": self.id})
        return dist(loc, self.position)

    def conflicts_with(self, other: Constraint) -> bool:
        return (isinstance(other, FixedConstraint) and other._entities == self._entities
                and other.position != self.position)

    def _params(self) -> tuple:
        return (self.position,)


class _PairConstraint(Constraint):

    def __init__(self, constraint_id: EntityId, first: EntityId, second: EntityId,
                 priority: float = 1.0):
        if first == second:
            raise TopologyError(f"{self.kind} constraint needs two distinct vertices")
        super().__init__(constraint_id, [first, second], priority)

    def _points(self, resolver) -> Tuple[Point, Point]:
        return _location(resolver, self._entities[0]), _location(resolver, self._entities[1])

    def _same_pair(self, other: Constraint) -> bool:
        return set(other._entities) == set(self._entities)


class CoincidentConstraint(_PairConstraint):
    """Two vertices occupy the same position."""

    kind = "coincident"

    def error(self, resolver) -> float:
        a, b = self._points(resolver)
        return dist(a, b)

    def conflicts_with(self, other: Constraint) -> bool:
        return (isinstance(other, LengthConstraint) and self._same_pair(other)
                and other.length > 0.0)


class LengthConstraint(_PairConstraint):
    """Distance between two vertices equals ``length``.

    For ``LengthKind.ALIGNED`` the distance is measured along ``direction``
    (the x axis unless given).
    """

    kind = "length"

    def __init__(self, constraint_id: EntityId, first: EntityId, second: EntityId,
                 length: float, length_kind: LengthKind = LengthKind.DIRECT,
                 direction: Optional[Sequence[float]] = None, priority: float = 1.0):
        super().__init__(constraint_id, first, second, priority)
        if length < 0:
            raise ValueError("length must not be negative")
        self.length = float(length)
        self.length_kind = LengthKind(length_kind)
        self.direction: Optional[Point] = None
        if self.length_kind is LengthKind.ALIGNED:
            axis = normalize(point(direction) if direction is not None else (1.0, 0.0, 0.0))
            if axis is None:
                raise ValueError("aligned length needs a non-zero direction")
            self.direction = axis

    def measure(self, resolver) -> float:
        a, b = self._points(resolver)
        if self.length_kind is LengthKind.DIRECT:
            return dist(a, b)
        d = sub(b, a)
        axis = self.direction[:len(d)] if len(d) < len(self.direction) else self.direction
        return abs(dot(d, axis))

    def error(self, resolver) -> float:
        return self.measure(resolver) - self.length

    def conflicts_with(self, other: Constraint) -> bool:
        if not self._same_pair(other):
            return False
        if isinstance(other, LengthConstraint):
            return (other.length_kind is self.length_kind and other.direction == self.direction
                    and other.length != self.length)
        if isinstance(other, CoincidentConstraint):
            return self.length > 0.0
        return False

    def _params(self) -> tuple:
        return (self.length, self.length_kind, self.direction)


class HorizontalConstraint(_PairConstraint):
    """Two vertices share their y coordinate."""

    kind = "horizontal"

    def error(self, resolver) -> float:
        a, b = self._points(resolver)
        return b[1] - a[1]


class VerticalConstraint(_PairConstraint):
    """Two vertices share their x coordinate."""

    kind = "vertical"

    def error(self, resolver) -> float:
        a, b = self._points(resolver)
        return b[0] - a[0]


CONSTRAINT_TYPES = {
    cls.kind: cls for cls in (FixedConstraint, CoincidentConstraint, LengthConstraint,
                              HorizontalConstraint, VerticalConstraint)
}


def find_conflicts(constraints: Sequence[Constraint]) -> List[Tuple[EntityId, EntityId]]:
    """Return id pairs of constraints that conflict with each other."""

    pairs = []
    items = list(constraints)
    for i, a in enumerate(items):
        for b in items[i + 1:]:
            if a.conflicts_with(b) or b.conflicts_with(a):
                pairs.append((a.id, b.id))
    if pairs:
        logger.debug("found %d conflicting constraint pairs", len(pairs))
    return pairs


__all__ = [
    "LengthKind",
    "Constraint",
    "FixedConstraint",
    "CoincidentConstraint",
    "LengthConstraint",
    "HorizontalConstraint",
    "VerticalConstraint",
    "CONSTRAINT_TYPES",
    "find_conflicts",
]
