"""Topological entities of the boundary representation.

Topology hierarchy:

- :class:`Vertex` -- optional 2D and/or 3D point
- :class:`Edge` -- two vertex references plus optional 2D/3D curve
- :class:`Loop` -- closed, ordered edge uses bounding a face
- :class:`Wire` -- ordered edge uses, open or closed (sweep/loft inputs)
- :class:`Face` -- outer loop, inner loops (holes), optional surface
- :class:`Shell` -- connected set of faces
- :class:`Solid` -- outer shell plus inner shells (voids)

Entities own their geometry and properties.  Links between entities are
identifiers only; an entity store (see :mod:`brepcore.store`) owns the
entities themselves and keeps the parent lists (``Vertex.edges``,
``Edge.faces``, ``Loop.face``, ...) in sync.

Mutators that take another entity (``Wire.add_edge(edge)``,
``Shell.add_face(face)``, ...) record its identifier together with the
adjacency facts needed to recompute derived flags, so closure and
orientation are always current after the call returns.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from brepcore.curves import Curve, iscurve
from brepcore.errors import (
    RepairError,
    ShellClosureError,
    SolidValidationError,
    TopologyError,
    ValidationError,
)
from brepcore.geom import Point, point
from brepcore.ids import EntityId
from brepcore.surfaces import NurbsSurface

logger = logging.getLogger(__name__)


# -----------------------------------------------------------------------------
# Classifications and properties
# -----------------------------------------------------------------------------

class LoopType(Enum):
    OUTER = "outer"
    INNER = "inner"
    CONSTRUCTION = "construction"


class WireType(Enum):
    PROFILE = "profile"
    GUIDE = "guide"
    CONSTRUCTION = "construction"
    INTERSECTION = "intersection"
    BOUNDARY = "boundary"


class ShellType(Enum):
    OUTER = "outer"
    INNER = "inner"
    OPEN = "open"
    CONSTRUCTION = "construction"


class ShellOrientation(Enum):
    """Direction of a shell's face normals relative to its material."""

    OUTWARD = "outward"
    INWARD = "inward"


class BodyType(Enum):
    """Classification of a solid by its shell configuration."""

    SOLID = "solid"
    HOLLOW = "hollow"
    OPEN = "open"
    COMPOUND = "compound"


@dataclass
class EntityProperties:
    """Visual and organisational properties consumed by renderers."""

    visible: bool = True
    color: Optional[Tuple[float, float, float]] = None
    transparency: float = 0.0
    layer: str = "default"
    construction: bool = False
    name: Optional[str] = None


@dataclass
class Material:
    """Physical material of a solid; ``density`` drives the mass.

    ``metallic`` and ``roughness`` are the usual physically based shading
    factors in ``[0, 1]``.  ``cost_per_volume`` is optional; without it
    :meth:`calculate_cost` returns ``None``.
    """

    name: str = "default"
    density: float = 1.0
    base_color: Tuple[float, float, float] = (0.8, 0.8, 0.8)
    alpha: float = 1.0
    metallic: float = 0.0
    roughness: float = 0.5
    reflectance: float = 0.04
    cost_per_volume: Optional[float] = None

    @classmethod
    def metal(cls, name: str, density: float,
              base_color: Tuple[float, float, float]) -> "Material":
        return cls(name, density, tuple(base_color), metallic=1.0, roughness=0.2)

    @classmethod
    def plastic(cls, name: str, density: float,
                base_color: Tuple[float, float, float]) -> "Material":
        return cls(name, density, tuple(base_color), metallic=0.0, roughness=0.7)

    @classmethod
    def glass(cls, name: str, density: float,
              base_color: Tuple[float, float, float]) -> "Material":
        return cls(name, density, tuple(base_color), alpha=0.1, metallic=0.0, roughness=0.0)

    def mass_of(self, volume: float) -> float:
        return self.density * volume

    def calculate_cost(self, volume: float) -> Optional[float]:
        if self.cost_per_volume is None:
            return None
        return self.cost_per_volume * volume

    def is_transparent(self) -> bool:
        return self.alpha < 1.0

    def is_metallic(self) -> bool:
        return self.metallic > 0.5


@dataclass(frozen=True)
class EdgeUse:
    """One traversal of an edge inside a loop, wire or face boundary.

    ``start``/``end`` are the vertex ids in traversal order; ``forward``
    is False when the edge is walked against its own direction.
    """

    edge_id: EntityId
    start: EntityId
    end: EntityId
    forward: bool = True

    def reversed(self) -> "EdgeUse":
        return EdgeUse(self.edge_id, self.end, self.start, not self.forward)


def _entity_id(obj) -> EntityId:
    return obj.id if isinstance(obj, TopologyEntity) else obj


# -----------------------------------------------------------------------------
# Capabilities
# -----------------------------------------------------------------------------

class Constrainable:
    """Constraint attachment and degree-of-freedom accounting."""

    def __init__(self):
        self.constraints: List[EntityId] = []

    def add_constraint(self, constraint) -> None:
        cid = getattr(constraint, "id", constraint)
        if cid not in self.constraints:
            self.constraints.append(cid)

    def remove_constraint(self, constraint) -> bool:
        cid = getattr(constraint, "id", constraint)
        if cid in self.constraints:
            self.constraints.remove(cid)
            return True
        return False

    def degrees_of_freedom(self) -> int:
        return 0

    def is_fully_constrained(self) -> bool:
        return self.degrees_of_freedom() <= 0

    def is_over_constrained(self) -> bool:
        return self.degrees_of_freedom() < 0


class TopologyEntity(Constrainable):
    """Base class: identity, adjacency, properties and validation hooks."""

    kind = "entity"

    def __init__(self, entity_id: EntityId, properties: Optional[EntityProperties] = None):
        super().__init__()
        if not entity_id:
            raise TopologyError("entities need a non-empty identifier")
        self._id = entity_id
        self.properties = properties if properties is not None else EntityProperties()

    @property
    def id(self) -> EntityId:
        return self._id

    def entity_type(self) -> str:
        """Stable tag naming the entity kind."""
        return self.kind

    def parents(self) -> List[EntityId]:
        return []

    def children(self) -> List[EntityId]:
        return []

    def validation_errors(self) -> List[ValidationError]:
        return []

    def is_topologically_valid(self) -> bool:
        return not self.validation_errors()

    def is_valid(self) -> bool:
        return self.is_topologically_valid()

    def repair(self) -> List[ValidationError]:
        """Try to fix the detected errors and return the ones fixed.

        The default has no strategy: any error raises :class:`RepairError`.
        """
        errors = self.validation_errors()
        if errors:
            raise RepairError(f"no repair strategy for {self.kind} {self.id}", errors)
        return []

    def _state(self) -> tuple:
        return (self._id, self.properties, tuple(self.constraints))

    def __eq__(self, other) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._state() == other._state()

    __hash__ = None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._id!r})"


# -----------------------------------------------------------------------------
# Vertex
# -----------------------------------------------------------------------------

class Vertex(TopologyEntity):
    """A point in the topology.

    ``context`` is the dimension of the sketch or model the vertex lives
    in; it defaults to 3 when a 3D point is present and 2 otherwise.
    """

    kind = "vertex"

    def __init__(self, entity_id: EntityId, point2d: Optional[Sequence[float]] = None,
                 point3d: Optional[Sequence[float]] = None, *, context: Optional[int] = None,
                 properties: Optional[EntityProperties] = None):
        super().__init__(entity_id, properties)
        self.point2d: Optional[Point] = None
        self.point3d: Optional[Point] = None
        if point2d is not None:
            self.set_point2d(point2d)
        if point3d is not None:
            self.set_point3d(point3d)
        if context is not None and context not in (2, 3):
            raise ValueError("vertex context must be 2 or 3")
        self._context = context
        self.edges: List[EntityId] = []

    @property
    def context(self) -> int:
        if self._context is not None:
            return self._context
        return 3 if self.point3d is not None else 2

    def set_point2d(self, p: Sequence[float]) -> None:
        p = point(p)
        if len(p) != 2:
            raise ValueError("point2d must have two components")
        self.point2d = p

    def set_point3d(self, p: Sequence[float]) -> None:
        p = point(p)
        if len(p) != 3:
            raise ValueError("point3d must have three components")
        self.point3d = p

    def location(self) -> Optional[Point]:
        """3D point if present, else the 2D point."""
        return self.point3d if self.point3d is not None else self.point2d

    def parents(self) -> List[EntityId]:
        return list(self.edges)

    def degrees_of_freedom(self) -> int:
        # negative values signal over-constraint and are not clamped
        return self.context - len(self.constraints)

    def validation_errors(self) -> List[ValidationError]:
        if self.point2d is None and self.point3d is None:
            return [ValidationError.MISSING_GEOMETRY]
        return []

    def _state(self) -> tuple:
        return super()._state() + (self.point2d, self.point3d, self._context, tuple(self.edges))


# -----------------------------------------------------------------------------
# Edge
# -----------------------------------------------------------------------------

class Edge(TopologyEntity):
    """A curve segment bounded by two vertices."""

    kind = "edge"

    def __init__(self, entity_id: EntityId, start, end, *, curve2d: Optional[Curve] = None,
                 curve3d: Optional[Curve] = None, properties: Optional[EntityProperties] = None):
        super().__init__(entity_id, properties)
        self.vertices: List[EntityId] = [_entity_id(start), _entity_id(end)]
        self.curve2d: Optional[Curve] = None
        self.curve3d: Optional[Curve] = None
        if curve2d is not None:
            self.set_curve2d(curve2d)
        if curve3d is not None:
            self.set_curve3d(curve3d)
        self.faces: List[EntityId] = []

    @property
    def start(self) -> EntityId:
        return self.vertices[0]

    @property
    def end(self) -> EntityId:
        return self.vertices[-1]

    def set_curve2d(self, curve: Curve) -> None:
        if not iscurve(curve) or curve.dimension != 2:
            raise ValueError("curve2d must be a 2D curve")
        self.curve2d = curve

    def set_curve3d(self, curve: Curve) -> None:
        if not iscurve(curve) or curve.dimension != 3:
            raise ValueError("curve3d must be a 3D curve")
        self.curve3d = curve

    def curve(self) -> Optional[Curve]:
        """3D curve if present, else the 2D curve."""
        return self.curve3d if self.curve3d is not None else self.curve2d

    def use(self, reverse: bool = False) -> EdgeUse:
        u = EdgeUse(self.id, self.start, self.end, True)
        return u.reversed() if reverse else u

    def is_closed(self) -> bool:
        return len(self.vertices) == 2 and self.start == self.end

    def parents(self) -> List[EntityId]:
        return list(self.faces)

    def children(self) -> List[EntityId]:
        return list(self.vertices)

    def degrees_of_freedom(self) -> int:
        # binary approximation until a real constraint graph exists
        return 0 if self.constraints else 2

    def validation_errors(self) -> List[ValidationError]:
        errors = []
        if self.curve2d is None and self.curve3d is None:
            errors.append(ValidationError.MISSING_GEOMETRY)
        if len(self.vertices) != 2 or not all(self.vertices):
            errors.append(ValidationError.DISCONNECTED_EDGES)
        return errors

    def _state(self) -> tuple:
        return super()._state() + (tuple(self.vertices), self.curve2d, self.curve3d,
                                   tuple(self.faces))


# -----------------------------------------------------------------------------
# Edge chains: Loop and Wire
# -----------------------------------------------------------------------------

def _chain_connected(uses: Sequence[EdgeUse]) -> bool:
    return all(a.end == b.start for a, b in zip(uses, uses[1:]))


def _chain_closed(uses: Sequence[EdgeUse]) -> bool:
    return bool(uses) and _chain_connected(uses) and uses[-1].end == uses[0].start


def order_chain(uses: Sequence[EdgeUse], *, closed: bool) -> Optional[List[EdgeUse]]:
    """Reorder and flip ``uses`` into one connected chain.

    Starts from the first use and greedily appends a use (flipping it if
    needed) whose start matches the current end.  Returns ``None`` when the
    uses do not form a single chain (or, with ``closed``, a single cycle).
    """

    if not uses:
        return None
    remaining = list(uses[1:])
    chain = [uses[0]]
    if not closed:
        # walk backwards first so an open chain may start anywhere
        while True:
            head = chain[0].start
            for i, u in enumerate(remaining):
                if u.end == head:
                    chain.insert(0, remaining.pop(i))
                    break
                if u.start == head:
                    chain.insert(0, remaining.pop(i).reversed())
                    break
            else:
                break
    while remaining:
        tail = chain[-1].end
        for i, u in enumerate(remaining):
            if u.start == tail:
                chain.append(remaining.pop(i))
                break
            if u.end == tail:
                chain.append(remaining.pop(i).reversed())
                break
        else:
            return None
    if closed and not _chain_closed(chain):
        return None
    return chain


class _EdgeChain(TopologyEntity):
    """Ordered edge uses with a cached closure flag."""

    must_close = False

    def __init__(self, entity_id: EntityId, edges: Iterable = (), *,
                 properties: Optional[EntityProperties] = None):
        super().__init__(entity_id, properties)
        self.uses: List[EdgeUse] = []
        self._closed = False
        for e in edges:
            self._append(e)
        self._refresh()

    @property
    def edges(self) -> List[EntityId]:
        return [u.edge_id for u in self.uses]

    def _append(self, edge, reverse: Optional[bool] = None) -> EdgeUse:
        if isinstance(edge, EdgeUse):
            use = edge if not reverse else edge.reversed()
        elif isinstance(edge, Edge):
            if reverse is None:
                reverse = bool(self.uses) and self.uses[-1].end != edge.start \
                    and self.uses[-1].end == edge.end
            use = edge.use(reverse)
        else:
            raise TypeError(f"expected an Edge or EdgeUse, got {type(edge).__name__}")
        self.uses.append(use)
        return use

    def add_edge(self, edge, reverse: Optional[bool] = None) -> EdgeUse:
        """Append ``edge`` to the chain.

        With ``reverse=None`` an :class:`Edge` is flipped automatically when
        its end, not its start, meets the current chain end.
        """
        use = self._append(edge, reverse)
        self._refresh()
        return use

    def remove_edge(self, edge) -> bool:
        eid = _entity_id(edge.edge_id if isinstance(edge, EdgeUse) else edge)
        for i, u in enumerate(self.uses):
            if u.edge_id == eid:
                del self.uses[i]
                self._refresh()
                return True
        return False

    def _refresh(self) -> None:
        self._closed = _chain_closed(self.uses)

    def is_closed(self) -> bool:
        return self._closed

    def is_connected(self) -> bool:
        return _chain_connected(self.uses)

    def vertex_ids(self) -> List[EntityId]:
        """Vertices in traversal order (the start vertex is not repeated)."""
        if not self.uses:
            return []
        ids = [self.uses[0].start] + [u.end for u in self.uses]
        if self._closed:
            ids.pop()
        return ids

    def children(self) -> List[EntityId]:
        return self.edges

    def degrees_of_freedom(self) -> int:
        # placeholder: edge count until constrained, then zero
        return 0 if self.constraints else len(self.uses)

    def validation_errors(self) -> List[ValidationError]:
        if not self.uses or not self.is_connected():
            return [ValidationError.DISCONNECTED_EDGES]
        if self.must_close and not self._closed:
            return [ValidationError.DISCONNECTED_EDGES]
        return []

    def reverse(self) -> None:
        """Walk the chain the other way round."""
        self.uses = [u.reversed() for u in reversed(self.uses)]
        self._refresh()

    def repair(self) -> List[ValidationError]:
        """Reorder and flip edge uses into a single chain."""
        errors = self.validation_errors()
        if not errors:
            return []
        chain = order_chain(self.uses, closed=self.must_close)
        if chain is None:
            raise RepairError(f"{self.kind} {self.id} edges do not form a single chain", errors,
                              {"edges": self.edges})
        logger.debug("reordered %s %s into a connected chain", self.kind, self.id)
        self.uses = chain
        self._refresh()
        return errors

    def _state(self) -> tuple:
        return super()._state() + (tuple(self.uses),)


class Loop(_EdgeChain):
    """Closed boundary of a face."""

    kind = "loop"
    must_close = True

    def __init__(self, entity_id: EntityId, edges: Iterable = (), *,
                 loop_type: LoopType = LoopType.OUTER,
                 properties: Optional[EntityProperties] = None):
        self.loop_type = LoopType(loop_type)
        self.face: Optional[EntityId] = None
        super().__init__(entity_id, edges, properties=properties)

    def parents(self) -> List[EntityId]:
        return [self.face] if self.face else []

    def _state(self) -> tuple:
        return super()._state() + (self.loop_type, self.face)


class Wire(_EdgeChain):
    """Open or closed edge chain used as a sweep, loft or extrude input."""

    kind = "wire"

    def __init__(self, entity_id: EntityId, edges: Iterable = (), *,
                 wire_type: WireType = WireType.PROFILE,
                 properties: Optional[EntityProperties] = None):
        self.wire_type = WireType(wire_type)
        self.parent: Optional[EntityId] = None
        # faces built from this wire; not parents
        self.bounded_faces: List[EntityId] = []
        super().__init__(entity_id, edges, properties=properties)

    def can_form_face(self) -> bool:
        return self._closed and self.is_valid()

    def parents(self) -> List[EntityId]:
        return [self.parent] if self.parent else []

    def _state(self) -> tuple:
        return super()._state() + (self.wire_type, self.parent, tuple(self.bounded_faces))


# -----------------------------------------------------------------------------
# Face
# -----------------------------------------------------------------------------

class Face(TopologyEntity):
    """Bounded surface region: one outer loop and any number of holes.

    ``sense`` is False when the face normal opposes the direction implied
    by its outer loop (or by its surface).
    """

    kind = "face"

    def __init__(self, entity_id: EntityId, outer_loop: Optional[Loop] = None,
                 inner_loops: Iterable[Loop] = (), *, surface: Optional[NurbsSurface] = None,
                 sense: bool = True, properties: Optional[EntityProperties] = None):
        super().__init__(entity_id, properties)
        self.outer_loop: Optional[EntityId] = None
        self.inner_loops: List[EntityId] = []
        self.loop_uses: Dict[EntityId, Tuple[EdgeUse, ...]] = {}
        self.surface = surface
        self.sense = bool(sense)
        self.shells: List[EntityId] = []
        if outer_loop is not None:
            self.set_outer_loop(outer_loop)
        for loop in inner_loops:
            self.add_inner_loop(loop)

    @classmethod
    def from_wire(cls, face_id: EntityId, loop_id: EntityId, wire: Wire, *,
                  surface: Optional[NurbsSurface] = None) -> Tuple["Face", Loop]:
        """Build a face bounded by a closed wire; returns ``(face, loop)``."""
        if not wire.can_form_face():
            raise TopologyError(f"wire {wire.id} cannot bound a face",
                                {"closed": wire.is_closed(), "errors": wire.validation_errors()})
        loop = Loop(loop_id, wire.uses, loop_type=LoopType.OUTER)
        return cls(face_id, loop, surface=surface), loop

    def set_outer_loop(self, loop: Loop) -> None:
        if self.outer_loop is not None:
            self.loop_uses.pop(self.outer_loop, None)
        self.outer_loop = loop.id
        self.loop_uses[loop.id] = tuple(loop.uses)

    def add_inner_loop(self, loop: Loop) -> None:
        if loop.id == self.outer_loop or loop.id in self.inner_loops:
            raise TopologyError(f"loop {loop.id} already bounds face {self.id}")
        self.inner_loops.append(loop.id)
        self.loop_uses[loop.id] = tuple(loop.uses)

    def remove_inner_loop(self, loop) -> bool:
        lid = _entity_id(loop)
        if lid in self.inner_loops:
            self.inner_loops.remove(lid)
            self.loop_uses.pop(lid, None)
            return True
        return False

    def detach_loop(self, loop) -> bool:
        """Forget ``loop`` whether it is the outer loop or a hole."""
        lid = _entity_id(loop)
        if lid == self.outer_loop:
            self.outer_loop = None
            self.loop_uses.pop(lid, None)
            return True
        return self.remove_inner_loop(lid)

    def refresh_loop(self, loop: Loop) -> None:
        """Re-read the edge uses of a loop edited after it was attached."""
        if loop.id not in self.loop_uses:
            raise TopologyError(f"loop {loop.id} does not bound face {self.id}")
        self.loop_uses[loop.id] = tuple(loop.uses)

    def loops(self) -> List[EntityId]:
        head = [self.outer_loop] if self.outer_loop else []
        return head + list(self.inner_loops)

    def edge_uses(self) -> List[EdgeUse]:
        """Boundary edge uses in face orientation (flipped when ``sense`` is False)."""
        uses = [u for lid in self.loops() for u in self.loop_uses.get(lid, ())]
        if not self.sense:
            uses = [u.reversed() for u in uses]
        return uses

    def flip(self) -> None:
        self.sense = not self.sense

    def parents(self) -> List[EntityId]:
        return list(self.shells)

    def children(self) -> List[EntityId]:
        return self.loops()

    def is_fully_constrained(self) -> bool:
        # constraining a face means constraining its boundary
        return False

    def validation_errors(self) -> List[ValidationError]:
        if self.outer_loop is None:
            return [ValidationError.DISCONNECTED_EDGES]
        for lid in self.loops():
            if not _chain_closed(self.loop_uses.get(lid, ())):
                return [ValidationError.DISCONNECTED_EDGES]
        return []

    def _state(self) -> tuple:
        return super()._state() + (self.outer_loop, tuple(self.inner_loops),
                                   tuple(sorted(self.loop_uses.items())), self.surface,
                                   self.sense, tuple(self.shells))


# -----------------------------------------------------------------------------
# Shell
# -----------------------------------------------------------------------------

class Shell(TopologyEntity):
    """Set of faces forming a connected boundary.

    A shell is closed when every edge used by its faces is used exactly
    twice, and consistently oriented when those two uses run in opposite
    directions.
    """

    kind = "shell"

    def __init__(self, entity_id: EntityId, faces: Iterable[Face] = (), *,
                 shell_type: ShellType = ShellType.OUTER,
                 orientation: ShellOrientation = ShellOrientation.OUTWARD,
                 properties: Optional[EntityProperties] = None):
        super().__init__(entity_id, properties)
        self.shell_type = ShellType(shell_type)
        self.orientation = ShellOrientation(orientation)
        self.faces: List[EntityId] = []
        self.face_uses: Dict[EntityId, Tuple[EdgeUse, ...]] = {}
        self.solid: Optional[EntityId] = None
        self._closed = False
        self._consistent = False
        for f in faces:
            self._insert(f)
        self._refresh()

    def _insert(self, face: Face) -> None:
        if face.id in self.face_uses:
            raise TopologyError(f"face {face.id} already in shell {self.id}")
        self.faces.append(face.id)
        self.face_uses[face.id] = tuple(face.edge_uses())

    def add_face(self, face: Face) -> None:
        self._insert(face)
        self._refresh()

    def remove_face(self, face) -> bool:
        fid = _entity_id(face)
        if fid not in self.face_uses:
            return False
        self.faces.remove(fid)
        del self.face_uses[fid]
        self._refresh()
        return True

    def refresh_face(self, face: Face) -> None:
        """Re-read the boundary of a face edited after it was added."""
        if face.id not in self.face_uses:
            raise TopologyError(f"face {face.id} is not in shell {self.id}")
        self.face_uses[face.id] = tuple(face.edge_uses())
        self._refresh()

    def _edge_map(self) -> Dict[EntityId, List[Tuple[EntityId, EdgeUse]]]:
        table: Dict[EntityId, List[Tuple[EntityId, EdgeUse]]] = {}
        for fid in self.faces:
            for u in self.face_uses[fid]:
                table.setdefault(u.edge_id, []).append((fid, u))
        return table

    def _refresh(self) -> None:
        table = self._edge_map()
        self._closed = bool(table) and all(len(v) == 2 for v in table.values())
        self._consistent = all(
            len(v) == 1 or (len(v) == 2 and v[0][1].forward != v[1][1].forward)
            for v in table.values()
        )

    def is_closed(self) -> bool:
        return self._closed

    def is_consistently_oriented(self) -> bool:
        return self._consistent

    def boundary_edges(self) -> List[EntityId]:
        """Edges used by only one face (empty for a closed shell)."""
        return [eid for eid, v in self._edge_map().items() if len(v) == 1]

    def is_connected(self) -> bool:
        if not self.faces:
            return False
        neighbours: Dict[EntityId, set] = {fid: set() for fid in self.faces}
        for v in self._edge_map().values():
            fids = [fid for fid, _ in v]
            for a in fids:
                neighbours[a].update(fids)
        seen = {self.faces[0]}
        stack = [self.faces[0]]
        while stack:
            for n in neighbours[stack.pop()]:
                if n not in seen:
                    seen.add(n)
                    stack.append(n)
        return len(seen) == len(self.faces)

    def orientation_flips(self) -> Optional[List[EntityId]]:
        """Faces to flip so every shared edge is used in opposite directions.

        The first face keeps its sense.  Returns ``None`` when no assignment
        exists (a non-orientable or non-manifold face set).
        """
        table = self._edge_map()
        if any(len(v) > 2 for v in table.values()):
            return None
        flip: Dict[EntityId, bool] = {}
        for root in self.faces:
            if root in flip:
                continue
            flip[root] = False
            stack = [root]
            while stack:
                fid = stack.pop()
                for u in self.face_uses[fid]:
                    for other, ou in table[u.edge_id]:
                        if other == fid:
                            continue
                        # opposite traversal required after applying flips
                        needed = flip[fid] ^ (u.forward == ou.forward)
                        if other not in flip:
                            flip[other] = needed
                            stack.append(other)
                        elif flip[other] != needed:
                            return None
        return [fid for fid in self.faces if flip[fid]]

    def flip_orientation(self) -> None:
        if self.orientation is ShellOrientation.OUTWARD:
            self.orientation = ShellOrientation.INWARD
        else:
            self.orientation = ShellOrientation.OUTWARD

    def parents(self) -> List[EntityId]:
        return [self.solid] if self.solid else []

    def children(self) -> List[EntityId]:
        return list(self.faces)

    def is_fully_constrained(self) -> bool:
        return False

    def validation_errors(self) -> List[ValidationError]:
        errors = []
        if not self.faces or not self.is_connected():
            errors.append(ValidationError.DISCONNECTED_EDGES)
        if not self._consistent:
            errors.append(ValidationError.INVALID_ORIENTATION)
        return errors

    def repair(self, resolver=None) -> List[ValidationError]:
        """Flip faces until orientation is consistent.

        Needs a ``resolver`` that can look the faces up, since the faces
        themselves change sense.
        """
        errors = self.validation_errors()
        if not errors:
            return []
        if ValidationError.DISCONNECTED_EDGES in errors:
            raise RepairError(f"shell {self.id} is disconnected", errors)
        flips = self.orientation_flips()
        if flips is None or resolver is None:
            raise RepairError(f"cannot reorient shell {self.id}", errors,
                              {"non_orientable": flips is None})
        for fid in flips:
            face = resolver.face(fid)
            face.flip()
            self.face_uses[fid] = tuple(face.edge_uses())
        logger.debug("flipped %d faces of shell %s", len(flips), self.id)
        self._refresh()
        return errors

    def _state(self) -> tuple:
        return super()._state() + (self.shell_type, self.orientation, tuple(self.faces),
                                   tuple(sorted(self.face_uses.items())), self.solid)


# -----------------------------------------------------------------------------
# Solid
# -----------------------------------------------------------------------------

class Solid(TopologyEntity):
    """Outer shell plus optional inner shells (voids).

    Mass properties are computed lazily from the face geometry and cached
    until shell membership or material changes.  ``recompute_count``
    counts how often the cache has been rebuilt.
    """

    kind = "solid"
    ASSEMBLY_DOF = 6

    def __init__(self, entity_id: EntityId, outer_shell: Shell, inner_shells: Iterable[Shell] = (), *,
                 material: Optional[Material] = None, properties: Optional[EntityProperties] = None):
        super().__init__(entity_id, properties)
        self.outer_shell: EntityId = ""
        self.inner_shells: List[EntityId] = []
        self.shell_closed: Dict[EntityId, bool] = {}
        self._material = material if material is not None else _default_material()
        self._mass = None
        self.recompute_count = 0
        self.set_outer_shell(outer_shell)
        for shell in inner_shells:
            self.add_inner_shell(shell)

    @property
    def material(self) -> Material:
        return self._material

    @material.setter
    def material(self, value: Material) -> None:
        self._material = value
        self.invalidate_cache()

    def set_outer_shell(self, shell: Shell) -> None:
        if not shell.is_closed():
            raise ShellClosureError(f"outer shell {shell.id} is not closed",
                                    {"boundary_edges": shell.boundary_edges()})
        if not shell.is_consistently_oriented():
            raise SolidValidationError(f"outer shell {shell.id} is not consistently oriented",
                                       {"shell": shell.id})
        if self.outer_shell:
            self.shell_closed.pop(self.outer_shell, None)
        self.outer_shell = shell.id
        self.shell_closed[shell.id] = True
        self.invalidate_cache()

    def add_inner_shell(self, shell: Shell) -> None:
        if shell.id == self.outer_shell or shell.id in self.inner_shells:
            raise SolidValidationError(f"shell {shell.id} already belongs to solid {self.id}")
        if not shell.is_closed():
            raise ShellClosureError(f"inner shell {shell.id} is not closed",
                                    {"boundary_edges": shell.boundary_edges()})
        self.inner_shells.append(shell.id)
        self.shell_closed[shell.id] = shell.is_closed()
        self.invalidate_cache()

    def remove_inner_shell(self, shell) -> bool:
        sid = _entity_id(shell)
        if sid not in self.inner_shells:
            return False
        self.inner_shells.remove(sid)
        self.shell_closed.pop(sid, None)
        self.invalidate_cache()
        return True

    def detach_shell(self, shell) -> bool:
        """Forget ``shell``; losing the outer shell leaves the solid invalid."""
        sid = _entity_id(shell)
        if sid == self.outer_shell:
            self.outer_shell = ""
            self.shell_closed.pop(sid, None)
            self.invalidate_cache()
            return True
        return self.remove_inner_shell(sid)

    def refresh_shell(self, shell: Shell) -> None:
        """Re-read the closure of a member shell edited in place."""
        if not self.contains_shell(shell):
            raise TopologyError(f"shell {shell.id} is not part of solid {self.id}")
        self.shell_closed[shell.id] = shell.is_closed() and (
            shell.id != self.outer_shell or shell.is_consistently_oriented())
        self.invalidate_cache()

    def shells(self) -> List[EntityId]:
        head = [self.outer_shell] if self.outer_shell else []
        return head + list(self.inner_shells)

    def shell_count(self) -> int:
        return len(self.shells())

    def has_cavities(self) -> bool:
        return bool(self.inner_shells)

    def contains_shell(self, shell) -> bool:
        sid = _entity_id(shell)
        return sid == self.outer_shell or sid in self.inner_shells

    def body_type(self) -> BodyType:
        if not self.shell_closed.get(self.outer_shell, False):
            return BodyType.OPEN if not self.inner_shells else BodyType.COMPOUND
        if not self.inner_shells:
            return BodyType.SOLID
        if all(self.shell_closed.get(s, False) for s in self.inner_shells):
            return BodyType.HOLLOW
        return BodyType.COMPOUND

    # -- cached mass properties ------------------------------------------------

    def invalidate_cache(self) -> None:
        self._mass = None

    def has_cached_properties(self) -> bool:
        return self._mass is not None

    def mass_properties(self, resolver=None, tolerance: Optional[float] = None):
        """Return the cached :class:`~brepcore.massprops.MassProperties`.

        A cache miss recomputes synchronously and needs ``resolver`` to look
        up shells, faces, loops, edges and vertices.
        """
        if self._mass is None:
            if resolver is None:
                raise TopologyError(f"solid {self.id} needs a resolver to compute mass properties")
            from brepcore.massprops import compute_mass_properties

            self._mass = compute_mass_properties(self, resolver, tolerance)
            self.recompute_count += 1
            logger.debug("recomputed mass properties of solid %s", self.id)
        return self._mass

    def volume(self, resolver=None) -> float:
        return self.mass_properties(resolver).volume

    def surface_area(self, resolver=None) -> float:
        return self.mass_properties(resolver).surface_area

    def centroid(self, resolver=None) -> Point:
        return self.mass_properties(resolver).centroid

    def mass(self, resolver=None) -> float:
        return self.mass_properties(resolver).mass

    def cost(self, resolver=None) -> Optional[float]:
        """Material cost of the solid's volume, or None without a price."""
        return self._material.calculate_cost(self.volume(resolver))

    def bounding_box(self, resolver=None):
        return self.mass_properties(resolver).bounding_box

    # -- capabilities ----------------------------------------------------------

    def children(self) -> List[EntityId]:
        return self.shells()

    def degrees_of_freedom(self) -> int:
        return self.ASSEMBLY_DOF - len(self.constraints)

    def validation_errors(self) -> List[ValidationError]:
        errors = []
        if not self.shell_closed.get(self.outer_shell, False):
            errors.append(ValidationError.DISCONNECTED_EDGES)
        if any(not self.shell_closed.get(s, False) for s in self.inner_shells):
            errors.append(ValidationError.DISCONNECTED_EDGES)
        return errors[:1]

    def _state(self) -> tuple:
        return super()._state() + (self.outer_shell, tuple(self.inner_shells),
                                   tuple(sorted(self.shell_closed.items())), self._material)


def _default_material() -> Material:
    from brepcore.config import get_config
    return Material(density=get_config().default_density)


Entity = Union[Vertex, Edge, Loop, Wire, Face, Shell, Solid]

ENTITY_TYPES = {
    cls.kind: cls for cls in (Vertex, Edge, Loop, Wire, Face, Shell, Solid)
}


__all__ = [
    "LoopType",
    "WireType",
    "ShellType",
    "ShellOrientation",
    "BodyType",
    "EntityProperties",
    "Material",
    "EdgeUse",
    "Constrainable",
    "TopologyEntity",
    "Vertex",
    "Edge",
    "Loop",
    "Wire",
    "Face",
    "Shell",
    "Solid",
    "Entity",
    "ENTITY_TYPES",
    "order_chain",
]
