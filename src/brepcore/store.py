"""Entity resolution and the in-memory topology store.

Entities refer to each other by identifier.  Anything that needs to follow
those references (validation, tessellation, mass properties, constraint
measurement) takes a *resolver*: an object satisfying
:class:`EntityResolver`.  :class:`TopologyGraph` is the reference
implementation.  It owns every entity, hands out identifiers, keeps the
parent lists (``Vertex.edges``, ``Edge.faces``, ``Loop.face``,
``Face.shells``, ``Shell.solid``) in step with the children, and detaches
an entity from every adjacency list before dropping it.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Iterator, List, Optional, Protocol, Sequence

from brepcore.constraints import Constraint
from brepcore.curves import Curve
from brepcore.errors import TopologyError
from brepcore.ids import EntityId, IdGenerator
from brepcore.surfaces import NurbsSurface
from brepcore.topology import (
    Edge,
    EdgeUse,
    EntityProperties,
    Face,
    Loop,
    LoopType,
    Material,
    Shell,
    ShellOrientation,
    ShellType,
    Solid,
    TopologyEntity,
    Vertex,
    Wire,
    WireType,
)

logger = logging.getLogger(__name__)


class EntityResolver(Protocol):
    """Lookup of entities by identifier."""

    def vertex(self, entity_id: EntityId) -> Vertex: ...

    def edge(self, entity_id: EntityId) -> Edge: ...

    def loop(self, entity_id: EntityId) -> Loop: ...

    def wire(self, entity_id: EntityId) -> Wire: ...

    def face(self, entity_id: EntityId) -> Face: ...

    def shell(self, entity_id: EntityId) -> Shell: ...

    def solid(self, entity_id: EntityId) -> Solid: ...

    def constraint(self, entity_id: EntityId) -> Constraint: ...


_KINDS = ("vertex", "edge", "loop", "wire", "face", "shell", "solid", "constraint")


class TopologyGraph:
    """Owning store for a model's entities and constraints."""

    def __init__(self, ids: Optional[IdGenerator] = None):
        self.ids = ids if ids is not None else IdGenerator()
        self._tables: Dict[str, Dict[EntityId, object]] = {kind: {} for kind in _KINDS}

    # -- lookup ----------------------------------------------------------------

    def _lookup(self, kind: str, entity_id: EntityId):
        try:
            return self._tables[kind][entity_id]
        except KeyError:
            raise TopologyError(f"unknown {kind} {entity_id!r}", {"kind": kind, "id": entity_id}) from None

    def vertex(self, entity_id: EntityId) -> Vertex:
        return self._lookup("vertex", entity_id)

    def edge(self, entity_id: EntityId) -> Edge:
        return self._lookup("edge", entity_id)

    def loop(self, entity_id: EntityId) -> Loop:
        return self._lookup("loop", entity_id)

    def wire(self, entity_id: EntityId) -> Wire:
        return self._lookup("wire", entity_id)

    def face(self, entity_id: EntityId) -> Face:
        return self._lookup("face", entity_id)

    def shell(self, entity_id: EntityId) -> Shell:
        return self._lookup("shell", entity_id)

    def solid(self, entity_id: EntityId) -> Solid:
        return self._lookup("solid", entity_id)

    def constraint(self, entity_id: EntityId) -> Constraint:
        return self._lookup("constraint", entity_id)

    def find(self, entity_id: EntityId):
        """Return the entity or constraint with ``entity_id``, or ``None``."""
        for table in self._tables.values():
            if entity_id in table:
                return table[entity_id]
        return None

    def __contains__(self, entity_id: EntityId) -> bool:
        return self.find(entity_id) is not None

    def __len__(self) -> int:
        return sum(len(t) for t in self._tables.values())

    def entities(self, kind: Optional[str] = None) -> Iterator:
        """Iterate entities (and constraints) in insertion order, optionally by kind."""
        kinds = _KINDS if kind is None else (kind,)
        for k in kinds:
            if k not in self._tables:
                raise ValueError(f"unknown entity kind {k!r}")
            yield from list(self._tables[k].values())

    def new_id(self, kind: str) -> EntityId:
        entity_id = self.ids.new_id(kind)
        while entity_id in self:
            entity_id = self.ids.new_id(kind)
        return entity_id

    # -- registration ----------------------------------------------------------

    def add(self, item):
        """Register an entity or constraint and wire its parent links.

        Every child referenced by ``item`` must already be in the store.
        """
        kind = item.kind if isinstance(item, TopologyEntity) else "constraint"
        if not isinstance(item, (TopologyEntity, Constraint)):
            raise TypeError(f"cannot store {type(item).__name__}")
        if item.id in self:
            raise TopologyError(f"identifier {item.id!r} is already in use", {"id": item.id})
        self._wire_parents(item)
        self._tables[kind][item.id] = item
        self.ids.observe(item.id)
        logger.debug("added %s %s", kind, item.id)
        return item

    def restore(self, item):
        """Insert ``item`` as-is; its parent links are trusted, not rewired.

        Used when loading a saved graph, whose records already carry the
        parent lists.
        """
        kind = item.kind if isinstance(item, TopologyEntity) else "constraint"
        if item.id in self:
            raise TopologyError(f"identifier {item.id!r} is already in use", {"id": item.id})
        self._tables[kind][item.id] = item
        self.ids.observe(item.id)
        return item

    def _wire_parents(self, item) -> None:
        if isinstance(item, Edge):
            for vid in dict.fromkeys(item.vertices):
                v = self.vertex(vid)
                if item.id not in v.edges:
                    v.edges.append(item.id)
        elif isinstance(item, (Loop, Wire)):
            for eid in item.edges:
                self.edge(eid)
        elif isinstance(item, Face):
            loops = [self.loop(lid) for lid in item.loops()]
            for loop in loops:
                if loop.face and loop.face != item.id:
                    raise TopologyError(f"loop {loop.id} already bounds face {loop.face}")
            for loop in loops:
                loop.face = item.id
                self._link_face_edges(item.id, loop.edges)
        elif isinstance(item, Shell):
            for fid in item.faces:
                face = self.face(fid)
                if item.id not in face.shells:
                    face.shells.append(item.id)
        elif isinstance(item, Solid):
            shells = [self.shell(sid) for sid in item.shells()]
            for shell in shells:
                if shell.solid and shell.solid != item.id:
                    raise TopologyError(f"shell {shell.id} already belongs to solid {shell.solid}")
            for shell in shells:
                shell.solid = item.id
        elif isinstance(item, Constraint):
            targets = [self._constrainable(eid) for eid in item.entities]
            for target in targets:
                target.add_constraint(item)

    def _constrainable(self, entity_id: EntityId) -> TopologyEntity:
        entity = self.find(entity_id)
        if not isinstance(entity, TopologyEntity):
            raise TopologyError(f"constraint target {entity_id!r} is not in the store",
                                {"id": entity_id})
        return entity

    def _link_face_edges(self, face_id: EntityId, edge_ids: Iterable[EntityId]) -> None:
        for eid in edge_ids:
            edge = self.edge(eid)
            if face_id not in edge.faces:
                edge.faces.append(face_id)

    def _unlink_face_edges(self, face: Face, edge_ids: Iterable[EntityId]) -> None:
        still_used = {u.edge_id for u in face.edge_uses()}
        for eid in edge_ids:
            edge = self._tables["edge"].get(eid)
            if edge is not None and eid not in still_used and face.id in edge.faces:
                edge.faces.remove(face.id)

    # -- convenience constructors ----------------------------------------------

    def add_vertex(self, point2d=None, point3d=None, *, entity_id: Optional[EntityId] = None,
                   context: Optional[int] = None,
                   properties: Optional[EntityProperties] = None) -> Vertex:
        return self.add(Vertex(entity_id or self.new_id("vertex"), point2d, point3d,
                               context=context, properties=properties))

    def add_edge(self, start, end, *, curve2d: Optional[Curve] = None,
                 curve3d: Optional[Curve] = None, entity_id: Optional[EntityId] = None,
                 properties: Optional[EntityProperties] = None) -> Edge:
        return self.add(Edge(entity_id or self.new_id("edge"), start, end,
                             curve2d=curve2d, curve3d=curve3d, properties=properties))

    def add_loop(self, edges: Iterable = (), loop_type: LoopType = LoopType.OUTER, *,
                 entity_id: Optional[EntityId] = None,
                 properties: Optional[EntityProperties] = None) -> Loop:
        return self.add(Loop(entity_id or self.new_id("loop"), self._edges(edges),
                             loop_type=loop_type, properties=properties))

    def add_wire(self, edges: Iterable = (), wire_type: WireType = WireType.PROFILE, *,
                 entity_id: Optional[EntityId] = None,
                 properties: Optional[EntityProperties] = None) -> Wire:
        return self.add(Wire(entity_id or self.new_id("wire"), self._edges(edges),
                             wire_type=wire_type, properties=properties))

    def add_face(self, outer_loop, inner_loops: Iterable = (), *,
                 surface: Optional[NurbsSurface] = None, sense: bool = True,
                 entity_id: Optional[EntityId] = None,
                 properties: Optional[EntityProperties] = None) -> Face:
        outer = self._resolve("loop", outer_loop)
        inner = [self._resolve("loop", lp) for lp in inner_loops]
        return self.add(Face(entity_id or self.new_id("face"), outer, inner, surface=surface,
                             sense=sense, properties=properties))

    def face_from_wire(self, wire, *, surface: Optional[NurbsSurface] = None) -> Face:
        """Bound a new face by a closed wire; raises ``TopologyError`` otherwise."""
        wire = self._resolve("wire", wire)
        face, loop = Face.from_wire(self.new_id("face"), self.new_id("loop"), wire,
                                    surface=surface)
        self.add(loop)
        self.add(face)
        wire.bounded_faces.append(face.id)
        return face

    def add_shell(self, faces: Iterable = (), shell_type: ShellType = ShellType.OUTER, *,
                  orientation: ShellOrientation = ShellOrientation.OUTWARD,
                  entity_id: Optional[EntityId] = None,
                  properties: Optional[EntityProperties] = None) -> Shell:
        members = [self._resolve("face", f) for f in faces]
        return self.add(Shell(entity_id or self.new_id("shell"), members, shell_type=shell_type,
                              orientation=orientation, properties=properties))

    def add_solid(self, outer_shell, inner_shells: Iterable = (), *,
                  material: Optional[Material] = None, entity_id: Optional[EntityId] = None,
                  properties: Optional[EntityProperties] = None) -> Solid:
        outer = self._resolve("shell", outer_shell)
        inner = [self._resolve("shell", s) for s in inner_shells]
        return self.add(Solid(entity_id or self.new_id("solid"), outer, inner,
                              material=material, properties=properties))

    def add_constraint(self, constraint: Constraint) -> Constraint:
        return self.add(constraint)

    def _resolve(self, kind: str, item):
        if isinstance(item, (TopologyEntity, Constraint)):
            if self._tables[kind].get(item.id) is not item:
                raise TopologyError(f"{kind} {item.id} is not in the store", {"id": item.id})
            return item
        return self._lookup(kind, item)

    def _edges(self, edges: Iterable) -> List:
        return [e if isinstance(e, EdgeUse) else self._resolve("edge", e) for e in edges]

    # -- mutation keeping parents in sync --------------------------------------

    def append_edge(self, chain, edge, reverse: Optional[bool] = None) -> EdgeUse:
        """Append ``edge`` to a loop or wire and refresh whatever depends on it."""
        chain = self._chain(chain)
        use = chain.add_edge(self._resolve("edge", edge), reverse)
        self._chain_changed(chain)
        return use

    def remove_edge_from(self, chain, edge) -> bool:
        chain = self._chain(chain)
        removed = chain.remove_edge(edge)
        if removed:
            self._chain_changed(chain)
        return removed

    def _chain(self, chain):
        if isinstance(chain, (Loop, Wire)):
            return self._resolve(chain.kind, chain)
        found = self.find(chain)
        if not isinstance(found, (Loop, Wire)):
            raise TopologyError(f"{chain!r} is not a loop or wire in the store")
        return found

    def _chain_changed(self, chain) -> None:
        if isinstance(chain, Loop) and chain.face:
            face = self.face(chain.face)
            before = {u.edge_id for u in face.edge_uses()}
            face.refresh_loop(chain)
            self._link_face_edges(face.id, chain.edges)
            self._unlink_face_edges(face, before)
            self._face_changed(face)

    def _face_changed(self, face: Face) -> None:
        for sid in face.shells:
            shell = self.shell(sid)
            shell.refresh_face(face)
            self._shell_changed(shell)

    def _shell_changed(self, shell: Shell) -> None:
        if shell.solid:
            self.solid(shell.solid).refresh_shell(shell)

    def add_inner_loop(self, face, loop) -> None:
        face = self._resolve("face", face)
        loop = self._resolve("loop", loop)
        if loop.face:
            raise TopologyError(f"loop {loop.id} already bounds face {loop.face}")
        face.add_inner_loop(loop)
        loop.face = face.id
        self._link_face_edges(face.id, loop.edges)
        self._face_changed(face)

    def flip_face(self, face) -> None:
        face = self._resolve("face", face)
        face.flip()
        self._face_changed(face)

    def add_face_to_shell(self, shell, face) -> None:
        shell = self._resolve("shell", shell)
        face = self._resolve("face", face)
        shell.add_face(face)
        face.shells.append(shell.id)
        self._shell_changed(shell)

    def remove_face_from_shell(self, shell, face) -> bool:
        shell = self._resolve("shell", shell)
        fid = face.id if isinstance(face, Face) else face
        if not shell.remove_face(fid):
            return False
        f = self._tables["face"].get(fid)
        if f is not None and shell.id in f.shells:
            f.shells.remove(shell.id)
        self._shell_changed(shell)
        return True

    def add_inner_shell(self, solid, shell) -> None:
        solid = self._resolve("solid", solid)
        shell = self._resolve("shell", shell)
        if shell.solid:
            raise TopologyError(f"shell {shell.id} already belongs to solid {shell.solid}")
        solid.add_inner_shell(shell)
        shell.solid = solid.id

    def remove_inner_shell(self, solid, shell) -> bool:
        solid = self._resolve("solid", solid)
        sid = shell.id if isinstance(shell, Shell) else shell
        if not solid.remove_inner_shell(sid):
            return False
        s = self._tables["shell"].get(sid)
        if s is not None:
            s.solid = None
        return True

    def touch(self, entity) -> None:
        """Propagate an in-place edit of ``entity`` to the entities above it."""
        entity = self._resolve(entity.kind, entity)
        if isinstance(entity, (Loop, Wire)):
            self._chain_changed(entity)
        elif isinstance(entity, Face):
            self._face_changed(entity)
        elif isinstance(entity, Shell):
            self._shell_changed(entity)

    # -- removal ---------------------------------------------------------------

    def remove(self, item) -> None:
        """Detach ``item`` from every adjacency list and drop it.

        Constraints that reference a removed entity are removed too.
        """
        entity_id = getattr(item, "id", item)
        target = self.find(entity_id)
        if target is None:
            raise TopologyError(f"unknown entity {entity_id!r}", {"id": entity_id})
        if isinstance(target, Constraint):
            for eid in target.entities:
                owner = self.find(eid)
                if isinstance(owner, TopologyEntity):
                    owner.remove_constraint(target)
            del self._tables["constraint"][entity_id]
            logger.debug("removed constraint %s", entity_id)
            return

        for cid in list(target.constraints):
            if cid in self._tables["constraint"]:
                self.remove(cid)
        detach = getattr(self, f"_detach_{target.kind}")
        detach(target)
        del self._tables[target.kind][entity_id]
        logger.debug("removed %s %s", target.kind, entity_id)

    def _detach_vertex(self, vertex: Vertex) -> None:
        for eid in vertex.edges:
            edge = self._tables["edge"].get(eid)
            if edge is not None:
                edge.vertices = ["" if v == vertex.id else v for v in edge.vertices]

    def _detach_edge(self, edge: Edge) -> None:
        for vid in edge.vertices:
            v = self._tables["vertex"].get(vid)
            if v is not None and edge.id in v.edges:
                v.edges.remove(edge.id)
        for kind in ("loop", "wire"):
            for chain in list(self._tables[kind].values()):
                while edge.id in chain.edges:
                    chain.remove_edge(edge.id)
                    self._chain_changed(chain)

    def _detach_loop(self, loop: Loop) -> None:
        if not loop.face:
            return
        face = self.face(loop.face)
        face.detach_loop(loop.id)
        self._unlink_face_edges(face, loop.edges)
        loop.face = None
        self._face_changed(face)

    def _detach_wire(self, wire: Wire) -> None:
        wire.parent = None

    def _detach_face(self, face: Face) -> None:
        for wire in self._tables["wire"].values():
            if face.id in wire.bounded_faces:
                wire.bounded_faces.remove(face.id)
        for sid in list(face.shells):
            self.remove_face_from_shell(sid, face.id)
        for lid in face.loops():
            loop = self._tables["loop"].get(lid)
            if loop is not None:
                loop.face = None
        for u in face.edge_uses():
            edge = self._tables["edge"].get(u.edge_id)
            if edge is not None and face.id in edge.faces:
                edge.faces.remove(face.id)

    def _detach_shell(self, shell: Shell) -> None:
        for fid in shell.faces:
            face = self._tables["face"].get(fid)
            if face is not None and shell.id in face.shells:
                face.shells.remove(shell.id)
        if shell.solid:
            self.solid(shell.solid).detach_shell(shell.id)
            shell.solid = None

    def _detach_solid(self, solid: Solid) -> None:
        for sid in solid.shells():
            shell = self._tables["shell"].get(sid)
            if shell is not None:
                shell.solid = None

    # -- constraints -----------------------------------------------------------

    def constraints_of(self, entity) -> List[Constraint]:
        entity = self._constrainable(getattr(entity, "id", entity))
        return [self.constraint(cid) for cid in entity.constraints]

    def unsatisfied_constraints(self, tolerance: Optional[float] = None) -> List[Constraint]:
        return [c for c in self.entities("constraint") if not c.is_satisfied(self, tolerance)]


def resolve_all(resolver: EntityResolver, kind: str, ids: Sequence[EntityId]) -> List:
    """Look up every id in ``ids`` as an entity of ``kind``."""
    lookup = getattr(resolver, kind)
    return [lookup(i) for i in ids]


__all__ = ["EntityResolver", "TopologyGraph", "resolve_all"]
