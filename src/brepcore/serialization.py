"""Record-based serialization of geometry, entities and whole graphs.

Every entity and constraint maps to a plain record (dicts, lists, strings,
numbers and booleans only) tagged with the schema identifier, so the same
record can be written as JSON or YAML.  Loading restores entities exactly,
including parent lists and cached flags, without re-running the
constructors' checks.

Example::

    doc = graph_to_json(graph)
    text = json.dumps(doc)
    again = graph_from_json(json.loads(text))
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from brepcore.constraints import (
    CONSTRAINT_TYPES,
    CoincidentConstraint,
    Constraint,
    FixedConstraint,
    HorizontalConstraint,
    LengthConstraint,
    LengthKind,
    VerticalConstraint,
)
from brepcore.curves import (
    BezierCurve,
    BezierSpline,
    Continuity,
    CurveKind,
    Line,
    NurbsCurve,
    Spline,
    curve_kind,
)
from brepcore.errors import SerializationError
from brepcore.geom import WeightedPoint
from brepcore.store import TopologyGraph
from brepcore.surfaces import NurbsSurface, Plane
from brepcore.topology import (
    ENTITY_TYPES,
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

SCHEMA_ID = "brepcore-topology-v0.1"

Record = Dict[str, Any]


def _vec(p) -> Optional[List[float]]:
    return None if p is None else [float(c) for c in p]


def _tup(p) -> Optional[tuple]:
    return None if p is None else tuple(float(c) for c in p)


def _require(record: Record, key: str):
    try:
        return record[key]
    except KeyError:
        raise SerializationError(f"record is missing {key!r}") from None


# -----------------------------------------------------------------------------
# Geometry
# -----------------------------------------------------------------------------

def curve_to_record(curve) -> Optional[Record]:
    if curve is None:
        return None
    kind = curve_kind(curve)
    if kind is CurveKind.LINE:
        return {"type": kind.value, "start": _vec(curve.start), "end": _vec(curve.end)}
    if kind is CurveKind.BEZIER:
        return {"type": kind.value, "start": _vec(curve.start), "end": _vec(curve.end),
                "handles": [_vec(h) for h in curve.handles]}
    if kind is CurveKind.BEZIER_SPLINE:
        return {"type": kind.value, "continuity": curve.continuity.value,
                "segments": [curve_to_record(s) for s in curve.segments]}
    if kind is CurveKind.SPLINE:
        return {"type": kind.value, "control_points": [_vec(p) for p in curve.control_points],
                "degree": curve.degree(), "knots": list(curve.knots), "closed": curve.closed}
    return {"type": kind.value, "control_points": [_vec(c.point) for c in curve.control_points],
            "weights": list(curve.weights), "degree": curve.degree(),
            "knots": list(curve.knots), "periodic": curve.periodic}


def curve_from_record(record: Optional[Record]):
    if record is None:
        return None
    try:
        kind = CurveKind(_require(record, "type"))
    except ValueError as exc:
        raise SerializationError(f"unknown curve type {record.get('type')!r}") from exc
    if kind is CurveKind.LINE:
        return Line(_tup(record["start"]), _tup(record["end"]))
    if kind is CurveKind.BEZIER:
        return BezierCurve(_tup(record["start"]), _tup(record["end"]),
                           tuple(_tup(h) for h in record.get("handles", ())))
    if kind is CurveKind.BEZIER_SPLINE:
        return BezierSpline(tuple(curve_from_record(s) for s in record["segments"]),
                            Continuity(record.get("continuity", "position")))
    if kind is CurveKind.SPLINE:
        return Spline([_tup(p) for p in record["control_points"]], record["degree"],
                      record["knots"], record.get("closed", False))
    ctrl = [WeightedPoint(_tup(p), w) for p, w in zip(record["control_points"], record["weights"])]
    return NurbsCurve(ctrl, record["degree"], record["knots"], record.get("periodic", False))


def surface_to_record(surface: Optional[NurbsSurface]) -> Optional[Record]:
    if surface is None:
        return None
    du, dv = surface.degree()
    return {
        "type": "nurbs_surface",
        "control_points": [[_vec(c.point) for c in row] for row in surface.control_points],
        "weights": [[c.weight for c in row] for row in surface.control_points],
        "degree_u": du,
        "degree_v": dv,
        "knots_u": list(surface.knots_u),
        "knots_v": list(surface.knots_v),
        "periodic_u": surface.periodic_u,
        "periodic_v": surface.periodic_v,
    }


def surface_from_record(record: Optional[Record]) -> Optional[NurbsSurface]:
    if record is None:
        return None
    if record.get("type") != "nurbs_surface":
        raise SerializationError(f"unknown surface type {record.get('type')!r}")
    grid = [[WeightedPoint(_tup(p), w) for p, w in zip(row, wrow)]
            for row, wrow in zip(record["control_points"], record["weights"])]
    return NurbsSurface(grid, record["degree_u"], record["degree_v"], record["knots_u"],
                        record["knots_v"], record.get("periodic_u", False),
                        record.get("periodic_v", False))


def plane_to_record(plane: Plane) -> Record:
    return {"type": "plane", "normal": _vec(plane.normal), "d": plane.d,
            "facing": plane.facing}


def plane_from_record(record: Record) -> Plane:
    if record.get("type") != "plane":
        raise SerializationError(f"unknown plane type {record.get('type')!r}")
    try:
        return Plane(_tup(record["normal"]), record.get("d", 0.0), record.get("facing", True))
    except (KeyError, ValueError) as exc:
        raise SerializationError(f"bad plane record: {exc}") from exc


# -----------------------------------------------------------------------------
# Entities
# -----------------------------------------------------------------------------

def _properties_to_record(props: EntityProperties) -> Record:
    return {"visible": props.visible, "color": _vec(props.color),
            "transparency": props.transparency, "layer": props.layer,
            "construction": props.construction, "name": props.name}


def _properties_from_record(record: Optional[Record]) -> EntityProperties:
    record = dict(record or {})
    record["color"] = _tup(record.get("color"))
    return EntityProperties(**record)


def _uses_to_record(uses) -> List[list]:
    return [[u.edge_id, u.start, u.end, u.forward] for u in uses]


def _uses_from_record(items) -> List[EdgeUse]:
    return [EdgeUse(e, s, t, bool(f)) for e, s, t, f in items]


def to_record(item) -> Record:
    """Serialize an entity or constraint to a plain record."""

    if isinstance(item, Constraint):
        return _constraint_to_record(item)
    if not isinstance(item, TopologyEntity):
        raise SerializationError(f"cannot serialize {type(item).__name__}")
    rec: Record = {"schema": SCHEMA_ID, "type": item.kind, "id": item.id,
                   "properties": _properties_to_record(item.properties),
                   "constraints": list(item.constraints)}
    if isinstance(item, Vertex):
        rec.update(point2d=_vec(item.point2d), point3d=_vec(item.point3d),
                   context=item._context, edges=list(item.edges))
    elif isinstance(item, Edge):
        rec.update(vertices=list(item.vertices), curve2d=curve_to_record(item.curve2d),
                   curve3d=curve_to_record(item.curve3d), faces=list(item.faces))
    elif isinstance(item, Loop):
        rec.update(uses=_uses_to_record(item.uses), loop_type=item.loop_type.value,
                   face=item.face)
    elif isinstance(item, Wire):
        rec.update(uses=_uses_to_record(item.uses), wire_type=item.wire_type.value,
                   parent=item.parent, bounded_faces=list(item.bounded_faces))
    elif isinstance(item, Face):
        rec.update(outer_loop=item.outer_loop, inner_loops=list(item.inner_loops),
                   loop_uses={k: _uses_to_record(v) for k, v in item.loop_uses.items()},
                   surface=surface_to_record(item.surface), sense=item.sense,
                   shells=list(item.shells))
    elif isinstance(item, Shell):
        rec.update(shell_type=item.shell_type.value, orientation=item.orientation.value,
                   faces=list(item.faces),
                   face_uses={k: _uses_to_record(v) for k, v in item.face_uses.items()},
                   solid=item.solid)
    elif isinstance(item, Solid):
        m = item.material
        rec.update(outer_shell=item.outer_shell, inner_shells=list(item.inner_shells),
                   shell_closed=dict(item.shell_closed),
                   material={"name": m.name, "density": m.density,
                             "base_color": _vec(m.base_color), "alpha": m.alpha,
                             "metallic": m.metallic, "roughness": m.roughness,
                             "reflectance": m.reflectance,
                             "cost_per_volume": m.cost_per_volume})
    return rec


def _check_schema(record: Record) -> None:
    schema = record.get("schema")
    if schema != SCHEMA_ID:
        raise SerializationError(f"unsupported schema: {schema!r}")


def _blank(cls, record: Record):
    obj = cls.__new__(cls)
    TopologyEntity.__init__(obj, _require(record, "id"),
                            _properties_from_record(record.get("properties")))
    obj.constraints = list(record.get("constraints", ()))
    return obj


def from_record(record: Record):
    """Rebuild the entity or constraint described by ``record``."""

    _check_schema(record)
    kind = _require(record, "type")
    if kind == "constraint":
        return _constraint_from_record(record)
    cls = ENTITY_TYPES.get(kind)
    if cls is None:
        raise SerializationError(f"unknown entity type {kind!r}")
    obj = _blank(cls, record)
    try:
        if cls is Vertex:
            obj.point2d = _tup(record.get("point2d"))
            obj.point3d = _tup(record.get("point3d"))
            obj._context = record.get("context")
            obj.edges = list(record.get("edges", ()))
        elif cls is Edge:
            obj.vertices = list(record["vertices"])
            obj.curve2d = curve_from_record(record.get("curve2d"))
            obj.curve3d = curve_from_record(record.get("curve3d"))
            obj.faces = list(record.get("faces", ()))
        elif cls in (Loop, Wire):
            obj.uses = _uses_from_record(record.get("uses", ()))
            if cls is Loop:
                obj.loop_type = LoopType(record.get("loop_type", "outer"))
                obj.face = record.get("face")
            else:
                obj.wire_type = WireType(record.get("wire_type", "profile"))
                obj.parent = record.get("parent")
                obj.bounded_faces = list(record.get("bounded_faces", ()))
            obj._refresh()
        elif cls is Face:
            obj.outer_loop = record.get("outer_loop")
            obj.inner_loops = list(record.get("inner_loops", ()))
            obj.loop_uses = {k: tuple(_uses_from_record(v))
                             for k, v in record.get("loop_uses", {}).items()}
            obj.surface = surface_from_record(record.get("surface"))
            obj.sense = bool(record.get("sense", True))
            obj.shells = list(record.get("shells", ()))
        elif cls is Shell:
            obj.shell_type = ShellType(record.get("shell_type", "outer"))
            obj.orientation = ShellOrientation(record.get("orientation", "outward"))
            obj.faces = list(record.get("faces", ()))
            obj.face_uses = {k: tuple(_uses_from_record(v))
                             for k, v in record.get("face_uses", {}).items()}
            obj.solid = record.get("solid")
            obj._refresh()
        elif cls is Solid:
            obj.outer_shell = record.get("outer_shell", "")
            obj.inner_shells = list(record.get("inner_shells", ()))
            obj.shell_closed = {k: bool(v) for k, v in record.get("shell_closed", {}).items()}
            mat = dict(record.get("material") or {})
            if "base_color" in mat:
                mat["base_color"] = _tup(mat["base_color"])
            obj._material = Material(**mat)
            obj._mass = None
            obj.recompute_count = 0
    except (KeyError, TypeError, ValueError) as exc:
        if isinstance(exc, SerializationError):
            raise
        raise SerializationError(f"malformed {kind} record {record.get('id')!r}: {exc}") from exc
    return obj


def _constraint_to_record(c: Constraint) -> Record:
    rec: Record = {"schema": SCHEMA_ID, "type": "constraint", "kind": c.kind, "id": c.id,
                   "entities": c.entities, "priority": c.priority}
    if isinstance(c, FixedConstraint):
        rec["position"] = _vec(c.position)
    elif isinstance(c, LengthConstraint):
        rec.update(length=c.length, length_kind=c.length_kind.value,
                   direction=_vec(c.direction))
    return rec


def _constraint_from_record(record: Record) -> Constraint:
    kind = record.get("kind")
    cls = CONSTRAINT_TYPES.get(kind)
    if cls is None:
        raise SerializationError(f"unknown constraint kind {kind!r}")
    cid = _require(record, "id")
    ents = list(_require(record, "entities"))
    priority = record.get("priority", 1.0)
    if cls is FixedConstraint:
        return FixedConstraint(cid, ents[0], _tup(record["position"]), priority)
    if cls is LengthConstraint:
        return LengthConstraint(cid, ents[0], ents[1], record["length"],
                                LengthKind(record.get("length_kind", "direct")),
                                _tup(record.get("direction")), priority)
    if cls in (CoincidentConstraint, HorizontalConstraint, VerticalConstraint):
        return cls(cid, ents[0], ents[1], priority)
    raise SerializationError(f"unsupported constraint kind {kind!r}")


# -----------------------------------------------------------------------------
# Graphs
# -----------------------------------------------------------------------------

def graph_to_json(graph: TopologyGraph) -> Record:
    """Document holding every entity and constraint of ``graph``."""

    return {"schema": SCHEMA_ID, "entities": [to_record(e) for e in graph.entities()]}


def graph_from_json(doc: Record) -> TopologyGraph:
    _check_schema(doc)
    graph = TopologyGraph()
    for record in doc.get("entities", ()):
        graph.restore(from_record(record))
    logger.debug("loaded %d entities", len(graph))
    return graph


def dump_json(graph: TopologyGraph, path: Union[str, Path, None] = None) -> str:
    """Serialize ``graph`` to JSON text, also writing it to ``path`` if given."""

    text = json.dumps(graph_to_json(graph), indent=2)
    if path is not None:
        Path(path).write_text(text, encoding="utf-8")
    return text


def load_json(source: Union[str, Path]) -> TopologyGraph:
    """Load a graph from JSON text or from a ``.json`` file path."""

    text = _read_source(source)
    try:
        doc = json.loads(text)
    except json.JSONDecodeError as exc:
        raise SerializationError(f"invalid JSON: {exc}") from exc
    return graph_from_json(doc)


def dump_yaml(graph: TopologyGraph, path: Union[str, Path, None] = None) -> str:
    import yaml

    text = yaml.safe_dump(graph_to_json(graph), sort_keys=False)
    if path is not None:
        Path(path).write_text(text, encoding="utf-8")
    return text


def load_yaml(source: Union[str, Path]) -> TopologyGraph:
    import yaml

    text = _read_source(source)
    try:
        doc = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SerializationError(f"invalid YAML: {exc}") from exc
    if not isinstance(doc, dict):
        raise SerializationError("YAML document is not a mapping")
    return graph_from_json(doc)


def _read_source(source: Union[str, Path]) -> str:
    if isinstance(source, Path):
        return source.read_text(encoding="utf-8")
    if "\n" not in source and source.endswith((".json", ".yaml", ".yml")):
        return Path(source).read_text(encoding="utf-8")
    return source


__all__ = [
    "SCHEMA_ID",
    "to_record",
    "from_record",
    "curve_to_record",
    "curve_from_record",
    "surface_to_record",
    "surface_from_record",
    "plane_to_record",
    "plane_from_record",
    "graph_to_json",
    "graph_from_json",
    "dump_json",
    "load_json",
    "dump_yaml",
    "load_yaml",
]
