"""Tests for record, JSON and YAML serialization."""

import json

import pytest

from brepcore.constraints import FixedConstraint, LengthConstraint, LengthKind
from brepcore.curves import BezierCurve, BezierSpline, Line, Spline, nurbs_circle
from brepcore.errors import SerializationError
from brepcore.serialization import (
    SCHEMA_ID,
    curve_from_record,
    curve_to_record,
    dump_json,
    dump_yaml,
    from_record,
    graph_from_json,
    graph_to_json,
    load_json,
    load_yaml,
    plane_from_record,
    plane_to_record,
    surface_from_record,
    surface_to_record,
    to_record,
)
from brepcore.surfaces import Plane, planar_patch
from brepcore.topology import EntityProperties, Material


@pytest.fixture
def model(graph, box_shell):
    steel = Material.metal("steel", 7.85, (0.7, 0.7, 0.8))
    steel.cost_per_volume = 3.0
    solid = graph.add_solid(box_shell, material=steel)
    corner = graph.vertex(graph.edge(graph.loop(graph.face(box_shell.faces[0]).outer_loop)
                                     .edges[0]).start)
    other = graph.vertex(graph.edge(graph.loop(graph.face(box_shell.faces[0]).outer_loop)
                                    .edges[0]).end)
    graph.add_constraint(FixedConstraint(graph.new_id("constraint"), corner.id, corner.point3d))
    graph.add_constraint(LengthConstraint(graph.new_id("constraint"), corner.id, other.id, 1.0,
                                          LengthKind.ALIGNED, direction=(0, 1, 0)))
    wire = graph.add_wire([graph.add_edge(graph.add_vertex(point2d=(0, 0)),
                                          graph.add_vertex(point2d=(1, 1)),
                                          curve2d=BezierCurve((0, 0), (1, 1), ((0.5, 0),)))])
    wire.properties = EntityProperties(color=(1.0, 0.0, 0.0), layer="sketch", name="guide")
    return graph, solid


def _assert_same(a, b):
    assert len(a) == len(b)
    for entity in a.entities():
        assert b.find(entity.id) == entity


def test_json_round_trip(model):
    graph, solid = model
    text = dump_json(graph)
    again = load_json(text)
    _assert_same(graph, again)
    restored = again.solid(solid.id)
    assert restored.volume(again) == pytest.approx(1.0)
    assert restored.mass(again) == pytest.approx(7.85)
    assert restored.material.is_metallic()
    assert restored.cost(again) == pytest.approx(3.0)


def test_yaml_round_trip(model):
    graph, _ = model
    again = load_yaml(dump_yaml(graph))
    _assert_same(graph, again)
    assert again.shell(graph.solid("B1").outer_shell).is_closed()


def test_records_are_plain_data(model):
    graph, _ = model
    doc = graph_to_json(graph)
    assert doc["schema"] == SCHEMA_ID
    assert json.loads(json.dumps(doc)) == doc
    assert all(rec["schema"] == SCHEMA_ID for rec in doc["entities"])


def test_files(model, tmp_path):
    graph, _ = model
    jpath = tmp_path / "model.json"
    ypath = tmp_path / "model.yaml"
    dump_json(graph, jpath)
    dump_yaml(graph, ypath)
    _assert_same(graph, load_json(jpath))
    _assert_same(graph, load_yaml(str(ypath)))


def test_restored_ids_continue(model):
    graph, _ = model
    again = graph_from_json(graph_to_json(graph))
    assert again.new_id("vertex") == "V11"


@pytest.mark.parametrize("curve", [
    Line((0, 0, 0), (1, 2, 3)),
    BezierCurve((0, 0), (2, 0), ((1, 1),)),
    BezierSpline((BezierCurve((0, 0), (1, 0)), BezierCurve((1, 0), (1, 1)))),
    Spline([(0, 0), (1, 2), (3, 2), (4, 0)], degree=3),
    nurbs_circle((0, 0, 1), 2.0),
])
def test_curve_records(curve):
    assert curve_from_record(curve_to_record(curve)) == curve


def test_surface_record():
    patch = planar_patch((0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 1))
    assert surface_from_record(surface_to_record(patch)) == patch
    assert surface_from_record(None) is None


def test_plane_record():
    plane = Plane.from_points((0, 0, 1), (1, 0, 1), (0, 1, 1)).flip_normal()
    rec = plane_to_record(plane)
    assert json.loads(json.dumps(rec)) == rec
    again = plane_from_record(rec)
    assert again.normal == pytest.approx(plane.normal)
    assert again.d == plane.d
    assert not again.facing
    with pytest.raises(SerializationError):
        plane_from_record({"type": "plane"})
    with pytest.raises(SerializationError):
        plane_from_record({"type": "cylinder"})


def test_rejects_bad_records(graph):
    v = graph.add_vertex(point2d=(0, 0))
    rec = to_record(v)
    with pytest.raises(SerializationError):
        from_record(dict(rec, schema="other"))
    with pytest.raises(SerializationError):
        from_record(dict(rec, type="widget"))
    with pytest.raises(SerializationError):
        curve_from_record({"type": "hyperbola"})
    with pytest.raises(SerializationError):
        load_json("{not json")
    with pytest.raises(SerializationError):
        to_record(object())
