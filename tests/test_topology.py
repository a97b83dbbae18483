"""Tests for topological entities, derived flags and DOF accounting."""

import pytest

from brepcore.curves import Line
from brepcore.errors import (
    ShellClosureError,
    SolidValidationError,
    TopologyError,
    ValidationError,
)
from brepcore.topology import (
    BodyType,
    Edge,
    EdgeUse,
    Face,
    Loop,
    Material,
    Shell,
    ShellOrientation,
    Solid,
    Vertex,
    Wire,
    order_chain,
)


def _triangle_edges():
    e1 = Edge("E1", "V1", "V2", curve2d=Line((0, 0), (1, 0)))
    e2 = Edge("E2", "V2", "V3", curve2d=Line((1, 0), (0, 1)))
    e3 = Edge("E3", "V3", "V1", curve2d=Line((0, 1), (0, 0)))
    return e1, e2, e3


class TestVertex:
    """Vertex geometry and degrees of freedom."""

    def test_dof_counts_down_and_goes_negative(self):
        v = Vertex("V1", point3d=(0, 0, 0))
        assert v.degrees_of_freedom() == 3
        v.add_constraint("C1")
        assert v.degrees_of_freedom() == 2
        for cid in ("C2", "C3", "C4"):
            v.add_constraint(cid)
        assert v.degrees_of_freedom() == -1
        assert v.is_over_constrained()
        assert v.is_fully_constrained()

    def test_2d_context(self):
        v = Vertex("V1", point2d=(1, 2))
        assert v.degrees_of_freedom() == 2
        assert Vertex("V2", point2d=(1, 2), context=3).degrees_of_freedom() == 3

    def test_duplicate_constraint_ignored(self):
        v = Vertex("V1", point2d=(0, 0))
        v.add_constraint("C1")
        v.add_constraint("C1")
        assert v.constraints == ["C1"]
        assert v.remove_constraint("C1")
        assert not v.remove_constraint("C1")

    def test_missing_geometry(self):
        v = Vertex("V1")
        assert v.validation_errors() == [ValidationError.MISSING_GEOMETRY]
        v.set_point2d((0, 0))
        assert v.is_valid()
        with pytest.raises(ValueError):
            v.set_point3d((0, 0))

    def test_empty_id_rejected(self):
        with pytest.raises(TopologyError):
            Vertex("")


class TestEdge:
    """Edges and their curves."""

    def test_missing_geometry(self):
        e = Edge("E1", "V1", "V2")
        assert e.validation_errors() == [ValidationError.MISSING_GEOMETRY]
        assert not e.is_valid()

    def test_curve_dimension_checked(self):
        e = Edge("E1", "V1", "V2")
        with pytest.raises(ValueError):
            e.set_curve2d(Line((0, 0, 0), (1, 0, 0)))
        e.set_curve3d(Line((0, 0, 0), (1, 0, 0)))
        assert e.is_valid()
        assert e.curve() is e.curve3d

    def test_dof_is_binary(self):
        e = Edge("E1", "V1", "V2", curve2d=Line((0, 0), (1, 0)))
        assert e.degrees_of_freedom() == 2
        e.add_constraint("C1")
        assert e.degrees_of_freedom() == 0
        assert e.entity_type() == "edge"
        assert e.children() == ["V1", "V2"]


class TestChains:
    """Loops and wires."""

    def test_empty_loop_is_invalid(self):
        loop = Loop("L1")
        assert loop.validation_errors() == [ValidationError.DISCONNECTED_EDGES]
        assert not loop.is_valid()

    def test_wire_closure_follows_mutation(self):
        e1, e2, e3 = _triangle_edges()
        w = Wire("W1")
        w.add_edge(e1)
        w.add_edge(e2)
        assert not w.is_closed()
        assert w.is_valid()
        w.add_edge(e3)
        assert w.is_closed()
        assert w.can_form_face()
        assert w.remove_edge(e3)
        assert not w.is_closed()

    def test_reversed_edge_detected(self):
        e1, e2, _ = _triangle_edges()
        back = Edge("E3", "V1", "V3", curve2d=Line((0, 0), (0, 1)))
        w = Wire("W1", [e1, e2, back])
        assert w.uses[-1] == EdgeUse("E3", "V3", "V1", False)
        assert w.is_closed()
        assert w.vertex_ids() == ["V1", "V2", "V3"]

    def test_loop_must_close(self):
        e1, e2, _ = _triangle_edges()
        loop = Loop("L1", [e1, e2])
        assert loop.validation_errors() == [ValidationError.DISCONNECTED_EDGES]
        wire = Wire("W1", [e1, e2])
        assert wire.is_valid()

    def test_repair_reorders(self):
        e1, e2, e3 = _triangle_edges()
        loop = Loop("L1", [e1, e3, e2])
        assert not loop.is_valid()
        assert loop.repair() == [ValidationError.DISCONNECTED_EDGES]
        assert loop.is_closed()
        assert loop.edges == ["E1", "E2", "E3"]

    def test_order_chain_open(self):
        uses = [EdgeUse("E2", "B", "C"), EdgeUse("E1", "A", "B"), EdgeUse("E3", "D", "C")]
        chain = order_chain(uses, closed=False)
        assert [u.edge_id for u in chain] == ["E1", "E2", "E3"]
        assert chain[-1].forward is False
        assert order_chain([EdgeUse("E1", "A", "B"), EdgeUse("E2", "C", "D")], closed=False) is None

    def test_dof_placeholder(self):
        w = Wire("W1", _triangle_edges())
        assert w.degrees_of_freedom() == 3
        w.add_constraint("C1")
        assert w.degrees_of_freedom() == 0


class TestFace:
    """Faces and their loops."""

    def test_from_wire(self):
        w = Wire("W1", _triangle_edges())
        face, loop = Face.from_wire("F1", "L1", w)
        assert face.outer_loop == "L1"
        assert loop.is_closed()
        assert face.is_valid()

    def test_from_open_wire_fails(self):
        e1, e2, _ = _triangle_edges()
        with pytest.raises(TopologyError):
            Face.from_wire("F1", "L1", Wire("W1", [e1, e2]))

    def test_face_without_loop_invalid(self):
        face = Face("F1")
        assert face.validation_errors() == [ValidationError.DISCONNECTED_EDGES]
        assert not face.is_fully_constrained()
        assert face.degrees_of_freedom() == 0

    def test_sense_flips_uses(self):
        loop = Loop("L1", _triangle_edges())
        face = Face("F1", loop)
        forward = face.edge_uses()
        face.flip()
        assert [u.forward for u in face.edge_uses()] == [not u.forward for u in forward]

    def test_duplicate_loop_rejected(self):
        loop = Loop("L1", _triangle_edges())
        face = Face("F1", loop)
        with pytest.raises(TopologyError):
            face.add_inner_loop(loop)


class TestShell:
    """Shell closure and orientation."""

    def test_box_is_closed_and_consistent(self, box_shell):
        assert box_shell.is_closed()
        assert box_shell.is_consistently_oriented()
        assert box_shell.is_connected()
        assert box_shell.boundary_edges() == []
        assert box_shell.is_valid()

    def test_open_shell_reports_boundary(self, graph, box_shell):
        graph.remove_face_from_shell(box_shell, box_shell.faces[0])
        assert not box_shell.is_closed()
        assert len(box_shell.boundary_edges()) == 4

    def test_flipped_face_breaks_orientation(self, graph, box_shell):
        graph.flip_face(box_shell.faces[2])
        assert box_shell.is_closed()
        assert not box_shell.is_consistently_oriented()
        assert ValidationError.INVALID_ORIENTATION in box_shell.validation_errors()
        assert box_shell.orientation_flips() == [box_shell.faces[2]]

    def test_flip_orientation(self):
        s = Shell("S1")
        s.flip_orientation()
        assert s.orientation is ShellOrientation.INWARD
        assert not s.is_fully_constrained()


class TestSolid:
    """Solids, mass property caching and classification."""

    def test_open_shell_rejected(self, graph, box_shell):
        graph.remove_face_from_shell(box_shell, box_shell.faces[0])
        with pytest.raises(ShellClosureError):
            Solid("B1", box_shell)

    def test_inconsistent_shell_rejected(self, graph, box_shell):
        graph.flip_face(box_shell.faces[1])
        with pytest.raises(SolidValidationError):
            Solid("B1", box_shell)

    def test_unit_cube_properties(self, graph, box_shell):
        solid = graph.add_solid(box_shell)
        props = solid.mass_properties(graph)
        assert props.volume == pytest.approx(1.0)
        assert props.surface_area == pytest.approx(6.0)
        assert props.centroid == pytest.approx((0.5, 0.5, 0.5))
        assert props.bounding_box == ((0.0, 0.0, 0.0), (1.0, 1.0, 1.0))
        assert solid.body_type() is BodyType.SOLID

    def test_mass_properties_memoized(self, graph, box_shell, make_box):
        solid = graph.add_solid(box_shell)
        assert solid.volume(graph) == pytest.approx(1.0)
        assert solid.recompute_count == 1
        assert solid.volume() == pytest.approx(1.0)
        assert solid.centroid() == pytest.approx((0.5, 0.5, 0.5))
        assert solid.recompute_count == 1

        void = make_box((0.25, 0.25, 0.25), (0.5, 0.5, 0.5))
        graph.add_inner_shell(solid, void)
        assert not solid.has_cached_properties()
        assert solid.volume(graph) == pytest.approx(0.875)
        assert solid.recompute_count == 2
        assert solid.body_type() is BodyType.HOLLOW
        assert solid.has_cavities()
        assert solid.shell_count() == 2

        graph.remove_inner_shell(solid, void)
        assert solid.volume(graph) == pytest.approx(1.0)
        assert solid.recompute_count == 3

    def test_cache_miss_needs_resolver(self, graph, box_shell):
        solid = graph.add_solid(box_shell)
        with pytest.raises(TopologyError):
            solid.mass_properties()

    def test_material_drives_mass(self, graph, box_shell):
        solid = graph.add_solid(box_shell, material=Material("steel", density=7.85))
        assert solid.mass(graph) == pytest.approx(7.85)
        solid.material = Material("aluminium", density=2.7)
        assert solid.mass(graph) == pytest.approx(2.7)
        assert solid.recompute_count == 2

    def test_material_cost(self, graph, make_box):
        aluminium = Material.metal("aluminium", 2.7, (0.8, 0.8, 0.9))
        aluminium.cost_per_volume = 5.4
        solid = graph.add_solid(make_box((0, 0, 0), (2, 1, 1)), material=aluminium)
        assert solid.cost(graph) == pytest.approx(10.8)
        solid.material = Material("unpriced")
        assert solid.cost(graph) is None

    def test_dof(self, graph, box_shell):
        solid = graph.add_solid(box_shell)
        assert solid.degrees_of_freedom() == 6
        for i in range(6):
            solid.add_constraint(f"C{i}")
        assert solid.is_fully_constrained()

    def test_contains_shell(self, graph, box_shell):
        solid = graph.add_solid(box_shell)
        assert solid.contains_shell(box_shell)
        assert not solid.contains_shell("S99")
        assert box_shell.solid == solid.id


class TestMaterial:
    """Material presets and derived quantities."""

    def test_presets(self):
        steel = Material.metal("steel", 7850.0, (0.7, 0.7, 0.8))
        assert steel.is_metallic()
        assert not steel.is_transparent()
        assert steel.roughness == 0.2
        assert steel.density == 7850.0

        abs_plastic = Material.plastic("ABS", 1040.0, (0.2, 0.2, 0.8))
        assert not abs_plastic.is_metallic()
        assert abs_plastic.roughness == 0.7

        glass = Material.glass("window", 2500.0, (0.9, 0.9, 0.9))
        assert glass.is_transparent()
        assert glass.alpha == 0.1
        assert glass.roughness == 0.0

    def test_mass_and_cost(self):
        steel = Material.metal("steel", 7850.0, (0.7, 0.7, 0.8))
        assert steel.mass_of(0.001) == pytest.approx(7.85)
        assert steel.calculate_cost(0.001) is None
        steel.cost_per_volume = 5400.0
        assert steel.calculate_cost(0.001) == pytest.approx(5.4)

    def test_defaults(self):
        plain = Material()
        assert plain.metallic == 0.0
        assert plain.roughness == 0.5
        assert plain.cost_per_volume is None
