"""Tests for constraint measurement and conflict detection."""

import pytest

from brepcore.constraints import (
    CONSTRAINT_TYPES,
    CoincidentConstraint,
    FixedConstraint,
    HorizontalConstraint,
    LengthConstraint,
    LengthKind,
    VerticalConstraint,
    find_conflicts,
)
from brepcore.errors import TopologyError


@pytest.fixture
def pair(graph):
    a = graph.add_vertex(point3d=(0, 0, 0))
    b = graph.add_vertex(point3d=(3, 4, 0))
    return a, b


def test_length_direct(graph, pair):
    a, b = pair
    c = graph.add_constraint(LengthConstraint("C1", a.id, b.id, 5.0))
    assert c.error(graph) == pytest.approx(0.0)
    assert c.is_satisfied(graph)
    assert a.degrees_of_freedom() == 2


def test_length_aligned(graph, pair):
    a, b = pair
    along_x = LengthConstraint("C1", a.id, b.id, 3.0, LengthKind.ALIGNED)
    along_y = LengthConstraint("C2", a.id, b.id, 3.0, LengthKind.ALIGNED, direction=(0, 2, 0))
    assert along_x.is_satisfied(graph)
    assert along_y.error(graph) == pytest.approx(1.0)
    assert along_y.direction == (0.0, 1.0, 0.0)
    with pytest.raises(ValueError):
        LengthConstraint("C3", a.id, b.id, 1.0, LengthKind.ALIGNED, direction=(0, 0, 0))


def test_negative_length_rejected(pair):
    a, b = pair
    with pytest.raises(ValueError):
        LengthConstraint("C1", a.id, b.id, -1.0)


def test_fixed(graph, pair):
    a, _ = pair
    assert FixedConstraint("C1", a.id, (0, 0, 0)).is_satisfied(graph)
    off = FixedConstraint("C2", a.id, (0, 0, 1e-3))
    assert not off.is_satisfied(graph)
    assert off.is_satisfied(graph, tolerance=1e-2)


def test_horizontal_vertical(graph):
    a = graph.add_vertex(point2d=(0, 1))
    b = graph.add_vertex(point2d=(5, 1))
    c = graph.add_vertex(point2d=(0, 7))
    assert HorizontalConstraint("C1", a.id, b.id).is_satisfied(graph)
    assert VerticalConstraint("C2", a.id, c.id).is_satisfied(graph)
    assert VerticalConstraint("C3", a.id, b.id).error(graph) == pytest.approx(5.0)


def test_coincident(graph, pair):
    a, b = pair
    assert CoincidentConstraint("C1", a.id, b.id).error(graph) == pytest.approx(5.0)
    with pytest.raises(TopologyError):
        CoincidentConstraint("C2", a.id, a.id)


def test_vertex_without_geometry(graph):
    a = graph.add_vertex()
    b = graph.add_vertex(point2d=(0, 0))
    with pytest.raises(TopologyError):
        CoincidentConstraint("C1", a.id, b.id).error(graph)


def test_conflicts():
    five = LengthConstraint("C1", "V1", "V2", 5.0)
    six = LengthConstraint("C2", "V2", "V1", 6.0)
    aligned = LengthConstraint("C3", "V1", "V2", 6.0, LengthKind.ALIGNED)
    same = CoincidentConstraint("C4", "V1", "V2")
    assert five.conflicts_with(six)
    assert not five.conflicts_with(aligned)
    assert same.conflicts_with(five)
    assert find_conflicts([five, six, aligned, same]) == [
        ("C1", "C2"), ("C1", "C4"), ("C2", "C4"), ("C3", "C4"),
    ]
    assert FixedConstraint("C5", "V1", (0, 0)).conflicts_with(FixedConstraint("C6", "V1", (1, 0)))


def test_registry_and_equality():
    assert set(CONSTRAINT_TYPES) == {"fixed", "coincident", "length", "horizontal", "vertical"}
    assert LengthConstraint("C1", "V1", "V2", 2.0) == LengthConstraint("C1", "V1", "V2", 2.0)
    assert LengthConstraint("C1", "V1", "V2", 2.0) != LengthConstraint("C1", "V1", "V2", 3.0)
