"""Shared builders for topology tests."""

import pytest

from brepcore.curves import Line
from brepcore.store import TopologyGraph

# outward, counter-clockwise corner cycles; corner index = x + 2*y + 4*z
BOX_FACES = (
    (0, 2, 3, 1),  # bottom, -z
    (4, 5, 7, 6),  # top, +z
    (0, 1, 5, 4),  # front, -y
    (2, 6, 7, 3),  # back, +y
    (0, 4, 6, 2),  # left, -x
    (1, 3, 7, 5),  # right, +x
)


def build_box_shell(graph, origin=(0.0, 0.0, 0.0), size=(1.0, 1.0, 1.0)):
    """Add an axis aligned box shell with outward faces to ``graph``."""

    ox, oy, oz = origin
    sx, sy, sz = size
    verts = []
    for i in range(8):
        p = (ox + sx * (i & 1), oy + sy * ((i >> 1) & 1), oz + sz * ((i >> 2) & 1))
        verts.append(graph.add_vertex(point3d=p))

    edges = {}

    def edge(a, b):
        key = (min(a, b), max(a, b))
        if key not in edges:
            va, vb = verts[key[0]], verts[key[1]]
            edges[key] = graph.add_edge(va, vb, curve3d=Line(va.point3d, vb.point3d))
        return edges[key].use(reverse=a > b)

    faces = []
    for cycle in BOX_FACES:
        uses = [edge(a, b) for a, b in zip(cycle, cycle[1:] + cycle[:1])]
        loop = graph.add_loop(uses)
        faces.append(graph.add_face(loop))
    return graph.add_shell(faces)


@pytest.fixture
def graph():
    return TopologyGraph()


@pytest.fixture
def box_shell(graph):
    return build_box_shell(graph)


@pytest.fixture
def make_box(graph):
    def _make(origin=(0.0, 0.0, 0.0), size=(1.0, 1.0, 1.0)):
        return build_box_shell(graph, origin, size)
    return _make
