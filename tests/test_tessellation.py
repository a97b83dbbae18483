"""Tests for curve, surface and face tessellation."""

import pytest

from brepcore.curves import Line, nurbs_circle
from brepcore.errors import TopologyError
from brepcore.geom import dist, dot
from brepcore.surfaces import NurbsSurface, planar_patch
from brepcore.tessellation import (
    Mesh,
    adaptive_tessellate_curve,
    adaptive_tessellate_surface,
    tessellate_curve,
    tessellate_face,
    tessellate_surface,
)


def _max_radius_error(points, center, radius):
    # chord midpoints are where a polyline strays furthest from the circle
    worst = 0.0
    for a, b in zip(points, points[1:]):
        mid = tuple(0.5 * (x + y) for x, y in zip(a, b))
        worst = max(worst, abs(dist(mid, center) - radius))
    return worst


def _loop(graph, pts):
    verts = [graph.add_vertex(point3d=p) for p in pts]
    edges = [graph.add_edge(a, b, curve3d=Line(a.point3d, b.point3d))
             for a, b in zip(verts, verts[1:] + verts[:1])]
    return graph.add_loop(edges)


class TestCurves:
    """Polylines from curves."""

    def test_line_gives_endpoints(self):
        assert tessellate_curve(Line((0, 0), (3, 0))) == [(0.0, 0.0), (3.0, 0.0)]

    def test_circle_within_tolerance(self):
        circle = nurbs_circle((0, 0), 5.0)
        for tol in (1e-1, 1e-2, 1e-3):
            pts = tessellate_curve(circle, tol, max_segments=4096)
            assert _max_radius_error(pts, (0, 0), 5.0) <= 2 * tol

    def test_tighter_tolerance_means_more_points(self):
        circle = nurbs_circle((0, 0), 1.0)
        assert len(tessellate_curve(circle, 1e-4)) > len(tessellate_curve(circle, 1e-2))

    def test_segment_bounds(self):
        circle = nurbs_circle((0, 0), 1.0)
        assert len(tessellate_curve(circle, 1e-9, max_segments=16)) == 17
        assert len(tessellate_curve(circle, 10.0, min_segments=6)) == 7

    def test_deterministic(self):
        circle = nurbs_circle((1, 1, 1), 2.0)
        assert tessellate_curve(circle, 1e-3) == tessellate_curve(circle, 1e-3)
        assert adaptive_tessellate_curve(circle, 1e-3) == adaptive_tessellate_curve(circle, 1e-3)

    def test_adaptive_circle(self):
        circle = nurbs_circle((0, 0), 5.0)
        pts = adaptive_tessellate_curve(circle, 1e-3, min_segments=4, max_segments=4096)
        assert pts[0] == pytest.approx(pts[-1])
        assert _max_radius_error(pts, (0, 0), 5.0) <= 2e-3

    def test_adaptive_respects_limit(self):
        circle = nurbs_circle((0, 0), 5.0)
        pts = adaptive_tessellate_curve(circle, 1e-9, min_segments=4, max_segments=10)
        assert len(pts) == 11

    def test_methods_delegate(self):
        circle = nurbs_circle((0, 0), 1.0)
        assert circle.tessellate(1e-3) == tessellate_curve(circle, 1e-3)
        patch = planar_patch((0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0))
        assert patch.tessellate().vertices == tessellate_surface(patch).vertices

    def test_bad_tolerance(self):
        with pytest.raises(ValueError):
            tessellate_curve(nurbs_circle((0, 0), 1.0), 0.0)


class TestSurfaces:
    """Triangle meshes from surfaces."""

    def test_planar_patch_two_triangles(self):
        mesh = tessellate_surface(planar_patch((0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0)))
        assert len(mesh) == 2
        assert mesh.area() == pytest.approx(1.0)
        assert all(n == pytest.approx((0.0, 0.0, 1.0)) for n in mesh.normals)

    def test_curved_surface_is_refined(self):
        grid = [
            [(0, 0, 0), (0, 1, 0), (0, 2, 0)],
            [(1, 0, 0), (1, 1, 2), (1, 2, 0)],
            [(2, 0, 0), (2, 1, 0), (2, 2, 0)],
        ]
        dome = NurbsSurface(grid, 2, 2)
        coarse = tessellate_surface(dome, 1e-1)
        fine = tessellate_surface(dome, 1e-3)
        assert len(fine) > len(coarse)
        adaptive = adaptive_tessellate_surface(dome, 1e-2)
        assert len(adaptive) > 2
        assert adaptive_tessellate_surface(dome, 1e-2).vertices == adaptive.vertices

    def test_division_limit(self):
        grid = [
            [(0, 0, 0), (0, 1, 0), (0, 2, 0)],
            [(1, 0, 0), (1, 1, 2), (1, 2, 0)],
            [(2, 0, 0), (2, 1, 0), (2, 2, 0)],
        ]
        mesh = tessellate_surface(NurbsSurface(grid, 2, 2), 1e-9, max_divisions=3)
        assert len(mesh) == 2 * 3 * 3

    def test_mesh_arrays(self):
        mesh = tessellate_surface(planar_patch((0, 0, 0), (1, 0, 0), (0, 1, 0), (1, 1, 0)))
        verts, tris = mesh.as_arrays()
        assert verts.shape == (4, 3)
        assert tris.shape == (2, 3)


class TestFaces:
    """Planar faces through earcut."""

    def test_square_with_hole(self, graph):
        outer = _loop(graph, [(0, 0, 0), (4, 0, 0), (4, 4, 0), (0, 4, 0)])
        hole = _loop(graph, [(1, 1, 0), (1, 3, 0), (3, 3, 0), (3, 1, 0)])
        face = graph.add_face(outer, [hole])
        mesh = tessellate_face(face, graph)
        assert mesh.area() == pytest.approx(12.0)
        assert len(mesh.vertices) == 8
        for a, b, c in mesh.triangles:
            p0, p1, p2 = mesh.vertices[a], mesh.vertices[b], mesh.vertices[c]
            # counter-clockwise about +z
            assert (p1[0] - p0[0]) * (p2[1] - p0[1]) - (p1[1] - p0[1]) * (p2[0] - p0[0]) > 0

    def test_sense_reverses_winding(self, graph):
        loop = _loop(graph, [(0, 0, 0), (1, 0, 0), (1, 1, 0), (0, 1, 0)])
        face = graph.add_face(loop, sense=False)
        mesh = tessellate_face(face, graph)
        assert mesh.area() == pytest.approx(1.0)
        assert all(dot(n, (0, 0, 1)) == pytest.approx(-1.0) for n in mesh.normals)

    def test_curved_boundary(self, graph):
        v = graph.add_vertex(point3d=(1, 0, 0))
        circle = nurbs_circle((0, 0, 0), 1.0)
        edge = graph.add_edge(v, v, curve3d=circle)
        face = graph.add_face(graph.add_loop([edge]))
        mesh = tessellate_face(face, graph, 1e-4)
        assert mesh.area() == pytest.approx(3.14159265, rel=1e-3)

    def test_non_planar_face_rejected(self, graph):
        loop = _loop(graph, [(0, 0, 0), (1, 0, 0), (1, 1, 1), (0, 1, 0)])
        face = graph.add_face(loop)
        with pytest.raises(TopologyError):
            tessellate_face(face, graph)

    def test_empty_mesh(self):
        assert Mesh().bounding_box() is None
        assert Mesh().area() == 0.0
