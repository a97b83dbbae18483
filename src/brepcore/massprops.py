"""Mass properties of solids.

Volume and centroid come from the divergence theorem applied to the
triangulated boundary: every triangle ``(p0, p1, p2)`` contributes the
signed volume ``dot(p0, cross(p1, p2)) / 6`` of the tetrahedron it spans
with the origin.  Each shell is integrated separately and normalised to a
positive volume, so inner shells subtract from the outer one regardless of
which way their faces point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from brepcore.errors import SolidValidationError
from brepcore.geom import BBox, Point3D, cross, dot, epsilon
from brepcore.tessellation import Mesh, tessellate_face

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MassProperties:
    """Integral properties of a solid."""

    volume: float
    surface_area: float
    centroid: Point3D
    mass: float
    bounding_box: Optional[BBox]


def shell_mesh(shell, resolver, tolerance: Optional[float] = None) -> Mesh:
    """Triangulate every face of ``shell`` into one mesh."""

    mesh = Mesh()
    for fid in shell.faces:
        mesh.extend(tessellate_face(resolver.face(fid), resolver, tolerance))
    return mesh


def mesh_volume_moment(mesh: Mesh) -> Tuple[float, Point3D]:
    """Signed volume and first moment (volume times centroid) of a closed mesh."""

    volume = 0.0
    mx = my = mz = 0.0
    for a, b, c in mesh.triangles:
        p0, p1, p2 = mesh.vertices[a], mesh.vertices[b], mesh.vertices[c]
        v = dot(p0, cross(p1, p2)) / 6.0
        volume += v
        # tetrahedron centroid is (0 + p0 + p1 + p2) / 4
        mx += v * (p0[0] + p1[0] + p2[0]) / 4.0
        my += v * (p0[1] + p1[1] + p2[1]) / 4.0
        mz += v * (p0[2] + p1[2] + p2[2]) / 4.0
    return volume, (mx, my, mz)


def compute_mass_properties(solid, resolver, tolerance: Optional[float] = None) -> MassProperties:
    """Integrate volume, area, centroid, mass and bounds of ``solid``."""

    if not solid.outer_shell:
        raise SolidValidationError(f"solid {solid.id} has no outer shell", {"solid": solid.id})
    volume = 0.0
    moment = [0.0, 0.0, 0.0]
    area = 0.0
    box = None
    for index, sid in enumerate(solid.shells()):
        mesh = shell_mesh(resolver.shell(sid), resolver, tolerance)
        v, m = mesh_volume_moment(mesh)
        if v < 0.0:
            v, m = -v, tuple(-c for c in m)
        sign = 1.0 if index == 0 else -1.0
        volume += sign * v
        for k in range(3):
            moment[k] += sign * m[k]
        area += mesh.area()
        if index == 0:
            # voids lie inside the outer shell
            box = mesh.bounding_box()

    if volume > epsilon:
        centroid = tuple(c / volume for c in moment)
    else:
        centroid = (0.0, 0.0, 0.0)
    logger.debug("solid %s: volume %.6g area %.6g", solid.id, volume, area)
    return MassProperties(volume=volume, surface_area=area, centroid=centroid,
                          mass=solid.material.mass_of(volume), bounding_box=box)


__all__ = ["MassProperties", "compute_mass_properties", "mesh_volume_moment", "shell_mesh"]
