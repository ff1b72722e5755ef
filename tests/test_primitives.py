"""Tests for sphere and mesh primitives: grid sizing, hits, and texturing."""

from __future__ import annotations

import numpy as np
import pytest

from conftest import make_lit_sphere, make_quad
from tracer.primitives import MaterialType, MeshTriangle, Sphere


@pytest.fixture
def floor() -> MeshTriangle:
    """2 x 2 diffuse quad in the y=0 plane, facing +y."""
    return make_quad("floor", [[-1, 0, 1], [1, 0, 1], [1, 0, -1], [-1, 0, -1]], kd=0.8)


# ===================================================================
# SPHERE
# ===================================================================


class TestSphereGrid:
    def test_diffuse_resolution(self) -> None:
        sphere = make_lit_sphere(density=0.05)
        assert (sphere.v_res, sphere.h_res) == (9, 18), (
            f"Expected 9x18 cells, got {sphere.v_res}x{sphere.h_res}"
        )
        assert not sphere.has_angles

    def test_specular_resolution_and_angles(self) -> None:
        sphere = make_lit_sphere(density=0.05, material=MaterialType.REFLECTION_AND_REFRACTION)
        assert (sphere.v_res, sphere.h_res) == (36, 72)
        assert sphere.has_angles
        assert sphere.surfaces.v_angle_res == 4
        assert sphere.surfaces.h_angle_res == 18

    def test_tiny_sphere_keeps_both_poles(self) -> None:
        sphere = Sphere("dot", MaterialType.DIFFUSE_AND_GLOSSY, (0, 0, 0), 0.01, density=0.05)
        assert sphere.v_res >= 2 and sphere.h_res >= 1

    def test_nonpositive_radius_rejected(self) -> None:
        with pytest.raises(ValueError):
            Sphere("bad", MaterialType.DIFFUSE_AND_GLOSSY, (0, 0, 0), 0.0)

    def test_poles_and_cell_positions(self) -> None:
        sphere = make_lit_sphere()
        north, north_pt = sphere.surface_at(0, 0)
        south, south_pt = sphere.surface_at(sphere.v_res - 1, 0)
        np.testing.assert_allclose(north.normal, [0.0, 1.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(south.normal, [0.0, -1.0, 0.0], atol=1e-12)
        np.testing.assert_allclose(north_pt, [0.0, 1.0, -5.0], atol=1e-12)
        np.testing.assert_allclose(south_pt, [0.0, -1.0, -5.0], atol=1e-12)

    def test_cell_centers_lie_on_sphere(self) -> None:
        sphere = make_lit_sphere()
        for cell in sphere.surfaces:
            r = np.linalg.norm(cell.center - sphere.center)
            assert abs(r - 1.0) < 1e-12

    def test_local_world_points(self) -> None:
        sphere = make_lit_sphere()
        p = np.array([0.0, 1.0, 0.0])
        np.testing.assert_allclose(sphere.point_local_to_world(p), [0.0, 1.0, -5.0])
        np.testing.assert_allclose(sphere.point_world_to_local(np.array([0.0, 1.0, -5.0])), p)


class TestSphereIntersect:
    def test_hit_top_maps_to_north_cell(self) -> None:
        sphere = make_lit_sphere()
        hit = sphere.intersect(np.array([0.0, 5.0, -5.0]), np.array([0.0, -1.0, 0.0]))
        assert hit is not None
        assert abs(hit.distance - 4.0) < 1e-12
        assert hit.surface is sphere.surfaces.lookup(0, 0)
        assert hit.primitive is sphere
        assert hit.angle is None, "Diffuse spheres carry no angle buckets"

    def test_miss(self) -> None:
        sphere = make_lit_sphere()
        assert sphere.intersect(np.zeros(3), np.array([0.0, 1.0, 0.0])) is None

    def test_specular_hit_has_angle_bucket(self) -> None:
        sphere = make_lit_sphere(material=MaterialType.REFLECTION)
        hit = sphere.intersect(np.zeros(3), np.array([0.0, 0.0, -1.0]))
        assert hit is not None and hit.angle is not None
        assert hit.angle.v == 0, "Head-on view should land in the normal-most row"


# ===================================================================
# MESH
# ===================================================================


class TestMeshGrid:
    def test_resolution_from_edge_lengths(self) -> None:
        """Wall 20 x 20 at density 0.05: 400 * 0.05 = 20 per axis."""
        wall = make_quad(
            "wall", [[-10, -2, -14], [10, -2, -14], [10, 18, -14], [-10, 18, -14]]
        )
        assert (wall.v_res, wall.h_res) == (20, 20)
        np.testing.assert_allclose(wall.normal, [0.0, 0.0, 1.0])

    def test_h_follows_first_edge_v_follows_second(self) -> None:
        """A 20 x 14 mirror floor: h along x (40 cells), v along z (19 cells)."""
        mirror = make_quad(
            "mirror",
            [[-10, -2, 0], [10, -2, 0], [10, -2, -14], [-10, -2, -14]],
            material=MaterialType.REFLECTION,
        )
        assert mirror.h_res == 40, f"h_res should follow |v1-v0|^2, got {mirror.h_res}"
        assert mirror.v_res == 19, f"v_res should follow |v2-v0|^2, got {mirror.v_res}"
        assert mirror.has_angles

    def test_small_mesh_clamps_to_one_cell(self, floor: MeshTriangle) -> None:
        assert (floor.v_res, floor.h_res) == (1, 1)
        _, point = floor.surface_at(0, 0)
        np.testing.assert_allclose(point, [0.0, 0.0, 0.0], atol=1e-12)

    def test_grid_points_are_cell_centers(self) -> None:
        wall = make_quad("wall", [[0, 0, 0], [20, 0, 0], [20, 20, 0], [0, 20, 0]])
        _, p = wall.surface_at(3, 5)
        np.testing.assert_allclose(p, [5.5, 3.5, 0.0])
        corner_cell, corner = wall.surface_at(0, 0)
        np.testing.assert_allclose(corner, [0.5, 0.5, 0.0])
        np.testing.assert_allclose(corner_cell.center, corner)

    def test_cell_center_hit_maps_back_to_its_cell(self) -> None:
        wall = make_quad("wall", [[0, 0, 0], [20, 0, 0], [20, 20, 0], [0, 20, 0]])
        for v, h in ((0, 0), (0, 18), (18, 0), (19, 19), (7, 10)):
            cell, point = wall.surface_at(v, h)
            hit = wall.intersect(point + np.array([0.0, 0.0, 1.0]), np.array([0.0, 0.0, -1.0]))
            assert hit is not None, f"Ray at the center of cell ({v}, {h}) must hit"
            assert hit.surface is cell, f"Center of cell ({v}, {h}) mapped to another cell"

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"vertex_index": []},
            {"vertex_index": [0, 1, 9]},
            {"st_coordinates": [[0, 0]]},
        ],
    )
    def test_malformed_mesh_rejected(self, kwargs: dict) -> None:
        args = {
            "vertices": [[0, 0, 0], [1, 0, 0], [0, 1, 0]],
            "vertex_index": [0, 1, 2],
            "st_coordinates": [[0, 0], [1, 0], [0, 1]],
        }
        args.update(kwargs)
        with pytest.raises(ValueError):
            MeshTriangle("bad", MaterialType.DIFFUSE_AND_GLOSSY, **args)


class TestMeshIntersect:
    def test_hit_from_front(self, floor: MeshTriangle) -> None:
        hit = floor.intersect(np.array([0.3, 5.0, 0.2]), np.array([0.0, -1.0, 0.0]))
        assert hit is not None
        assert abs(hit.distance - 5.0) < 1e-12
        np.testing.assert_allclose(hit.point, [0.3, 0.0, 0.2], atol=1e-12)
        # st runs along (v1 - v0) and (v3 - v0)
        np.testing.assert_allclose(hit.st, [0.65, 0.4], atol=1e-12)

    def test_back_face_is_invisible(self, floor: MeshTriangle) -> None:
        assert floor.intersect(np.array([0.3, -5.0, 0.2]), np.array([0.0, 1.0, 0.0])) is None

    def test_hit_behind_origin_ignored(self, floor: MeshTriangle) -> None:
        assert floor.intersect(np.array([0.3, 5.0, 0.2]), np.array([0.0, 1.0, 0.0])) is None


class TestDiffuseColor:
    def test_checkerboard(self) -> None:
        wall = make_quad("wall", [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], map_ratio=5)
        a = wall.eval_diffuse_color(np.array([0.05, 0.05]))
        b = wall.eval_diffuse_color(np.array([0.15, 0.05]))
        np.testing.assert_allclose(a, [0.815, 0.235, 0.031])
        np.testing.assert_allclose(b, [0.937, 0.937, 0.231])
        np.testing.assert_allclose(wall.eval_diffuse_color(np.array([0.15, 0.15])), a)

    def test_solid_color_overrides_checkerboard(self) -> None:
        mesh = make_quad(
            "solid", [[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]],
            local_diffuse_color=(0.3843, 0.3569, 0.3412),
        )
        np.testing.assert_allclose(mesh.eval_diffuse_color(np.array([0.15, 0.05])), [0.3843, 0.3569, 0.3412])

    def test_sphere_uses_albedo(self) -> None:
        np.testing.assert_allclose(make_lit_sphere().eval_diffuse_color(np.zeros(2)), [0.6, 0.7, 0.8])


# ===================================================================
# RECORDER
# ===================================================================


class TestRecorder:
    def test_disabled_by_default(self, floor: MeshTriangle) -> None:
        assert floor.trace_link(0, 0) is None

    def test_enable_and_disable(self) -> None:
        sphere = make_lit_sphere()
        sphere.enable_recorder()
        links = sphere.trace_link(1, 2)
        assert links == []
        assert sphere.trace_link(1 + sphere.v_res, 2) is links
        sphere.disable_recorder()
        assert sphere.trace_link(1, 2) is None
