"""
Tests for mesh containers, connectivity and normals.

Tests cover:
- Mesh validation and bounds
- Vertex -> face connectivity
- Face and vertex normals (unit length, degenerate cases)
- Mesh statistics
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cheese.common.errors import InternalInvariantError
from cheese.common.mesh_ops import (
    IdAllocator,
    Mesh,
    build_connectivity,
    calculate_bbox,
    calculate_face_normals,
    calculate_vertex_normals,
    compute_mesh_stats,
)
from cheese.common.voxel import create_sdf_grid
from cheese.marching import marching_cubes
from cheese.surfaces import Sphere


# ============== Fixtures ==============

@pytest.fixture
def tetrahedron():
    vertices = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=float)
    faces = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])
    return Mesh(vertices=vertices, faces=faces, id=3, name="tet")


@pytest.fixture
def sphere_mesh():
    field = create_sdf_grid(Sphere((0.02, 0.01, 0.03), 1.0), (-1.4, -1.4, -1.4), (1.4, 1.4, 1.4), (0.2, 0.2, 0.2))
    return marching_cubes(field)


class TestMesh:

    def test_coerces_arrays(self):
        mesh = Mesh(vertices=[[0, 0, 0], [1, 0, 0], [0, 1, 0]], faces=[[0, 1, 2]])
        assert mesh.vertices.dtype == np.float64
        assert mesh.faces.shape == (1, 3)

    def test_validate_rejects_bad_indices(self):
        mesh = Mesh(vertices=np.zeros((3, 3)), faces=[[0, 1, 3]])
        with pytest.raises(InternalInvariantError):
            mesh.validate()

    def test_bbox_and_area(self, tetrahedron):
        box = calculate_bbox(tetrahedron)
        np.testing.assert_array_equal(box.min, [0, 0, 0])
        np.testing.assert_array_equal(box.max, [1, 1, 1])
        assert tetrahedron.surface_area() == pytest.approx(1.5 + np.sqrt(3) / 2)

    def test_empty_mesh_bbox_invalid(self):
        assert not calculate_bbox(Mesh(vertices=np.empty((0, 3)), faces=np.empty((0, 3)))).is_valid()

    def test_id_allocator_thread_safe(self):
        from concurrent.futures import ThreadPoolExecutor

        allocator = IdAllocator()
        with ThreadPoolExecutor(max_workers=8) as pool:
            ids = list(pool.map(lambda _: allocator.next_id(), range(200)))
        assert sorted(ids) == list(range(200))


class TestConnectivity:

    def test_membership_total(self, sphere_mesh):
        conn = build_connectivity(sphere_mesh)
        assert conn.total_memberships == 3 * sphere_mesh.n_faces
        assert conn.counts().sum() == 3 * sphere_mesh.n_faces

    def test_adjacent_faces_reference_vertex(self, tetrahedron):
        conn = build_connectivity(tetrahedron)
        for v in range(tetrahedron.n_vertices):
            adjacent = conn.adjacent_faces(v)
            assert np.all(np.any(tetrahedron.faces[adjacent] == v, axis=1))
            expected = np.nonzero(np.any(tetrahedron.faces == v, axis=1))[0]
            np.testing.assert_array_equal(adjacent, expected)

    def test_soup_vertices_have_one_face(self, sphere_mesh):
        conn = build_connectivity(sphere_mesh)
        assert np.all(conn.counts() == 1)

    def test_arrays_are_read_only(self, tetrahedron):
        conn = build_connectivity(tetrahedron)
        with pytest.raises(ValueError):
            conn.faces[0] = 1

    def test_vertex_out_of_range(self, tetrahedron):
        conn = build_connectivity(tetrahedron)
        with pytest.raises(InternalInvariantError):
            conn.adjacent_faces(4)

    def test_empty_mesh(self):
        mesh = Mesh(vertices=np.zeros((2, 3)), faces=np.empty((0, 3)))
        conn = build_connectivity(mesh)
        assert conn.total_memberships == 0
        np.testing.assert_array_equal(conn.counts(), [0, 0])


class TestNormals:

    def test_face_normals(self, tetrahedron):
        normals = calculate_face_normals(tetrahedron)
        np.testing.assert_allclose(normals[0], [0, 0, -1])
        np.testing.assert_allclose(normals[3], np.ones(3) / np.sqrt(3))

    def test_degenerate_face_gets_zero_normal(self):
        mesh = Mesh(vertices=[[0, 0, 0], [1, 0, 0], [2, 0, 0]], faces=[[0, 1, 2]])
        np.testing.assert_array_equal(calculate_face_normals(mesh), [[0, 0, 0]])

    def test_vertex_normals_are_unit(self, sphere_mesh):
        normals = calculate_vertex_normals(sphere_mesh)
        lengths = np.linalg.norm(normals, axis=1)
        np.testing.assert_allclose(lengths[lengths > 0], 1.0, rtol=1e-12)

    def test_vertex_normals_radial_on_sphere(self, sphere_mesh):
        normals = calculate_vertex_normals(sphere_mesh)
        radial = sphere_mesh.vertices - np.array([0.02, 0.01, 0.03])
        radial /= np.linalg.norm(radial, axis=1, keepdims=True)
        dots = np.sum(normals * radial, axis=1)
        cosines = np.abs(dots)
        # Winding is consistent, so all clearly oriented normals agree in sign
        signs = np.sign(dots[cosines > 0.3])
        assert np.all(signs == signs[0])
        assert np.median(cosines) > 0.9

    def test_isolated_vertex_gets_zero_normal(self, tetrahedron):
        mesh = Mesh(vertices=np.vstack([tetrahedron.vertices, [[5, 5, 5]]]), faces=tetrahedron.faces)
        normals = calculate_vertex_normals(mesh)
        np.testing.assert_array_equal(normals[4], [0, 0, 0])
        assert np.linalg.norm(normals[0]) == pytest.approx(1.0)

    def test_stale_connectivity_rejected(self, tetrahedron):
        conn = build_connectivity(tetrahedron)
        grown = Mesh(vertices=np.vstack([tetrahedron.vertices, [[2, 2, 2]]]),
                     faces=np.vstack([tetrahedron.faces, [[1, 2, 4]]]))
        with pytest.raises(InternalInvariantError):
            calculate_vertex_normals(grown, conn)


class TestMeshStats:

    def test_basic_stats(self, tetrahedron):
        stats = compute_mesh_stats(tetrahedron)
        assert stats["mesh_id"] == 3
        assert stats["n_vertices"] == 4
        assert stats["n_faces"] == 4
        assert stats["bounds"]["max"] == [1.0, 1.0, 1.0]

    def test_topology_stats(self, tetrahedron):
        pytest.importorskip("trimesh")
        stats = compute_mesh_stats(tetrahedron)
        assert stats["is_watertight"]
        assert stats["euler_number"] == 2
        assert stats["volume"] == pytest.approx(1 / 6)

    def test_empty_mesh_stats(self):
        stats = compute_mesh_stats(Mesh(vertices=np.empty((0, 3)), faces=np.empty((0, 3))))
        assert stats["n_faces"] == 0
        assert stats["bounds"]["min"] is None
