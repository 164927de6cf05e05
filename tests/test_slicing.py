"""
Tests for planar slicing of meshes and scalar fields.

Tests cover:
- Triangle / plane intersection cases
- Plane placement, projection and segment geometry
- Slicing errors (count, axis, empty or flat meshes)
- Raster layout per axis, normalization modes and fallback color
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cheese.common.config import Axis, NormalizationMode
from cheese.common.errors import ConfigurationError, DegenerateGeometryError
from cheese.common.mesh_ops import Mesh
from cheese.common.voxel import ScalarField, create_sdf_grid
from cheese.marching import marching_cubes
from cheese.slicing import (
    FALLBACK_COLOR,
    RasterImage,
    intersect_triangle_plane,
    projection_axes,
    slice_grid,
    slice_mesh,
)
from cheese.surfaces import Sphere


# ============== Fixtures ==============

@pytest.fixture
def unit_cube():
    vertices = np.array([
        [0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0],
        [0, 0, 1], [1, 0, 1], [1, 1, 1], [0, 1, 1],
    ], dtype=float)
    faces = np.array([
        [0, 2, 1], [0, 3, 2],   # z = 0
        [4, 5, 6], [4, 6, 7],   # z = 1
        [0, 1, 5], [0, 5, 4],   # y = 0
        [3, 7, 6], [3, 6, 2],   # y = 1
        [0, 4, 7], [0, 7, 3],   # x = 0
        [1, 2, 6], [1, 6, 5],   # x = 1
    ])
    return Mesh(vertices=vertices, faces=faces, name="cube")


@pytest.fixture
def flat_square():
    vertices = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=float)
    return Mesh(vertices=vertices, faces=[[0, 1, 2], [0, 2, 3]], name="square")


@pytest.fixture
def ramp_field():
    """Value x + 10 y + 100 z on a 4 x 3 x 2 lattice."""
    sx, sy, sz = 4, 3, 2
    z, y, x = np.meshgrid(np.arange(sz), np.arange(sy), np.arange(sx), indexing="ij")
    return ScalarField(x + 10 * y + 100 * z, size=(sx, sy, sz), spacing=(1, 1, 1), origin=(0, 0, 0))


def segment_lengths(planar_slice):
    return np.linalg.norm(planar_slice.segments[:, 1] - planar_slice.segments[:, 0], axis=1)


class TestIntersectTrianglePlane:

    def test_two_edges_cut(self):
        a, b, c = np.array([0, 0, 0.]), np.array([1, 0, 0.]), np.array([1, 0, 1.])
        start, end = intersect_triangle_plane([0, 0, 0.25], [0, 0, 1], a, b, c)
        np.testing.assert_allclose(start, [1, 0, 0.25])
        np.testing.assert_allclose(end, [0.25, 0, 0.25])

    def test_no_crossing(self):
        a, b, c = np.array([0, 0, 1.]), np.array([1, 0, 2.]), np.array([0, 1, 3.])
        assert intersect_triangle_plane([0, 0, 0], [0, 0, 1], a, b, c) is None

    def test_vertex_on_plane_is_not_a_crossing(self):
        a, b, c = np.array([0, 0, 0.]), np.array([1, 0, -1.]), np.array([0, 1, 1.])
        assert intersect_triangle_plane([0, 0, 0], [0, 0, 1], a, b, c) is None

    def test_oblique_plane(self):
        a, b, c = np.array([0, 0, 0.]), np.array([2, 0, 0.]), np.array([0, 2, 0.])
        normal = np.array([1, 1, 0.]) / np.sqrt(2)
        start, end = intersect_triangle_plane([0.5, 0.5, 0], normal, a, b, c)
        # Edges ca and ab are cut, so the segment runs from ca to ab
        np.testing.assert_allclose(start, [0, 1, 0], atol=1e-12)
        np.testing.assert_allclose(end, [1, 0, 0], atol=1e-12)


class TestSliceMesh:

    def test_returns_requested_count(self, unit_cube):
        slices = slice_mesh(unit_cube, 4, Axis.Z)
        assert len(slices) == 4
        assert [s.index for s in slices] == [0, 1, 2, 3]
        np.testing.assert_allclose([s.position for s in slices], [0, 0.25, 0.5, 0.75])

    def test_plane_through_minimum_is_empty(self, unit_cube):
        assert slice_mesh(unit_cube, 4, "z")[0].n_segments == 0

    def test_cube_cross_section_is_perimeter(self, unit_cube):
        for axis in Axis:
            for s in slice_mesh(unit_cube, 4, axis)[1:]:
                assert s.n_segments == 8
                assert segment_lengths(s).sum() == pytest.approx(4.0)
                np.testing.assert_allclose(s.box.min, [0, 0], atol=1e-12)
                np.testing.assert_allclose(s.box.max, [1, 1], atol=1e-12)

    def test_endpoints_lie_on_plane(self, unit_cube):
        for s in slice_mesh(unit_cube, 5, Axis.Y):
            np.testing.assert_allclose(s.segments3d[:, :, 1], s.position)

    def test_projection_order(self, unit_cube):
        assert projection_axes(Axis.X) == (1, 2)
        assert projection_axes(Axis.Y) == (2, 0)
        assert projection_axes(Axis.Z) == (0, 1)
        s = slice_mesh(unit_cube, 4, Axis.Y)[2]
        np.testing.assert_allclose(s.segments, s.segments3d[:, :, [2, 0]])

    def test_matches_scalar_intersection(self, unit_cube):
        s = slice_mesh(unit_cube, 4, Axis.Z)[1]
        expected = []
        for face in unit_cube.faces:
            a, b, c = unit_cube.vertices[face]
            seg = intersect_triangle_plane([0, 0, s.position], [0, 0, 1], a, b, c)
            if seg is not None:
                expected.append(seg)
        np.testing.assert_allclose(s.segments3d, np.array(expected))

    def test_serial_and_parallel_agree(self):
        field = create_sdf_grid(Sphere((0.03, 0.01, 0.02), 1.0), (-1.5, -1.5, -1.5), (1.5, 1.5, 1.5), (0.2, 0.2, 0.2))
        mesh = marching_cubes(field)
        serial = slice_mesh(mesh, 6, Axis.X, workers=1)
        parallel = slice_mesh(mesh, 6, Axis.X, workers=3)
        for a, b in zip(serial, parallel):
            np.testing.assert_array_equal(a.segments3d, b.segments3d)

    def test_sphere_slices_are_circles(self):
        field = create_sdf_grid(Sphere((0.03, 0.01, 0.02), 1.0), (-1.5, -1.5, -1.5), (1.5, 1.5, 1.5), (0.1, 0.1, 0.1))
        mesh = marching_cubes(field)
        s = slice_mesh(mesh, 2, Axis.Z)[1]
        radius = np.sqrt(max(1.0 - (s.position - 0.02) ** 2, 0.0))
        expected = 2 * np.pi * radius
        assert segment_lengths(s).sum() == pytest.approx(expected, rel=0.03)

    @pytest.mark.parametrize("count", [0, -3, 2.5])
    def test_invalid_count(self, unit_cube, count):
        with pytest.raises(ConfigurationError):
            slice_mesh(unit_cube, count, Axis.Z)

    def test_invalid_axis(self, unit_cube):
        with pytest.raises(ConfigurationError):
            slice_mesh(unit_cube, 3, "w")

    def test_empty_mesh(self):
        with pytest.raises(DegenerateGeometryError):
            slice_mesh(Mesh(vertices=np.empty((0, 3)), faces=np.empty((0, 3))), 3)

    def test_zero_extent_along_axis(self, flat_square):
        with pytest.raises(DegenerateGeometryError):
            slice_mesh(flat_square, 3, Axis.Z)

    def test_flat_mesh_along_other_axis(self, flat_square):
        slices = slice_mesh(flat_square, 2, Axis.X)
        assert slices[1].n_segments == 2
        assert segment_lengths(slices[1]).sum() == pytest.approx(1.0)


class TestRasterImage:

    def test_indexing(self):
        image = RasterImage.filled(3, 2, (1, 2, 3, 4))
        assert image.data.shape == (2, 3, 4)
        assert image.linear_index(2, 1) == 5
        assert image.at(2, 1) == (1, 2, 3, 4)
        assert image.pixels.shape == (6, 4)


class TestSliceGrid:

    @staticmethod
    def expected_gray(value, lo=0.0, hi=123.0):
        return int(255.0 * (value - lo) / (hi - lo))

    def test_z_layout(self, ramp_field):
        image = slice_grid(ramp_field, Axis.Z, 1)
        assert (image.width, image.height) == (4, 3)
        for x in range(4):
            for y in range(3):
                assert image.at(x, y)[0] == self.expected_gray(x + 10 * y + 100)

    def test_x_layout(self, ramp_field):
        image = slice_grid(ramp_field, "x", 1)
        assert (image.width, image.height) == (3, 2)
        for x in range(3):
            for y in range(2):
                assert image.at(x, y)[0] == self.expected_gray(1 + 10 * x + 100 * y)

    def test_y_layout(self, ramp_field):
        image = slice_grid(ramp_field, 1, 2)
        assert (image.width, image.height) == (4, 2)
        for x in range(4):
            for y in range(2):
                assert image.at(x, y)[0] == self.expected_gray(x + 20 + 100 * y)

    def test_grayscale_with_opaque_alpha(self, ramp_field):
        image = slice_grid(ramp_field, Axis.Z, 0)
        np.testing.assert_array_equal(image.data[:, :, 0], image.data[:, :, 1])
        np.testing.assert_array_equal(image.data[:, :, 0], image.data[:, :, 2])
        assert np.all(image.data[:, :, 3] == 255)
        assert image.at(0, 0) == (0, 0, 0, 255)

    def test_global_extremes(self, ramp_field):
        assert slice_grid(ramp_field, Axis.Z, 1).at(3, 2) == (255, 255, 255, 255)

    def test_local_uses_plane_range(self, ramp_field):
        image = slice_grid(ramp_field, Axis.Z, 1, NormalizationMode.LOCAL)
        assert image.at(0, 0)[0] == 0
        assert image.at(3, 2)[0] == 255
        assert image.at(1, 1)[0] == self.expected_gray(111, lo=100, hi=123)

    def test_constant_field_gives_fallback(self):
        field = ScalarField(np.full(27, 3.5), size=(3, 3, 3), spacing=(1, 1, 1), origin=(0, 0, 0))
        for axis in Axis:
            image = slice_grid(field, axis, 1)
            assert np.all(image.pixels == FALLBACK_COLOR)

    def test_constant_plane_local_fallback(self):
        sx, sy, sz = 3, 3, 4
        z = np.meshgrid(np.arange(sz), np.arange(sy), np.arange(sx), indexing="ij")[0]
        field = ScalarField(z, size=(sx, sy, sz), spacing=(1, 1, 1), origin=(0, 0, 0))
        local = slice_grid(field, Axis.Z, 2, "local")
        assert np.all(local.pixels == FALLBACK_COLOR)
        global_ = slice_grid(field, Axis.Z, 2, "global")
        assert np.all(global_.data[:, :, 0] == int(255.0 * 2 / 3))

    def test_index_out_of_range(self, ramp_field):
        with pytest.raises(ConfigurationError):
            slice_grid(ramp_field, Axis.Z, 2)
        with pytest.raises(ConfigurationError):
            slice_grid(ramp_field, Axis.X, -1)
