"""
Tests for configuration and artifact export.

Tests cover:
- Config defaults, validation and JSON round trip
- Axis parsing
- Mesh export / import with metadata sidecar
- Slice CSV and raster PNG output
"""

import json

import pytest
import numpy as np
from pathlib import Path
import sys

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cheese.common.config import (
    Axis,
    Config,
    MeshMetadata,
    NormalizationMode,
    SurfaceVariant,
    VertexPolicy,
)
from cheese.common.errors import ConfigurationError
from cheese.common.mesh_ops import Mesh
from cheese.slicing import RasterImage, slice_mesh


# ============== Fixtures ==============

@pytest.fixture
def tetrahedron():
    vertices = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1]], dtype=float)
    faces = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])
    return Mesh(vertices=vertices, faces=faces, id=9, name="tet")


@pytest.fixture
def metadata(tetrahedron):
    return MeshMetadata(
        mesh_id=tetrahedron.id,
        name=tetrahedron.name,
        n_vertices=tetrahedron.n_vertices,
        n_triangles=tetrahedron.n_faces,
        vertex_policy="duplicate",
        surface_variant="exact",
        surface_area=tetrahedron.surface_area(),
        bbox_min=(0.0, 0.0, 0.0),
        bbox_max=(1.0, 1.0, 1.0),
        generation_params={"seed": 1},
    )


class TestConfig:

    def test_defaults(self):
        config = Config()
        assert config.domain_min == (-50.0, -50.0, -5.0)
        assert config.domain_max == (50.0, 50.0, 30.0)
        assert config.spacing == (0.4, 0.4, 0.4)
        assert config.pores_count == 256
        assert config.pores_radius == 2.0
        assert config.cylinder_height == 20.0
        assert config.cylinder_radius == 40.0
        assert config.slice_axis is Axis.Z
        assert config.slices_count == 20
        config.validate()

    def test_round_trip(self, tmp_path):
        config = Config(
            surface_variant=SurfaceVariant.APPROXIMATE,
            vertex_policy=VertexPolicy.DEDUPLICATED,
            normalization=NormalizationMode.LOCAL,
            slice_axis=Axis.X,
            seed=11,
            workers=2,
            output_dir=tmp_path / "out",
        )
        path = tmp_path / "config.json"
        config.save(path)
        with open(path) as f:
            raw = json.load(f)
        assert raw["slice_axis"] == "x"

        loaded = Config.from_json(path)
        assert loaded == config

    @pytest.mark.parametrize("overrides", [
        {"x_range": (0.0, 1.0, 0.0)},
        {"z_range": (5.0, 5.0, 0.1)},
        {"slices_count": 0},
        {"pores_radius": -1.0},
        {"pores_count": -2},
        {"workers": 0},
    ])
    def test_validate_rejects(self, overrides):
        with pytest.raises(ConfigurationError):
            Config(**overrides).validate()


class TestAxis:

    @pytest.mark.parametrize("value,expected", [
        ("x", Axis.X), ("Y", Axis.Y), (" z ", Axis.Z), (0, Axis.X), (2, Axis.Z), (Axis.Y, Axis.Y),
    ])
    def test_parse(self, value, expected):
        assert Axis.parse(value) is expected

    @pytest.mark.parametrize("value", ["w", 3, -1, None])
    def test_parse_rejects(self, value):
        with pytest.raises(ConfigurationError):
            Axis.parse(value)


class TestMeshIO:

    def test_save_and_load(self, tmp_path, tetrahedron, metadata):
        pytest.importorskip("trimesh")
        from cheese.common.io import load_mesh, save_mesh

        path = tmp_path / "meshes" / "tet.ply"
        save_mesh(tetrahedron, path, metadata)
        assert path.exists()
        assert path.with_suffix(".json").exists()

        mesh, loaded = load_mesh(path)
        assert mesh.n_vertices == 4
        assert mesh.n_faces == 4
        assert mesh.id == 9
        assert loaded.surface_area == pytest.approx(metadata.surface_area)
        assert loaded.bbox_max == (1.0, 1.0, 1.0)
        assert loaded.generation_params == {"seed": 1}

    def test_load_without_sidecar(self, tmp_path, tetrahedron):
        pytest.importorskip("trimesh")
        from cheese.common.io import load_mesh

        path = tmp_path / "bare.stl"
        tetrahedron.to_trimesh().export(str(path))
        mesh, loaded = load_mesh(path)
        assert loaded is None
        assert mesh.name == "bare"
        assert mesh.n_faces == 4


class TestSliceAndRasterIO:

    def test_slices_csv(self, tmp_path, tetrahedron):
        pd = pytest.importorskip("pandas")
        from cheese.common.io import save_slices_csv

        slices = slice_mesh(tetrahedron, 3, Axis.Z)
        n_rows = save_slices_csv(slices, tmp_path / "slices.csv")
        df = pd.read_csv(tmp_path / "slices.csv")

        assert n_rows == len(df) == sum(s.n_segments for s in slices)
        assert set(df["axis"]) == {"z"}
        np.testing.assert_allclose(df["z0"], df["position"])
        np.testing.assert_allclose(df["u0"], df["x0"])
        np.testing.assert_allclose(df["v1"], df["y1"])

    def test_empty_slices_csv_has_header(self, tmp_path, tetrahedron):
        pd = pytest.importorskip("pandas")
        from cheese.common.io import SLICE_COLUMNS, save_slices_csv

        slices = slice_mesh(tetrahedron, 1, Axis.Z)
        assert save_slices_csv(slices, tmp_path / "empty.csv") == 0
        assert list(pd.read_csv(tmp_path / "empty.csv").columns) == SLICE_COLUMNS

    def test_raster_png(self, tmp_path):
        pytest.importorskip("matplotlib")
        import matplotlib.pyplot as plt
        from cheese.common.io import save_raster_png

        image = RasterImage.filled(5, 3, (255, 255, 255, 255))
        image.data[0, 0, :3] = 0
        path = tmp_path / "raster.png"
        save_raster_png(image, path)

        read = plt.imread(str(path))
        assert read.shape == (3, 5, 4)

    def test_slice_plot(self, tmp_path, tetrahedron):
        pytest.importorskip("matplotlib")
        from cheese.common.io import render_slice_png

        s = slice_mesh(tetrahedron, 3, Axis.Z)[1]
        path = tmp_path / "plot.png"
        render_slice_png(s, path, dpi=50)
        assert path.exists() and path.stat().st_size > 0
