"""
Data I/O utilities.

Persists the in-memory artifacts of a run for inspection:
- meshes via trimesh (format chosen by suffix) with a JSON metadata sidecar
- mesh slices as a CSV table, one row per segment
- grid slice rasters as PNG images
"""

import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

import numpy as np

from .config import MeshMetadata
from .mesh_ops import Mesh

logger = logging.getLogger(__name__)

try:
    import pandas as pd
    PANDAS_AVAILABLE = True
except ImportError:
    PANDAS_AVAILABLE = False
    logger.warning("pandas not available")

try:
    import trimesh
    TRIMESH_AVAILABLE = True
except ImportError:
    TRIMESH_AVAILABLE = False
    logger.warning("trimesh not available")

try:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt
    from matplotlib.collections import LineCollection
    MATPLOTLIB_AVAILABLE = True
except ImportError:
    MATPLOTLIB_AVAILABLE = False
    logger.warning("matplotlib not available")

SLICE_COLUMNS = ["slice", "axis", "position", "segment", "u0", "v0", "u1", "v1",
                 "x0", "y0", "z0", "x1", "y1", "z1"]


def save_mesh(mesh: Mesh, path: Path, metadata: MeshMetadata) -> None:
    """
    Save mesh with metadata sidecar.

    Args:
        mesh: Mesh to export
        path: Output path; the suffix picks the format (.glb, .stl, .ply, ...)
        metadata: MeshMetadata object (saved as .json sidecar)
    """
    if not TRIMESH_AVAILABLE:
        raise ImportError("trimesh required for saving meshes")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    mesh.to_trimesh().export(str(path))
    logger.info(f"Saved mesh: {path} ({metadata.n_vertices} verts, {metadata.n_triangles} tris)")

    meta_path = path.with_suffix('.json')
    metadata.save(meta_path)
    logger.info(f"Saved metadata: {meta_path}")


def load_mesh(path: Path) -> Tuple[Mesh, Optional[MeshMetadata]]:
    """
    Load mesh and its metadata sidecar.

    Args:
        path: Path to mesh file

    Returns:
        Tuple of (mesh, metadata) - metadata may be None if not found
    """
    if not TRIMESH_AVAILABLE:
        raise ImportError("trimesh required for loading meshes")

    path = Path(path)
    tm = trimesh.load_mesh(str(path), process=False)

    meta_path = path.with_suffix('.json')
    metadata = None
    if meta_path.exists():
        with open(meta_path) as f:
            metadata = MeshMetadata.from_dict(json.load(f))

    mesh = Mesh(
        vertices=np.asarray(tm.vertices),
        faces=np.asarray(tm.faces),
        id=metadata.mesh_id if metadata else 0,
        name=metadata.name if metadata else path.stem,
    )
    return mesh, metadata


def slices_to_dataframe(slices: List) -> "pd.DataFrame":
    """Flatten PlanarSlice objects into one row per segment."""
    if not PANDAS_AVAILABLE:
        raise ImportError("pandas required for slice tables")

    frames = []
    for s in slices:
        k = s.n_segments
        if k == 0:
            continue
        seg2 = s.segments.reshape(k, 4)
        seg3 = s.segments3d.reshape(k, 6)
        frame = pd.DataFrame(np.hstack([seg2, seg3]), columns=SLICE_COLUMNS[4:])
        frame.insert(0, "segment", np.arange(k))
        frame.insert(0, "position", s.position)
        frame.insert(0, "axis", s.axis.name.lower())
        frame.insert(0, "slice", s.index)
        frames.append(frame)

    if not frames:
        return pd.DataFrame(columns=SLICE_COLUMNS)
    return pd.concat(frames, ignore_index=True)


def save_slices_csv(slices: List, path: Path) -> int:
    """
    Save mesh slices as CSV.

    Returns:
        Number of segment rows written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = slices_to_dataframe(slices)
    df.to_csv(path, index=False)
    logger.info(f"Saved {len(df)} segments from {len(slices)} slices: {path}")
    return len(df)


def save_raster_png(image, path: Path) -> None:
    """Write a RasterImage pixel-for-pixel as an RGBA PNG."""
    if not MATPLOTLIB_AVAILABLE:
        raise ImportError("matplotlib required for saving rasters")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    # Row 0 of the raster is grid row 0, so keep it at the bottom
    plt.imsave(str(path), image.data, origin='lower')
    logger.info(f"Saved raster: {path} ({image.width}x{image.height})")


def render_slice_png(planar_slice, path: Path, dpi: int = 150) -> None:
    """Plot the segments of one mesh slice."""
    if not MATPLOTLIB_AVAILABLE:
        raise ImportError("matplotlib required for rendering slices")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    u_axis, v_axis = [("x", "y", "z")[(planar_slice.axis.value + k) % 3] for k in (1, 2)]
    fig, ax = plt.subplots(figsize=(8, 8))
    ax.add_collection(LineCollection(planar_slice.segments, colors="black", linewidths=0.8))
    ax.autoscale()
    ax.set_xlabel(u_axis)
    ax.set_ylabel(v_axis)
    ax.set_title(f"Slice {planar_slice.index}: {planar_slice.axis.name} = {planar_slice.position:.3f}")
    ax.set_aspect('equal')
    ax.grid(True, alpha=0.3)
    fig.savefig(str(path), dpi=dpi)
    plt.close(fig)
    logger.info(f"Saved slice plot: {path} ({planar_slice.n_segments} segments)")
