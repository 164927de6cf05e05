"""
Mesh container and mesh operations.

Connectivity (vertex -> incident faces), face and vertex normals, bounds and
statistics. Meshes are plain triangle soups: vertices may be duplicated
across triangles unless the extractor was asked to weld them.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import numpy as np

from .errors import InternalInvariantError
from .vecmath import BBox, normalised

logger = logging.getLogger(__name__)

try:
    import trimesh
    TRIMESH_AVAILABLE = True
except ImportError:
    TRIMESH_AVAILABLE = False

YELLOW = (255, 255, 0, 255)


class IdAllocator:
    """
    Monotonic mesh identity source.

    Passed explicitly to the extractor; two allocators never share state.
    """

    def __init__(self, start: int = 0):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self) -> int:
        with self._lock:
            return next(self._counter)


@dataclass
class Mesh:
    """A triangle mesh with display attributes."""
    vertices: np.ndarray  # (N, 3) vertex positions
    faces: np.ndarray     # (M, 3) vertex indices per triangle
    id: int = 0
    name: str = ""
    color: Tuple[int, int, int, int] = YELLOW
    visible: bool = True

    def __post_init__(self):
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

    @property
    def n_vertices(self) -> int:
        return len(self.vertices)

    @property
    def n_faces(self) -> int:
        return len(self.faces)

    def validate(self) -> None:
        """Fail loudly on triangle indices that do not name a vertex."""
        if self.n_faces == 0:
            return
        lo = int(self.faces.min())
        hi = int(self.faces.max())
        if lo < 0 or hi >= self.n_vertices:
            raise InternalInvariantError(
                f"Mesh '{self.name}' has face indices {lo}..{hi} but {self.n_vertices} vertices"
            )

    def bbox(self) -> BBox:
        return calculate_bbox(self)

    def surface_area(self) -> float:
        if self.n_faces == 0:
            return 0.0
        tri = self.vertices[self.faces]
        areas = 0.5 * np.linalg.norm(np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0]), axis=1)
        return float(areas.sum())

    def to_trimesh(self) -> "trimesh.Trimesh":
        """Convert without trimesh's merging/cleanup so indices stay stable."""
        if not TRIMESH_AVAILABLE:
            raise ImportError("trimesh required for mesh conversion")
        return trimesh.Trimesh(vertices=self.vertices, faces=self.faces, process=False)


@dataclass(frozen=True, eq=False)
class Connectivity:
    """
    Vertex -> incident face adjacency in CSR form.

    The faces incident to vertex v are ``faces[offsets[v]:offsets[v + 1]]``,
    sorted and unique. Built once; if the mesh changes, build a new one.
    """
    offsets: np.ndarray
    faces: np.ndarray
    n_vertices: int
    n_faces: int

    def adjacent_faces(self, vertex: int) -> np.ndarray:
        if not 0 <= vertex < self.n_vertices:
            raise InternalInvariantError(f"Vertex {vertex} outside 0..{self.n_vertices - 1}")
        return self.faces[self.offsets[vertex]:self.offsets[vertex + 1]]

    def counts(self) -> np.ndarray:
        """Number of incident faces per vertex."""
        return np.diff(self.offsets)

    @property
    def total_memberships(self) -> int:
        return len(self.faces)

    def matches(self, mesh: Mesh) -> bool:
        return self.n_vertices == mesh.n_vertices and self.n_faces == mesh.n_faces


def calculate_bbox(mesh: Mesh) -> BBox:
    """Bounding box of the mesh vertices (invalid for an empty mesh)."""
    return BBox.of(mesh.vertices) if mesh.n_vertices else BBox.empty(3)


def build_connectivity(mesh: Mesh) -> Connectivity:
    """
    Record, for each vertex, the set of triangles that reference it.

    For meshes whose triangles name three distinct vertices the total
    membership count is exactly 3 * n_faces.
    """
    mesh.validate()
    n_verts = mesh.n_vertices
    n_faces = mesh.n_faces

    if n_faces == 0:
        offsets = np.zeros(n_verts + 1, dtype=np.int64)
        adjacent = np.empty(0, dtype=np.int64)
    else:
        pairs = np.column_stack([
            mesh.faces.reshape(-1),
            np.repeat(np.arange(n_faces, dtype=np.int64), 3),
        ])
        # Sorted by vertex then face; drops repeats from degenerate triangles
        pairs = np.unique(pairs, axis=0)
        counts = np.bincount(pairs[:, 0], minlength=n_verts)
        offsets = np.concatenate([[0], np.cumsum(counts)]).astype(np.int64)
        adjacent = pairs[:, 1].astype(np.int64)

    offsets.flags.writeable = False
    adjacent.flags.writeable = False
    logger.debug(f"Connectivity: {n_verts} vertices, {len(adjacent)} face memberships")
    return Connectivity(offsets=offsets, faces=adjacent, n_vertices=n_verts, n_faces=n_faces)


def calculate_face_normals(mesh: Mesh) -> np.ndarray:
    """
    Unit normal per triangle: normalised cross(v1 - v0, v2 - v0).

    Winding decides the sign. Degenerate (zero-area) triangles get the zero
    vector.
    """
    mesh.validate()
    if mesh.n_faces == 0:
        return np.zeros((0, 3))
    tri = mesh.vertices[mesh.faces]
    return normalised(np.cross(tri[:, 1] - tri[:, 0], tri[:, 2] - tri[:, 0]))


def calculate_vertex_normals(mesh: Mesh, connectivity: Optional[Connectivity] = None) -> np.ndarray:
    """
    Per-vertex normal: unweighted mean of incident face normals, renormalised.

    Vertices with no incident faces (or whose face normals cancel out) get
    the zero vector.

    Raises:
        InternalInvariantError: connectivity was built from a different mesh
    """
    if connectivity is None:
        connectivity = build_connectivity(mesh)
    if not connectivity.matches(mesh):
        raise InternalInvariantError(
            f"Stale connectivity: built for {connectivity.n_vertices} vertices/"
            f"{connectivity.n_faces} faces, mesh has {mesh.n_vertices}/{mesh.n_faces}"
        )

    face_normals = calculate_face_normals(mesh)
    counts = connectivity.counts()
    sums = np.zeros((mesh.n_vertices, 3))
    if connectivity.total_memberships:
        owners = np.repeat(np.arange(mesh.n_vertices), counts)
        np.add.at(sums, owners, face_normals[connectivity.faces])

    isolated = counts == 0
    if isolated.any():
        logger.warning(f"{int(isolated.sum())} vertices have no incident faces, using zero normals")

    mean = sums / np.maximum(counts, 1)[:, None]
    return normalised(mean)


def compute_mesh_stats(mesh: Mesh) -> Dict[str, Any]:
    """
    Compute mesh statistics.

    Args:
        mesh: Mesh to summarise

    Returns:
        Dictionary of mesh statistics
    """
    box = calculate_bbox(mesh)
    stats: Dict[str, Any] = {
        "mesh_id": mesh.id,
        "n_vertices": mesh.n_vertices,
        "n_faces": mesh.n_faces,
        "surface_area": mesh.surface_area(),
        "bounds": {
            "min": box.min.tolist() if box.is_valid() else None,
            "max": box.max.tolist() if box.is_valid() else None,
        },
        "extents": box.size().tolist() if box.is_valid() else None,
    }

    if TRIMESH_AVAILABLE and mesh.n_faces:
        # Welded copy so topology checks see shared edges
        tm = trimesh.Trimesh(vertices=mesh.vertices, faces=mesh.faces, process=True)
        stats.update({
            "is_watertight": bool(tm.is_watertight),
            "is_winding_consistent": bool(tm.is_winding_consistent),
            "euler_number": int(tm.euler_number),
            "volume": float(tm.volume) if tm.is_watertight else None,
        })
    return stats
