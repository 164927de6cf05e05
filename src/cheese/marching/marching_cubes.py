"""
Table-driven marching cubes.

For every cube of 8 neighbouring samples:
1. Classify corners as inside (value < isolevel) and pack them into an
   8-bit cube index (bit i <-> corner i)
2. EDGE_TABLE[cube_index] == 0 means no crossing: skip the cube
3. Interpolate the crossing point on each marked edge
4. Emit one triangle per edge triple listed in TRI_TABLE[cube_index]

The classification and interpolation are vectorised over all cubes, but
vertices and faces come out in exactly the order of a sequential
z / y / x traversal with one new vertex per triangle corner.
"""

import logging
import time
from typing import Optional, Tuple, Union

import numpy as np

from ..common.config import VertexPolicy
from ..common.errors import InternalInvariantError
from ..common.mesh_ops import IdAllocator, Mesh, YELLOW
from ..common.vecmath import lerp_isolevel_many
from ..common.voxel import ScalarField
from .tables import CORNER_OFFSETS, EDGE_CORNERS, EDGE_TABLE, TRI_TABLE

logger = logging.getLogger(__name__)

try:
    from scipy.spatial import cKDTree
    from scipy.sparse import coo_matrix
    from scipy.sparse.csgraph import connected_components
    SCIPY_AVAILABLE = True
except ImportError:
    SCIPY_AVAILABLE = False

_EDGE_TABLE = np.array(EDGE_TABLE, dtype=np.int32)
_TRI_TABLE = np.array(TRI_TABLE, dtype=np.int8)
_EDGE_CORNERS = np.array(EDGE_CORNERS, dtype=np.int64)
_CORNER_OFFSETS = np.array(CORNER_OFFSETS, dtype=np.int64)
for _table in (_EDGE_TABLE, _TRI_TABLE, _EDGE_CORNERS, _CORNER_OFFSETS):
    _table.flags.writeable = False


def cube_indices(field: ScalarField, isolevel: float = 0.0) -> np.ndarray:
    """
    8-bit configuration of every cube, shape (size_z-1, size_y-1, size_x-1).
    """
    data = field.data
    sz, sy, sx = data.shape
    index = np.zeros((sz - 1, sy - 1, sx - 1), dtype=np.int32)
    for bit, (dx, dy, dz) in enumerate(CORNER_OFFSETS):
        corner = data[dz:dz + sz - 1, dy:dy + sy - 1, dx:dx + sx - 1]
        index |= (corner < isolevel).astype(np.int32) << bit
    return index


def weld_vertices(
    vertices: np.ndarray,
    faces: np.ndarray,
    tolerance: float
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Merge vertices closer than `tolerance`, keeping first-occurrence order.

    Neighbouring cubes interpolate a shared edge from opposite ends, so
    coincident vertices can differ in the last bits; a KD-tree radius query
    plus connected components groups them regardless.

    Returns:
        Tuple of (welded_vertices, remapped_faces)
    """
    if not SCIPY_AVAILABLE:
        raise ImportError("scipy required for vertex welding")

    n = len(vertices)
    if n == 0:
        return vertices, faces

    pairs = cKDTree(vertices).query_pairs(r=tolerance, output_type='ndarray')
    if len(pairs) == 0:
        return vertices, faces

    graph = coo_matrix((np.ones(len(pairs)), (pairs[:, 0], pairs[:, 1])), shape=(n, n))
    n_groups, labels = connected_components(graph, directed=False)

    first = np.full(n_groups, n, dtype=np.int64)
    np.minimum.at(first, labels, np.arange(n))
    order = np.argsort(first)
    rank = np.empty(n_groups, dtype=np.int64)
    rank[order] = np.arange(n_groups)

    welded = vertices[first[order]]
    remapped = rank[labels][faces]
    logger.info(f"Welded vertices: {n}→{len(welded)}")
    return welded, remapped


def marching_cubes(
    field: ScalarField,
    isolevel: float = 0.0,
    vertex_policy: Union[VertexPolicy, str] = VertexPolicy.DUPLICATE,
    id_allocator: Optional[IdAllocator] = None,
    mesh_id: Optional[int] = None,
    name: str = "Cheese",
    color: Tuple[int, int, int, int] = YELLOW,
    weld_tolerance: Optional[float] = None
) -> Mesh:
    """
    Triangulate the isosurface of a scalar field.

    Args:
        field: Sampled scalar field
        isolevel: Surface threshold (0 for signed distance fields)
        vertex_policy: DUPLICATE (one vertex per triangle corner) or
            DEDUPLICATED (weld coincident vertices)
        id_allocator: Source of the mesh identity; a fresh allocator is
            used when neither this nor mesh_id is given
        mesh_id: Explicit identity, takes precedence over id_allocator
        name: Mesh name
        color: RGBA display color
        weld_tolerance: Welding radius, default 1e-6 * smallest spacing

    Returns:
        Mesh, visible, possibly with zero triangles
    """
    vertex_policy = VertexPolicy(vertex_policy)
    if field.data.shape != field.shape:
        raise InternalInvariantError(f"Field data shape {field.data.shape} disagrees with size {field.size}")

    if mesh_id is None:
        mesh_id = (id_allocator or IdAllocator()).next_id()

    def build(vertices: np.ndarray, faces: np.ndarray) -> Mesh:
        return Mesh(vertices=vertices, faces=faces, id=mesh_id, name=name, color=color, visible=True)

    empty = build(np.empty((0, 3)), np.empty((0, 3), dtype=np.int64))
    if min(field.size) < 2:
        logger.warning(f"Field {field.size} has no complete cubes, returning empty mesh")
        return empty

    start = time.perf_counter()
    configs = cube_indices(field, isolevel).ravel()
    active = np.nonzero(_EDGE_TABLE[configs])[0]
    if len(active) == 0:
        logger.info("No isosurface crossings, mesh is empty")
        return empty

    # Cell coordinates of active cubes, in traversal order
    cells_shape = (field.size[2] - 1, field.size[1] - 1, field.size[0] - 1)
    cz, cy, cx = np.unravel_index(active, cells_shape)
    cells = np.column_stack([cx, cy, cz])

    # (A, 8) corner values and (A, 8, 3) corner positions
    data = field.data
    corner_idx = cells[:, None, :] + _CORNER_OFFSETS[None, :, :]
    corner_vals = data[corner_idx[..., 2], corner_idx[..., 1], corner_idx[..., 0]].astype(np.float64)
    corner_pos = field.origin + corner_idx * field.spacing

    # Flatten triangle lists; boolean masking keeps cube-then-table order
    rows = _TRI_TABLE[configs[active]]
    used = rows >= 0
    edges = rows[used].astype(np.int64)
    owner = np.nonzero(used)[0]

    a = _EDGE_CORNERS[edges, 0]
    b = _EDGE_CORNERS[edges, 1]
    vertices = lerp_isolevel_many(
        isolevel,
        corner_pos[owner, a],
        corner_pos[owner, b],
        corner_vals[owner, a],
        corner_vals[owner, b],
    )
    faces = np.arange(len(vertices), dtype=np.int64).reshape(-1, 3)

    if vertex_policy is VertexPolicy.DEDUPLICATED:
        tolerance = weld_tolerance if weld_tolerance is not None else 1e-6 * float(field.spacing.min())
        vertices, faces = weld_vertices(vertices, faces, tolerance)

    mesh = build(vertices, faces)
    logger.info(f"Extracted mesh #{mesh_id}: {mesh.n_vertices} vertices, {mesh.n_faces} faces "
                f"from {len(active)} active cubes in {time.perf_counter() - start:.2f}s")
    return mesh
