"""
Mesh / plane intersection.

A mesh is cut by `count` parallel planes orthogonal to a principal axis,
evenly spaced from the minimum of the mesh bounding box:

    position_i = box.min[axis] + i * extent / count

A triangle contributes one segment to a plane when exactly two of its
edges have endpoints strictly on opposite sides (product of signed
distances < 0). Vertices lying exactly on the plane count as non-crossing,
so triangles touching the plane only at a vertex, and the plane through
box.min itself, contribute nothing.

Segments are projected onto the two remaining axes in the fixed order
((axis + 1) % 3, (axis + 2) % 3).
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np

from ..common.config import Axis
from ..common.errors import ConfigurationError, DegenerateGeometryError
from ..common.mesh_ops import Mesh, calculate_bbox
from ..common.vecmath import BBox, dot, lerp

logger = logging.getLogger(__name__)


@dataclass
class PlanarSlice:
    """Cross-section of a mesh by one plane."""
    index: int
    axis: Axis
    position: float
    segments: np.ndarray    # (K, 2, 2) projected start/end points
    segments3d: np.ndarray  # (K, 2, 3) world-space start/end points
    box: BBox               # 2D bounds of the projected segments

    @property
    def n_segments(self) -> int:
        return len(self.segments)


def projection_axes(axis: Axis) -> Tuple[int, int]:
    """The two in-plane axes, in output order."""
    a = Axis.parse(axis).value
    return ((a + 1) % 3, (a + 2) % 3)


def intersect_triangle_plane(
    plane_point: np.ndarray,
    plane_normal: np.ndarray,
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray
) -> Optional[Tuple[np.ndarray, np.ndarray]]:
    """
    Segment where a plane cuts triangle (a, b, c), or None.

    The segment runs from the crossing on the first cut edge to the one on
    the second, visiting edges in the order ab, bc, ca.
    """
    plane_d = -dot(plane_point, plane_normal)
    d1 = float(dot(plane_normal, a) + plane_d)
    d2 = float(dot(plane_normal, b) + plane_d)
    d3 = float(dot(plane_normal, c) + plane_d)

    s1 = d1 * d2 < 0
    s2 = d2 * d3 < 0
    s3 = d3 * d1 < 0

    if s1 and s2 and not s3:
        return lerp(a, b, d1 / (d1 - d2)), lerp(b, c, d2 / (d2 - d3))
    if s2 and s3 and not s1:
        return lerp(b, c, d2 / (d2 - d3)), lerp(c, a, d3 / (d3 - d1))
    if s3 and s1 and not s2:
        return lerp(c, a, d3 / (d3 - d1)), lerp(a, b, d1 / (d1 - d2))
    return None


def _cut_triangles(triangles: np.ndarray, axis: int, position: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Vectorised triangle cut against the plane coord[axis] == position.

    Returns:
        Tuple of (start, end) arrays, each (K, 3), in triangle order
    """
    d = triangles[:, :, axis] - position
    d1, d2, d3 = d[:, 0], d[:, 1], d[:, 2]
    s1 = d1 * d2 < 0
    s2 = d2 * d3 < 0
    s3 = d3 * d1 < 0

    c12 = s1 & s2 & ~s3
    c23 = s2 & s3 & ~s1
    c31 = s3 & s1 & ~s2
    hit = c12 | c23 | c31
    if not hit.any():
        empty = np.empty((0, 3))
        return empty, empty

    tri = triangles[hit]
    d1, d2, d3 = d1[hit], d2[hit], d3[hit]
    c12, c23 = c12[hit][:, None], c23[hit][:, None]
    A, B, C = tri[:, 0], tri[:, 1], tri[:, 2]

    # Denominators are non-zero only on the edges actually cut
    with np.errstate(divide="ignore", invalid="ignore"):
        p_ab = lerp(A, B, (d1 / (d1 - d2))[:, None])
        p_bc = lerp(B, C, (d2 / (d2 - d3))[:, None])
        p_ca = lerp(C, A, (d3 / (d3 - d1))[:, None])

    start = np.where(c12, p_ab, np.where(c23, p_bc, p_ca))
    end = np.where(c12, p_bc, np.where(c23, p_ca, p_ab))
    return start, end


def slice_plane(triangles: np.ndarray, axis: Axis, index: int, position: float) -> PlanarSlice:
    """Cut pre-gathered (M, 3, 3) triangles with one plane."""
    axis = Axis.parse(axis)
    u, v = projection_axes(axis)
    start, end = _cut_triangles(triangles, axis.value, position)

    segments3d = np.stack([start, end], axis=1) if len(start) else np.empty((0, 2, 3))
    segments = segments3d[:, :, [u, v]]
    box = BBox.empty(2)
    box.merge(segments.reshape(-1, 2))
    return PlanarSlice(index=index, axis=axis, position=float(position),
                       segments=segments, segments3d=segments3d, box=box)


def slice_mesh(
    mesh: Mesh,
    count: int,
    axis: Union[Axis, int, str] = Axis.Z,
    workers: Optional[int] = None
) -> List[PlanarSlice]:
    """
    Cut a mesh with `count` evenly spaced planes along `axis`.

    Planes are independent, so they are processed concurrently; results
    are placed by plane index.

    Raises:
        ConfigurationError: count < 1 or unknown axis
        DegenerateGeometryError: empty mesh or zero extent along axis

    Returns:
        Exactly `count` PlanarSlice objects
    """
    axis = Axis.parse(axis)
    try:
        n = int(count)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Slice count must be a positive integer, got {count!r}") from None
    if n != count or n < 1:
        raise ConfigurationError(f"Slice count must be a positive integer, got {count!r}")
    count = n
    mesh.validate()

    box = calculate_bbox(mesh)
    if not box.is_valid() or mesh.n_faces == 0:
        raise DegenerateGeometryError(f"Cannot slice empty mesh '{mesh.name}'")
    extent = float(box.size()[axis.value])
    if extent <= 0:
        raise DegenerateGeometryError(
            f"Mesh '{mesh.name}' has zero extent along {axis.name}, cannot space slice planes"
        )

    step = extent / count
    positions = box.min[axis.value] + step * np.arange(count)
    triangles = mesh.vertices[mesh.faces]
    triangles.flags.writeable = False

    logger.info(f"Slicing mesh #{mesh.id} ({mesh.n_faces} faces) with {count} planes along {axis.name}")
    start = time.perf_counter()

    def run(i: int) -> PlanarSlice:
        return slice_plane(triangles, axis, i, positions[i])

    if workers == 1:
        slices = [run(i) for i in range(count)]
    else:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            slices = list(pool.map(run, range(count)))

    n_segments = sum(s.n_segments for s in slices)
    logger.info(f"Sliced into {count} planes, {n_segments} segments in {time.perf_counter() - start:.2f}s")
    return slices
