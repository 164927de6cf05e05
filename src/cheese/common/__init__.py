"""
Common modules shared by the surface, meshing and slicing stages.

Grid convention (NON-NEGOTIABLE):
- Sample (x, y, z) sits at origin + (x, y, z) * spacing
- Linear index = x + y * size_x + z * size_x * size_y
- Arrays are stored (z, y, x) so that numpy's C order matches it
"""

from .config import Config, Axis, SurfaceVariant, VertexPolicy, NormalizationMode, MeshMetadata
from .errors import CheeseError, ConfigurationError, DegenerateGeometryError, InternalInvariantError
from .voxel import ScalarField, create_sdf_grid, grid_size
from .mesh_ops import (
    Mesh, Connectivity, IdAllocator,
    build_connectivity, calculate_bbox, calculate_face_normals, calculate_vertex_normals,
    compute_mesh_stats,
)
from .io import save_mesh, load_mesh, save_slices_csv, save_raster_png, render_slice_png

__all__ = [
    'Config', 'Axis', 'SurfaceVariant', 'VertexPolicy', 'NormalizationMode', 'MeshMetadata',
    'CheeseError', 'ConfigurationError', 'DegenerateGeometryError', 'InternalInvariantError',
    'ScalarField', 'create_sdf_grid', 'grid_size',
    'Mesh', 'Connectivity', 'IdAllocator',
    'build_connectivity', 'calculate_bbox', 'calculate_face_normals', 'calculate_vertex_normals',
    'compute_mesh_stats',
    'save_mesh', 'load_mesh', 'save_slices_csv', 'save_raster_png', 'render_slice_png',
]
