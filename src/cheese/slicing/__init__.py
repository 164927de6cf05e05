"""Planar slicing of meshes (contours) and scalar fields (rasters)."""

from .mesh_slicer import PlanarSlice, slice_mesh, slice_plane, intersect_triangle_plane, projection_axes
from .grid_slicer import RasterImage, slice_grid, FALLBACK_COLOR

__all__ = [
    "PlanarSlice", "slice_mesh", "slice_plane", "intersect_triangle_plane", "projection_axes",
    "RasterImage", "slice_grid", "FALLBACK_COLOR",
]
