"""Isosurface extraction: table-driven marching cubes."""

from .marching_cubes import marching_cubes, cube_indices, weld_vertices
from .tables import EDGE_TABLE, TRI_TABLE, EDGE_CORNERS, CORNER_OFFSETS

__all__ = [
    "marching_cubes", "cube_indices", "weld_vertices",
    "EDGE_TABLE", "TRI_TABLE", "EDGE_CORNERS", "CORNER_OFFSETS",
]
