"""
Cheese - porous solid modelling, meshing and slicing.

A "cheese" is a cylinder perforated by randomly placed spherical pores,
described as a signed distance field. The pipeline:

1. Sample the implicit surface on a regular grid (ScalarField)
2. Extract the zero isosurface with table-driven marching cubes (Mesh)
3. Derive connectivity and normals from the mesh
4. Slice the mesh into planar contours and the field into grayscale rasters

Usage:
    python -m cheese.run_all --slices 20 --axis z --output outputs
"""

__version__ = "1.0.0"
