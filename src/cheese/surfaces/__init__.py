"""Implicit surfaces: SDF primitives, Boolean combinators and the cheese model."""

from .sdf import (
    ImplicitSurface,
    Sphere,
    InfiniteCylinder,
    Cylinder,
    Box,
    Union,
    Intersection,
    Difference,
    Transformed,
    sdf_union,
    sdf_intersection,
    sdf_difference,
)
from .cheese_model import ExactCheese, ApproximateCheese, make_cheese, generate_pore_centers

__all__ = [
    "ImplicitSurface",
    "Sphere", "InfiniteCylinder", "Cylinder", "Box",
    "Union", "Intersection", "Difference", "Transformed",
    "sdf_union", "sdf_intersection", "sdf_difference",
    "ExactCheese", "ApproximateCheese", "make_cheese", "generate_pore_centers",
]
