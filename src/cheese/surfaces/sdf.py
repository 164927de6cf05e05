"""
Signed distance primitives and Boolean combinators.

Every surface answers one question: given points, what is the signed
distance to the surface (negative = inside)? Evaluation is vectorised:
x, y and z are numpy arrays that broadcast against each other, so a grid
sampler can pass separable coordinate axes without building a full
meshgrid.

Boolean rules on distances:
    union        = min(a, b)
    intersection = max(a, b)
    difference   = max(a, -b)
"""

from abc import ABC, abstractmethod
from typing import Sequence, Tuple
import logging

import numpy as np

from ..common.errors import ConfigurationError
from ..common.vecmath import transform_points

logger = logging.getLogger(__name__)


def sdf_union(a, b):
    return np.minimum(a, b)


def sdf_intersection(a, b):
    return np.maximum(a, b)


def sdf_difference(a, b):
    return np.maximum(a, -b)


def _broadcast_shape(x, y, z) -> Tuple[int, ...]:
    return np.broadcast(np.asarray(x), np.asarray(y), np.asarray(z)).shape


class ImplicitSurface(ABC):
    """Capability: signed distance at arbitrary points."""

    @abstractmethod
    def evaluate(self, x, y, z) -> np.ndarray:
        """Vectorised signed distance over broadcastable coordinate arrays."""

    def __call__(self, x: float, y: float, z: float) -> float:
        return float(np.asarray(self.evaluate(x, y, z)).reshape(-1)[0])

    def eval_point(self, point: Sequence[float]) -> float:
        x, y, z = point
        return self(x, y, z)

    def evaluate_points(self, points: np.ndarray) -> np.ndarray:
        """Signed distance for an (N, 3) array of points."""
        points = np.asarray(points, dtype=float).reshape(-1, 3)
        values = self.evaluate(points[:, 0], points[:, 1], points[:, 2])
        return np.broadcast_to(values, (len(points),)).astype(float)

    def __or__(self, other: "ImplicitSurface") -> "Union":
        return Union(self, other)

    def __and__(self, other: "ImplicitSurface") -> "Intersection":
        return Intersection(self, other)

    def __sub__(self, other: "ImplicitSurface") -> "Difference":
        return Difference(self, other)

    def transformed(self, matrix: np.ndarray) -> "Transformed":
        return Transformed(self, matrix)


class Sphere(ImplicitSurface):
    def __init__(self, center: Sequence[float] = (0.0, 0.0, 0.0), radius: float = 1.0):
        if radius <= 0:
            raise ConfigurationError(f"Sphere radius must be positive, got {radius}")
        self.center = np.asarray(center, dtype=float)
        self.radius = float(radius)

    def evaluate(self, x, y, z):
        cx, cy, cz = self.center
        return np.sqrt((x - cx) ** 2 + (y - cy) ** 2 + (z - cz) ** 2) - self.radius


class InfiniteCylinder(ImplicitSurface):
    """Cylinder of given radius, infinite along z."""

    def __init__(self, radius: float, center_xy: Sequence[float] = (0.0, 0.0)):
        if radius <= 0:
            raise ConfigurationError(f"Cylinder radius must be positive, got {radius}")
        self.radius = float(radius)
        self.center_xy = np.asarray(center_xy, dtype=float)

    def evaluate(self, x, y, z):
        cx, cy = self.center_xy
        return np.sqrt((x - cx) ** 2 + (y - cy) ** 2) - self.radius


class Cylinder(ImplicitSurface):
    """
    Capped cylinder along z, from base[2] to base[2] + height.

    Exact Euclidean distance, including the rim region where the nearest
    surface point is on the circular edge.
    """

    def __init__(self, radius: float, height: float, base: Sequence[float] = (0.0, 0.0, 0.0)):
        if radius <= 0 or height <= 0:
            raise ConfigurationError(f"Cylinder needs positive radius and height, got r={radius} h={height}")
        self.radius = float(radius)
        self.height = float(height)
        self.base = np.asarray(base, dtype=float)

    def evaluate(self, x, y, z):
        bx, by, bz = self.base
        half = self.height * 0.5
        d_r = np.sqrt((x - bx) ** 2 + (y - by) ** 2) - self.radius
        d_h = np.abs(z - (bz + half)) - half
        outside = np.sqrt(np.maximum(d_r, 0.0) ** 2 + np.maximum(d_h, 0.0) ** 2)
        inside = np.minimum(np.maximum(d_r, d_h), 0.0)
        return inside + outside


class Box(ImplicitSurface):
    def __init__(self, half_size: Sequence[float], center: Sequence[float] = (0.0, 0.0, 0.0)):
        self.half_size = np.asarray(half_size, dtype=float)
        if np.any(self.half_size <= 0):
            raise ConfigurationError(f"Box half sizes must be positive, got {half_size}")
        self.center = np.asarray(center, dtype=float)

    def evaluate(self, x, y, z):
        qx = np.abs(x - self.center[0]) - self.half_size[0]
        qy = np.abs(y - self.center[1]) - self.half_size[1]
        qz = np.abs(z - self.center[2]) - self.half_size[2]
        outside = np.sqrt(np.maximum(qx, 0.0) ** 2 + np.maximum(qy, 0.0) ** 2 + np.maximum(qz, 0.0) ** 2)
        inside = np.minimum(np.maximum(np.maximum(qx, qy), qz), 0.0)
        return outside + inside


class Union(ImplicitSurface):
    """Union of any number of surfaces. An empty union is nowhere (+inf)."""

    def __init__(self, *children: ImplicitSurface):
        self.children = list(children)

    def evaluate(self, x, y, z):
        result = np.full(_broadcast_shape(x, y, z), np.inf)
        for child in self.children:
            result = sdf_union(result, child.evaluate(x, y, z))
        return result


class Intersection(ImplicitSurface):
    """Intersection of any number of surfaces. An empty intersection is everywhere (-inf)."""

    def __init__(self, *children: ImplicitSurface):
        self.children = list(children)

    def evaluate(self, x, y, z):
        result = np.full(_broadcast_shape(x, y, z), -np.inf)
        for child in self.children:
            result = sdf_intersection(result, child.evaluate(x, y, z))
        return result


class Difference(ImplicitSurface):
    """`base` with `cut` removed."""

    def __init__(self, base: ImplicitSurface, cut: ImplicitSurface):
        self.base = base
        self.cut = cut

    def evaluate(self, x, y, z):
        return sdf_difference(self.base.evaluate(x, y, z), self.cut.evaluate(x, y, z))


class Transformed(ImplicitSurface):
    """
    A surface placed by a 4x4 affine matrix.

    Points are pulled back through the inverse matrix before evaluating the
    child. Distances stay exact for rigid transforms only.
    """

    def __init__(self, child: ImplicitSurface, matrix: np.ndarray):
        self.child = child
        self.matrix = np.asarray(matrix, dtype=float)
        if self.matrix.shape != (4, 4):
            raise ConfigurationError(f"Transform must be 4x4, got {self.matrix.shape}")
        try:
            self.inverse = np.linalg.inv(self.matrix)
        except np.linalg.LinAlgError:
            raise ConfigurationError("Transform matrix is singular") from None

    def evaluate(self, x, y, z):
        x, y, z = np.broadcast_arrays(
            np.asarray(x, dtype=float), np.asarray(y, dtype=float), np.asarray(z, dtype=float)
        )
        local = transform_points(self.inverse, np.stack([x, y, z], axis=-1))
        return self.child.evaluate(local[..., 0], local[..., 1], local[..., 2])
