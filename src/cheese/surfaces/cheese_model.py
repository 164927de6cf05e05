"""
The cheese: a cylinder perforated by randomly placed spherical pores.

Two evaluation strategies are provided and must be picked explicitly:

ExactCheese
    cylinder minus the union of pore spheres, using exact Euclidean
    distances. Valid everywhere.

ApproximateCheese
    the cheaper squared-distance form. Inside the cylinder height band
    (0 <= z <= height) it combines x^2 + y^2 - R^2 with |p - c|^2 - r^2;
    above and below the band it falls off linearly with the distance to
    the nearest cap plane. The sign matches ExactCheese; the magnitude is
    not a distance and must not be used as one.

Pore centres are drawn once, at construction, uniformly over the square
[-R, R]^2 that encloses the cylinder footprint and over [0, height] in z.
"""

from typing import Optional
import logging

import numpy as np

from ..common.config import SurfaceVariant
from ..common.errors import ConfigurationError
from .sdf import ImplicitSurface, Cylinder, Difference, Sphere, Union

logger = logging.getLogger(__name__)


def generate_pore_centers(
    pores_count: int,
    cylinder_radius: float,
    cylinder_height: float,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Draw pore centres uniformly over the cylinder's bounding footprint and height.

    Returns:
        (pores_count, 3) array of centres
    """
    if rng is None:
        rng = np.random.default_rng(seed)
    xs = rng.uniform(-cylinder_radius, cylinder_radius, pores_count)
    ys = rng.uniform(-cylinder_radius, cylinder_radius, pores_count)
    zs = rng.uniform(0.0, cylinder_height, pores_count)
    return np.column_stack([xs, ys, zs])


class _CheeseBase(ImplicitSurface):
    variant: SurfaceVariant

    def __init__(
        self,
        pores_count: int,
        pores_radius: float,
        cylinder_height: float,
        cylinder_radius: float,
        seed: Optional[int] = None,
        rng: Optional[np.random.Generator] = None
    ):
        if pores_count < 0:
            raise ConfigurationError(f"pores_count must be >= 0, got {pores_count}")
        if pores_radius <= 0 or cylinder_height <= 0 or cylinder_radius <= 0:
            raise ConfigurationError(
                f"Cheese dimensions must be positive: pores_radius={pores_radius}, "
                f"cylinder_height={cylinder_height}, cylinder_radius={cylinder_radius}"
            )
        self.pores_radius = float(pores_radius)
        self.cylinder_height = float(cylinder_height)
        self.cylinder_radius = float(cylinder_radius)
        self.pores_centers = generate_pore_centers(
            pores_count, self.cylinder_radius, self.cylinder_height, rng=rng, seed=seed
        )
        logger.debug(f"{type(self).__name__}: {pores_count} pores (r={pores_radius}) in "
                     f"cylinder R={cylinder_radius}, h={cylinder_height}")

    @property
    def pores_count(self) -> int:
        return len(self.pores_centers)


class ExactCheese(_CheeseBase):
    """Capped cylinder minus the union of pore spheres, exact distances."""

    variant = SurfaceVariant.EXACT

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        pores = Union(*(Sphere(center, self.pores_radius) for center in self.pores_centers))
        self.shape = Difference(Cylinder(self.cylinder_radius, self.cylinder_height), pores)

    def evaluate(self, x, y, z):
        return self.shape.evaluate(x, y, z)


class ApproximateCheese(_CheeseBase):
    """Squared-distance cheese. Trust the sign only."""

    variant = SurfaceVariant.APPROXIMATE

    def evaluate(self, x, y, z):
        x = np.asarray(x, dtype=float)
        y = np.asarray(y, dtype=float)
        z = np.asarray(z, dtype=float)

        cylinder = x ** 2 + y ** 2 - self.cylinder_radius ** 2
        r2 = self.pores_radius ** 2
        pores = np.full(np.broadcast(x, y, z).shape, np.inf)
        for cx, cy, cz in self.pores_centers:
            pores = np.minimum(pores, (x - cx) ** 2 + (y - cy) ** 2 + (z - cz) ** 2 - r2)

        in_band = np.maximum(cylinder, -pores)
        cap_distance = np.maximum(-z, z - self.cylinder_height)
        outside_band = np.maximum(cylinder, cap_distance)
        return np.where((z >= 0.0) & (z <= self.cylinder_height), in_band, outside_band)


def make_cheese(
    variant: SurfaceVariant,
    pores_count: int,
    pores_radius: float,
    cylinder_height: float,
    cylinder_radius: float,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None
) -> _CheeseBase:
    """Build the cheese surface for the requested evaluation strategy."""
    variant = SurfaceVariant(variant)
    cls = ExactCheese if variant is SurfaceVariant.EXACT else ApproximateCheese
    return cls(pores_count, pores_radius, cylinder_height, cylinder_radius, seed=seed, rng=rng)
