"""
Scalar field / plane rasterisation.

Produces an 8-bit grayscale RGBA image of one axis-orthogonal plane of the
field. Pixel layout per slicing axis:

    Z: width = size_x, height = size_y, pixel (x, y) = field(x, y, index)
    X: width = size_y, height = size_z, pixel (x, y) = field(index, x, y)
    Y: width = size_x, height = size_z, pixel (x, y) = field(x, index, y)
"""

import logging
from dataclasses import dataclass
from typing import Tuple, Union

import numpy as np

from ..common.config import Axis, NormalizationMode
from ..common.voxel import ScalarField

logger = logging.getLogger(__name__)

# Used for planes with zero dynamic range
FALLBACK_COLOR = (0, 0, 0, 255)


@dataclass
class RasterImage:
    """RGBA8 image; data has shape (height, width, 4)."""
    width: int
    height: int
    data: np.ndarray

    @classmethod
    def filled(cls, width: int, height: int, color: Tuple[int, int, int, int]) -> "RasterImage":
        data = np.empty((height, width, 4), dtype=np.uint8)
        data[:] = np.asarray(color, dtype=np.uint8)
        return cls(width=width, height=height, data=data)

    def linear_index(self, x: int, y: int) -> int:
        return x + y * self.width

    def at(self, x: int, y: int) -> Tuple[int, int, int, int]:
        return tuple(int(c) for c in self.data[y, x])

    @property
    def pixels(self) -> np.ndarray:
        """Flat (width * height, 4) view in linear-index order."""
        return self.data.reshape(-1, 4)

    @property
    def gray(self) -> np.ndarray:
        return self.data[:, :, 0]


def slice_grid(
    field: ScalarField,
    axis: Union[Axis, int, str],
    index: int,
    mode: Union[NormalizationMode, str] = NormalizationMode.GLOBAL
) -> RasterImage:
    """
    Rasterise one plane of the field to grayscale.

    GLOBAL mode maps with the field's cached min/max, LOCAL mode with the
    min/max of this plane only. Values map to floor(255 * (v - min) / range);
    a zero range gives a FALLBACK_COLOR image.

    Raises:
        ConfigurationError: unknown axis or index outside the field
    """
    axis = Axis.parse(axis)
    mode = NormalizationMode(mode)
    values = field.plane(axis.value, index).astype(np.float64)
    height, width = values.shape

    if mode is NormalizationMode.LOCAL:
        lo, hi = float(values.min()), float(values.max())
    else:
        lo, hi = field.min, field.max
    value_range = hi - lo

    if value_range == 0:
        logger.debug(f"Slice {axis.name}={index} has zero dynamic range, using fallback color")
        return RasterImage.filled(width, height, FALLBACK_COLOR)

    gray = np.clip(255.0 * (values - lo) / value_range, 0.0, 255.0).astype(np.uint8)
    image = RasterImage.filled(width, height, FALLBACK_COLOR)
    image.data[:, :, :3] = gray[:, :, None]
    logger.debug(f"Rasterised slice {axis.name}={index} ({width}x{height}, {mode.value} range {lo:.3f}..{hi:.3f})")
    return image
