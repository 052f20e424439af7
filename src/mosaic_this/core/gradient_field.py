"""Luminance gradient field extraction used to orient and place mosaic tiles."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy import ndimage

from ..utils.math import round_half_up

logger = logging.getLogger(__name__)

# Sobel kernels in correlation form: weights[ky + 1, kx + 1] multiplies
# luminance[y + ky, x + kx].
SOBEL_X = np.array([[-1.0, 0.0, 1.0],
                    [-2.0, 0.0, 2.0],
                    [-1.0, 0.0, 1.0]])
SOBEL_Y = SOBEL_X.T.copy()


@dataclass
class GradientField:
    """Per-pixel gradient magnitude and direction over an image domain.

    Both arrays have shape (height, width). Values on the one-pixel border
    are zero because the 3x3 kernel needs a full neighbourhood there.
    """

    magnitude: np.ndarray
    direction: np.ndarray

    def __post_init__(self):
        if self.magnitude.shape != self.direction.shape:
            raise ValueError(
                f"Magnitude and direction shapes differ: "
                f"{self.magnitude.shape} vs {self.direction.shape}"
            )

    @property
    def height(self) -> int:
        return self.magnitude.shape[0]

    @property
    def width(self) -> int:
        return self.magnitude.shape[1]

    @property
    def shape(self):
        return self.magnitude.shape

    def max_magnitude(self) -> float:
        """Largest magnitude anywhere in the field (0.0 for an empty field)."""
        if self.magnitude.size == 0:
            return 0.0
        return float(np.max(self.magnitude))

    def edge_mask(self, fraction: float = 0.25) -> np.ndarray:
        """Boolean mask of pixels whose magnitude exceeds ``fraction`` of the maximum.

        The threshold is derived from the current field on every call.
        """
        threshold = fraction * self.max_magnitude()
        return self.magnitude > threshold

    def nearest_pixel(self, x, y):
        """Integer pixel (ix, iy) nearest to (x, y), rounded half up and clamped.

        Works on scalars and numpy arrays.
        """
        ix = np.clip(round_half_up(x), 0, self.width - 1)
        iy = np.clip(round_half_up(y), 0, self.height - 1)
        return ix, iy

    def is_interior(self, x, y):
        """Whether integer pixel (x, y) lies inside the valid (non-border) region."""
        return (1 <= x) & (x < self.width - 1) & (1 <= y) & (y < self.height - 1)

    def sample_directions(self, xs, ys):
        """Directions at the pixels nearest to many points.

        Returns:
            (directions, interior): float and boolean arrays; directions are
            zero where the clamped pixel lies on the border
        """
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        if self.magnitude.size == 0:
            return np.zeros(xs.shape), np.zeros(xs.shape, dtype=bool)

        ix, iy = self.nearest_pixel(xs, ys)
        interior = self.is_interior(ix, iy)
        return np.where(interior, self.direction[iy, ix], 0.0), interior

    def sample_direction(self, x: float, y: float) -> Optional[float]:
        """Direction at the pixel nearest to (x, y), clamped into bounds.

        Returns None when the clamped pixel falls on the border, where the
        field carries no direction.
        """
        directions, interior = self.sample_directions([x], [y])
        if not interior[0]:
            return None
        return float(directions[0])


class GradientFieldExtractor:
    """Compute Sobel gradient fields from RGBA pixel buffers."""

    def compute_luminance(self, pixels: np.ndarray) -> np.ndarray:
        """Mean of the red, green and blue channels, without gamma correction.

        Args:
            pixels: Pixel buffer (H, W, C) with C >= 3, channel values in [0, 255]

        Returns:
            Luminance array (H, W) as float64
        """
        if pixels.ndim != 3 or pixels.shape[2] < 3:
            raise ValueError(f"Expected (H, W, 3|4) pixel buffer, got shape {pixels.shape}")
        return pixels[:, :, :3].astype(np.float64).mean(axis=2)

    def extract(self, pixels: np.ndarray) -> GradientField:
        """
        Compute gradient magnitude and direction for every interior pixel.

        Args:
            pixels: Pixel buffer (H, W, 4) RGBA uint8

        Returns:
            GradientField with zeroed border; buffers smaller than 3x3 give an
            all-zero field of the same shape
        """
        luminance = self.compute_luminance(pixels)
        height, width = luminance.shape

        magnitude = np.zeros((height, width), dtype=np.float64)
        direction = np.zeros((height, width), dtype=np.float64)

        if width < 3 or height < 3:
            logger.debug(f"Image {width}×{height} too small for a 3×3 kernel, returning zero field")
            return GradientField(magnitude=magnitude, direction=direction)

        grad_x = ndimage.correlate(luminance, SOBEL_X, mode='nearest')
        grad_y = ndimage.correlate(luminance, SOBEL_Y, mode='nearest')

        interior = (slice(1, height - 1), slice(1, width - 1))
        magnitude[interior] = np.hypot(grad_x[interior], grad_y[interior])
        direction[interior] = np.arctan2(grad_y[interior], grad_x[interior])
        # atan2(-0.0, negative) is -π; keep directions in (-π, π]
        direction[direction == -np.pi] = np.pi

        logger.debug(
            f"Gradient field {width}×{height}: max magnitude {magnitude.max():.2f}"
        )
        return GradientField(magnitude=magnitude, direction=direction)


def extract_gradient_field(pixels: np.ndarray) -> GradientField:
    """Convenience function to compute the gradient field of a pixel buffer."""
    return GradientFieldExtractor().extract(pixels)
