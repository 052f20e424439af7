"""Tile sites and their initial placement."""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .errors import DegenerateImage

logger = logging.getLogger(__name__)


@dataclass
class Site:
    """Mutable relaxation state of one tile center."""

    x: float
    y: float
    theta: float = 0.0

    def copy(self) -> "Site":
        return Site(self.x, self.y, self.theta)


def _check_dimensions(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise DegenerateImage(f"Image has no area: {width}×{height}")


def _clamp_into(values: np.ndarray, upper: float) -> np.ndarray:
    """Clamp values into the half-open interval [0, upper)."""
    return np.clip(values, 0.0, np.nextafter(float(upper), 0.0))


def tile_size_for_count(width: int, height: int, num_tiles: int) -> float:
    """Edge length of a square tile such that ``num_tiles`` tiles cover the image area."""
    _check_dimensions(width, height)
    if num_tiles <= 0:
        raise ValueError(f"num_tiles must be positive, got {num_tiles}")
    return math.sqrt(width * height / num_tiles)


def grid_shape(width: int, height: int, tile_size: float) -> tuple:
    """(columns, rows) of the fixed tile grid; at least one cell per axis."""
    _check_dimensions(width, height)
    if tile_size <= 0:
        raise ValueError(f"tile_size must be positive, got {tile_size}")
    return max(1, int(width // tile_size)), max(1, int(height // tile_size))


def seed_random_sites(num_tiles: int, width: int, height: int,
                      rng: Optional[np.random.Generator] = None) -> List[Site]:
    """Place ``num_tiles`` sites uniformly at random inside the image."""
    _check_dimensions(width, height)
    if num_tiles < 0:
        raise ValueError(f"num_tiles must be non-negative, got {num_tiles}")

    rng = rng if rng is not None else np.random.default_rng()
    xs = _clamp_into(rng.uniform(0.0, width, size=num_tiles), width)
    ys = _clamp_into(rng.uniform(0.0, height, size=num_tiles), height)

    logger.debug(f"Seeded {num_tiles} random sites in {width}×{height}")
    return [Site(float(x), float(y)) for x, y in zip(xs, ys)]


def seed_grid_sites(width: int, height: int, tile_size: float,
                    rng: Optional[np.random.Generator] = None,
                    jitter: float = 0.2) -> List[Site]:
    """
    Place one site per cell of a regular grid, in row-major order.

    Args:
        width: Image width in pixels
        height: Image height in pixels
        tile_size: Grid cell edge length in pixels
        rng: Random generator for the positional jitter
        jitter: Jitter span as a fraction of ``tile_size``; each coordinate
            moves by up to ``±jitter * tile_size / 2``

    Returns:
        Sites at jittered cell centers, clamped into the image
    """
    cols, rows = grid_shape(width, height, tile_size)
    rng = rng if rng is not None else np.random.default_rng()
    span = tile_size * jitter

    col_idx, row_idx = np.meshgrid(np.arange(cols), np.arange(rows))
    xs = col_idx.ravel() * tile_size + tile_size / 2 + (rng.random(cols * rows) - 0.5) * span
    ys = row_idx.ravel() * tile_size + tile_size / 2 + (rng.random(cols * rows) - 0.5) * span
    xs = _clamp_into(xs, width)
    ys = _clamp_into(ys, height)

    logger.debug(f"Seeded {cols}×{rows} grid sites (tile size {tile_size:.2f})")
    return [Site(float(x), float(y)) for x, y in zip(xs, ys)]
