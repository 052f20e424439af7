"""Turn relaxed sites into colored, rotated tile records."""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .palette import Palette
from .sites import Site
from ..utils.math import normalize_degrees, round_half_up

logger = logging.getLogger(__name__)

WHITE = (255, 255, 255)

# Column order of the flat tile table; downstream tooling depends on it.
TILE_FIELDS = (
    "tile_id",
    "x_position",
    "y_position",
    "width",
    "height",
    "color_hex",
    "color_name",
    "rotation_degrees",
)


@dataclass(frozen=True)
class Tile:
    """A single mosaic tile: square, rotated about its own center."""

    tile_id: int
    x: float
    y: float
    width: float
    height: float
    color_hex: str
    color_name: str
    rotation_degrees: float

    def __post_init__(self):
        """Validate tile parameters."""
        if self.tile_id < 1:
            raise ValueError(f"Invalid tile_id: {self.tile_id}")
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Invalid size: width={self.width}, height={self.height}")
        if not 0.0 <= self.rotation_degrees < 360.0:
            raise ValueError(f"Invalid rotation: {self.rotation_degrees}")

    @property
    def center(self) -> Tuple[float, float]:
        """Tile center, the pivot of its rotation."""
        return self.x + self.width / 2, self.y + self.height / 2

    def to_dict(self) -> Dict[str, object]:
        """Convert to a dictionary keyed by the tile table column names."""
        return {
            "tile_id": self.tile_id,
            "x_position": self.x,
            "y_position": self.y,
            "width": self.width,
            "height": self.height,
            "color_hex": self.color_hex,
            "color_name": self.color_name,
            "rotation_degrees": self.rotation_degrees,
        }


def align_tile_to_edge(gradient: float) -> int:
    """Snap an edge angle in radians to the nearest 45° step in [0, 360).

    Halfway angles round up, so 22.5° snaps to 45°.
    """
    degrees = normalize_degrees(math.degrees(gradient))
    snapped = int(round_half_up(degrees / 45.0)) * 45
    return snapped % 360


def sample_color(pixels: np.ndarray, x: float, y: float) -> Tuple[int, int, int]:
    """RGB of the pixel nearest to (x, y).

    Positions that round just past the buffer edge are clamped onto it;
    positions genuinely outside the buffer (or non-finite) sample white.
    """
    height, width = pixels.shape[:2]
    if not (math.isfinite(x) and math.isfinite(y)):
        return WHITE
    if not (-0.5 <= x < width + 0.5 and -0.5 <= y < height + 0.5) or width == 0 or height == 0:
        return WHITE

    ix = int(np.clip(round_half_up(x), 0, width - 1))
    iy = int(np.clip(round_half_up(y), 0, height - 1))
    r, g, b = pixels[iy, ix, :3]
    return int(r), int(g), int(b)


class TileSynthesizer:
    """Build tile records from sites, a pixel buffer and a palette."""

    def __init__(self, palette: Palette, tile_size: float, grout_width: float = 0.0,
                 rotation_variance: float = 0.0, snap_to_edges: bool = False,
                 rng: Optional[np.random.Generator] = None):
        """
        Initialize synthesizer.

        Args:
            palette: Palette used for color quantization
            tile_size: Nominal tile pitch in pixels
            grout_width: Gap between neighbouring tiles, subtracted from the tile side
            rotation_variance: Maximum random jitter in degrees (uniform, both directions)
            snap_to_edges: Snap edge angles to 45° steps before jitter
            rng: Source of the rotation jitter; seed it for reproducible output
        """
        if tile_size <= 0:
            raise ValueError(f"tile_size must be positive, got {tile_size}")
        if grout_width < 0:
            raise ValueError(f"grout_width must be non-negative, got {grout_width}")
        if rotation_variance < 0:
            raise ValueError(f"rotation_variance must be non-negative, got {rotation_variance}")

        self.palette = palette
        self.tile_size = float(tile_size)
        self.grout_width = float(grout_width)
        self.rotation_variance = float(rotation_variance)
        self.snap_to_edges = snap_to_edges
        self.rng = rng if rng is not None else np.random.default_rng()

    @property
    def tile_side(self) -> float:
        """Rendered tile side after grout, never negative."""
        return max(0.0, self.tile_size - self.grout_width)

    def rotation_for(self, site: Site) -> float:
        """Tile rotation in degrees: edge angle plus jitter, in [0, 360)."""
        if self.snap_to_edges:
            base = float(align_tile_to_edge(site.theta))
        else:
            base = math.degrees(site.theta)
        jitter = self.rng.uniform(-self.rotation_variance, self.rotation_variance)
        return normalize_degrees(base + jitter)

    def synthesize(self, sites: Sequence[Site], pixels: np.ndarray) -> List[Tile]:
        """
        Produce one tile per site, numbered from 1 in site order.

        Args:
            sites: Relaxed sites
            pixels: Pixel buffer (H, W, 4) the colors are sampled from

        Returns:
            List of tiles, same length and order as ``sites``
        """
        side = self.tile_side
        half = self.tile_size / 2
        tiles = []

        for tile_id, site in enumerate(sites, start=1):
            rotation = self.rotation_for(site)
            index = self.palette.nearest_index(sample_color(pixels, site.x, site.y))
            entry = self.palette[index]

            tiles.append(Tile(
                tile_id=tile_id,
                x=site.x - half,
                y=site.y - half,
                width=side,
                height=side,
                color_hex=entry.hex,
                color_name=entry.name,
                rotation_degrees=rotation,
            ))

        logger.info(f"Synthesized {len(tiles)} tiles (side {side:.2f}px)")
        return tiles


def synthesize(sites: Sequence[Site], pixels: np.ndarray, palette: Palette,
               tile_size: float, grout_width: float, rotation_variance: float,
               rng: Optional[np.random.Generator] = None,
               snap_to_edges: bool = False) -> List[Tile]:
    """Convenience function to synthesize tiles with a one-off TileSynthesizer."""
    synthesizer = TileSynthesizer(
        palette,
        tile_size,
        grout_width=grout_width,
        rotation_variance=rotation_variance,
        snap_to_edges=snap_to_edges,
        rng=rng,
    )
    return synthesizer.synthesize(sites, pixels)
